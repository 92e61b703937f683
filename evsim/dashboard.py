import asyncio
import contextlib
import logging
from datetime import date, datetime
from typing import Dict, List

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse
from pydantic import BaseModel

from .config import DEFAULT_TARGET_BATTERY, HTTP_PORT, TICK_SEC
from .errors import (
    DashboardError,
    EmailDeliveryFailed,
    InsufficientBalance,
    InvalidCredentials,
    InvalidTopUpAmount,
    NoActiveSession,
    PaymentFailed,
    SessionAlreadyActive,
    SessionNotTerminal,
    StationUnavailable,
    UnknownUser,
)
from .models import ChargingSession, Invoice, Transaction, User
from .service import DashboardService
from .state_machine import ChargingMode, Station
from .ticker import recompute_loop

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")

ERROR_STATUS = {
    InvalidCredentials: 401,
    InsufficientBalance: 402,
    PaymentFailed: 402,
    NoActiveSession: 404,
    UnknownUser: 404,
    StationUnavailable: 409,
    SessionAlreadyActive: 409,
    SessionNotTerminal: 409,
    InvalidTopUpAmount: 422,
    EmailDeliveryFailed: 502,
}


def http_error(e: DashboardError) -> HTTPException:
    status = ERROR_STATUS.get(type(e), 400)
    if isinstance(e, StationUnavailable) and e.status is None:
        status = 404
    return HTTPException(status_code=status, detail=str(e))


# -------- request bodies --------
class StartReq(BaseModel):
    userId: str
    stationId: str
    vehicleId: str | None = None
    mode: str = ChargingMode.NORMAL
    targetBattery: float = DEFAULT_TARGET_BATTERY


class SessionReq(BaseModel):
    userId: str | None = None
    sessionId: str | None = None


class WalletReq(BaseModel):
    amount: float
    paymentMethod: str = "upi"


class LoginReq(BaseModel):
    vehicleId: str
    rfidId: str


class StationStatusReq(BaseModel):
    status: str


# -------- response bodies --------
class SessionOut(BaseModel):
    id: str
    userId: str
    vehicleId: str
    stationId: str
    startTime: datetime
    endTime: datetime | None
    energyConsumed: float
    costPerKwh: float
    totalCost: float
    batteryStart: float
    batteryEnd: float | None
    status: str
    chargingMode: str
    targetBattery: float
    averagePowerKw: float

    @classmethod
    def of(cls, s: ChargingSession) -> "SessionOut":
        return cls(
            id=s.id,
            userId=s.user_id,
            vehicleId=s.vehicle_id,
            stationId=s.station_id,
            startTime=s.start_time,
            endTime=s.end_time,
            energyConsumed=round(s.energy_consumed, 3),
            costPerKwh=s.cost_per_kwh,
            totalCost=round(s.total_cost, 2),
            batteryStart=s.battery_start,
            batteryEnd=None if s.battery_end is None else round(s.battery_end, 1),
            status=s.status,
            chargingMode=s.charging_mode,
            targetBattery=s.target_battery,
            averagePowerKw=s.average_power_kw,
        )


class StationOut(BaseModel):
    id: str
    name: str
    location: str
    status: str
    powerOutput: float
    maxPowerOutput: float
    connectorType: str
    totalEnergyDispensed: float
    totalRevenue: float
    sessionsCompleted: int
    efficiency: float
    lastMaintenance: date | None
    nextMaintenance: date | None
    currentSession: str | None

    @classmethod
    def of(cls, s: Station) -> "StationOut":
        return cls(
            id=s.id,
            name=s.name,
            location=s.location,
            status=s.status,
            powerOutput=s.power_output_kw,
            maxPowerOutput=s.max_power_kw,
            connectorType=s.connector_type,
            totalEnergyDispensed=round(s.total_energy_dispensed, 3),
            totalRevenue=round(s.total_revenue, 2),
            sessionsCompleted=s.sessions_completed,
            efficiency=s.efficiency,
            lastMaintenance=s.last_maintenance,
            nextMaintenance=s.next_maintenance,
            currentSession=s.session_id,
        )


class InvoiceItemOut(BaseModel):
    description: str
    units: float
    rate: float
    amount: float


class InvoiceOut(BaseModel):
    id: str
    sessionId: str
    userId: str
    vehicleId: str
    stationName: str
    invoiceNumber: str
    date: datetime
    items: List[InvoiceItemOut]
    subtotal: float
    tax: float
    total: float
    paymentMethod: str
    transactionId: str | None
    status: str

    @classmethod
    def of(cls, inv: Invoice) -> "InvoiceOut":
        return cls(
            id=inv.id,
            sessionId=inv.session_id,
            userId=inv.user_id,
            vehicleId=inv.vehicle_id,
            stationName=inv.station_name,
            invoiceNumber=inv.invoice_number,
            date=inv.date,
            items=[
                InvoiceItemOut(
                    description=i.description, units=round(i.units, 3), rate=round(i.rate, 2), amount=round(i.amount, 2)
                )
                for i in inv.items
            ],
            subtotal=round(inv.subtotal, 2),
            tax=round(inv.tax, 2),
            total=round(inv.total, 2),
            paymentMethod=inv.payment_method,
            transactionId=inv.transaction_id,
            status=inv.status,
        )


class TransactionOut(BaseModel):
    id: str
    userId: str
    type: str
    amount: float
    description: str
    timestamp: datetime
    sessionId: str | None
    paymentMethod: str | None
    transactionFee: float
    status: str
    reference: str | None

    @classmethod
    def of(cls, t: Transaction) -> "TransactionOut":
        return cls(
            id=t.id,
            userId=t.user_id,
            type=t.type,
            amount=round(t.amount, 2),
            description=t.description,
            timestamp=t.timestamp,
            sessionId=t.session_id,
            paymentMethod=t.payment_method,
            transactionFee=round(t.transaction_fee, 2),
            status=t.status,
            reference=t.reference,
        )


class UserOut(BaseModel):
    id: str
    name: str
    email: str
    phone: str | None
    vehicleId: str
    isAdmin: bool
    memberSince: date | None
    preferredChargingMode: str
    walletBalance: float

    @classmethod
    def of(cls, u: User, balance: float) -> "UserOut":
        return cls(
            id=u.id,
            name=u.name,
            email=u.email,
            phone=u.phone,
            vehicleId=u.vehicle_id,
            isAdmin=u.is_admin,
            memberSince=u.member_since,
            preferredChargingMode=u.preferred_charging_mode,
            walletBalance=round(balance, 2),
        )


def create_app(service: DashboardService | None = None, run_ticker: bool = True) -> FastAPI:
    service = service or DashboardService.demo()

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI):
        task = asyncio.create_task(recompute_loop(service, TICK_SEC)) if run_ticker else None
        yield
        if task:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    app = FastAPI(title="EV Charging Dashboard API", version="1.0.0", lifespan=lifespan)
    app.state.service = service

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        logging.info(f">>> {request.method} {request.url.path}")
        try:
            response = await call_next(request)
            logging.info(f"<<< {request.method} {request.url.path} -> {response.status_code}")
            return response
        except Exception:
            logging.exception("Handler crashed")
            raise

    @app.get("/api/health")
    def health():
        return {"ok": True, "time": service.clock().isoformat()}

    @app.post("/api/login")
    async def api_login(req: LoginReq):
        try:
            user = service.accounts.login(req.vehicleId, req.rfidId)
        except DashboardError as e:
            raise http_error(e)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"success": True, "user": UserOut.of(user, service.ledger.balance(user.id)).model_dump()}

    @app.get("/api/status")
    async def api_status(userId: str | None = None):
        return service.status(userId)

    @app.get("/api/pricing")
    async def api_pricing():
        return service.current_rate()

    @app.post("/api/charging/start")
    async def api_start(req: StartReq):
        try:
            session = service.start_charging(
                req.userId, req.stationId, vehicle_id=req.vehicleId, mode=req.mode, target_battery=req.targetBattery
            )
            return {"success": True, "session": SessionOut.of(session).model_dump()}
        except DashboardError as e:
            raise http_error(e)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except Exception as e:
            logging.error(f"Start failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))

    @app.post("/api/charging/stop")
    async def api_stop(req: SessionReq | None = None):
        req = req or SessionReq()
        try:
            session, invoice = service.stop_charging(user_id=req.userId, session_id=req.sessionId)
        except DashboardError as e:
            raise http_error(e)
        except Exception as e:
            logging.error(f"Stop failed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        return {
            "success": True,
            "session": SessionOut.of(session).model_dump(),
            "invoice": InvoiceOut.of(invoice).model_dump(),
        }

    @app.post("/api/charging/pause")
    async def api_pause(req: SessionReq | None = None):
        req = req or SessionReq()
        try:
            session = service.pause_charging(user_id=req.userId, session_id=req.sessionId)
        except DashboardError as e:
            raise http_error(e)
        return {"success": True, "session": SessionOut.of(session).model_dump()}

    @app.post("/api/charging/resume")
    async def api_resume(req: SessionReq | None = None):
        req = req or SessionReq()
        try:
            session = service.resume_charging(user_id=req.userId, session_id=req.sessionId)
        except DashboardError as e:
            raise http_error(e)
        return {"success": True, "session": SessionOut.of(session).model_dump()}

    @app.get("/api/stations")
    async def api_stations(available: bool = False):
        stations = service.fleet.available() if available else service.fleet.all()
        return {"stations": [StationOut.of(s).model_dump() for s in stations]}

    @app.get("/api/stations/{station_id}")
    async def api_station(station_id: str):
        station = service.fleet.find(station_id)
        if station is None:
            raise HTTPException(status_code=404, detail=f"Station '{station_id}' not found")
        return {"station": StationOut.of(station).model_dump()}

    @app.post("/api/stations/{station_id}/fault")
    async def api_fault(station_id: str):
        try:
            stopped = service.manager.fault_station(station_id, service.clock())
        except DashboardError as e:
            raise http_error(e)
        return {
            "success": True,
            "station": StationOut.of(service.fleet.get(station_id)).model_dump(),
            "stoppedSession": SessionOut.of(stopped).model_dump() if stopped else None,
        }

    @app.post("/api/stations/{station_id}/clear_fault")
    async def api_clear_fault(station_id: str):
        try:
            service.manager.clear_fault(station_id)
        except DashboardError as e:
            raise http_error(e)
        return {"success": True, "station": StationOut.of(service.fleet.get(station_id)).model_dump()}

    @app.post("/api/stations/{station_id}/status")
    async def api_station_status(station_id: str, req: StationStatusReq):
        try:
            stopped = service.manager.set_station_status(station_id, req.status, service.clock())
        except DashboardError as e:
            raise http_error(e)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {
            "success": True,
            "station": StationOut.of(service.fleet.get(station_id)).model_dump(),
            "stoppedSession": SessionOut.of(stopped).model_dump() if stopped else None,
        }

    @app.get("/api/users/{user_id}/history")
    async def api_history(user_id: str):
        try:
            history = service.user_history(user_id)
        except DashboardError as e:
            raise http_error(e)
        return {"history": [SessionOut.of(s).model_dump() for s in history]}

    @app.get("/api/users/{user_id}/transactions")
    async def api_transactions(user_id: str):
        try:
            service.accounts.get(user_id)
            txs = service.ledger.transactions(user_id)
            summary = service.wallet.categorize(user_id)
            insights = service.wallet.spending_insights(user_id)
        except DashboardError as e:
            raise http_error(e)
        totals: Dict[str, float] = {k: round(v, 2) for k, v in summary.items() if k.startswith("total_")}
        return {
            "transactions": [TransactionOut.of(t).model_dump() for t in txs],
            "summary": totals,
            "insights": {k: round(v, 2) for k, v in insights.items()},
            "balance": round(service.ledger.balance(user_id), 2),
        }

    @app.post("/api/users/{user_id}/wallet")
    async def api_wallet(user_id: str, req: WalletReq):
        try:
            entries = await service.top_up(user_id, req.amount, req.paymentMethod)
        except DashboardError as e:
            raise http_error(e)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {
            "success": True,
            "newBalance": round(service.ledger.balance(user_id), 2),
            "transactions": [TransactionOut.of(t).model_dump() for t in entries],
        }

    @app.get("/api/sessions/{session_id}/invoice")
    async def api_invoice(session_id: str):
        try:
            invoice = service.invoice_for(service.find_session(session_id))
        except DashboardError as e:
            raise http_error(e)
        return {"invoice": InvoiceOut.of(invoice).model_dump()}

    @app.get("/api/sessions/{session_id}/invoice.html", response_class=HTMLResponse)
    async def api_invoice_html(session_id: str):
        try:
            invoice = service.invoice_for(service.find_session(session_id))
        except DashboardError as e:
            raise http_error(e)
        return HTMLResponse(service.invoice_html(invoice))

    @app.post("/api/sessions/{session_id}/invoice/email")
    async def api_email_invoice(session_id: str):
        try:
            invoice = await service.email_invoice(session_id)
        except DashboardError as e:
            raise http_error(e)
        return {"success": True, "invoiceNumber": invoice.invoice_number}

    @app.get("/api/admin/overview")
    async def api_overview():
        return service.overview()

    return app


async def main():
    app = create_app()
    server = uvicorn.Server(uvicorn.Config(app, host="0.0.0.0", port=HTTP_PORT, loop="asyncio", log_level="info"))
    logging.info(f"Dashboard API listening on http://0.0.0.0:{HTTP_PORT}/api")
    await server.serve()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
