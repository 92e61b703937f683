import logging
import random
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from . import energy, mock_data
from .accounts import Accounts
from .config import AUTO_STOP_AT_TARGET, BASE_RATE
from .errors import NoActiveSession
from .history import HistoryStore
from .invoice import CompanyInfo, InvoiceGenerator, InvoiceMailer, to_display_document
from .models import ChargingSession, Invoice, Transaction
from .session_manager import SessionManager, current_battery, recompute, time_to_target
from .state_machine import SessionStatus, StationFleet, StationStatus
from .wallet import Ledger, PaymentGateway, WalletService


def local_now() -> datetime:
    return datetime.now().astimezone()


class DashboardService:
    """Everything the dashboard API needs, built explicitly per process or test."""

    def __init__(
        self,
        fleet: StationFleet,
        accounts: Accounts,
        clock: Callable[[], datetime] = local_now,
        gateway: Optional[PaymentGateway] = None,
        mailer: Optional[InvoiceMailer] = None,
        invoices: Optional[InvoiceGenerator] = None,
        company: Optional[CompanyInfo] = None,
        base_rate: float = BASE_RATE,
        auto_stop_at_target: bool = AUTO_STOP_AT_TARGET,
        **manager_opts,
    ):
        self.clock = clock
        self.fleet = fleet
        self.accounts = accounts
        self.ledger = Ledger()
        for user in accounts.all():
            self.ledger.open_account(user.id, user.initial_balance)
        self.history = HistoryStore()
        self.wallet = WalletService(self.ledger, gateway or PaymentGateway(), clock)
        self.invoices = invoices or InvoiceGenerator()
        self.mailer = mailer or InvoiceMailer()
        self.company = company or CompanyInfo()
        self.base_rate = base_rate
        self.auto_stop_at_target = auto_stop_at_target
        self.manager = SessionManager(fleet, self.ledger, accounts, self.history, base_rate=base_rate, **manager_opts)

    @classmethod
    def demo(cls, clock: Callable[[], datetime] = local_now, seed: Optional[int] = None, **kwargs) -> "DashboardService":
        rng = random.Random(seed)
        kwargs.setdefault("gateway", PaymentGateway(rng=rng))
        kwargs.setdefault("mailer", InvoiceMailer(rng=rng))
        kwargs.setdefault("invoices", InvoiceGenerator(rng=rng))
        return cls(
            StationFleet(mock_data.demo_stations()),
            Accounts(mock_data.demo_users(), mock_data.demo_vehicles()),
            clock=clock,
            **kwargs,
        )

    # -------- charging --------
    def start_charging(self, user_id: str, station_id: str, **opts) -> ChargingSession:
        self.accounts.get(user_id)
        return self.manager.start_session(user_id, station_id, self.clock(), **opts)

    def stop_charging(self, user_id: Optional[str] = None, session_id: Optional[str] = None) -> Tuple[ChargingSession, Invoice]:
        session = self.manager.stop_session(self.clock(), session_id=session_id, user_id=user_id)
        return session, self.invoice_for(session)

    def pause_charging(self, user_id: Optional[str] = None, session_id: Optional[str] = None) -> ChargingSession:
        return self.manager.pause_session(self.clock(), session_id=session_id, user_id=user_id)

    def resume_charging(self, user_id: Optional[str] = None, session_id: Optional[str] = None) -> ChargingSession:
        return self.manager.resume_session(self.clock(), session_id=session_id, user_id=user_id)

    def tick(self) -> List[ChargingSession]:
        """Periodic recompute; sessions that reached their target are completed."""
        now = self.clock()
        finished = []
        for session in self.manager.tick(now):
            if self.auto_stop_at_target and current_battery(session) >= session.target_battery:
                logging.info(f"Session {session.id} reached target {session.target_battery:.0f}%")
                finished.append(self.manager.stop_session(now, session_id=session.id))
        return finished

    def status(self, user_id: Optional[str] = None) -> dict:
        last = self.last_session_summary(user_id)
        session = self.manager.find_active(user_id=user_id)
        if session is None:
            return {
                "charging": False,
                "elapsed_min": 0,
                "estimated_cost": 0,
                "currentPower": 0,
                "energyConsumed": 0,
                "batteryLevel": None,
                "estimatedTimeToFull": 0,
                "estimatedCostToTarget": 0,
                "last_session": last,
            }
        now = self.clock()
        session = recompute(session, now)
        return {
            "charging": True,
            "session_id": session.id,
            "status": session.status,
            "elapsed_min": round(session.elapsed_seconds(now) / 60, 2),
            "estimated_cost": round(session.total_cost, 2),
            "currentPower": session.average_power_kw if session.status == SessionStatus.ACTIVE else 0,
            "energyConsumed": round(session.energy_consumed, 3),
            "batteryLevel": round(current_battery(session), 1),
            "estimatedTimeToFull": round(time_to_target(session) / 60, 1),
            "estimatedCostToTarget": round(
                energy.estimated_cost(
                    current_battery(session), session.target_battery, session.battery_capacity_kwh, session.cost_per_kwh
                ),
                2,
            ),
            "last_session": last,
        }

    def last_session_summary(self, user_id: Optional[str]) -> Optional[dict]:
        if user_id is None:
            return None
        last = self.history.last(user_id)
        if last is None:
            return None
        return {
            "duration_min": round(last.duration_seconds() / 60, 1),
            "cost": round(last.total_cost, 2),
            "timestamp": last.end_time.isoformat(),
            "energyConsumed": round(last.energy_consumed, 3),
        }

    def current_rate(self) -> dict:
        now = self.clock()
        load = self.fleet.load_fraction()
        return {
            "baseRate": self.base_rate,
            "band": energy.time_of_day_band(now.hour),
            "load": round(load, 2),
            "rate": energy.dynamic_price(self.base_rate, now.hour, load),
        }

    # -------- billing --------
    def find_session(self, session_id: str) -> ChargingSession:
        session = self.history.find(session_id) or self.manager.find_active(session_id=session_id)
        if session is None:
            raise NoActiveSession(session_id)
        return session

    def invoice_for(self, session: ChargingSession) -> Invoice:
        tx = self.ledger.transaction_for_session(session.id)
        return self.invoices.generate(session, self.fleet.get(session.station_id), tx.id if tx else None)

    def invoice_html(self, invoice: Invoice) -> str:
        return to_display_document(invoice, self.company)

    async def email_invoice(self, session_id: str) -> Invoice:
        session = self.find_session(session_id)
        invoice = self.invoice_for(session)
        await self.mailer.send(invoice, self.accounts.get(session.user_id).email)
        return invoice

    # -------- wallet --------
    async def top_up(self, user_id: str, amount: float, payment_method: str) -> List[Transaction]:
        self.accounts.get(user_id)
        return await self.wallet.top_up(user_id, amount, payment_method)

    def user_history(self, user_id: str) -> List[ChargingSession]:
        self.accounts.get(user_id)
        return self.history.load(user_id)

    # -------- admin --------
    def overview(self) -> dict:
        stations = self.fleet.all()
        by_status = {status: 0 for status in StationStatus.ALL}
        for s in stations:
            by_status[s.status] += 1
        return {
            "totalStations": len(stations),
            "stationsByStatus": by_status,
            "activeSessions": len(self.manager.active_sessions()),
            "load": round(self.fleet.load_fraction(), 2),
            "totalEnergyDispensed": round(sum(s.total_energy_dispensed for s in stations), 3),
            "totalRevenue": round(sum(s.total_revenue for s in stations), 2),
            "sessionsCompleted": sum(s.sessions_completed for s in stations),
            "users": len(self.accounts.all()),
        }
