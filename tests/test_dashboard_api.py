import httpx
import pytest

from evsim.dashboard import create_app
from evsim.invoice import InvoiceMailer
from evsim.service import DashboardService
from evsim.wallet import PaymentGateway

from conftest import FakeClock


@pytest.mark.asyncio
async def test_health_endpoint(dashboard):
    client = dashboard["client"]
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


@pytest.mark.asyncio
async def test_start_status_stop(dashboard):
    client = dashboard["client"]
    clock = dashboard["clock"]

    resp = await client.get("/api/status", params={"userId": "user-1"})
    assert resp.json()["charging"] is False
    assert resp.json()["last_session"] is None

    resp = await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["session"]["status"] == "active"
    assert body["session"]["costPerKwh"] == 8.0

    clock.advance(1800)
    status = (await client.get("/api/status", params={"userId": "user-1"})).json()
    assert status["charging"] is True
    assert status["elapsed_min"] == 30
    assert status["estimatedCostToTarget"] == 74.0
    assert status["energyConsumed"] == 8.25
    assert status["estimated_cost"] == 66.0
    assert status["batteryLevel"] == 61.5
    assert status["currentPower"] == 16.5
    # 18.5% of 50 kWh to the 80% target at 16.5 kW
    assert status["estimatedTimeToFull"] == pytest.approx(2019 / 60, abs=0.1)

    resp = await client.post("/api/charging/stop")
    assert resp.status_code == 200
    body = resp.json()
    assert body["session"]["status"] == "completed"
    assert body["session"]["batteryEnd"] == 61.5
    assert body["invoice"]["subtotal"] == 66.0
    assert body["invoice"]["tax"] == 11.88
    assert body["invoice"]["total"] == 77.88
    assert body["invoice"]["transactionId"] is not None

    status = (await client.get("/api/status", params={"userId": "user-1"})).json()
    assert status["charging"] is False
    assert status["last_session"]["cost"] == 66.0
    assert status["last_session"]["duration_min"] == 30


@pytest.mark.asyncio
async def test_double_start_is_conflict(dashboard):
    client = dashboard["client"]
    resp = await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})
    assert resp.status_code == 200

    resp = await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-2"})
    assert resp.status_code == 409
    assert "already in progress" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_start_on_unavailable_station(dashboard):
    client = dashboard["client"]
    resp = await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-4"})
    assert resp.status_code == 409
    resp = await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-9"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_start_with_bad_mode(dashboard):
    client = dashboard["client"]
    resp = await client.post(
        "/api/charging/start", json={"userId": "user-1", "stationId": "station-1", "mode": "warp"}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_stop_without_session(dashboard):
    client = dashboard["client"]
    resp = await client.post("/api/charging/stop")
    assert resp.status_code == 404
    assert dashboard["service"].ledger.transactions() == []


@pytest.mark.asyncio
async def test_pause_and_resume(dashboard):
    client = dashboard["client"]
    clock = dashboard["clock"]
    await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})

    clock.advance(600)
    resp = await client.post("/api/charging/pause", json={"userId": "user-1"})
    assert resp.json()["session"]["status"] == "paused"
    status = (await client.get("/api/status", params={"userId": "user-1"})).json()
    assert status["currentPower"] == 0

    clock.advance(600)
    resp = await client.post("/api/charging/resume", json={"userId": "user-1"})
    assert resp.json()["session"]["status"] == "active"

    clock.advance(600)
    body = (await client.post("/api/charging/stop", json={"userId": "user-1"})).json()
    assert body["session"]["energyConsumed"] == 5.5


@pytest.mark.asyncio
async def test_stations(dashboard):
    client = dashboard["client"]
    stations = (await client.get("/api/stations")).json()["stations"]
    assert [s["id"] for s in stations] == ["station-1", "station-2", "station-3", "station-4"]

    station = (await client.get("/api/stations/station-2")).json()["station"]
    assert station["powerOutput"] == 50
    assert station["connectorType"] == "CCS"

    resp = await client.get("/api/stations/nope")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_fault_and_clear(dashboard):
    client = dashboard["client"]
    clock = dashboard["clock"]
    await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})
    clock.advance(360)

    body = (await client.post("/api/stations/station-1/fault")).json()
    assert body["station"]["status"] == "fault"
    assert body["stoppedSession"]["status"] == "stopped"

    body = (await client.post("/api/stations/station-1/clear_fault")).json()
    assert body["station"]["status"] == "idle"

    resp = await client.post("/api/stations/station-1/clear_fault")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_station_maintenance(dashboard):
    client = dashboard["client"]
    resp = await client.post("/api/stations/station-4/status", json={"status": "idle"})
    assert resp.json()["station"]["status"] == "idle"
    resp = await client.post("/api/stations/station-4/status", json={"status": "charging"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_wallet_top_up(dashboard):
    client = dashboard["client"]
    resp = await client.post("/api/users/user-1/wallet", json={"amount": 500})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["newBalance"] == 1775.50

    resp = await client.post("/api/users/user-1/wallet", json={"amount": 10})
    assert resp.status_code == 422

    resp = await client.post("/api/users/ghost/wallet", json={"amount": 100})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_wallet_payment_failure(clock):
    service = DashboardService.demo(
        clock=clock,
        gateway=PaymentGateway(failure_rate=1, delay_sec=0),
        mailer=InvoiceMailer(failure_rate=1, delay_sec=0),
    )
    transport = httpx.ASGITransport(app=create_app(service, run_ticker=False))
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/users/user-1/wallet", json={"amount": 500})
        assert resp.status_code == 402

        await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})
        clock.advance(60)
        session_id = (await client.post("/api/charging/stop")).json()["session"]["id"]
        resp = await client.post(f"/api/sessions/{session_id}/invoice/email")
        assert resp.status_code == 502
    assert service.ledger.balance("user-1") < 1250.50


@pytest.mark.asyncio
async def test_transactions_listing(dashboard):
    client = dashboard["client"]
    clock = dashboard["clock"]
    await client.post("/api/users/user-1/wallet", json={"amount": 1000, "paymentMethod": "card"})
    await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})
    clock.advance(1800)
    await client.post("/api/charging/stop")

    body = (await client.get("/api/users/user-1/transactions")).json()
    assert [t["type"] for t in body["transactions"]] == ["charge", "bonus", "wallet_topup"]
    assert body["summary"]["total_spent"] == 66.0
    assert body["summary"]["total_topups"] == 980.0
    assert body["balance"] == round(1250.50 + 980 + 75 - 66, 2)


@pytest.mark.asyncio
async def test_history_and_invoice_endpoints(dashboard):
    client = dashboard["client"]
    clock = dashboard["clock"]
    await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})
    clock.advance(1800)
    stopped = (await client.post("/api/charging/stop")).json()

    history = (await client.get("/api/users/user-1/history")).json()["history"]
    assert [h["id"] for h in history] == [stopped["session"]["id"]]

    session_id = stopped["session"]["id"]
    invoice = (await client.get(f"/api/sessions/{session_id}/invoice")).json()["invoice"]
    assert invoice["total"] == 77.88
    assert invoice["items"][0]["description"] == "EV Charging Session - Tech Park Hub"

    resp = await client.get(f"/api/sessions/{session_id}/invoice.html")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert "₹77.88" in resp.text

    resp = await client.post(f"/api/sessions/{session_id}/invoice/email")
    assert resp.json()["success"] is True

    resp = await client.get("/api/sessions/session-missing/invoice")
    assert resp.status_code == 404

    resp = await client.get("/api/users/ghost/history")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_invoice_for_running_session_is_conflict(dashboard):
    client = dashboard["client"]
    body = (await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})).json()
    resp = await client.get(f"/api/sessions/{body['session']['id']}/invoice")
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_login(dashboard):
    client = dashboard["client"]
    resp = await client.post("/api/login", json={"vehicleId": "MH01AB1234", "rfidId": "RFID123456789"})
    assert resp.status_code == 200
    user = resp.json()["user"]
    assert user["id"] == "user-1"
    assert user["walletBalance"] == 1250.5
    assert user["isAdmin"] is False

    resp = await client.post("/api/login", json={"vehicleId": "ADMIN001", "rfidId": "ADMIN123456789"})
    assert resp.json()["user"]["isAdmin"] is True

    resp = await client.post("/api/login", json={"vehicleId": "MH01AB1234", "rfidId": "RFID000000000"})
    assert resp.status_code == 401

    resp = await client.post("/api/login", json={"vehicleId": "MH01AB1234", "rfidId": "wrong"})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_admin_overview_and_pricing(dashboard):
    client = dashboard["client"]
    clock = dashboard["clock"]
    await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})

    overview = (await client.get("/api/admin/overview")).json()
    assert overview["totalStations"] == 4
    assert overview["activeSessions"] == 1
    assert overview["stationsByStatus"]["charging"] == 1
    assert overview["stationsByStatus"]["maintenance"] == 1

    clock.advance(1800)
    await client.post("/api/charging/stop")
    overview = (await client.get("/api/admin/overview")).json()
    assert overview["totalRevenue"] == 66.0
    assert overview["sessionsCompleted"] == 1

    pricing = (await client.get("/api/pricing")).json()
    assert pricing == {"baseRate": 8.0, "band": "standard", "load": 0.0, "rate": 8.0}


def test_apps_do_not_share_state():
    first = DashboardService.demo(clock=FakeClock())
    second = DashboardService.demo(clock=FakeClock())
    first.start_charging("user-1", "station-1")
    assert second.manager.active_sessions() == []
    assert second.fleet.get("station-1").status == "idle"


@pytest.mark.asyncio
async def test_available_stations_filter(dashboard):
    client = dashboard["client"]
    await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-2"})

    stations = (await client.get("/api/stations", params={"available": "true"})).json()["stations"]
    assert [s["id"] for s in stations] == ["station-1", "station-3"]


@pytest.mark.asyncio
async def test_rejected_status_change_keeps_session_charging(dashboard):
    client = dashboard["client"]
    clock = dashboard["clock"]
    body = (await client.post("/api/charging/start", json={"userId": "user-1", "stationId": "station-1"})).json()
    clock.advance(1800)

    for status in ("bogus", "charging"):
        resp = await client.post("/api/stations/station-1/status", json={"status": status})
        assert resp.status_code == 422

    status = (await client.get("/api/status", params={"userId": "user-1"})).json()
    assert status["charging"] is True
    assert status["session_id"] == body["session"]["id"]
    assert (await client.get("/api/users/user-1/history")).json()["history"] == []
    txs = (await client.get("/api/users/user-1/transactions")).json()["transactions"]
    assert txs == []
    station = (await client.get("/api/stations/station-1")).json()["station"]
    assert station["status"] == "charging"
    assert station["sessionsCompleted"] == 0


@pytest.mark.asyncio
async def test_start_with_malformed_vehicle_id(dashboard):
    client = dashboard["client"]
    resp = await client.post(
        "/api/charging/start", json={"userId": "user-1", "stationId": "station-1", "vehicleId": "bad plate"}
    )
    assert resp.status_code == 422
    station = (await client.get("/api/stations/station-1")).json()["station"]
    assert station["status"] == "idle"
