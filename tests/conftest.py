from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from evsim import mock_data
from evsim.accounts import Accounts
from evsim.dashboard import create_app
from evsim.history import HistoryStore
from evsim.invoice import InvoiceMailer
from evsim.service import DashboardService
from evsim.session_manager import SessionManager
from evsim.state_machine import StationFleet
from evsim.wallet import Ledger, PaymentGateway

NOON = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = NOON):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fleet():
    return StationFleet(mock_data.demo_stations())


@pytest.fixture
def accounts():
    return Accounts(mock_data.demo_users(), mock_data.demo_vehicles())


@pytest.fixture
def ledger(accounts):
    ledger = Ledger()
    for user in accounts.all():
        ledger.open_account(user.id, user.initial_balance)
    return ledger


@pytest.fixture
def manager(fleet, ledger, accounts):
    return SessionManager(fleet, ledger, accounts, HistoryStore())


@pytest.fixture
def service(clock):
    return DashboardService.demo(
        clock=clock,
        seed=7,
        gateway=PaymentGateway(failure_rate=0, delay_sec=0),
        mailer=InvoiceMailer(failure_rate=0, delay_sec=0),
    )


@pytest_asyncio.fixture
async def dashboard(service, clock):
    app = create_app(service, run_ticker=False)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield {"client": client, "service": service, "clock": clock}
