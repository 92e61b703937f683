from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from .state_machine import ChargingMode, SessionStatus


@dataclass(frozen=True)
class ChargingSession:
    """One charge-up of one vehicle at one station.

    Instances are never mutated; every update produces a new value with
    ``dataclasses.replace``.
    """

    id: str
    user_id: str
    vehicle_id: str
    station_id: str
    start_time: datetime
    cost_per_kwh: float
    average_power_kw: float
    battery_start: float
    battery_capacity_kwh: float
    charging_mode: str = ChargingMode.NORMAL
    target_battery: float = 80.0
    status: str = SessionStatus.ACTIVE
    energy_consumed: float = 0.0
    total_cost: float = 0.0
    end_time: datetime | None = None
    battery_end: float | None = None
    paused_seconds: float = 0.0
    paused_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in SessionStatus.TERMINAL

    def elapsed_seconds(self, now: datetime) -> float:
        """Charging time up to ``now``, paused intervals excluded."""
        if self.end_time is not None:
            now = self.end_time
        paused = self.paused_seconds
        if self.paused_at is not None:
            paused += max((now - self.paused_at).total_seconds(), 0)
        return max((now - self.start_time).total_seconds() - paused, 0)

    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


@dataclass(frozen=True)
class Transaction:
    id: str
    user_id: str
    type: str
    amount: float
    description: str
    timestamp: datetime
    session_id: str | None = None
    payment_method: str | None = None
    transaction_fee: float = 0.0
    status: str = "completed"
    reference: str | None = None


class TransactionType:
    CHARGE = "charge"
    WALLET_TOPUP = "wallet_topup"
    REFUND = "refund"
    BONUS = "bonus"


@dataclass(frozen=True)
class InvoiceItem:
    description: str
    units: float
    rate: float
    amount: float
    category: str = "charging"


@dataclass(frozen=True)
class Invoice:
    id: str
    session_id: str
    user_id: str
    vehicle_id: str
    station_name: str
    invoice_number: str
    date: datetime
    items: tuple[InvoiceItem, ...]
    subtotal: float
    tax: float
    total: float
    tax_rate: float
    payment_method: str = "Wallet"
    transaction_id: str | None = None
    status: str = "paid"


@dataclass
class Vehicle:
    id: str
    battery_capacity_kwh: float
    battery_level: float | None = None


@dataclass
class User:
    id: str
    name: str
    email: str
    vehicle_id: str
    rfid_id: str
    phone: str | None = None
    is_admin: bool = False
    member_since: date | None = None
    preferred_charging_mode: str = ChargingMode.NORMAL
    initial_balance: float = 0.0
