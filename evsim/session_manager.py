"""Charging session lifecycle.

The manager never reads the wall clock: every transition takes ``now``
explicitly, and energy is always derived from ``now - start_time`` so a
late or skipped tick never causes drift.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from . import energy
from .accounts import Accounts
from .config import BASE_RATE, DEFAULT_BATTERY_START, DEFAULT_TARGET_BATTERY, MAX_ACTIVE_SESSIONS, MIN_START_BALANCE
from .errors import InsufficientBalance, NoActiveSession, SessionAlreadyActive, StationUnavailable
from .history import HistoryStore
from .models import ChargingSession, TransactionType
from .state_machine import ChargingMode, SessionStatus, StationFleet, StationStatus
from .wallet import Ledger


def recompute(session: ChargingSession, now: datetime) -> ChargingSession:
    """Energy and cost of ``session`` as of ``now``; status is left alone."""
    if session.is_terminal:
        return session
    kwh = energy.energy_consumed(session.elapsed_seconds(now), session.average_power_kw)
    kwh = max(kwh, session.energy_consumed)
    return replace(session, energy_consumed=kwh, total_cost=energy.total_cost(kwh, session.cost_per_kwh))


def current_battery(session: ChargingSession) -> float:
    if session.battery_end is not None:
        return session.battery_end
    return energy.battery_level(session.battery_start, session.energy_consumed, session.battery_capacity_kwh)


def time_to_target(session: ChargingSession) -> int:
    if session.is_terminal or session.status == SessionStatus.PAUSED:
        return 0
    return energy.estimated_time_remaining(
        current_battery(session), session.target_battery, session.average_power_kw, session.battery_capacity_kwh
    )


class SessionManager:
    def __init__(
        self,
        fleet: StationFleet,
        ledger: Ledger,
        accounts: Accounts,
        history: HistoryStore,
        base_rate: float = BASE_RATE,
        min_start_balance: float = MIN_START_BALANCE,
        max_active_sessions: int = MAX_ACTIVE_SESSIONS,
    ):
        self.fleet = fleet
        self.ledger = ledger
        self.accounts = accounts
        self.history = history
        self.base_rate = base_rate
        self.min_start_balance = min_start_balance
        self.max_active_sessions = max_active_sessions
        # non-terminal sessions by id
        self.sessions: Dict[str, ChargingSession] = {}

    def active_sessions(self) -> List[ChargingSession]:
        return list(self.sessions.values())

    def find_active(self, session_id: Optional[str] = None, user_id: Optional[str] = None) -> Optional[ChargingSession]:
        for s in self.sessions.values():
            if session_id is not None and s.id != session_id:
                continue
            if user_id is not None and s.user_id != user_id:
                continue
            return s
        return None

    def _require_active(self, session_id: Optional[str], user_id: Optional[str] = None) -> ChargingSession:
        session = self.find_active(session_id, user_id)
        if session is None:
            raise NoActiveSession(session_id)
        return session

    def start_session(
        self,
        user_id: str,
        station_id: str,
        now: datetime,
        vehicle_id: Optional[str] = None,
        mode: str = ChargingMode.NORMAL,
        target_battery: float = DEFAULT_TARGET_BATTERY,
    ) -> ChargingSession:
        if mode not in ChargingMode.ALL:
            raise ValueError(f"unknown charging mode {mode!r}")
        if not 0 < target_battery <= 100:
            raise ValueError("target battery must be within (0, 100]")

        existing = self.find_active(user_id=user_id)
        if existing is None and len(self.sessions) >= self.max_active_sessions:
            existing = next(iter(self.sessions.values()))
        if existing is not None:
            raise SessionAlreadyActive(existing.id)

        station = self.fleet.get(station_id)
        if station.status != StationStatus.IDLE:
            raise StationUnavailable(station_id, station.status)

        balance = self.ledger.balance(user_id)
        if balance < self.min_start_balance:
            raise InsufficientBalance(user_id, balance, self.min_start_balance)

        user = self.accounts.get(user_id)
        vehicle = self.accounts.vehicle(vehicle_id or user.vehicle_id)
        battery_start = DEFAULT_BATTERY_START if vehicle.battery_level is None else vehicle.battery_level
        # load is measured before this session binds its station, so with a
        # single active session the surcharge never applies
        rate = energy.dynamic_price(self.base_rate, now.hour, self.fleet.load_fraction())

        session = ChargingSession(
            id=f"session-{uuid.uuid4().hex[:12]}",
            user_id=user_id,
            vehicle_id=vehicle.id,
            station_id=station_id,
            start_time=now,
            cost_per_kwh=rate,
            average_power_kw=energy.average_power(station.power_output_kw, mode),
            battery_start=battery_start,
            battery_capacity_kwh=vehicle.battery_capacity_kwh,
            charging_mode=mode,
            target_battery=target_battery,
        )
        self.fleet.bind(station_id, session.id)
        self.sessions[session.id] = session
        logging.info(
            f"Session started: id={session.id}, user={user_id}, station={station_id}, "
            f"mode={mode}, rate={rate:.2f}/kWh, battery={battery_start:.1f}%"
        )
        return session

    def tick(self, now: datetime) -> List[ChargingSession]:
        """Recompute every charging session as of ``now``."""
        updated = []
        for session_id, session in list(self.sessions.items()):
            if session.status != SessionStatus.ACTIVE:
                continue
            session = recompute(session, now)
            self.sessions[session_id] = session
            updated.append(session)
        return updated

    def pause_session(self, now: datetime, session_id: Optional[str] = None, user_id: Optional[str] = None) -> ChargingSession:
        session = self._require_active(session_id, user_id)
        if session.status == SessionStatus.PAUSED:
            return session
        session = replace(recompute(session, now), status=SessionStatus.PAUSED, paused_at=now)
        self.sessions[session.id] = session
        logging.info(f"Session paused: id={session.id}, energy={session.energy_consumed:.3f} kWh")
        return session

    def resume_session(self, now: datetime, session_id: Optional[str] = None, user_id: Optional[str] = None) -> ChargingSession:
        session = self._require_active(session_id, user_id)
        if session.status != SessionStatus.PAUSED:
            return session
        session = self._fold_pause(session, now)
        self.sessions[session.id] = session
        logging.info(f"Session resumed: id={session.id}, paused for {session.paused_seconds:.0f}s in total")
        return session

    @staticmethod
    def _fold_pause(session: ChargingSession, now: datetime) -> ChargingSession:
        if session.paused_at is None:
            return session
        paused = session.paused_seconds + max((now - session.paused_at).total_seconds(), 0)
        return replace(session, status=SessionStatus.ACTIVE, paused_seconds=paused, paused_at=None)

    def stop_session(
        self,
        now: datetime,
        session_id: Optional[str] = None,
        user_id: Optional[str] = None,
        status: str = SessionStatus.COMPLETED,
    ) -> ChargingSession:
        """Finalise a session, free its station and debit the wallet."""
        if status not in SessionStatus.TERMINAL:
            raise ValueError(f"{status!r} is not a terminal status")
        session = self._require_active(session_id, user_id)

        session = self._fold_pause(recompute(session, now), now)
        battery_end = energy.battery_level(session.battery_start, session.energy_consumed, session.battery_capacity_kwh)
        session = replace(session, status=status, end_time=now, battery_end=battery_end)

        del self.sessions[session.id]
        self.fleet.release(session.station_id, session.energy_consumed, session.total_cost)
        self.ledger.record(
            session.user_id,
            TransactionType.CHARGE,
            -session.total_cost,
            f"EV Charging - Session #{session.id[-4:]}",
            now,
            session_id=session.id,
            payment_method="wallet",
        )
        self.accounts.record_battery_level(session.vehicle_id, battery_end)
        self.history.append(session)
        logging.info(
            f"Session {status}: id={session.id}, energy={session.energy_consumed:.3f} kWh, "
            f"cost={session.total_cost:.2f}, battery {session.battery_start:.1f}% -> {battery_end:.1f}%"
        )
        return session

    def fault_station(self, station_id: str, now: datetime) -> Optional[ChargingSession]:
        """Put a station into fault, ending any session bound to it as stopped."""
        return self.set_station_status(station_id, StationStatus.FAULT, now)

    def clear_fault(self, station_id: str) -> None:
        station = self.fleet.get(station_id)
        if station.status != StationStatus.FAULT:
            raise StationUnavailable(station_id, station.status)
        self.fleet.set_status(station_id, StationStatus.IDLE)
        logging.info(f"Fault cleared on {station_id}")

    def set_station_status(self, station_id: str, status: str, now: datetime) -> Optional[ChargingSession]:
        self.fleet.check_status(status)
        station = self.fleet.get(station_id)
        stopped = None
        if station.session_id is not None:
            stopped = self.stop_session(now, session_id=station.session_id, status=SessionStatus.STOPPED)
        self.fleet.set_status(station_id, status)
        logging.warning(f"Station {station_id} set to {status}")
        return stopped
