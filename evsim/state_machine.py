from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Optional

from .errors import StationUnavailable


class StationStatus:
    IDLE = "idle"
    CHARGING = "charging"
    FAULT = "fault"
    MAINTENANCE = "maintenance"
    OFFLINE = "offline"

    ALL = (IDLE, CHARGING, FAULT, MAINTENANCE, OFFLINE)
    OUT_OF_SERVICE = (FAULT, MAINTENANCE, OFFLINE)


class SessionStatus:
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"

    TERMINAL = (COMPLETED, STOPPED)


class ChargingMode:
    FAST = "fast"
    NORMAL = "normal"
    ECO = "eco"

    ALL = (FAST, NORMAL, ECO)


class ConnectorType:
    CCS = "CCS"
    CHADEMO = "CHAdeMO"
    TYPE2 = "Type2"


@dataclass
class Station:
    id: str
    name: str
    location: str
    power_output_kw: float
    max_power_kw: float
    connector_type: str = ConnectorType.TYPE2
    status: str = StationStatus.IDLE
    total_energy_dispensed: float = 0.0
    total_revenue: float = 0.0
    sessions_completed: int = 0
    efficiency: float = 95.0
    last_maintenance: Optional[date] = None
    next_maintenance: Optional[date] = None
    # weak reference to the bound session, by id
    session_id: Optional[str] = None

    @property
    def in_service(self) -> bool:
        return self.status not in StationStatus.OUT_OF_SERVICE


class StationFleet:
    """Arena of stations, each with an optional bound session."""

    def __init__(self, stations: Iterable[Station]):
        self.stations: Dict[str, Station] = {s.id: s for s in stations}

    def find(self, station_id: str) -> Optional[Station]:
        return self.stations.get(station_id)

    def get(self, station_id: str) -> Station:
        station = self.stations.get(station_id)
        if station is None:
            raise StationUnavailable(station_id)
        return station

    def all(self) -> List[Station]:
        return list(self.stations.values())

    def available(self) -> List[Station]:
        return [s for s in self.stations.values() if s.status == StationStatus.IDLE]

    def load_fraction(self) -> float:
        """Share of in-service stations currently charging."""
        in_service = [s for s in self.stations.values() if s.in_service]
        if not in_service:
            return 0.0
        busy = sum(1 for s in in_service if s.status == StationStatus.CHARGING)
        return busy / len(in_service)

    def bind(self, station_id: str, session_id: str) -> Station:
        station = self.get(station_id)
        if station.status != StationStatus.IDLE:
            raise StationUnavailable(station_id, station.status)
        station.status = StationStatus.CHARGING
        station.session_id = session_id
        return station

    def release(self, station_id: str, energy_kwh: float, revenue: float) -> Station:
        """Unbind the session and accumulate the station totals."""
        station = self.get(station_id)
        station.session_id = None
        if station.status == StationStatus.CHARGING:
            station.status = StationStatus.IDLE
        station.total_energy_dispensed += energy_kwh
        station.total_revenue += revenue
        station.sessions_completed += 1
        return station

    @staticmethod
    def check_status(status: str) -> None:
        """Only admin-settable statuses; `charging` follows from binding a session."""
        if status not in StationStatus.ALL or status == StationStatus.CHARGING:
            raise ValueError(f"cannot set station status to {status!r}")

    def set_status(self, station_id: str, status: str) -> Station:
        self.check_status(status)
        station = self.get(station_id)
        station.status = status
        return station
