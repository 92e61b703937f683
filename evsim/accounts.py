import logging
import re
from typing import Dict, Iterable, List, Optional

from .config import BATTERY_CAPACITY_KWH
from .errors import InvalidCredentials, UnknownUser
from .models import User, Vehicle

VEHICLE_ID_PATTERN = re.compile(r"^[A-Z]{2}[0-9]{2}[A-Z]{1,2}[0-9]{4}$")
RFID_PATTERN = re.compile(r"^[A-Z0-9]{8,16}$")


def validate_vehicle_id(vehicle_id: str) -> bool:
    """Indian registration number, e.g. MH01AB1234."""
    return bool(VEHICLE_ID_PATTERN.match(vehicle_id))


def validate_rfid(rfid_id: str) -> bool:
    return bool(RFID_PATTERN.match(rfid_id))


class Accounts:
    """Demo users and their vehicles, matched against fixed credentials."""

    def __init__(self, users: Iterable[User], vehicles: Iterable[Vehicle] = ()):
        self.users: Dict[str, User] = {u.id: u for u in users}
        self.vehicles: Dict[str, Vehicle] = {v.id: v for v in vehicles}

    def get(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise UnknownUser(user_id)
        return user

    def all(self) -> List[User]:
        return list(self.users.values())

    def login(self, vehicle_id: str, rfid_id: str) -> User:
        if not validate_rfid(rfid_id):
            raise ValueError("RFID must be 8-16 upper-case letters or digits")
        for user in self.users.values():
            if user.vehicle_id == vehicle_id and user.rfid_id == rfid_id:
                logging.info(f"Login: user={user.id} admin={user.is_admin}")
                return user
        logging.warning(f"Login rejected for vehicle {vehicle_id}")
        raise InvalidCredentials("Invalid vehicle number or RFID")

    def vehicle(self, vehicle_id: str) -> Vehicle:
        """Known vehicle, registered with default capacity on first use."""
        v = self.vehicles.get(vehicle_id)
        if v is None:
            if not validate_vehicle_id(vehicle_id):
                raise ValueError(f"invalid vehicle registration number {vehicle_id!r}")
            v = Vehicle(id=vehicle_id, battery_capacity_kwh=BATTERY_CAPACITY_KWH)
            self.vehicles[vehicle_id] = v
        return v

    def record_battery_level(self, vehicle_id: str, level: Optional[float]) -> None:
        if level is not None:
            self.vehicle(vehicle_id).battery_level = level
