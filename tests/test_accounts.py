import pytest

from evsim.accounts import validate_rfid, validate_vehicle_id
from evsim.errors import InvalidCredentials, UnknownUser


@pytest.mark.parametrize("vehicle_id", ["MH01AB1234", "KA05M9876"])
def test_valid_vehicle_ids(vehicle_id):
    assert validate_vehicle_id(vehicle_id)


@pytest.mark.parametrize("vehicle_id", ["mh01ab1234", "MH1AB1234", "MH01ABC1234", ""])
def test_invalid_vehicle_ids(vehicle_id):
    assert not validate_vehicle_id(vehicle_id)


def test_rfid_format():
    assert validate_rfid("RFID123456789")
    assert not validate_rfid("RF-1")


def test_login(accounts):
    assert accounts.login("MH01AB1234", "RFID123456789").id == "user-1"
    with pytest.raises(InvalidCredentials):
        accounts.login("MH01AB1234", "RFID000000000")


def test_unknown_user(accounts):
    with pytest.raises(UnknownUser):
        accounts.get("nobody")


def test_unknown_vehicle_is_registered_with_default_capacity(accounts):
    vehicle = accounts.vehicle("KA05M9876")
    assert vehicle.battery_capacity_kwh == 50
    assert vehicle.battery_level is None
    accounts.record_battery_level("KA05M9876", 72.5)
    assert accounts.vehicle("KA05M9876").battery_level == 72.5


def test_login_rejects_malformed_rfid(accounts):
    with pytest.raises(ValueError):
        accounts.login("MH01AB1234", "rfid-1")


def test_admin_logs_in_with_fleet_id(accounts):
    assert accounts.login("ADMIN001", "ADMIN123456789").is_admin


def test_unknown_vehicle_with_bad_plate_is_not_registered(accounts):
    with pytest.raises(ValueError):
        accounts.vehicle("NOT A PLATE")
    assert "NOT A PLATE" not in accounts.vehicles
