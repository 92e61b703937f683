"""Seed data for the demo fleet and accounts.

Each function returns fresh objects so separate service instances never
share mutable state.
"""

from datetime import date

from .config import BATTERY_CAPACITY_KWH
from .models import User, Vehicle
from .state_machine import ConnectorType, Station, StationStatus


def demo_stations():
    return [
        Station(
            id="station-1",
            name="Tech Park Hub",
            location="Andheri East, Mumbai",
            power_output_kw=22,
            max_power_kw=22,
            connector_type=ConnectorType.TYPE2,
            efficiency=96.5,
            last_maintenance=date(2026, 8, 12),
            next_maintenance=date(2026, 11, 12),
        ),
        Station(
            id="station-2",
            name="Phoenix Mall Plaza",
            location="Lower Parel, Mumbai",
            power_output_kw=50,
            max_power_kw=60,
            connector_type=ConnectorType.CCS,
            efficiency=94.0,
            last_maintenance=date(2026, 9, 1),
            next_maintenance=date(2026, 12, 1),
        ),
        Station(
            id="station-3",
            name="Airport Express",
            location="Sahar Road, Mumbai",
            power_output_kw=120,
            max_power_kw=150,
            connector_type=ConnectorType.CHADEMO,
            efficiency=92.5,
            last_maintenance=date(2026, 7, 20),
            next_maintenance=date(2026, 10, 20),
        ),
        Station(
            id="station-4",
            name="Metro Station Parking",
            location="Ghatkopar West, Mumbai",
            power_output_kw=7.2,
            max_power_kw=7.2,
            connector_type=ConnectorType.TYPE2,
            status=StationStatus.MAINTENANCE,
            efficiency=88.0,
            last_maintenance=date(2026, 10, 10),
            next_maintenance=date(2027, 1, 10),
        ),
    ]


def demo_users():
    return [
        User(
            id="user-1",
            name="Rahul Sharma",
            email="rahul.sharma@example.com",
            phone="+91 98200 11223",
            vehicle_id="MH01AB1234",
            rfid_id="RFID123456789",
            member_since=date(2024, 1, 15),
            initial_balance=1250.50,
        ),
        User(
            id="admin-1",
            name="Station Admin",
            email="admin@evsmartcharger.com",
            vehicle_id="ADMIN001",
            rfid_id="ADMIN123456789",
            is_admin=True,
            member_since=date(2023, 6, 1),
        ),
    ]


def demo_vehicles():
    return [
        Vehicle(id="MH01AB1234", battery_capacity_kwh=BATTERY_CAPACITY_KWH),
        Vehicle(id="ADMIN001", battery_capacity_kwh=BATTERY_CAPACITY_KWH),
    ]
