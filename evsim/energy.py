"""Energy and cost model for a charging session.

Everything here is a pure function of its arguments. Average power is a
fixed fraction of the station rating per charging mode; there is no
charge-curve tapering.
"""

import math

from .state_machine import ChargingMode

MODE_POWER_FRACTION = {
    ChargingMode.FAST: 1.0,
    ChargingMode.NORMAL: 0.75,
    ChargingMode.ECO: 0.5,
}

PEAK_MULTIPLIER = 1.2
OFF_PEAK_MULTIPLIER = 0.8
LOAD_SURCHARGE = 1.1
HIGH_LOAD_FRACTION = 0.8

# inclusive hour windows
PEAK_WINDOWS = ((8, 10), (18, 20))
OFF_PEAK_START = 23
OFF_PEAK_END = 6


def average_power(station_power_kw: float, mode: str) -> float:
    return station_power_kw * MODE_POWER_FRACTION[mode]


def energy_consumed(elapsed_seconds: float, average_power_kw: float) -> float:
    """kWh delivered after ``elapsed_seconds`` at a constant average power."""
    return max(elapsed_seconds, 0) / 3600 * average_power_kw


def battery_level(start_percent: float, energy_consumed_kwh: float, battery_capacity_kwh: float) -> float:
    level = start_percent + energy_consumed_kwh / battery_capacity_kwh * 100
    return max(start_percent, min(100.0, level))


def estimated_time_remaining(
    current_percent: float, target_percent: float, power_kw: float, battery_capacity_kwh: float
) -> int:
    """Whole seconds needed to reach ``target_percent``; 0 once it is met."""
    if current_percent >= target_percent or power_kw <= 0:
        return 0
    energy_needed = (target_percent - current_percent) / 100 * battery_capacity_kwh
    return math.ceil(energy_needed / power_kw * 3600)


def time_of_day_band(clock_hour: int) -> str:
    if any(start <= clock_hour <= end for start, end in PEAK_WINDOWS):
        return "peak"
    if clock_hour >= OFF_PEAK_START or clock_hour <= OFF_PEAK_END:
        return "off_peak"
    return "standard"


def dynamic_price(base_rate: float, clock_hour: int, station_load_fraction: float) -> float:
    """Per-kWh rate for the given hour and fleet load.

    Peak and off-peak multipliers are exclusive; the high-load surcharge
    is applied on top of either.
    """
    band = time_of_day_band(clock_hour)
    rate = base_rate
    if band == "peak":
        rate *= PEAK_MULTIPLIER
    elif band == "off_peak":
        rate *= OFF_PEAK_MULTIPLIER
    if station_load_fraction > HIGH_LOAD_FRACTION:
        rate *= LOAD_SURCHARGE
    return round(rate, 2)


def total_cost(energy_consumed_kwh: float, rate_per_kwh: float) -> float:
    return energy_consumed_kwh * rate_per_kwh


def estimated_cost(
    current_percent: float, target_percent: float, battery_capacity_kwh: float, rate_per_kwh: float
) -> float:
    if current_percent >= target_percent:
        return 0.0
    energy_needed = (target_percent - current_percent) / 100 * battery_capacity_kwh
    return total_cost(energy_needed, rate_per_kwh)
