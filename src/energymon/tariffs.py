"""Tariff window parsing and cost calculation."""

import re
from datetime import datetime

from .models import ChannelAccumulator, ChannelCost, PersistedSnapshot, TariffConfig

WINDOW_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*-\s*(\d{1,2}):(\d{2})\s*$")


def parse_time(time_str: str) -> int:
    """Parse HH:MM string to minutes past midnight."""
    parts = time_str.split(":")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time of day: {time_str!r}")
    return hours * 60 + minutes


def parse_night_window(window: str) -> tuple[int, int]:
    """Parse an HH:MM-HH:MM window into (start, stop) minutes past midnight."""
    match = WINDOW_PATTERN.match(window)
    if not match:
        raise ValueError(f"Night window must look like HH:MM-HH:MM, got {window!r}")
    start_h, start_m, stop_h, stop_m = match.groups()
    return parse_time(f"{start_h}:{start_m}"), parse_time(f"{stop_h}:{stop_m}")


def is_night_rate(now: datetime, config: TariffConfig) -> bool:
    """Check whether now falls inside the night-rate window.

    The window is assumed to wrap midnight (e.g. 23:30-06:30), so the test
    is ``now >= start or now <= stop`` with both ends inclusive. A window
    that does not wrap (start <= stop) therefore matches almost every
    minute of the day.
    """
    if not config.has_night_rate or not config.night_window:
        return False

    start, stop = parse_night_window(config.night_window)
    now_minutes = now.hour * 60 + now.minute
    return now_minutes >= start or now_minutes <= stop


def tiered_cost(kwh: float, config: TariffConfig) -> float:
    """Cost in pence of kwh under the two-tier day rate."""
    if kwh <= config.rate1_threshold:
        return kwh * config.rate1
    return (kwh - config.rate1_threshold) * config.rate2 + config.rate1_threshold * config.rate1


def monthly_cost(accumulator: ChannelAccumulator, config: TariffConfig) -> ChannelCost:
    """Calculate month-to-date cost for one channel.

    Accumulators hold watt-hours; rates are pence/kWh, so the returned cost
    is in pounds (or whatever the major unit of the currency is).
    """
    usage_kwh = accumulator.monthly / 1000
    night_kwh = (
        accumulator.nightly_monthly / 1000 if accumulator.nightly_monthly is not None else None
    )

    cost = config.standing_charge
    if config.has_night_rate and night_kwh is not None:
        # Night usage is billed flat and does not count towards the day tiers
        cost += night_kwh * config.night_rate
    cost += tiered_cost(usage_kwh, config)

    return ChannelCost(cost=cost / 100, usage_kwh=usage_kwh, night_usage_kwh=night_kwh)


def snapshot_costs(
    snapshot: PersistedSnapshot, config: TariffConfig
) -> dict[int, dict[int, ChannelCost]]:
    """Monthly cost for every channel in a snapshot, keyed by sensor then channel."""
    return {
        sensor_id: {acc.channel_id: monthly_cost(acc, config) for acc in state.accumulators}
        for sensor_id, state in snapshot.by_sensor.items()
    }
