"""Turn poll results into plain summaries for reporting."""

from ..models import TariffConfig
from ..poller import PollResult


def get_snapshot_summary(result: PollResult, tariff: TariffConfig) -> dict:
    """Build a JSON-serialisable summary of a poll result."""
    snapshot = result.snapshot
    if snapshot is None:
        return {
            "timestamp": None,
            "refreshed": result.refreshed,
            "warning": result.warning,
            "currency": tariff.currency_symbol,
            "sensors": [],
        }

    sensors = []
    for sensor_id, state in sorted(snapshot.by_sensor.items()):
        costs = result.costs.get(sensor_id, {})
        channels = []
        for reading in state.reading.channels:
            acc = state.accumulator(reading.channel_id)
            cost = costs.get(reading.channel_id)
            channels.append(
                {
                    "channel": reading.channel_id,
                    "unit": reading.unit,
                    "instant": reading.instant_value,
                    "daily": round(acc.daily, 2) if acc else None,
                    "nightly_daily": (
                        round(acc.nightly_daily, 2)
                        if acc and acc.nightly_daily is not None
                        else None
                    ),
                    "monthly": round(acc.monthly, 2) if acc else None,
                    "nightly_monthly": (
                        round(acc.nightly_monthly, 2)
                        if acc and acc.nightly_monthly is not None
                        else None
                    ),
                    "yearly": round(acc.yearly, 2) if acc else None,
                    "nightly_yearly": (
                        round(acc.nightly_yearly, 2)
                        if acc and acc.nightly_yearly is not None
                        else None
                    ),
                    "monthly_cost": round(cost.cost, 2) if cost else None,
                    "monthly_kwh": round(cost.usage_kwh, 3) if cost else None,
                    "monthly_night_kwh": (
                        round(cost.night_usage_kwh, 3)
                        if cost and cost.night_usage_kwh is not None
                        else None
                    ),
                }
            )
        sensors.append(
            {
                "sensor": sensor_id,
                "temperature": state.reading.temperature,
                "channels": channels,
            }
        )

    return {
        "timestamp": snapshot.timestamp.isoformat(),
        "refreshed": result.refreshed,
        "warning": result.warning,
        "currency": tariff.currency_symbol,
        "sensors": sensors,
    }


def format_snapshot_text(summary: dict) -> str:
    """Format a snapshot summary as human-readable text."""
    if summary["timestamp"] is None:
        return "No readings stored yet"

    currency = summary["currency"]
    lines = [f"Energy Monitor at {summary['timestamp']}"]
    if summary["warning"]:
        lines.append(f"(stale: {summary['warning']})")

    for sensor in summary["sensors"]:
        label = "Whole house" if sensor["sensor"] == 0 else f"Sensor {sensor['sensor']}"
        if sensor["temperature"] is not None:
            label += f" ({sensor['temperature']}°)"
        lines.extend(["", f"{label}:"])
        for ch in sensor["channels"]:
            lines.append(
                f"  - ch{ch['channel']}: {ch['instant']:g} {ch['unit']}, "
                f"today {ch['daily']} / month {ch['monthly']} / year {ch['yearly']}"
            )
            if ch["monthly_cost"] is not None:
                lines.append(
                    f"    month to date: {ch['monthly_kwh']} kWh, {currency}{ch['monthly_cost']:.2f}"
                )

    return "\n".join(lines)
