"""Roll per-channel usage totals forward with each new batch of readings."""

from datetime import datetime

from ..models import (
    Band,
    ChannelAccumulator,
    ChannelReading,
    PersistedSnapshot,
    Period,
    SensorReading,
    SensorState,
)

# Polls are expected every five minutes, so each instant reading stands
# for 1/12 of an hour of usage. W / 12 therefore approximates Wh.
SAMPLES_PER_HOUR = 12


def is_new_period(period: Period, now: datetime, previous: PersistedSnapshot | None) -> bool:
    """Check whether the period's calendar field changed since the last poll.

    Only the single field is compared (day of month for DAILY), matching
    how the totals have always rolled over.
    """
    if previous is None:
        return False
    return period.calendar_value(now) != period.calendar_value(previous.timestamp)


def accumulate_channel(
    reading: ChannelReading,
    previous: ChannelAccumulator | None,
    rollover: dict[Period, bool],
    band: Band,
    night_configured: bool,
) -> ChannelAccumulator:
    """Add one reading's contribution to a channel's totals."""
    # Totals never go below zero, whatever the reading
    contribution = max(reading.instant_value, 0.0) / SAMPLES_PER_HOUR
    other_band = Band.DAY if band is Band.NIGHT else Band.NIGHT

    acc = ChannelAccumulator(channel_id=reading.channel_id)
    for period in Period:
        new_period = rollover[period]

        old = previous.value(period, band) if previous else None
        if new_period or old is None:
            acc = acc.with_value(period, band, contribution)
        else:
            acc = acc.with_value(period, band, old + contribution)

        if other_band is Band.NIGHT and not night_configured:
            continue
        # The band not being added to still has to roll over on time
        other = previous.value(period, other_band) if previous else None
        if new_period or other is None:
            other = 0.0
        acc = acc.with_value(period, other_band, other)

    return acc


def merge(
    previous: PersistedSnapshot | None,
    fresh: list[SensorReading],
    now: datetime,
    night_active: bool,
    night_configured: bool = False,
) -> PersistedSnapshot:
    """Merge a fresh batch of readings into the previous totals.

    Sensors and channels missing from the fresh batch are dropped rather than
    carried forward. Nothing in ``previous`` is modified.
    """
    band = Band.NIGHT if night_configured and night_active else Band.DAY
    rollover = {period: is_new_period(period, now, previous) for period in Period}

    merged = PersistedSnapshot(timestamp=now)
    for reading in fresh:
        old_state = previous.by_sensor.get(reading.sensor_id) if previous else None

        accumulators = []
        for channel in reading.channels:
            old_acc = old_state.accumulator(channel.channel_id) if old_state else None
            accumulators.append(
                accumulate_channel(channel, old_acc, rollover, band, night_configured)
            )

        merged.by_sensor[reading.sensor_id] = SensorState(
            reading=reading, accumulators=accumulators
        )

    return merged
