"""One poll-compute-persist cycle.

Meant to be run periodically (e.g. every five minutes via cron). Each run
loads the last snapshot, decides whether it is still fresh, and if not
reads the monitor, rolls the totals forward and saves the result.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from .analysis.accumulator import merge
from .collectors.envir import DeviceError, read_device
from .config import MonitorConfig
from .db import load_snapshot, save_snapshot
from .models import ChannelCost, PersistedSnapshot, SensorReading
from .tariffs import is_night_rate, snapshot_costs

log = logging.getLogger(__name__)

Reader = Callable[[], list[SensorReading]]


@dataclass
class PollResult:
    """What a poll hands to whoever reports on it."""

    snapshot: PersistedSnapshot | None
    costs: dict[int, dict[int, ChannelCost]] = field(default_factory=dict)
    refreshed: bool = False
    warning: str | None = None


def device_reader(config: MonitorConfig) -> Reader:
    """Build a reader callable for the configured serial device."""
    device = config.device

    def read() -> list[SensorReading]:
        return read_device(
            device.port,
            baudrate=device.baudrate,
            timeout=device.timeout,
            max_lines=device.max_lines,
        )

    return read


def is_stale(snapshot: PersistedSnapshot | None, now: datetime, config: MonitorConfig) -> bool:
    """Check whether enough time has passed since the last poll to read again."""
    if snapshot is None:
        return True
    return now >= snapshot.timestamp + config.tick_interval


def poll(
    now: datetime,
    config: MonitorConfig,
    reader: Reader | None = None,
    db_path: Path | None = None,
) -> PollResult:
    """Run one polling cycle.

    Returns the stored snapshot untouched if it is still fresh or the device
    could not be read (with ``warning`` set in the latter case). Otherwise
    returns the newly merged and saved snapshot.

    Raises:
        StoreError: if the stored snapshot can't be loaded or the new one
            can't be saved. Stored state is not changed in either case.
    """
    db_path = db_path or config.db_path
    reader = reader or device_reader(config)
    tariff = config.tariff

    previous = load_snapshot(db_path)

    if not is_stale(previous, now, config):
        log.debug("Last poll at %s is still fresh, skipping read", previous.timestamp)
        return PollResult(snapshot=previous, costs=snapshot_costs(previous, tariff))

    try:
        fresh = reader()
    except DeviceError as e:
        log.warning("Monitor read failed, keeping last snapshot: %s", e)
        return PollResult(
            snapshot=previous,
            costs=snapshot_costs(previous, tariff) if previous else {},
            warning=str(e),
        )

    night_active = is_night_rate(now, tariff)
    merged = merge(
        previous,
        fresh,
        now,
        night_active=night_active,
        night_configured=tariff.has_night_rate,
    )

    save_snapshot(merged, db_path)
    log.info(
        "Saved snapshot for %d sensors at %s%s",
        len(merged.by_sensor),
        now.isoformat(timespec="seconds"),
        " (night rate)" if night_active else "",
    )

    return PollResult(snapshot=merged, costs=snapshot_costs(merged, tariff), refreshed=True)
