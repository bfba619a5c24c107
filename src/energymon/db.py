"""Database connection, schema and snapshot persistence."""

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from .models import (
    Band,
    ChannelAccumulator,
    ChannelReading,
    PersistedSnapshot,
    Period,
    SensorReading,
    SensorState,
)

DEFAULT_DB_PATH = Path.home() / ".local" / "share" / "energymon" / "energymon.db"

# Seconds to wait for another process holding the write lock
LOCK_TIMEOUT = 30.0

SCHEMA = """
-- Time of the last successful poll (single row)
CREATE TABLE IF NOT EXISTS poll_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    timestamp TEXT NOT NULL
);

-- Latest reading per sensor
CREATE TABLE IF NOT EXISTS sensor_readings (
    sensor_id INTEGER PRIMARY KEY,
    temperature REAL
);

-- Latest channel values per sensor, in frame order
CREATE TABLE IF NOT EXISTS channel_readings (
    sensor_id INTEGER NOT NULL,
    channel_id INTEGER NOT NULL,
    position INTEGER NOT NULL,
    unit TEXT NOT NULL,
    instant_value REAL NOT NULL,
    PRIMARY KEY (sensor_id, channel_id),
    FOREIGN KEY (sensor_id) REFERENCES sensor_readings(sensor_id)
);

-- Running totals; a missing night row means no night rate was configured
CREATE TABLE IF NOT EXISTS channel_accumulators (
    sensor_id INTEGER NOT NULL,
    channel_id INTEGER NOT NULL,
    period TEXT NOT NULL,
    band TEXT NOT NULL,
    value REAL NOT NULL CHECK (value >= 0),
    PRIMARY KEY (sensor_id, channel_id, period, band),
    FOREIGN KEY (sensor_id) REFERENCES sensor_readings(sensor_id)
);
"""


class StoreError(Exception):
    """Raised when persisted state cannot be read or written."""
    pass


def get_db_path() -> Path:
    """Get the database path, creating parent directories if needed."""
    db_path = Path(DEFAULT_DB_PATH)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


@contextmanager
def get_connection(db_path: Path | None = None) -> Iterator[sqlite3.Connection]:
    """Get a database connection with row factory enabled."""
    path = db_path or get_db_path()
    conn = sqlite3.connect(path, timeout=LOCK_TIMEOUT)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    try:
        with get_connection(db_path) as conn:
            conn.executescript(SCHEMA)
            conn.commit()
    except sqlite3.Error as e:
        raise StoreError(f"Could not initialise database: {e}") from e


def load_snapshot(db_path: Path | None = None) -> PersistedSnapshot | None:
    """Load the last persisted snapshot.

    Returns None if nothing has been saved yet (first run).
    """
    init_db(db_path)

    try:
        with get_connection(db_path) as conn:
            row = conn.execute("SELECT timestamp FROM poll_state WHERE id = 1").fetchone()
            if not row:
                return None

            snapshot = PersistedSnapshot(timestamp=datetime.fromisoformat(row["timestamp"]))

            for sensor in conn.execute(
                "SELECT sensor_id, temperature FROM sensor_readings ORDER BY sensor_id"
            ).fetchall():
                snapshot.by_sensor[sensor["sensor_id"]] = SensorState(
                    reading=SensorReading(
                        sensor_id=sensor["sensor_id"],
                        temperature=sensor["temperature"],
                    )
                )

            for ch in conn.execute(
                """SELECT sensor_id, channel_id, unit, instant_value
                   FROM channel_readings
                   ORDER BY sensor_id, position"""
            ).fetchall():
                state = snapshot.by_sensor[ch["sensor_id"]]
                state.reading.channels.append(
                    ChannelReading(
                        channel_id=ch["channel_id"],
                        unit=ch["unit"],
                        instant_value=ch["instant_value"],
                    )
                )

            totals: dict[tuple[int, int], ChannelAccumulator] = {}
            for acc in conn.execute(
                "SELECT sensor_id, channel_id, period, band, value FROM channel_accumulators"
            ).fetchall():
                key = (acc["sensor_id"], acc["channel_id"])
                current = totals.get(key) or ChannelAccumulator(channel_id=acc["channel_id"])
                totals[key] = current.with_value(
                    Period(acc["period"]), Band(acc["band"]), acc["value"]
                )
    except (sqlite3.Error, ValueError, KeyError) as e:
        raise StoreError(f"Could not load stored snapshot: {e}") from e

    # Keep accumulators in the same order as the channels they belong to
    for sensor_id, state in snapshot.by_sensor.items():
        state.accumulators = [
            totals[(sensor_id, ch.channel_id)]
            for ch in state.reading.channels
            if (sensor_id, ch.channel_id) in totals
        ]

    return snapshot


def save_snapshot(snapshot: PersistedSnapshot, db_path: Path | None = None) -> None:
    """Replace the persisted snapshot.

    Everything is written in one IMMEDIATE transaction, which also holds
    SQLite's write lock so that overlapping runs queue up behind each other.
    On failure the previous snapshot is left as it was.
    """
    init_db(db_path)

    with get_connection(db_path) as conn:
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM channel_accumulators")
            conn.execute("DELETE FROM channel_readings")
            conn.execute("DELETE FROM sensor_readings")

            for sensor_id, state in snapshot.by_sensor.items():
                conn.execute(
                    "INSERT INTO sensor_readings (sensor_id, temperature) VALUES (?, ?)",
                    (sensor_id, state.reading.temperature),
                )
                for position, ch in enumerate(state.reading.channels):
                    conn.execute(
                        """INSERT INTO channel_readings
                           (sensor_id, channel_id, position, unit, instant_value)
                           VALUES (?, ?, ?, ?, ?)""",
                        (sensor_id, ch.channel_id, position, ch.unit, ch.instant_value),
                    )
                for acc in state.accumulators:
                    for period in Period:
                        for band in Band:
                            value = acc.value(period, band)
                            if value is None:
                                continue
                            conn.execute(
                                """INSERT INTO channel_accumulators
                                   (sensor_id, channel_id, period, band, value)
                                   VALUES (?, ?, ?, ?, ?)""",
                                (sensor_id, acc.channel_id, period.value, band.value, value),
                            )

            conn.execute(
                "INSERT OR REPLACE INTO poll_state (id, timestamp) VALUES (1, ?)",
                (snapshot.timestamp.isoformat(),),
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Could not save snapshot: {e}") from e


def get_stats(db_path: Path | None = None) -> dict:
    """Get database statistics."""
    init_db(db_path)

    try:
        with get_connection(db_path) as conn:
            row = conn.execute("SELECT timestamp FROM poll_state WHERE id = 1").fetchone()
            sensors = conn.execute("SELECT COUNT(*) as count FROM sensor_readings").fetchone()
            channels = conn.execute("SELECT COUNT(*) as count FROM channel_readings").fetchone()
    except sqlite3.Error as e:
        raise StoreError(f"Could not read database statistics: {e}") from e

    return {
        "last_poll": row["timestamp"] if row else None,
        "sensors": sensors["count"],
        "channels": channels["count"],
    }
