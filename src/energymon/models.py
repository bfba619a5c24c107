"""Data models for monitor readings, accumulators and tariffs."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum


class Period(Enum):
    """Accumulation period, keyed by the calendar field that rolls it over."""

    DAILY = "day"
    MONTHLY = "month"
    YEARLY = "year"

    def calendar_value(self, dt: datetime) -> int:
        """Return the calendar field of dt that identifies this period."""
        return getattr(dt, self.value)


class Band(Enum):
    """Tariff band a reading is accumulated under."""

    DAY = "day"
    NIGHT = "night"


@dataclass(frozen=True)
class ChannelReading:
    """A single channel value from one monitor frame."""

    channel_id: int
    unit: str  # e.g. "watts"
    instant_value: float


@dataclass
class SensorReading:
    """All channels reported by one sensor in one frame.

    Sensor 0 is the whole-house aggregate; others are appliance sensors.
    """

    sensor_id: int
    temperature: float | None
    channels: list[ChannelReading] = field(default_factory=list)


# (period, band) -> ChannelAccumulator attribute
_ACCUMULATOR_FIELDS = {
    (Period.DAILY, Band.DAY): "daily",
    (Period.DAILY, Band.NIGHT): "nightly_daily",
    (Period.MONTHLY, Band.DAY): "monthly",
    (Period.MONTHLY, Band.NIGHT): "nightly_monthly",
    (Period.YEARLY, Band.DAY): "yearly",
    (Period.YEARLY, Band.NIGHT): "nightly_yearly",
}


@dataclass(frozen=True)
class ChannelAccumulator:
    """Running usage totals for one channel, in unit-hours.

    Nightly fields are None unless a night rate is configured.
    """

    channel_id: int
    daily: float = 0.0
    nightly_daily: float | None = None
    monthly: float = 0.0
    nightly_monthly: float | None = None
    yearly: float = 0.0
    nightly_yearly: float | None = None

    def value(self, period: Period, band: Band) -> float | None:
        return getattr(self, _ACCUMULATOR_FIELDS[(period, band)])

    def with_value(self, period: Period, band: Band, value: float | None) -> "ChannelAccumulator":
        return replace(self, **{_ACCUMULATOR_FIELDS[(period, band)]: value})


@dataclass
class SensorState:
    """The latest reading of a sensor together with its channel totals."""

    reading: SensorReading
    accumulators: list[ChannelAccumulator] = field(default_factory=list)

    def accumulator(self, channel_id: int) -> ChannelAccumulator | None:
        for acc in self.accumulators:
            if acc.channel_id == channel_id:
                return acc
        return None


@dataclass
class PersistedSnapshot:
    """Everything kept between polls."""

    timestamp: datetime
    by_sensor: dict[int, SensorState] = field(default_factory=dict)


@dataclass(frozen=True)
class TariffConfig:
    """An electricity tariff with a tiered day rate and optional night rate.

    Rates and standing charge are in pence (minor currency units).
    """

    currency_symbol: str = "£"
    rate1: float = 0.0  # pence/kWh up to rate1_threshold
    rate1_threshold: float = 0.0  # kWh per month
    rate2: float = 0.0  # pence/kWh beyond the threshold
    night_rate: float = 0.0  # pence/kWh, 0 = disabled
    night_window: str | None = None  # HH:MM-HH:MM, expected to wrap midnight
    standing_charge: float = 0.0  # pence per month

    @property
    def has_night_rate(self) -> bool:
        return self.night_rate != 0


@dataclass(frozen=True)
class ChannelCost:
    """Month-to-date cost of one channel in major currency units."""

    cost: float
    usage_kwh: float
    night_usage_kwh: float | None = None
