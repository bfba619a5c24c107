import pytest
from datetime import datetime
from energymon.models import ChannelAccumulator, PersistedSnapshot, SensorReading, SensorState, TariffConfig
from energymon.tariffs import (
    is_night_rate,
    monthly_cost,
    parse_night_window,
    snapshot_costs,
)

NIGHT_TARIFF = TariffConfig(
    rate1=13.9, rate1_threshold=900, rate2=8.2, night_rate=5.0, night_window="23:30-06:30"
)


def at(hour, minute):
    return datetime(2026, 3, 10, hour, minute)


def test_parse_night_window():
    assert parse_night_window("23:30-06:30") == (1410, 390)
    assert parse_night_window("0:00 - 7:00") == (0, 420)


@pytest.mark.parametrize("window", ["", "23:30", "23:30-6", "25:00-06:00", "23:60-06:00", "late-early"])
def test_parse_night_window_invalid(window):
    with pytest.raises(ValueError):
        parse_night_window(window)


def test_is_night_rate_wrapping_window():
    """Test a window that wraps midnight, stop time inclusive."""
    assert is_night_rate(at(23, 45), NIGHT_TARIFF)
    assert is_night_rate(at(23, 30), NIGHT_TARIFF)
    assert is_night_rate(at(0, 0), NIGHT_TARIFF)
    assert is_night_rate(at(6, 30), NIGHT_TARIFF)
    assert not is_night_rate(at(6, 31), NIGHT_TARIFF)
    assert not is_night_rate(at(12, 0), NIGHT_TARIFF)
    assert not is_night_rate(at(23, 29), NIGHT_TARIFF)


def test_is_night_rate_disabled():
    """Test a zero night rate never reports night."""
    tariff = TariffConfig(night_rate=0, night_window="23:30-06:30")
    assert not is_night_rate(at(23, 45), tariff)


def test_is_night_rate_non_wrapping_window_is_almost_always_night():
    """Test a window that doesn't wrap midnight matches nearly all day.

    The window check is start-or-stop, which only makes sense for windows
    spanning midnight; this pins that behaviour.
    """
    tariff = TariffConfig(night_rate=5.0, night_window="01:00-07:00")
    assert is_night_rate(at(12, 0), tariff)
    assert is_night_rate(at(0, 30), tariff)
    assert is_night_rate(at(3, 0), tariff)


def test_monthly_cost_tiered():
    """Test usage above the threshold is billed at rate2."""
    tariff = TariffConfig(rate1=13.9, rate1_threshold=900, rate2=8.2, standing_charge=0)
    cost = monthly_cost(ChannelAccumulator(1, monthly=1_000_000.0), tariff)

    assert cost.usage_kwh == 1000.0
    assert cost.cost == pytest.approx(133.30)
    assert cost.night_usage_kwh is None


def test_monthly_cost_below_threshold_with_standing_charge():
    tariff = TariffConfig(rate1=13.9, rate1_threshold=900, rate2=8.2, standing_charge=500)
    cost = monthly_cost(ChannelAccumulator(1, monthly=100_000.0), tariff)

    assert cost.cost == pytest.approx((500 + 100 * 13.9) / 100)


def test_monthly_cost_night_usage_billed_separately():
    """Test night kWh use the night rate and don't count towards the day tiers."""
    acc = ChannelAccumulator(1, monthly=800_000.0, nightly_monthly=300_000.0)
    cost = monthly_cost(acc, NIGHT_TARIFF)

    assert cost.usage_kwh == 800.0
    assert cost.night_usage_kwh == 300.0
    assert cost.cost == pytest.approx((300 * 5.0 + 800 * 13.9) / 100)


def test_monthly_cost_night_usage_ignored_without_night_rate():
    tariff = TariffConfig(rate1=10.0, rate1_threshold=900, rate2=8.0)
    cost = monthly_cost(ChannelAccumulator(1, monthly=100_000.0, nightly_monthly=50_000.0), tariff)

    assert cost.cost == pytest.approx(10.0)
    assert cost.night_usage_kwh == 50.0


def test_snapshot_costs():
    snapshot = PersistedSnapshot(
        timestamp=at(12, 0),
        by_sensor={
            0: SensorState(
                SensorReading(0, None),
                [ChannelAccumulator(1, monthly=100_000.0), ChannelAccumulator(2, monthly=0.0)],
            )
        },
    )
    tariff = TariffConfig(rate1=10.0, rate1_threshold=900, rate2=8.0)

    costs = snapshot_costs(snapshot, tariff)
    assert set(costs[0]) == {1, 2}
    assert costs[0][1].cost == pytest.approx(10.0)
    assert costs[0][2].cost == 0.0
