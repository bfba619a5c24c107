import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner
from energymon.cli import cli
from energymon.collectors.envir import DeviceError
from energymon.models import ChannelReading, SensorReading


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ENERGYMON_PORT", "ENERGYMON_DB", "ENERGYMON_CONFIG"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def paths(tmp_path):
    config = tmp_path / "energymon.yaml"
    config.write_text(
        "tariff:\n  rate1: 13.9\n  rate1_threshold: 900\n  rate2: 8.2\n",
        encoding="utf-8",
    )
    return ["--db-path", str(tmp_path / "energymon.db"), "--config", str(config)]


READINGS = [SensorReading(0, 21.5, [ChannelReading(1, "watts", 1200.0)])]


def test_poll_json(paths):
    runner = CliRunner()
    with patch("energymon.poller.read_device", return_value=READINGS):
        result = runner.invoke(cli, [*paths, "poll", "--json"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["refreshed"] is True
    channel = data["sensors"][0]["channels"][0]
    assert channel["monthly"] == 100.0
    assert channel["monthly_kwh"] == 0.1


def test_poll_table_then_status_and_cost(paths):
    runner = CliRunner()
    with patch("energymon.poller.read_device", return_value=READINGS):
        result = runner.invoke(cli, [*paths, "poll"])
    assert result.exit_code == 0, result.output
    assert "Energy Monitor" in result.output

    result = runner.invoke(cli, [*paths, "status"])
    assert result.exit_code == 0, result.output
    assert "Whole house" in result.output

    result = runner.invoke(cli, [*paths, "cost"])
    assert result.exit_code == 0, result.output
    assert "Month to date" in result.output


def test_poll_device_failure(paths):
    runner = CliRunner()
    with patch("energymon.poller.read_device", side_effect=DeviceError("No data received from monitor")):
        result = runner.invoke(cli, [*paths, "poll"])

    assert result.exit_code == 0
    assert "Monitor not read" in result.output
    assert "No readings stored yet" in result.output


def test_status_before_first_poll(paths):
    result = CliRunner().invoke(cli, [*paths, "status", "--json"])

    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["timestamp"] is None


def test_db_init_and_stats(paths):
    runner = CliRunner()
    result = runner.invoke(cli, [*paths, "db", "init"])
    assert result.exit_code == 0
    assert "initialized" in result.output

    result = runner.invoke(cli, [*paths, "db", "stats"])
    assert result.exit_code == 0
    assert "Last poll" in result.output


def test_bad_config_exits(tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text("tariff:\n  rate1: -3\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(config), "status"])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_db_stats_unreadable_database(tmp_path):
    """Test a corrupt database is reported without a traceback."""
    junk = tmp_path / "junk.db"
    junk.write_bytes(b"this is not a sqlite database" * 100)
    config = tmp_path / "energymon.yaml"
    config.write_text("tick_interval: 300\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--db-path", str(junk), "--config", str(config), "db", "stats"])

    assert result.exit_code == 1
    assert "Error" in result.output
    assert result.exception is None or isinstance(result.exception, SystemExit)
