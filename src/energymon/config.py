"""Monitor configuration loading and validation."""

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .collectors.envir import DEFAULT_BAUDRATE, DEFAULT_MAX_LINES, DEFAULT_TIMEOUT
from .models import TariffConfig
from .tariffs import parse_night_window

# Load environment variables from .env file
load_dotenv()

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "energymon.yaml"
DEFAULT_PORT = "/dev/ttyUSB0"
DEFAULT_TICK_INTERVAL = 300


class ConfigError(Exception):
    """Raised when the configuration is missing or malformed."""
    pass


@dataclass(frozen=True)
class DeviceConfig:
    """Serial settings for the monitor."""

    port: str = DEFAULT_PORT
    baudrate: int = DEFAULT_BAUDRATE
    timeout: float = DEFAULT_TIMEOUT
    max_lines: int = DEFAULT_MAX_LINES


@dataclass(frozen=True)
class MonitorConfig:
    """Everything a poll needs to know, fixed for the life of the process."""

    tariff: TariffConfig = field(default_factory=TariffConfig)
    device: DeviceConfig = field(default_factory=DeviceConfig)
    tick_interval: timedelta = timedelta(seconds=DEFAULT_TICK_INTERVAL)
    db_path: Path | None = None


def _number(section: dict, key: str, default: float, name: str) -> float:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    if value < 0:
        raise ConfigError(f"{name} must not be negative, got {value}")
    return float(value)


def parse_tariff(data: dict) -> TariffConfig:
    """Build and validate a TariffConfig from the ``tariff`` section."""
    if not isinstance(data, dict):
        raise ConfigError("tariff must be a mapping")

    window = data.get("night_window")
    if window is not None:
        try:
            parse_night_window(str(window))
        except ValueError as e:
            raise ConfigError(str(e)) from e

    tariff = TariffConfig(
        currency_symbol=str(data.get("currency_symbol", "£")),
        rate1=_number(data, "rate1", 0.0, "tariff.rate1"),
        rate1_threshold=_number(data, "rate1_threshold", 0.0, "tariff.rate1_threshold"),
        rate2=_number(data, "rate2", 0.0, "tariff.rate2"),
        night_rate=_number(data, "night_rate", 0.0, "tariff.night_rate"),
        night_window=str(window) if window is not None else None,
        standing_charge=_number(data, "standing_charge", 0.0, "tariff.standing_charge"),
    )

    if tariff.has_night_rate and tariff.night_window is None:
        raise ConfigError("tariff.night_window is required when night_rate is set")

    return tariff


def parse_device(data: dict) -> DeviceConfig:
    """Build a DeviceConfig from the ``device`` section, honouring ENERGYMON_PORT."""
    if not isinstance(data, dict):
        raise ConfigError("device must be a mapping")

    max_lines = data.get("max_lines", DEFAULT_MAX_LINES)
    if isinstance(max_lines, bool) or not isinstance(max_lines, int) or max_lines <= 0:
        raise ConfigError(f"device.max_lines must be a positive integer, got {max_lines!r}")

    baudrate = data.get("baudrate", DEFAULT_BAUDRATE)
    if isinstance(baudrate, bool) or not isinstance(baudrate, int) or baudrate <= 0:
        raise ConfigError(f"device.baudrate must be a positive integer, got {baudrate!r}")

    return DeviceConfig(
        port=os.environ.get("ENERGYMON_PORT") or str(data.get("port", DEFAULT_PORT)),
        baudrate=baudrate,
        timeout=_number(data, "timeout", DEFAULT_TIMEOUT, "device.timeout"),
        max_lines=max_lines,
    )


def parse_config(data: dict) -> MonitorConfig:
    """Validate a raw config mapping."""
    if not isinstance(data, dict):
        raise ConfigError("Config file must contain a mapping")

    tick = data.get("tick_interval", DEFAULT_TICK_INTERVAL)
    if isinstance(tick, bool) or not isinstance(tick, (int, float)) or tick <= 0:
        raise ConfigError(f"tick_interval must be a positive number of seconds, got {tick!r}")

    db_path = os.environ.get("ENERGYMON_DB") or data.get("db_path")

    return MonitorConfig(
        tariff=parse_tariff(data.get("tariff") or {}),
        device=parse_device(data.get("device") or {}),
        tick_interval=timedelta(seconds=tick),
        db_path=Path(db_path).expanduser() if db_path else None,
    )


def load_config(config_path: Path | None = None) -> MonitorConfig:
    """Load monitor configuration from YAML.

    The path falls back to ENERGYMON_CONFIG, then the bundled default. A
    missing default file just means "use defaults"; an explicitly named
    file that doesn't exist is an error.
    """
    env_path = os.environ.get("ENERGYMON_CONFIG")
    path = config_path or (Path(env_path) if env_path else None)

    if path is None:
        if not DEFAULT_CONFIG_PATH.exists():
            return parse_config({})
        path = DEFAULT_CONFIG_PATH

    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Could not read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    return parse_config(data or {})
