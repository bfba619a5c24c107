"""CurrentCost EnviR serial data collector.

The display emits one XML message per line, roughly every six seconds,
cycling through each of its sensors in turn:

    <msg><src>CC128-v0.11</src><dsb>00089</dsb><time>13:02:39</time>
    <tmpr>18.7</tmpr><sensor>1</sensor><id>01234</id><type>1</type>
    <ch1><watts>00345</watts></ch1><ch2><watts>02151</watts></ch2></msg>

(shown wrapped; on the wire it is a single line). History messages carry
a <hist> block and no <sensor> element and are ignored.
"""

import logging
import re
import xml.etree.ElementTree as ET
from typing import Protocol

import serial

from ..models import ChannelReading, SensorReading

log = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 57600
DEFAULT_TIMEOUT = 10.0
# A full cycle for nine sensors at ~6s each is well under 100 lines
DEFAULT_MAX_LINES = 200

MSG_PATTERN = re.compile(r"<msg>.*?</msg>")
CHANNEL_PATTERN = re.compile(r"^ch(\d+)$")


class DeviceError(Exception):
    """Raised when the monitor cannot be read."""
    pass


class LineStream(Protocol):
    def readline(self) -> bytes: ...


def parse_frame(line: str) -> SensorReading | None:
    """Parse a single line into a SensorReading.

    Returns None for lines without a complete message, messages without
    a sensor id, and anything that fails to parse.
    """
    match = MSG_PATTERN.search(line)
    if not match:
        return None

    try:
        root = ET.fromstring(match.group(0))
    except ET.ParseError:
        return None

    sensor = root.findtext("sensor")
    if sensor is None:
        return None

    try:
        sensor_id = int(sensor)

        temperature = None
        if root.findtext("tmpr") is not None:
            temperature = float(root.findtext("tmpr"))
        elif root.findtext("tmprF") is not None:
            temperature = float(root.findtext("tmprF"))

        channels = []
        for element in root:
            channel_match = CHANNEL_PATTERN.match(element.tag)
            if not channel_match:
                continue
            # Each channel holds exactly one <unit>value</unit> pair
            value = next(iter(element), None)
            if value is None or value.text is None:
                continue
            instant = float(value.text)
            if not instant >= 0:
                # Negative or NaN usage means a garbled frame
                return None
            channels.append(
                ChannelReading(
                    channel_id=int(channel_match.group(1)),
                    unit=value.tag,
                    instant_value=instant,
                )
            )
    except (ValueError, TypeError):
        return None

    return SensorReading(sensor_id=sensor_id, temperature=temperature, channels=channels)


def read_cycle(stream: LineStream, max_lines: int = DEFAULT_MAX_LINES) -> list[SensorReading]:
    """Read one round-robin cycle of sensor readings from a line stream.

    Stops as soon as a sensor id repeats, keeping the first reading seen for
    each sensor. Reading also stops after max_lines lines or at end of
    stream; a partial cycle is returned if at least one frame was parsed.

    Raises:
        DeviceError: if the stream yields nothing at all, or no frame could
            be parsed before it ended.
    """
    readings: dict[int, SensorReading] = {}
    seen_bytes = False

    for _ in range(max_lines):
        try:
            raw = stream.readline()
        except (OSError, serial.SerialException) as e:
            raise DeviceError(f"Error reading from monitor: {e}") from e

        if not raw:
            if not seen_bytes:
                raise DeviceError("No data received from monitor")
            log.warning("Monitor stream ended before a full cycle (%d sensors)", len(readings))
            break
        seen_bytes = True

        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        reading = parse_frame(line)
        if reading is None:
            log.debug("Skipping unrecognised line: %r", line.strip())
            continue

        if reading.sensor_id in readings:
            log.debug("Sensor %d repeated, cycle complete", reading.sensor_id)
            break
        readings[reading.sensor_id] = reading
    else:
        log.warning("Read %d lines without completing a cycle", max_lines)

    if not readings:
        raise DeviceError("No parsable frame received from monitor")

    log.info("Read %d sensors: %s", len(readings), sorted(readings))
    return list(readings.values())


def open_device(
    port: str, baudrate: int = DEFAULT_BAUDRATE, timeout: float = DEFAULT_TIMEOUT
) -> serial.Serial:
    """Open the monitor's serial port (8N1)."""
    try:
        return serial.Serial(
            port=port,
            baudrate=baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=timeout,
        )
    except (serial.SerialException, ValueError) as e:
        raise DeviceError(f"Could not open monitor on {port}: {e}") from e


def read_device(
    port: str,
    baudrate: int = DEFAULT_BAUDRATE,
    timeout: float = DEFAULT_TIMEOUT,
    max_lines: int = DEFAULT_MAX_LINES,
) -> list[SensorReading]:
    """Open the monitor, read one full cycle and close it again."""
    try:
        with open_device(port, baudrate, timeout) as device:
            device.reset_input_buffer()
            return read_cycle(device, max_lines=max_lines)
    except (OSError, serial.SerialException) as e:
        raise DeviceError(f"Lost connection to monitor on {port}: {e}") from e
