"""Location source for serial NMEA-0183 receivers.

Reads sentences with serial_asyncio and emits one event per valid ``RMC``
sentence. ``GGA`` sentences in between contribute altitude and HDOP.
"""

from __future__ import annotations

import asyncio
import contextlib
import datetime as dt
from typing import AsyncIterator, Optional

import serial_asyncio

from moodmap.core.logging_utils import get_module_logger
from ..constants import DEFAULT_BAUD_RATE, DEFAULT_RECONNECT_DELAY, DEFAULT_SERIAL_PORT
from .base_source import LocationEvent, LocationSource, SubscriptionOptions

logger = get_module_logger("NMEALocationSource")

KNOTS_TO_MPS = 0.514444
# Rough user-equivalent range error used to turn HDOP into meters.
UERE_M = 5.0


def validate_checksum(sentence: str) -> bool:
    """Validate the ``*hh`` checksum of an NMEA sentence."""
    if not sentence.startswith("$") or "*" not in sentence:
        return False
    payload, _, checksum = sentence[1:].partition("*")
    try:
        expected = int(checksum[:2], 16)
    except ValueError:
        return False
    calculated = 0
    for char in payload:
        calculated ^= ord(char)
    return calculated == expected


def parse_latlon(value: str, hemisphere: str, *, is_lat: bool) -> Optional[float]:
    """Convert ``DDMM.MMMM`` / ``DDDMM.MMMM`` plus hemisphere to signed degrees."""
    if not value or not hemisphere:
        return None
    deg_len = 2 if is_lat else 3
    try:
        degrees = int(value[:deg_len])
        minutes = float(value[deg_len:])
    except ValueError:
        return None
    decimal = degrees + minutes / 60.0
    return -decimal if hemisphere.upper() in ("S", "W") else decimal


def parse_rmc_timestamp(time_field: str, date_field: str) -> Optional[int]:
    """Epoch milliseconds from RMC ``hhmmss.sss`` and ``ddmmyy`` fields (UTC)."""
    if len(date_field) != 6 or len(time_field) < 6:
        return None
    main, _, frac = time_field.partition(".")
    try:
        moment = dt.datetime(
            2000 + int(date_field[4:6]),
            int(date_field[2:4]),
            int(date_field[0:2]),
            int(main[0:2]),
            int(main[2:4]),
            int(main[4:6]),
            int((frac[:6] or "0").ljust(6, "0")),
            tzinfo=dt.timezone.utc,
        )
    except ValueError:
        return None
    return int(moment.timestamp() * 1000)


class NMEASentenceDecoder:
    """Stateful decoder turning a sentence stream into location events."""

    def __init__(self, validate_checksums: bool = True):
        self.validate_checksums = validate_checksums
        self._altitude_m: Optional[float] = None
        self._hdop: Optional[float] = None

    def feed(self, sentence: str) -> Optional[LocationEvent]:
        sentence = sentence.strip()
        if not sentence.startswith("$"):
            return None
        if self.validate_checksums and not validate_checksum(sentence):
            return None

        fields = sentence[1:].split("*", 1)[0].split(",")
        kind = fields[0][-3:].upper()
        if kind == "GGA":
            self._feed_gga(fields[1:])
            return None
        if kind == "RMC":
            return self._feed_rmc(fields[1:])
        return None

    def _feed_gga(self, fields: list[str]) -> None:
        if len(fields) < 9:
            return
        try:
            self._hdop = float(fields[7]) if fields[7] else None
            self._altitude_m = float(fields[8]) if fields[8] else None
        except ValueError:
            return

    def _feed_rmc(self, fields: list[str]) -> Optional[LocationEvent]:
        if len(fields) < 9 or (fields[1] or "").upper() != "A":
            return None
        latitude = parse_latlon(fields[2], fields[3], is_lat=True)
        longitude = parse_latlon(fields[4], fields[5], is_lat=False)
        timestamp_ms = parse_rmc_timestamp(fields[0], fields[8])
        if latitude is None or longitude is None or timestamp_ms is None:
            return None

        speed_mps = None
        if fields[6]:
            with contextlib.suppress(ValueError):
                speed_mps = float(fields[6]) * KNOTS_TO_MPS

        return LocationEvent(
            timestamp_ms=timestamp_ms,
            latitude=latitude,
            longitude=longitude,
            altitude_m=self._altitude_m,
            speed_mps=speed_mps,
            accuracy_m=self._hdop * UERE_M if self._hdop is not None else None,
        )


class NMEALocationSource(LocationSource):
    """Serial UART receiver (BerryGPS, u-blox USB dongles, ...).

    The port is reopened after ``reconnect_delay`` seconds whenever it cannot
    be opened or the stream ends, until the subscription is cancelled.
    """

    name = "nmea"

    def __init__(
        self,
        port: str = DEFAULT_SERIAL_PORT,
        baudrate: int = DEFAULT_BAUD_RATE,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        read_timeout: float = 5.0,
    ):
        self.port = port
        self.baudrate = baudrate
        self.reconnect_delay = reconnect_delay
        self.read_timeout = read_timeout
        self.last_error: Optional[str] = None

    async def _open(self) -> Optional[tuple[asyncio.StreamReader, asyncio.StreamWriter]]:
        try:
            reader, writer = await serial_asyncio.open_serial_connection(url=self.port, baudrate=self.baudrate)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self.last_error = str(exc)
            logger.warning("Cannot open %s at %d baud: %s", self.port, self.baudrate, exc)
            return None
        self.last_error = None
        logger.info("Connected to NMEA receiver on %s at %d baud", self.port, self.baudrate)
        return reader, writer

    async def events(self, options: SubscriptionOptions) -> AsyncIterator[LocationEvent]:
        decoder = NMEASentenceDecoder()
        while True:
            connection = await self._open()
            if connection is None:
                await asyncio.sleep(self.reconnect_delay)
                continue

            reader, writer = connection
            try:
                while True:
                    try:
                        line = await asyncio.wait_for(reader.readline(), timeout=self.read_timeout)
                    except asyncio.TimeoutError:
                        logger.debug("No NMEA data from %s for %.1fs", self.port, self.read_timeout)
                        continue
                    if not line:
                        logger.warning("Serial stream ended on %s (EOF)", self.port)
                        break
                    event = decoder.feed(line.decode("ascii", errors="ignore"))
                    if event is not None:
                        yield event
            except (OSError, asyncio.IncompleteReadError) as exc:
                self.last_error = str(exc)
                logger.warning("Read error on %s: %s", self.port, exc)
            finally:
                writer.close()
                with contextlib.suppress(Exception):
                    await asyncio.wait_for(writer.wait_closed(), timeout=1.0)

            await asyncio.sleep(self.reconnect_delay)


__all__ = [
    "NMEALocationSource",
    "NMEASentenceDecoder",
    "parse_latlon",
    "parse_rmc_timestamp",
    "validate_checksum",
]
