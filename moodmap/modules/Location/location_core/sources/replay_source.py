"""Replay a recorded track from CSV as a live location feed.

Expected columns (header row required)::

    timestamp_ms,latitude,longitude[,altitude,speed,accuracy,mocked]

``geoTime`` is accepted as an alias for ``timestamp_ms``. Rows that fail to
parse are skipped and counted.
"""

from __future__ import annotations

import asyncio
import csv
from pathlib import Path
from typing import AsyncIterator, Dict, Optional

import aiofiles

from moodmap.core.logging_utils import get_module_logger
from .base_source import LocationEvent, LocationSource, SubscriptionOptions

logger = get_module_logger("ReplayLocationSource")

_TIMESTAMP_COLUMNS = ("timestamp_ms", "geoTime", "timestamp")
_TRUE_VALUES = {"1", "true", "yes", "on"}


def parse_replay_row(row: Dict[str, str]) -> Optional[LocationEvent]:
    """Convert one CSV row to an event, or None if it is unusable."""
    raw_ts = next((row[name] for name in _TIMESTAMP_COLUMNS if row.get(name)), None)
    try:
        if raw_ts is None:
            return None
        return LocationEvent(
            timestamp_ms=int(float(raw_ts)),
            latitude=float(row["latitude"]),
            longitude=float(row["longitude"]),
            altitude_m=_float_or_none(row.get("altitude")),
            speed_mps=_float_or_none(row.get("speed")),
            accuracy_m=_float_or_none(row.get("accuracy")),
            mocked=(row.get("mocked") or "").strip().lower() in _TRUE_VALUES,
        )
    except (KeyError, TypeError, ValueError):
        return None


def _float_or_none(value: Optional[str]) -> Optional[float]:
    if value is None or not value.strip():
        return None
    return float(value)


class ReplayLocationSource(LocationSource):
    """Streams events from a CSV track.

    Args:
        path: CSV file to replay.
        realtime_factor: 0 replays as fast as the consumer accepts; 1.0 keeps
            the recorded spacing; 2.0 plays twice as fast.
    """

    name = "replay"

    def __init__(self, path: Path, realtime_factor: float = 0.0):
        self.path = Path(path)
        self.realtime_factor = max(0.0, realtime_factor)
        self.skipped_rows = 0

    async def events(self, options: SubscriptionOptions) -> AsyncIterator[LocationEvent]:
        async with aiofiles.open(self.path, "r", encoding="utf-8", newline="") as fh:
            header_line = await fh.readline()
            if not header_line:
                logger.warning("Replay file %s is empty", self.path)
                return
            fieldnames = next(csv.reader([header_line]))

            previous_ms: Optional[int] = None
            async for line in fh:
                if not line.strip():
                    continue
                values = next(csv.reader([line]))
                event = parse_replay_row(dict(zip(fieldnames, values)))
                if event is None:
                    self.skipped_rows += 1
                    continue

                if self.realtime_factor > 0 and previous_ms is not None:
                    gap_s = (event.timestamp_ms - previous_ms) / 1000.0 / self.realtime_factor
                    if gap_s > 0:
                        await asyncio.sleep(gap_s)
                previous_ms = event.timestamp_ms
                yield event

        if self.skipped_rows:
            logger.warning("Skipped %d unparseable rows in %s", self.skipped_rows, self.path)


__all__ = ["ReplayLocationSource", "parse_replay_row"]
