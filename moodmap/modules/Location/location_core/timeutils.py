"""Canonical timestamp conversions.

Every path that turns a time into a store key goes through
:func:`epoch_seconds` / :func:`timestamp_key`, so ingestion and queries always
agree on the same second.
"""

from __future__ import annotations

import datetime as dt
from typing import Union

from .constants import MS_PER_SECOND

TimeLike = Union[dt.datetime, int, float]

# Accepted by parse_when() after ISO-8601; matches unpadded "2024-3-5 9:07:03".
_FALLBACK_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d")


def _truncate(value: Union[int, float]) -> int:
    """Integer truncation toward zero (never rounding)."""
    return int(value)


def epoch_seconds_from_ms(timestamp_ms: Union[int, float]) -> int:
    """Drop the sub-second part of a millisecond epoch timestamp."""
    if isinstance(timestamp_ms, bool):
        raise TypeError("timestamp_ms must be a number, not bool")
    if isinstance(timestamp_ms, int):
        quotient = abs(timestamp_ms) // MS_PER_SECOND
        return quotient if timestamp_ms >= 0 else -quotient
    return _truncate(timestamp_ms / MS_PER_SECOND)


def epoch_seconds(value: TimeLike) -> int:
    """Return whole epoch seconds for a datetime or a numeric epoch-seconds value.

    Naive datetimes are interpreted as local time.
    """
    if isinstance(value, bool):
        raise TypeError("time value must be a datetime or number, not bool")
    if isinstance(value, dt.datetime):
        return _truncate(value.timestamp())
    if isinstance(value, (int, float)):
        return _truncate(value)
    raise TypeError(f"Unsupported time value: {value!r}")


def timestamp_key(value: TimeLike) -> str:
    """Decimal string used to match stored timestamps."""
    return str(epoch_seconds(value))


def parse_when(text: str) -> TimeLike:
    """Parse user input into something :func:`epoch_seconds` accepts.

    Plain digits are epoch seconds; anything else must be an ISO-8601
    datetime or ``YYYY-M-D H:M:S``.

    Raises:
        ValueError: If the text cannot be parsed.
    """
    raw = (text or "").strip()
    if not raw:
        raise ValueError("Empty time value")
    if raw.isdigit():
        return int(raw)

    iso = raw[:-1] + "+00:00" if raw.endswith("Z") else raw
    try:
        return dt.datetime.fromisoformat(iso)
    except ValueError:
        pass

    for fmt in _FALLBACK_FORMATS:
        try:
            return dt.datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise ValueError(f"Unrecognized time value: {text!r}")


def format_local(timestamp: int) -> str:
    """Human readable local time for a stored timestamp."""
    moment = dt.datetime.fromtimestamp(timestamp)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def to_iso_utc(timestamp: int) -> str:
    return dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc).isoformat()


__all__ = [
    "TimeLike",
    "epoch_seconds",
    "epoch_seconds_from_ms",
    "format_local",
    "parse_when",
    "timestamp_key",
    "to_iso_utc",
]
