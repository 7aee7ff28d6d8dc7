"""Positional sample type."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Sequence, Tuple

from .constants import LATITUDE_RANGE, LONGITUDE_RANGE, MAX_TIMESTAMP
from .errors import InvalidSample
from .timeutils import to_iso_utc


@dataclass(slots=True, frozen=True)
class Sample:
    """One observed position, keyed by whole epoch seconds."""

    timestamp: int
    latitude: float
    longitude: float

    @classmethod
    def create(cls, timestamp: Any, latitude: Any, longitude: Any) -> "Sample":
        """Build a validated sample from loosely typed input.

        Raises:
            InvalidSample: If any field is missing, mistyped or out of range.
        """
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise InvalidSample(f"timestamp must be an integer, got {timestamp!r}")
        try:
            lat = float(latitude)
            lon = float(longitude)
        except (TypeError, ValueError) as exc:
            raise InvalidSample(f"coordinates must be numeric: {latitude!r}, {longitude!r}") from exc
        sample = cls(timestamp=timestamp, latitude=lat, longitude=lon)
        sample.validate()
        return sample

    @classmethod
    def from_row(cls, row: Sequence[Any]) -> "Sample":
        return cls(timestamp=int(row[0]), latitude=float(row[1]), longitude=float(row[2]))

    def validate(self) -> None:
        if isinstance(self.timestamp, bool) or not isinstance(self.timestamp, int):
            raise InvalidSample(f"timestamp must be an integer, got {self.timestamp!r}")
        if self.timestamp < 0:
            raise InvalidSample(f"timestamp must be non-negative, got {self.timestamp}")
        if self.timestamp > MAX_TIMESTAMP:
            raise InvalidSample(f"timestamp {self.timestamp} exceeds {MAX_TIMESTAMP}")
        _check_coordinate("latitude", self.latitude, LATITUDE_RANGE)
        _check_coordinate("longitude", self.longitude, LONGITUDE_RANGE)

    def to_row(self) -> Tuple[int, float, float]:
        return (self.timestamp, self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "time_utc": to_iso_utc(self.timestamp),
            "latitude": self.latitude,
            "longitude": self.longitude,
        }


def _check_coordinate(name: str, value: Any, bounds: Tuple[float, float]) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidSample(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidSample(f"{name} must be finite, got {value!r}")
    low, high = bounds
    if not low <= value <= high:
        raise InvalidSample(f"{name} {value} outside [{low}, {high}]")


__all__ = ["Sample"]
