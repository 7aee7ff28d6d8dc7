"""Reverse geocoder interface and address record."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional


@dataclass(slots=True, frozen=True)
class Address:
    """A resolved postal address. Any field may be missing."""

    street_number: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    display_name: Optional[str] = None

    def street_line(self) -> Optional[str]:
        parts = [part for part in (self.street_number, self.street) if part]
        return " ".join(parts) or None

    def city_line(self) -> Optional[str]:
        parts = [part for part in (self.city, self.region, self.country) if part]
        return " ".join(parts) or None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["street_line"] = self.street_line()
        data["city_line"] = self.city_line()
        return data


def coord_key(latitude: float, longitude: float, precision: int) -> str:
    """Stable cache key: coordinates rounded to ``precision`` decimals."""
    return f"{latitude:.{precision}f},{longitude:.{precision}f}"


class ReverseGeocoder(ABC):
    """Resolves a coordinate to zero or more addresses."""

    name: str = "geocoder"

    @abstractmethod
    async def resolve(self, latitude: float, longitude: float) -> List[Address]:
        """Return candidate addresses, best first.

        Raises:
            GeocodeFailed: If the lookup could not be performed.
        """
        ...

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
        return None


__all__ = ["Address", "ReverseGeocoder", "coord_key"]
