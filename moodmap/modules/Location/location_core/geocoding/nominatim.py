"""Reverse geocoding through an OpenStreetMap Nominatim endpoint.

Public Nominatim instances are rate limited (one request per second) and
require a descriptive User-Agent; both are configurable.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import aiohttp

from moodmap.core.logging_utils import get_module_logger
from ..errors import GeocodeFailed
from .base import Address, ReverseGeocoder, coord_key

logger = get_module_logger("NominatimGeocoder")


@dataclass(slots=True, frozen=True)
class NominatimConfig:
    base_url: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = "moodmap/0.1 (location history service)"
    accept_language: str = "en"
    zoom: int = 18
    timeout_s: float = 10.0
    min_interval_s: float = 1.0
    cache_precision: int = 4
    cache_size: int = 512


def address_from_nominatim(payload: Dict[str, Any]) -> Optional[Address]:
    """Map a ``format=jsonv2`` reverse response to an :class:`Address`."""
    if not payload or "error" in payload:
        return None
    details = payload.get("address") or {}
    city = (
        details.get("city")
        or details.get("town")
        or details.get("village")
        or details.get("municipality")
        or details.get("hamlet")
    )
    return Address(
        street_number=details.get("house_number"),
        street=details.get("road") or details.get("pedestrian"),
        city=city,
        region=details.get("state") or details.get("region"),
        postal_code=details.get("postcode"),
        country=details.get("country"),
        display_name=payload.get("display_name"),
    )


class NominatimGeocoder(ReverseGeocoder):
    """aiohttp client for Nominatim ``/reverse`` with throttling and an LRU cache."""

    name = "nominatim"

    def __init__(self, config: Optional[NominatimConfig] = None, session: Optional[aiohttp.ClientSession] = None):
        self.config = config or NominatimConfig()
        self._session = session
        self._owns_session = session is None
        self._cache: "OrderedDict[str, List[Address]]" = OrderedDict()
        self._throttle_lock = asyncio.Lock()
        self._last_request_at = 0.0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.config.timeout_s),
                headers={"User-Agent": self.config.user_agent, "Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def _wait_turn(self) -> None:
        async with self._throttle_lock:
            wait = self.config.min_interval_s - (time.monotonic() - self._last_request_at)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request_at = time.monotonic()

    def _remember(self, key: str, addresses: List[Address]) -> None:
        self._cache[key] = addresses
        self._cache.move_to_end(key)
        while len(self._cache) > self.config.cache_size:
            self._cache.popitem(last=False)

    async def resolve(self, latitude: float, longitude: float) -> List[Address]:
        key = coord_key(latitude, longitude, self.config.cache_precision)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        params = {
            "format": "jsonv2",
            "lat": f"{latitude:.7f}",
            "lon": f"{longitude:.7f}",
            "zoom": str(self.config.zoom),
            "addressdetails": "1",
            "accept-language": self.config.accept_language,
        }

        await self._wait_turn()
        session = await self._get_session()
        try:
            async with session.get(self.config.base_url, params=params) as response:
                if response.status != 200:
                    raise GeocodeFailed(f"Nominatim returned HTTP {response.status} for {key}")
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise GeocodeFailed(f"Nominatim lookup failed for {key}: {exc}") from exc

        address = address_from_nominatim(payload) if isinstance(payload, dict) else None
        addresses = [address] if address else []
        self._remember(key, addresses)
        logger.debug("Resolved %s -> %s", key, address.display_name if address else None)
        return addresses

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


__all__ = ["NominatimConfig", "NominatimGeocoder", "address_from_nominatim"]
