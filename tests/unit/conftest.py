"""Unit test helpers for the location service.

Every async test runs its whole scenario inside one ``run_async`` call: the
store's locks belong to the loop that first uses them.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Optional, Sequence, TypeVar

import pytest

from moodmap.modules.Location.location_core.errors import GeocodeFailed, QueryFailed
from moodmap.modules.Location.location_core.geocoding.base import Address, ReverseGeocoder
from moodmap.modules.Location.location_core.sample_store import SampleStore
from moodmap.modules.Location.location_core.sources.base_source import (
    LocationEvent,
    LocationSource,
    SubscriptionOptions,
)


T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine synchronously for testing."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def make_event(
    timestamp_ms: int,
    latitude: float = 48.137,
    longitude: float = 11.575,
    **kwargs: Any,
) -> LocationEvent:
    return LocationEvent(timestamp_ms=timestamp_ms, latitude=latitude, longitude=longitude, **kwargs)


class ListSource(LocationSource):
    """Finite source that yields a fixed list of events."""

    name = "list"

    def __init__(self, events: Sequence[LocationEvent], delay: float = 0.0):
        self._events = list(events)
        self.delay = delay

    async def events(self, options: SubscriptionOptions):
        for event in self._events:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield event


class FakeGeocoder(ReverseGeocoder):
    """Geocoder with scripted per-call delays and failures."""

    name = "fake"

    def __init__(
        self,
        *,
        delays: Optional[Dict[float, float]] = None,
        fail: bool = False,
        empty: bool = False,
    ):
        self.delays = delays or {}
        self.fail = fail
        self.empty = empty
        self.calls: List[tuple] = []
        self.closed = False

    async def resolve(self, latitude: float, longitude: float) -> List[Address]:
        self.calls.append((latitude, longitude))
        delay = self.delays.get(latitude, 0.0)
        if delay:
            await asyncio.sleep(delay)
        if self.fail:
            raise GeocodeFailed("service unavailable")
        if self.empty:
            return []
        return [Address(street="Marienplatz", city=f"City@{latitude:.3f}", country="Germany")]

    async def close(self) -> None:
        self.closed = True


class BrokenStore(SampleStore):
    """In-memory store whose reads and writes report engine failures."""

    def __init__(self, fail_writes: bool = True, fail_reads: bool = True):
        super().__init__(":memory:")
        self.fail_writes = fail_writes
        self.fail_reads = fail_reads

    async def insert(self, sample):
        if self.fail_writes:
            raise QueryFailed("insert failed: disk I/O error")
        return await super().insert(sample)

    async def clear_all(self) -> int:
        if self.fail_writes:
            raise QueryFailed("clear_all failed: database is locked")
        return await super().clear_all()

    async def get_first(self):
        if self.fail_reads:
            raise QueryFailed("get_first failed: disk I/O error")
        return await super().get_first()

    async def get_last(self):
        if self.fail_reads:
            raise QueryFailed("get_last failed: disk I/O error")
        return await super().get_last()

    async def get_by_timestamp_prefix(self, prefix: str):
        if self.fail_reads:
            raise QueryFailed("get_by_timestamp_prefix failed: disk I/O error")
        return await super().get_by_timestamp_prefix(prefix)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """Path for a file-backed sample database inside the test's temp dir."""
    return tmp_path / "data" / "samples.db"
