"""Caller-facing queries over the sample store and the derived date bounds."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, AsyncIterator, ClassVar, Dict, List, Optional

from moodmap.core.asyncio_utils import create_logged_task
from moodmap.core.logging_utils import get_module_logger
from .constants import DEFAULT_BOUNDS_REFRESH_INTERVAL_S, DEFAULT_ITER_BATCH_SIZE
from .errors import LocationStoreError, QueryFailed
from .sample import Sample
from .sample_store import SampleStore
from .timeutils import TimeLike, format_local, timestamp_key, to_iso_utc

logger = get_module_logger("QueryFacade")


@dataclass(slots=True, frozen=True)
class DateBounds:
    """Earliest and latest stored timestamps.

    ``DateBounds.EMPTY`` stands for "no data yet"; callers pick their own
    default instead of receiving a made-up bound.
    """

    min_timestamp: Optional[int] = None
    max_timestamp: Optional[int] = None

    EMPTY: ClassVar["DateBounds"]

    @property
    def is_empty(self) -> bool:
        return self.min_timestamp is None or self.max_timestamp is None

    def contains(self, timestamp: int) -> bool:
        if self.is_empty:
            return False
        return self.min_timestamp <= timestamp <= self.max_timestamp

    def to_dict(self) -> Dict[str, Any]:
        if self.is_empty:
            return {"empty": True, "min_timestamp": None, "max_timestamp": None}
        return {
            "empty": False,
            "min_timestamp": self.min_timestamp,
            "max_timestamp": self.max_timestamp,
            "min_utc": to_iso_utc(self.min_timestamp),
            "max_utc": to_iso_utc(self.max_timestamp),
            "min_local": format_local(self.min_timestamp),
            "max_local": format_local(self.max_timestamp),
        }


DateBounds.EMPTY = DateBounds()


class QueryFacade:
    """Adapts store queries for the UI and keeps the date-bounds view current.

    Background-style reads (fetch, bounds) log engine failures and return an
    empty or previous result. ``clear_all`` reports failure to its caller.
    """

    def __init__(self, store: SampleStore):
        self.store = store
        self._bounds = DateBounds.EMPTY

    @property
    def bounds(self) -> DateBounds:
        return self._bounds

    async def fetch_by_timestamp(self, when: TimeLike) -> List[Sample]:
        """Samples recorded in the same whole second as ``when``."""
        key = timestamp_key(when)
        try:
            return await self.store.get_by_timestamp_prefix(key)
        except QueryFailed as exc:
            logger.error("Timestamp lookup for %s failed: %s", key, exc)
            return []

    async def refresh_bounds(self) -> DateBounds:
        try:
            first = await self.store.get_first()
            last = await self.store.get_last()
        except LocationStoreError as exc:
            logger.warning("Bounds refresh failed, keeping %s: %s", self._bounds, exc)
            return self._bounds

        if first is None or last is None:
            bounds = DateBounds.EMPTY
        else:
            bounds = DateBounds(first.timestamp, last.timestamp)
        if bounds != self._bounds:
            logger.debug("Date bounds now %s", bounds)
        self._bounds = bounds
        return bounds

    async def clear_all(self) -> bool:
        """Delete every sample.

        Returns:
            True on success, False if the store rejected the delete.
        """
        try:
            await self.store.clear_all()
        except LocationStoreError as exc:
            logger.error("Clearing samples failed: %s", exc)
            return False
        self._bounds = DateBounds.EMPTY
        return True

    async def insert_sample(self, timestamp: int, latitude: float, longitude: float) -> Sample:
        """Validate and store a sample supplied directly by the UI.

        Raises:
            InvalidSample: If the values are out of range.
            QueryFailed: If the engine rejects the write.
        """
        sample = Sample.create(timestamp, latitude, longitude)
        await self.store.insert(sample)
        return sample

    async def get_first(self) -> Optional[Sample]:
        try:
            return await self.store.get_first()
        except QueryFailed as exc:
            logger.error("get_first failed: %s", exc)
            return None

    async def get_last(self) -> Optional[Sample]:
        try:
            return await self.store.get_last()
        except QueryFailed as exc:
            logger.error("get_last failed: %s", exc)
            return None

    async def iter_samples(self, batch_size: int = DEFAULT_ITER_BATCH_SIZE) -> AsyncIterator[Sample]:
        async for sample in self.store.iter_all(batch_size):
            yield sample


class BoundsRefresher:
    """Polls :meth:`QueryFacade.refresh_bounds` on a fixed interval."""

    def __init__(self, facade: QueryFacade, interval_s: float = DEFAULT_BOUNDS_REFRESH_INTERVAL_S):
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")
        self.facade = facade
        self.interval_s = interval_s
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = create_logged_task(self._run(), logger=logger, context="BoundsRefresher")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        while True:
            await self.facade.refresh_bounds()
            await asyncio.sleep(self.interval_s)


__all__ = ["BoundsRefresher", "DateBounds", "QueryFacade"]
