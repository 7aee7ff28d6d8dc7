"""Location source fed by explicit ``publish()`` calls.

Used when fixes arrive from outside the process, e.g. a phone client posting
its location watcher callbacks to the HTTP API.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional

from moodmap.core.logging_utils import get_module_logger
from .base_source import LocationEvent, LocationSource, SubscriptionOptions

logger = get_module_logger("PushLocationSource")


class PushLocationSource(LocationSource):
    """Queue-backed source; ``close()`` ends the event stream."""

    name = "push"
    time_throttle = False

    def __init__(self, max_pending: int = 1000):
        self._queue: asyncio.Queue[Optional[LocationEvent]] = asyncio.Queue(maxsize=max_pending)
        self._closed = False
        self._dropped = 0

    @property
    def dropped_events(self) -> int:
        return self._dropped

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def publish(self, event: LocationEvent) -> bool:
        """Queue an event for delivery.

        Returns:
            False if the source is closed or the queue is full.
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            self._dropped += 1
            if self._dropped % 50 == 1:
                logger.warning("Push queue full, dropped %d events so far", self._dropped)
            return False

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            # Consumer wakes on the next get(); the flag ends the stream.
            pass

    async def events(self, options: SubscriptionOptions) -> AsyncIterator[LocationEvent]:
        while True:
            if self._closed and self._queue.empty():
                return
            event = await self._queue.get()
            if event is None:
                return
            yield event


__all__ = ["PushLocationSource"]
