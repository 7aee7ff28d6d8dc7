"""Location source interface.

A source turns some external feed (serial receiver, recorded track, client
pushes) into :class:`LocationEvent` objects. Consumers register one
continuous subscription with a callback; the returned
:class:`Subscription` is the only handle needed to stop delivery.
"""

from __future__ import annotations

import asyncio
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from moodmap.core.asyncio_utils import create_logged_task
from moodmap.core.logging_utils import get_module_logger
from ..constants import DEFAULT_MIN_DISTANCE_M, DEFAULT_MIN_TIME_INTERVAL_MS
from ..geo import haversine_m

logger = get_module_logger("LocationSource")


class Accuracy(enum.IntEnum):
    """Requested fix accuracy, from coarsest to finest."""

    LOWEST = 1
    LOW = 2
    BALANCED = 3
    HIGH = 4
    HIGHEST = 5
    BEST_FOR_NAVIGATION = 6

    @property
    def max_error_m(self) -> float:
        """Largest reported horizontal error accepted at this level."""
        return _MAX_ERROR_M[self]

    @classmethod
    def parse(cls, value: Any) -> "Accuracy":
        if isinstance(value, Accuracy):
            return value
        text = str(value).strip()
        if text.isdigit():
            return cls(int(text))
        return cls[text.upper().replace("-", "_").replace(" ", "_")]


_MAX_ERROR_M = {
    Accuracy.LOWEST: 3000.0,
    Accuracy.LOW: 1000.0,
    Accuracy.BALANCED: 100.0,
    Accuracy.HIGH: 50.0,
    Accuracy.HIGHEST: 25.0,
    Accuracy.BEST_FOR_NAVIGATION: 10.0,
}


@dataclass(slots=True, frozen=True)
class SubscriptionOptions:
    accuracy: Accuracy = Accuracy.HIGH
    min_time_interval_ms: int = DEFAULT_MIN_TIME_INTERVAL_MS
    min_distance_m: float = DEFAULT_MIN_DISTANCE_M


@dataclass(slots=True, frozen=True)
class LocationEvent:
    """One fix as delivered by a source."""

    timestamp_ms: int
    latitude: float
    longitude: float
    altitude_m: Optional[float] = None
    speed_mps: Optional[float] = None
    accuracy_m: Optional[float] = None
    mocked: bool = False

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "LocationEvent":
        """Build an event from ``{timestamp, coords: {...}, mocked}`` JSON.

        Flat payloads (coordinates at the top level) are accepted too.

        Raises:
            ValueError: If required fields are missing or not numeric.
        """
        coords = payload.get("coords") or payload
        timestamp = payload.get("timestamp_ms", payload.get("timestamp"))
        try:
            if timestamp is None or isinstance(timestamp, bool):
                raise ValueError("timestamp")
            return cls(
                timestamp_ms=int(timestamp),
                latitude=float(coords["latitude"]),
                longitude=float(coords["longitude"]),
                altitude_m=_optional_float(coords.get("altitude")),
                speed_mps=_optional_float(coords.get("speed")),
                accuracy_m=_optional_float(coords.get("accuracy")),
                mocked=bool(payload.get("mocked", coords.get("mocked", False))),
            )
        except (KeyError, TypeError, ValueError, OverflowError) as exc:
            raise ValueError(f"Invalid location event payload: missing or bad field {exc}") from exc

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp_ms": self.timestamp_ms,
            "coords": {
                "latitude": self.latitude,
                "longitude": self.longitude,
                "altitude": self.altitude_m,
                "speed": self.speed_mps,
                "accuracy": self.accuracy_m,
            },
            "mocked": self.mocked,
        }


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


class EventFilter:
    """Applies subscription options to a stream of events."""

    def __init__(self, options: SubscriptionOptions, *, time_throttle: bool = True):
        self.options = options
        self.time_throttle = time_throttle
        self.filtered = 0
        self._last: Optional[LocationEvent] = None

    def accept(self, event: LocationEvent) -> bool:
        if self._passes(event):
            return True
        self.filtered += 1
        return False

    def _passes(self, event: LocationEvent) -> bool:
        options = self.options
        if event.accuracy_m is not None and event.accuracy_m > options.accuracy.max_error_m:
            return False

        last = self._last
        if last is not None and event.timestamp_ms >= last.timestamp_ms:
            if self.time_throttle and event.timestamp_ms - last.timestamp_ms < options.min_time_interval_ms:
                return False
            if options.min_distance_m > 0:
                moved = haversine_m(last.latitude, last.longitude, event.latitude, event.longitude)
                if moved < options.min_distance_m:
                    return False

        # Late (out-of-order) events pass through without moving the throttle.
        if last is None or event.timestamp_ms >= last.timestamp_ms:
            self._last = event
        return True


LocationCallback = Callable[[LocationEvent], Awaitable[Any]]


class Subscription:
    """Handle for one running subscription."""

    def __init__(self, source_name: str, task: asyncio.Task, event_filter: Optional[EventFilter] = None):
        self.source_name = source_name
        self._task = task
        self._filter = event_filter

    @property
    def active(self) -> bool:
        return not self._task.done()

    @property
    def filtered(self) -> int:
        """Events dropped by the accuracy, interval or distance options."""
        return self._filter.filtered if self._filter is not None else 0

    async def cancel(self) -> None:
        """Stop delivery. Safe to call more than once."""
        if self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("Location subscription to %s cancelled", self.source_name)

    async def wait(self) -> None:
        """Wait until the source is exhausted or the subscription is cancelled."""
        try:
            await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if not self._task.cancelled():
                raise


class LocationSource(ABC):
    """Base class for push-style location feeds."""

    name: str = "location"
    # Sources whose producer already paces fixes skip min_time_interval_ms.
    time_throttle: bool = True

    async def subscribe(self, options: SubscriptionOptions, callback: LocationCallback) -> Subscription:
        """Start delivering filtered events to ``callback``.

        Events are delivered one at a time; the next event is not delivered
        until the callback for the previous one returns. Callback errors are
        logged and never end the subscription.
        """
        event_filter = EventFilter(options, time_throttle=self.time_throttle)

        async def _pump() -> None:
            delivered = 0
            async for event in self.events(options):
                if not event_filter.accept(event):
                    logger.debug("Filtered location event at %d", event.timestamp_ms)
                    continue
                try:
                    await callback(event)
                    delivered += 1
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Location callback failed for event at %d", event.timestamp_ms)
            logger.info(
                "Location source %s exhausted after %d events (%d filtered)",
                self.name,
                delivered,
                event_filter.filtered,
            )

        task = create_logged_task(_pump(), logger=logger, context=f"LocationSubscription:{self.name}")
        logger.info("Subscribed to location source %s (%s)", self.name, options)
        return Subscription(self.name, task, event_filter)

    @abstractmethod
    def events(self, options: SubscriptionOptions) -> AsyncIterator[LocationEvent]:
        """Yield raw events until the feed ends or the task is cancelled."""
        ...


__all__ = [
    "Accuracy",
    "EventFilter",
    "LocationCallback",
    "LocationEvent",
    "LocationSource",
    "Subscription",
    "SubscriptionOptions",
]
