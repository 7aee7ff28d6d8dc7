"""Ingestion pipeline: location events in, samples out.

Each delivered event becomes two independent pieces of work:

1. A :class:`Sample` written to the :class:`SampleStore` (awaited; the next
   event is not handled until the insert returns).
2. A reverse-geocode task that only updates :class:`LocationState`. It is
   tracked so ``stop()`` can cancel it, but nothing ever waits on it.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from moodmap.core.asyncio_utils import cancel_tasks, create_logged_task
from moodmap.core.logging_utils import get_module_logger
from .constants import DEFAULT_RETENTION_CHECK_EVERY, DEFAULT_RETENTION_MAX_ROWS
from .errors import GeocodeFailed, InvalidSample, LocationStoreError, QueryFailed
from .geocoding.base import Address, ReverseGeocoder
from .sample import Sample
from .sample_store import SampleStore
from .sources.base_source import LocationEvent, LocationSource, Subscription, SubscriptionOptions
from .timeutils import epoch_seconds_from_ms

logger = get_module_logger("IngestionPipeline")


@dataclass(slots=True)
class LocationState:
    """UI-facing view of the latest fix and its resolved address."""

    latest_event: Optional[LocationEvent] = None
    latest_sample: Optional[Sample] = None
    address: Optional[Address] = None
    address_timestamp: Optional[int] = None
    geocode_error: Optional[str] = None
    updated_at: Optional[float] = None

    @property
    def mocked(self) -> bool:
        return bool(self.latest_event and self.latest_event.mocked)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.latest_event.to_dict() if self.latest_event else None,
            "sample": self.latest_sample.to_dict() if self.latest_sample else None,
            "address": self.address.to_dict() if self.address else None,
            "address_timestamp": self.address_timestamp,
            "geocode_error": self.geocode_error,
            "mocked": self.mocked,
        }


@dataclass(slots=True)
class IngestionStats:
    received: int = 0
    stored: int = 0
    rejected: int = 0
    failed: int = 0
    geocoded: int = 0
    geocode_failures: int = 0
    pruned: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "received": self.received,
            "stored": self.stored,
            "rejected": self.rejected,
            "failed": self.failed,
            "geocoded": self.geocoded,
            "geocode_failures": self.geocode_failures,
            "pruned": self.pruned,
        }


class IngestionPipeline:
    """Bridges one location subscription into store writes."""

    def __init__(
        self,
        store: SampleStore,
        geocoder: Optional[ReverseGeocoder] = None,
        *,
        state: Optional[LocationState] = None,
        retention_max_rows: int = DEFAULT_RETENTION_MAX_ROWS,
        retention_check_every: int = DEFAULT_RETENTION_CHECK_EVERY,
    ):
        self.store = store
        self.geocoder = geocoder
        self.state = state or LocationState()
        self.stats = IngestionStats()
        self.retention_max_rows = max(0, int(retention_max_rows))
        self.retention_check_every = max(1, int(retention_check_every))

        self._subscription: Optional[Subscription] = None
        self._geocode_tasks: set[asyncio.Task] = set()
        self._inserts_since_prune = 0
        self._filtered_before = 0

    @property
    def subscription(self) -> Optional[Subscription]:
        return self._subscription

    @property
    def running(self) -> bool:
        return self._subscription is not None and self._subscription.active

    @property
    def pending_geocodes(self) -> int:
        return len(self._geocode_tasks)

    @property
    def filtered_events(self) -> int:
        """Events the subscription options dropped before they reached the store."""
        current = self._subscription.filtered if self._subscription is not None else 0
        return self._filtered_before + current

    async def start(self, source: LocationSource, options: Optional[SubscriptionOptions] = None) -> Subscription:
        """Register the single subscription this pipeline consumes.

        Raises:
            RuntimeError: If a subscription is already active.
        """
        if self.running:
            raise RuntimeError("Ingestion pipeline already subscribed")
        self._subscription = await source.subscribe(options or SubscriptionOptions(), self.handle_event)
        return self._subscription

    async def stop(self) -> None:
        """Unsubscribe and cancel any geocode lookups still in flight."""
        if self._subscription is not None:
            await self._subscription.cancel()
            self._filtered_before += self._subscription.filtered
            self._subscription = None
        if self._geocode_tasks:
            logger.debug("Cancelling %d pending geocode tasks", len(self._geocode_tasks))
            await cancel_tasks(self._geocode_tasks)
            self._geocode_tasks.clear()

    async def handle_event(self, event: LocationEvent) -> Optional[Sample]:
        """Persist one event and schedule its reverse geocode.

        Storage failures are logged and swallowed so a bad event or a transient
        engine error never ends the subscription.

        Returns:
            The stored sample, or None if it was rejected or the write failed.
        """
        self.stats.received += 1
        try:
            sample = Sample.create(epoch_seconds_from_ms(event.timestamp_ms), event.latitude, event.longitude)
        except (InvalidSample, TypeError) as exc:
            self.stats.rejected += 1
            logger.warning("Dropping invalid location event at %s: %s", event.timestamp_ms, exc)
            return None

        try:
            await self.store.insert(sample)
        except QueryFailed as exc:
            self.stats.failed += 1
            logger.error("Failed to store sample %d: %s", sample.timestamp, exc)
            return None
        self.stats.stored += 1

        if event.mocked:
            logger.debug("Stored mocked location sample %d", sample.timestamp)

        self._publish(event, sample)
        self._schedule_geocode(sample)
        await self._maybe_prune()
        return sample

    def _publish(self, event: LocationEvent, sample: Sample) -> None:
        latest = self.state.latest_event
        if latest is not None and event.timestamp_ms < latest.timestamp_ms:
            return
        self.state.latest_event = event
        self.state.latest_sample = sample
        self.state.updated_at = time.time()

    def _schedule_geocode(self, sample: Sample) -> None:
        if self.geocoder is None:
            return
        create_logged_task(
            self._geocode(sample),
            logger=logger,
            context=f"Geocode:{sample.timestamp}",
            pending=self._geocode_tasks,
        )

    async def _geocode(self, sample: Sample) -> None:
        try:
            addresses = await self.geocoder.resolve(sample.latitude, sample.longitude)
        except asyncio.CancelledError:
            raise
        except GeocodeFailed as exc:
            self._record_geocode_failure(sample, str(exc))
            return
        except Exception as exc:
            self._record_geocode_failure(sample, f"{type(exc).__name__}: {exc}")
            return

        self.stats.geocoded += 1
        if not addresses:
            logger.debug("No address found for sample %d", sample.timestamp)
            return
        current = self.state.address_timestamp
        if current is not None and sample.timestamp < current:
            # A newer fix already resolved first.
            return
        self.state.address = addresses[0]
        self.state.address_timestamp = sample.timestamp
        self.state.geocode_error = None

    def _record_geocode_failure(self, sample: Sample, message: str) -> None:
        self.stats.geocode_failures += 1
        self.state.geocode_error = message
        logger.warning("Reverse geocode failed for sample %d: %s", sample.timestamp, message)

    async def _maybe_prune(self) -> None:
        if self.retention_max_rows <= 0:
            return
        self._inserts_since_prune += 1
        if self._inserts_since_prune < self.retention_check_every:
            return
        self._inserts_since_prune = 0
        try:
            removed = await self.store.prune(self.retention_max_rows)
        except LocationStoreError as exc:
            logger.error("Retention prune failed: %s", exc)
            return
        self.stats.pruned += removed


__all__ = ["IngestionPipeline", "IngestionStats", "LocationState"]
