"""
Location module API controller.

Thin adapter between the HTTP routes and the location core: it parses
request values, calls the store / façade / pipeline and shapes the results
as JSON-ready dicts.
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, Optional

from moodmap import __version__
from moodmap.core.logging_utils import get_module_logger
from ..location_core.errors import InvalidSample
from ..location_core.ingestion import IngestionPipeline
from ..location_core.query import QueryFacade
from ..location_core.sample_store import SampleStore
from ..location_core.sources.base_source import LocationEvent
from ..location_core.sources.push_source import PushLocationSource
from ..location_core.timeutils import epoch_seconds, parse_when, timestamp_key

logger = get_module_logger("LocationApiController")


class LocationApiController:
    """Exposes the UI-facing location operations."""

    def __init__(
        self,
        store: SampleStore,
        facade: QueryFacade,
        pipeline: IngestionPipeline,
        push_source: Optional[PushLocationSource] = None,
        source_name: Optional[str] = None,
    ):
        self.store = store
        self.facade = facade
        self.pipeline = pipeline
        self.push_source = push_source
        self.source_name = source_name or (push_source.name if push_source else None)

    # ------------------------------------------------------------------
    # System

    async def health_check(self) -> Dict[str, Any]:
        return {
            "healthy": self.store.is_open,
            "service": "moodmap",
            "version": __version__,
        }

    async def get_status(self) -> Dict[str, Any]:
        count: Optional[int] = None
        if self.store.is_open:
            count = await self.store.count()
        return {
            "store": {
                "db_path": str(self.store.db_path),
                "open": self.store.is_open,
                "samples": count,
            },
            "bounds": self.facade.bounds.to_dict(),
            "ingestion": {
                "source": self.source_name,
                "running": self.pipeline.running,
                "pending_geocodes": self.pipeline.pending_geocodes,
                "filtered": self.pipeline.filtered_events,
                "stats": self.pipeline.stats.to_dict(),
            },
        }

    # ------------------------------------------------------------------
    # Samples

    async def query_samples(self, at: str) -> Dict[str, Any]:
        """Samples recorded in the second named by ``at``.

        Raises:
            ValueError: If ``at`` is not a recognized time value.
        """
        when = parse_when(at)
        timestamp = epoch_seconds(when)
        samples = await self.facade.fetch_by_timestamp(when)
        return {
            "at": at,
            "timestamp": timestamp,
            "in_bounds": self.facade.bounds.contains(timestamp),
            "key": timestamp_key(when),
            "samples": [sample.to_dict() for sample in samples],
            "count": len(samples),
        }

    async def insert_sample(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Store a sample given as ``{timestamp, latitude, longitude}``.

        Raises:
            KeyError: If a field is missing.
            InvalidSample: If a value is out of range.
        """
        timestamp = body["timestamp"]
        if isinstance(timestamp, str):
            if not timestamp.strip().isdigit():
                raise InvalidSample(f"timestamp must be whole epoch seconds, got {timestamp!r}")
            timestamp = int(timestamp)
        sample = await self.facade.insert_sample(timestamp, body["latitude"], body["longitude"])
        logger.debug("Inserted sample %d via API", sample.timestamp)
        return sample.to_dict()

    async def clear_samples(self) -> Dict[str, Any]:
        success = await self.facade.clear_all()
        if not success:
            return {"success": False, "error": "Failed to clear stored samples"}
        return {"success": True, "bounds": self.facade.bounds.to_dict()}

    async def get_first(self) -> Optional[Dict[str, Any]]:
        sample = await self.facade.get_first()
        return sample.to_dict() if sample else None

    async def get_last(self) -> Optional[Dict[str, Any]]:
        sample = await self.facade.get_last()
        return sample.to_dict() if sample else None

    async def iter_sample_dicts(self) -> AsyncIterator[Dict[str, Any]]:
        async for sample in self.facade.iter_samples():
            yield sample.to_dict()

    # ------------------------------------------------------------------
    # Bounds and live state

    async def get_bounds(self, refresh: bool = False) -> Dict[str, Any]:
        bounds = await self.facade.refresh_bounds() if refresh else self.facade.bounds
        return bounds.to_dict()

    async def get_current(self) -> Dict[str, Any]:
        return self.pipeline.state.to_dict()

    async def push_event(self, body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Queue a client-side location fix on the push source.

        Returns:
            None when no push source is configured.

        Raises:
            ValueError: If the payload is not a location event.
        """
        if self.push_source is None:
            return None
        event = LocationEvent.from_payload(body)
        accepted = self.push_source.publish(event)
        return {
            "success": accepted,
            "timestamp_ms": event.timestamp_ms,
            "pending": self.push_source.pending,
            "dropped": self.push_source.dropped_events,
        }


__all__ = ["LocationApiController"]
