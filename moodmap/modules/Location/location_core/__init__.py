"""Location store core: samples, storage, ingestion and queries."""

from .errors import GeocodeFailed, InvalidSample, LocationStoreError, QueryFailed, StorageUnavailable
from .ingestion import IngestionPipeline, IngestionStats, LocationState
from .query import BoundsRefresher, DateBounds, QueryFacade
from .sample import Sample
from .sample_store import MEMORY_DB, SampleStore, prefix_ranges
from .timeutils import epoch_seconds, epoch_seconds_from_ms, parse_when, timestamp_key

__all__ = [
    "BoundsRefresher",
    "DateBounds",
    "GeocodeFailed",
    "IngestionPipeline",
    "IngestionStats",
    "InvalidSample",
    "LocationState",
    "LocationStoreError",
    "MEMORY_DB",
    "QueryFacade",
    "QueryFailed",
    "Sample",
    "SampleStore",
    "StorageUnavailable",
    "epoch_seconds",
    "epoch_seconds_from_ms",
    "parse_when",
    "prefix_ranges",
    "timestamp_key",
]
