"""Exception types raised by the location store and its collaborators."""

from __future__ import annotations


class LocationStoreError(Exception):
    """Base class for sample store failures."""


class StorageUnavailable(LocationStoreError):
    """The database could not be opened or its schema created.

    Fatal to the store: the runtime reports it instead of starting ingestion.
    """


class QueryFailed(LocationStoreError):
    """The database engine rejected a read or write."""


class InvalidSample(LocationStoreError, ValueError):
    """A sample failed validation (timestamp or coordinate out of range)."""


class GeocodeFailed(Exception):
    """Reverse geocoding could not resolve a coordinate."""


__all__ = [
    "GeocodeFailed",
    "InvalidSample",
    "LocationStoreError",
    "QueryFailed",
    "StorageUnavailable",
]
