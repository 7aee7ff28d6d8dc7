"""Location module: positional sample store, ingestion and queries."""

from .config import LocationConfig
from .runtime import LocationRuntime

__all__ = ["LocationConfig", "LocationRuntime"]
