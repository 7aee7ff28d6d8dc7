"""REST API server shared by MoodMap modules."""

from .server import APIServer

__all__ = ["APIServer"]
