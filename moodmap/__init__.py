"""Top-level package for the MoodMap location history service."""

from __future__ import annotations

from importlib import metadata
from typing import Optional, Sequence

try:
    __version__ = metadata.version("moodmap")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> None:
    """Convenience wrapper that runs the location service entry point."""
    from .modules.Location.main_location import run as run_location

    run_location(argv)


__all__ = ["__version__", "run"]
