"""Allow ``python -m moodmap`` to launch the location service."""

from __future__ import annotations

from . import run


if __name__ == "__main__":
    run()
