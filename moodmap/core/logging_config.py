"""Root logging setup for a MoodMap service process.

A service running without a console (under systemd, or detached) still needs
its log somewhere, so file logging falls back to ``DEFAULT_LOG_FILE``.
"""

from __future__ import annotations

import contextlib
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Union

from .paths import DEFAULT_LOG_FILE

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUP_COUNT = 5

# One line per HTTP request and per slow callback; kept at WARNING unless debugging.
NOISY_LOGGERS = ("aiohttp.access", "asyncio")


def coerce_level(level: Union[int, str]) -> int:
    """Convert ``"info"``/``logging.INFO`` style levels to an int."""
    if isinstance(level, str):
        value = logging.getLevelName(level.upper())
        if not isinstance(value, int):
            raise ValueError(f"Unknown log level '{level}'")
        return value
    return int(level)


def resolve_log_file(console: bool, log_file: Optional[Union[str, Path]]) -> Optional[Path]:
    if log_file:
        return Path(log_file).expanduser()
    return None if console else DEFAULT_LOG_FILE


def _build_handlers(level: int, console: bool, log_path: Optional[Path]) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler(sys.stdout))
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8")
        )

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    return handlers


def configure_logging(
    level: Union[int, str] = logging.INFO,
    *,
    console: bool = True,
    log_file: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Replace the root handlers for this process.

    Returns:
        The file being logged to, or None for console-only logging.
    """
    numeric_level = coerce_level(level)
    log_path = resolve_log_file(console, log_file)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        with contextlib.suppress(Exception):
            handler.close()
    for handler in _build_handlers(numeric_level, console, log_path):
        root.addHandler(handler)
    root.setLevel(numeric_level)

    noisy_level = numeric_level if numeric_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)
    return log_path


__all__ = ["LOG_DATEFMT", "LOG_FORMAT", "coerce_level", "configure_logging", "resolve_log_file"]
