"""Centralized path constants for MoodMap."""

from __future__ import annotations

import os
from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = PACKAGE_ROOT.parent

MODULES_DIR = PACKAGE_ROOT / "modules"
LOCATION_MODULE_DIR = MODULES_DIR / "Location"
LOCATION_CONFIG_PATH = LOCATION_MODULE_DIR / "config.txt"

# User-specific state (allows running from read-only install directories)
_USER_STATE_ENV = os.environ.get("MOODMAP_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".moodmap")
USER_CONFIG_OVERRIDES_DIR = USER_STATE_DIR / "config_overrides"
USER_LOGS_DIR = USER_STATE_DIR / "logs"
USER_DATA_DIR = USER_STATE_DIR / "data"

DEFAULT_DB_PATH = USER_DATA_DIR / "samples.db"
DEFAULT_LOG_FILE = USER_LOGS_DIR / "moodmap.log"


__all__ = [
    "DEFAULT_DB_PATH",
    "DEFAULT_LOG_FILE",
    "LOCATION_CONFIG_PATH",
    "LOCATION_MODULE_DIR",
    "MODULES_DIR",
    "PACKAGE_ROOT",
    "PROJECT_ROOT",
    "USER_CONFIG_OVERRIDES_DIR",
    "USER_DATA_DIR",
    "USER_LOGS_DIR",
    "USER_STATE_DIR",
]
