"""Typed configuration for the Location module."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from moodmap.cli.common import (
    get_config_bool,
    get_config_float,
    get_config_int,
    get_config_path,
    get_config_str,
)
from moodmap.core.paths import DEFAULT_DB_PATH
from .location_core.constants import (
    DEFAULT_BAUD_RATE,
    DEFAULT_BOUNDS_REFRESH_INTERVAL_S,
    DEFAULT_MIN_DISTANCE_M,
    DEFAULT_MIN_TIME_INTERVAL_MS,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_RETENTION_CHECK_EVERY,
    DEFAULT_RETENTION_MAX_ROWS,
    DEFAULT_SERIAL_PORT,
)

SOURCE_CHOICES = ("none", "push", "nmea", "replay")
GEOCODER_CHOICES = ("none", "nominatim")


@dataclass(slots=True)
class LocationConfig:
    """Typed configuration for the Location module."""

    # Storage
    db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    retention_max_rows: int = DEFAULT_RETENTION_MAX_ROWS
    retention_check_every: int = DEFAULT_RETENTION_CHECK_EVERY
    bounds_refresh_interval_s: float = DEFAULT_BOUNDS_REFRESH_INTERVAL_S

    # Location source
    source: str = "push"
    accuracy: str = "high"
    min_time_interval_ms: int = DEFAULT_MIN_TIME_INTERVAL_MS
    min_distance_m: float = DEFAULT_MIN_DISTANCE_M
    push_max_pending: int = 1000

    # Serial NMEA receiver
    serial_port: str = DEFAULT_SERIAL_PORT
    baud_rate: int = DEFAULT_BAUD_RATE
    reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY

    # CSV replay
    replay_file: Optional[Path] = None
    replay_realtime_factor: float = 0.0

    # Reverse geocoding
    geocoder: str = "none"
    nominatim_url: str = "https://nominatim.openstreetmap.org/reverse"
    nominatim_user_agent: str = "moodmap/0.1 (location history service)"
    geocode_timeout_s: float = 10.0
    geocode_min_interval_s: float = 1.0

    # HTTP API
    api_enabled: bool = True
    api_host: str = "127.0.0.1"
    api_port: int = 8765
    api_localhost_only: bool = True
    api_debug: bool = False

    # Logging
    log_level: str = "info"
    console_output: bool = True
    log_file: Optional[Path] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], args: Any = None) -> "LocationConfig":
        """Build config from parsed ``key = value`` pairs with optional CLI overrides."""
        defaults = cls()

        built = cls(
            # Storage
            db_path=get_config_path(config, "db_path", defaults.db_path),
            retention_max_rows=get_config_int(config, "retention_max_rows", defaults.retention_max_rows),
            retention_check_every=get_config_int(config, "retention_check_every", defaults.retention_check_every),
            bounds_refresh_interval_s=get_config_float(
                config, "bounds_refresh_interval_s", defaults.bounds_refresh_interval_s
            ),
            # Location source
            source=get_config_str(config, "source", defaults.source).lower(),
            accuracy=get_config_str(config, "accuracy", defaults.accuracy),
            min_time_interval_ms=get_config_int(config, "min_time_interval_ms", defaults.min_time_interval_ms),
            min_distance_m=get_config_float(config, "min_distance_m", defaults.min_distance_m),
            push_max_pending=get_config_int(config, "push_max_pending", defaults.push_max_pending),
            # Serial
            serial_port=get_config_str(config, "serial_port", defaults.serial_port),
            baud_rate=get_config_int(config, "baud_rate", defaults.baud_rate),
            reconnect_delay_s=get_config_float(config, "reconnect_delay_s", defaults.reconnect_delay_s),
            # Replay
            replay_file=get_config_path(config, "replay_file", defaults.replay_file),
            replay_realtime_factor=get_config_float(
                config, "replay_realtime_factor", defaults.replay_realtime_factor
            ),
            # Geocoding
            geocoder=get_config_str(config, "geocoder", defaults.geocoder).lower(),
            nominatim_url=get_config_str(config, "nominatim_url", defaults.nominatim_url),
            nominatim_user_agent=get_config_str(config, "nominatim_user_agent", defaults.nominatim_user_agent),
            geocode_timeout_s=get_config_float(config, "geocode_timeout_s", defaults.geocode_timeout_s),
            geocode_min_interval_s=get_config_float(
                config, "geocode_min_interval_s", defaults.geocode_min_interval_s
            ),
            # API
            api_enabled=get_config_bool(config, "api_enabled", defaults.api_enabled),
            api_host=get_config_str(config, "api_host", defaults.api_host),
            api_port=get_config_int(config, "api_port", defaults.api_port),
            api_localhost_only=get_config_bool(config, "api_localhost_only", defaults.api_localhost_only),
            api_debug=get_config_bool(config, "api_debug", defaults.api_debug),
            # Logging
            log_level=get_config_str(config, "log_level", defaults.log_level).lower(),
            console_output=get_config_bool(config, "console_output", defaults.console_output),
            log_file=get_config_path(config, "log_file", defaults.log_file),
        )

        if args is not None:
            built = built._apply_args_override(args)

        return built

    def _apply_args_override(self, args: Any) -> "LocationConfig":
        """Apply CLI argument overrides to config values."""
        values = asdict(self)

        arg_mappings = {
            "db_path": "db_path",
            "source": "source",
            "serial_port": "serial_port",
            "baud_rate": "baud_rate",
            "replay_file": "replay_file",
            "replay_speed": "replay_realtime_factor",
            "geocoder": "geocoder",
            "api_host": "api_host",
            "api_port": "api_port",
            "log_level": "log_level",
            "log_file": "log_file",
            "console_output": "console_output",
        }

        for arg_name, config_key in arg_mappings.items():
            if hasattr(args, arg_name):
                val = getattr(args, arg_name)
                if val is not None:
                    values[config_key] = val

        if getattr(args, "no_api", False):
            values["api_enabled"] = False

        return LocationConfig(**values)

    def validate(self) -> None:
        """Raise ValueError for settings that cannot work."""
        if self.source not in SOURCE_CHOICES:
            raise ValueError(f"source must be one of {', '.join(SOURCE_CHOICES)}, got {self.source!r}")
        if self.geocoder not in GEOCODER_CHOICES:
            raise ValueError(f"geocoder must be one of {', '.join(GEOCODER_CHOICES)}, got {self.geocoder!r}")
        if self.source == "replay" and self.replay_file is None:
            raise ValueError("source 'replay' needs replay_file")
        if self.bounds_refresh_interval_s <= 0:
            raise ValueError("bounds_refresh_interval_s must be positive")
        if self.retention_max_rows < 0:
            raise ValueError("retention_max_rows must be zero (unbounded) or positive")

    def to_dict(self) -> dict[str, Any]:
        """Export config values as dictionary."""
        return asdict(self)


__all__ = ["GEOCODER_CHOICES", "LocationConfig", "SOURCE_CHOICES"]
