"""Location service entry point.

Loads ``config.txt`` (plus per-user overrides), applies command-line
overrides, configures logging and runs :class:`LocationRuntime` until
SIGINT/SIGTERM.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from moodmap.cli.common import (
    add_common_cli_arguments,
    install_signal_handlers,
    positive_float,
    positive_int,
    setup_logging_from_args,
)
from moodmap.core.config_manager import ConfigManager
from moodmap.core.logging_utils import get_module_logger
from moodmap.core.paths import LOCATION_CONFIG_PATH

from .config import GEOCODER_CHOICES, SOURCE_CHOICES, LocationConfig
from .location_core.errors import StorageUnavailable
from .runtime import LocationRuntime

logger = get_module_logger("MainLocation")


def _config_path_from_argv(argv: Optional[Sequence[str]]) -> Path:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config-path", dest="config_path", type=Path, default=None)
    known, _ = pre_parser.parse_known_args(argv)
    return known.config_path or LOCATION_CONFIG_PATH


def build_parser(config: Dict[str, Any]) -> argparse.ArgumentParser:
    """Argument parser whose defaults come from the loaded config."""
    defaults = LocationConfig.from_config(config)

    parser = argparse.ArgumentParser(description="MoodMap location history service")
    add_common_cli_arguments(
        parser,
        default_log_level=defaults.log_level,
        include_console_control=True,
        default_console_output=defaults.console_output,
    )

    parser.add_argument(
        "--db-path",
        dest="db_path",
        type=Path,
        default=None,
        help=f"SQLite database for samples (default: {defaults.db_path})",
    )
    parser.add_argument(
        "--source",
        choices=SOURCE_CHOICES,
        default=None,
        help=f"Location source (default: {defaults.source})",
    )
    parser.add_argument("--serial-port", dest="serial_port", default=None, help="Serial port for NMEA receivers")
    parser.add_argument("--baud-rate", dest="baud_rate", type=positive_int, default=None, help="Serial baud rate")
    parser.add_argument("--replay-file", dest="replay_file", type=Path, default=None, help="CSV track to replay")
    parser.add_argument(
        "--replay-speed",
        dest="replay_speed",
        type=positive_float,
        default=None,
        help="Replay speed factor (omit for as-fast-as-possible)",
    )
    parser.add_argument(
        "--geocoder",
        choices=GEOCODER_CHOICES,
        default=None,
        help=f"Reverse geocoder (default: {defaults.geocoder})",
    )
    parser.add_argument("--api-host", dest="api_host", default=None, help="HTTP API bind address")
    parser.add_argument("--api-port", dest="api_port", type=int, default=None, help="HTTP API port")
    parser.add_argument("--no-api", dest="no_api", action="store_true", help="Do not start the HTTP API")
    return parser


async def load_config(
    argv: Optional[Sequence[str]] = None, config_manager: Optional[ConfigManager] = None
) -> Dict[str, str]:
    """Read the file named by ``--config-path`` (or the shipped default) plus overrides."""
    config_path = _config_path_from_argv(argv)
    return await (config_manager or ConfigManager()).read_config_async(config_path)


def parse_args(argv: Optional[Sequence[str]], raw_config: Dict[str, str]):
    """Parse command-line arguments over the loaded file values.

    Returns:
        ``(args, config)`` where ``config`` is the resolved :class:`LocationConfig`.
    """
    parser = build_parser(raw_config)
    args = parser.parse_args(argv)
    try:
        config = LocationConfig.from_config(raw_config, args)
        config.validate()
    except ValueError as exc:
        parser.error(str(exc))
    return args, config


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the location service."""
    argv = list(argv) if argv is not None else None
    args, config = parse_args(argv, await load_config(argv))
    setup_logging_from_args(config, "MainLocation")
    logger.debug("Resolved config: %s", config.to_dict())

    runtime = LocationRuntime(config)
    loop = asyncio.get_running_loop()
    install_signal_handlers(runtime, loop)

    try:
        await runtime.run()
    except StorageUnavailable as exc:
        logger.error("Location store unavailable: %s", exc)
        return 1
    return 0


def run(argv: Optional[Sequence[str]] = None) -> None:
    try:
        exit_code = asyncio.run(main(argv))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
