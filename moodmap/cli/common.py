from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
from pathlib import Path
from typing import Any, Optional

from moodmap.core.logging_config import configure_logging
from moodmap.core.logging_utils import get_module_logger


LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def add_common_cli_arguments(
    parser: argparse.ArgumentParser,
    *,
    default_log_level: str = "info",
    include_console_control: bool = True,
    default_console_output: bool = True,
) -> None:
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS.keys()),
        default=default_log_level,
        help="Logging verbosity",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional path for a rotating log file",
    )

    parser.add_argument(
        "--config-path",
        dest="config_path",
        type=Path,
        default=None,
        help="Config file to load instead of the module default",
    )

    if include_console_control:
        console_group = parser.add_mutually_exclusive_group()
        console_group.add_argument(
            "--console",
            dest="console_output",
            action="store_true",
            default=default_console_output,
            help="Log to stdout (default)",
        )
        console_group.add_argument(
            "--no-console",
            dest="console_output",
            action="store_false",
            help="Log to file only",
        )


def _positive_number(value: str, typ: type, name: str):
    try:
        parsed = typ(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"Value must be a {name}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError("Value must be positive")
    return parsed


def positive_int(value: str) -> int:
    return _positive_number(value, int, "integer")


def positive_float(value: str) -> float:
    return _positive_number(value, float, "number")


def _get_config_value(config: dict, key: str, default, converter=None):
    if key not in config:
        return default
    value = config[key]
    if converter:
        try:
            return converter(value)
        except (TypeError, ValueError):
            return default
    return value


def get_config_int(config: dict, key: str, default: int) -> int:
    return _get_config_value(config, key, default, int)


def get_config_float(config: dict, key: str, default: float) -> float:
    return _get_config_value(config, key, default, float)


def get_config_bool(config: dict, key: str, default: bool) -> bool:
    if key not in config:
        return default
    value = config[key]
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def get_config_str(config: dict, key: str, default: str) -> str:
    value = config.get(key)
    return default if value is None else str(value)


def get_config_path(config: dict, key: str, default: Optional[Path]) -> Optional[Path]:
    """Get a Path value from config, returning default if missing or blank."""
    if key not in config or config[key] is None:
        return default
    text = str(config[key]).strip()
    return Path(text).expanduser() if text else default


def setup_logging_from_args(args: Any, module_name: str) -> logging.Logger:
    log_path = configure_logging(
        args.log_level,
        console=getattr(args, "console_output", True),
        log_file=getattr(args, "log_file", None),
    )
    module_logger = get_module_logger(module_name)
    if log_path is not None:
        module_logger.info("Logs will be written to %s", log_path)
    return module_logger


def install_signal_handlers(supervisor: Any, loop: asyncio.AbstractEventLoop) -> None:
    """Register SIGINT/SIGTERM handlers that ask the supervisor to shut down."""

    shutdown_event: Optional[asyncio.Event] = getattr(supervisor, "shutdown_event", None)

    def signal_handler():
        if shutdown_event is not None and not shutdown_event.is_set():
            shutdown_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, signal_handler)


__all__ = [
    "LOG_LEVELS",
    "add_common_cli_arguments",
    "get_config_bool",
    "get_config_float",
    "get_config_int",
    "get_config_path",
    "get_config_str",
    "install_signal_handlers",
    "positive_float",
    "positive_int",
    "setup_logging_from_args",
]
