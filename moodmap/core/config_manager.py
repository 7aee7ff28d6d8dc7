"""Reader for ``key = value`` text configuration files.

The shipped config file may live in a read-only install, so per-user changes
go in an override file that is merged over the base file on every read.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
from pathlib import Path
from typing import Dict, Iterable, Optional

import aiofiles

from .logging_utils import get_module_logger
from .paths import PROJECT_ROOT, USER_CONFIG_OVERRIDES_DIR

logger = get_module_logger("ConfigManager")


class ConfigManager:

    def __init__(self, overrides_dir: Optional[Path] = None):
        self._overrides_dir = overrides_dir or USER_CONFIG_OVERRIDES_DIR
        self._project_root = PROJECT_ROOT.resolve()

    # ------------------------------------------------------------------
    # Internal helpers

    @staticmethod
    def parse_config_lines(lines: Iterable[str]) -> Dict[str, str]:
        config: Dict[str, str] = {}

        for raw_line in lines:
            line = raw_line.strip()
            if not line or line.startswith('#') or '=' not in line:
                continue

            key, value = line.split('=', 1)
            key = key.strip()
            value = value.split('#')[0].strip()

            if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
                value = value[1:-1]

            config[key] = value

        return config

    def _resolve_override_path(self, config_path: Path) -> Path:
        try:
            rel_path = config_path.resolve().relative_to(self._project_root)
        except ValueError:
            digest = hashlib.sha1(str(config_path).encode('utf-8')).hexdigest()[:10]
            safe_name = re.sub(r'[^a-zA-Z0-9._-]+', '_', config_path.stem or 'config')
            rel_path = Path('external') / f"{safe_name}_{digest}{config_path.suffix or '.txt'}"
        return self._overrides_dir / rel_path

    def _load_override_sync(self, config_path: Path) -> Dict[str, str]:
        override_path = self._resolve_override_path(config_path)
        if not override_path.exists():
            return {}

        try:
            with open(override_path, 'r', encoding='utf-8') as fh:
                return self.parse_config_lines(fh)
        except OSError as exc:
            logger.warning("Failed to read override config %s: %s", override_path, exc)
            return {}

    # ------------------------------------------------------------------
    # Public API

    async def read_config_async(self, config_path: Path) -> Dict[str, str]:
        """Base file values with any override values merged on top.

        A missing or unreadable base file reads as empty.
        """
        config: Dict[str, str] = {}

        if await asyncio.to_thread(config_path.exists):
            try:
                async with aiofiles.open(config_path, 'r', encoding='utf-8') as fh:
                    lines = await fh.readlines()
                config = self.parse_config_lines(lines)
            except OSError as exc:
                logger.error("Failed to read config %s: %s", config_path, exc)

        overrides = await asyncio.to_thread(self._load_override_sync, config_path)
        config.update(overrides)
        return config


__all__ = ["ConfigManager"]
