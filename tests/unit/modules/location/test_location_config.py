"""Tests for LocationConfig and the shipped config.txt."""

from __future__ import annotations

from argparse import Namespace
from pathlib import Path

import pytest

from moodmap.core.config_manager import ConfigManager
from moodmap.core.paths import DEFAULT_DB_PATH, LOCATION_CONFIG_PATH
from moodmap.modules.Location.config import LocationConfig

from tests.unit.conftest import run_async


class TestFromConfig:

    def test_empty_mapping_gives_defaults(self):
        config = LocationConfig.from_config({})
        assert config == LocationConfig()
        assert config.db_path == DEFAULT_DB_PATH
        assert config.source == "push"
        assert config.api_enabled is True

    def test_parses_typed_values(self):
        config = LocationConfig.from_config(
            {
                "db_path": "/tmp/moodmap/samples.db",
                "retention_max_rows": "500",
                "source": "NMEA",
                "min_distance_m": "2.5",
                "api_enabled": "false",
                "api_port": "9000",
                "geocoder": "Nominatim",
            }
        )
        assert config.db_path == Path("/tmp/moodmap/samples.db")
        assert config.retention_max_rows == 500
        assert config.source == "nmea"
        assert config.min_distance_m == 2.5
        assert config.api_enabled is False
        assert config.api_port == 9000
        assert config.geocoder == "nominatim"

    def test_bad_numbers_fall_back_to_defaults(self):
        config = LocationConfig.from_config({"api_port": "eighty", "min_distance_m": ""})
        assert config.api_port == LocationConfig().api_port
        assert config.min_distance_m == LocationConfig().min_distance_m

    def test_blank_paths_use_defaults(self):
        config = LocationConfig.from_config({"db_path": "", "replay_file": "  ", "log_file": ""})
        assert config.db_path == DEFAULT_DB_PATH
        assert config.replay_file is None
        assert config.log_file is None


class TestArgsOverride:

    def test_cli_values_win(self, tmp_path: Path):
        args = Namespace(
            db_path=tmp_path / "cli.db",
            source="replay",
            replay_file=tmp_path / "track.csv",
            replay_speed=4.0,
            api_port=None,
            no_api=True,
        )
        config = LocationConfig.from_config({"source": "push", "api_port": "9000"}, args)
        assert config.db_path == tmp_path / "cli.db"
        assert config.source == "replay"
        assert config.replay_realtime_factor == 4.0
        assert config.api_port == 9000
        assert config.api_enabled is False

    def test_missing_attributes_are_ignored(self):
        config = LocationConfig.from_config({"api_host": "0.0.0.0"}, Namespace())
        assert config.api_host == "0.0.0.0"
        assert config.api_enabled is True


class TestValidate:

    def test_defaults_are_valid(self):
        LocationConfig().validate()

    @pytest.mark.parametrize(
        "overrides, message",
        [
            ({"source": "carrier-pigeon"}, "source"),
            ({"geocoder": "google"}, "geocoder"),
            ({"source": "replay"}, "replay_file"),
            ({"bounds_refresh_interval_s": 0.0}, "bounds_refresh_interval_s"),
            ({"retention_max_rows": -1}, "retention_max_rows"),
        ],
    )
    def test_rejects_unusable_settings(self, overrides, message):
        config = LocationConfig(**overrides)
        with pytest.raises(ValueError, match=message):
            config.validate()

    def test_to_dict(self):
        data = LocationConfig().to_dict()
        assert data["source"] == "push"
        assert "api_port" in data


class TestShippedConfig:

    def test_config_txt_matches_dataclass_defaults(self, tmp_path: Path):
        raw = run_async(ConfigManager(overrides_dir=tmp_path / "overrides").read_config_async(LOCATION_CONFIG_PATH))
        config = LocationConfig.from_config(raw)

        config.validate()
        assert config == LocationConfig()
        assert set(raw) >= {"db_path", "source", "geocoder", "api_port", "retention_max_rows"}
