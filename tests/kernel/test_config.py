"""
Tests for inventory_kernel.config -- YAML + environment loading.
"""

import logging
from zoneinfo import ZoneInfo

import pytest
import yaml

from inventory_kernel.config import EngineConfig, load_config
from inventory_kernel.exceptions import ConfigurationError


def _write(tmp_path, data) -> str:
    path = tmp_path / "inventory.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaults:
    def test_defaults(self):
        config = load_config(environ={})
        assert config == EngineConfig()
        assert config.settlement_trigger_day == 24
        assert config.min_settlement_year == 2020
        assert config.database_url.startswith("postgresql://")
        assert config.owner_count == 2
        assert config.tzinfo == ZoneInfo("UTC")
        assert config.log_level_value == logging.INFO


class TestYaml:
    def test_file_values_applied(self, tmp_path):
        path = _write(
            tmp_path,
            {
                "database_url": "postgresql://u:p@db/inventory",
                "timezone": "Europe/Berlin",
                "settlement_trigger_day": 1,
            },
        )
        config = load_config(path, environ={})
        assert config.database_url == "postgresql://u:p@db/inventory"
        assert config.tzinfo == ZoneInfo("Europe/Berlin")
        assert config.settlement_trigger_day == 1

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path, environ={}) == EngineConfig()

    def test_unknown_key_rejected(self, tmp_path):
        path = _write(tmp_path, {"owners": 3})
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(path, environ={})
        assert exc_info.value.key == "owners"

    def test_non_mapping_rejected(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_wrong_type_rejected(self, tmp_path):
        path = _write(tmp_path, {"owner_count": "many"})
        with pytest.raises(ConfigurationError):
            load_config(path, environ={})

    def test_missing_file_propagates(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml", environ={})


class TestEnvironment:
    def test_environment_overrides_file(self, tmp_path):
        path = _write(tmp_path, {"owner_count": 3, "timezone": "Asia/Tokyo"})
        config = load_config(
            path,
            environ={"INVENTORY_OWNER_COUNT": "4", "INVENTORY_LOG_LEVEL": "debug"},
        )
        assert config.owner_count == 4
        assert config.timezone == "Asia/Tokyo"
        assert config.log_level_value == logging.DEBUG

    def test_bad_integer_in_environment(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(environ={"INVENTORY_TRIGGER_DAY": "soon"})
        assert exc_info.value.key == "INVENTORY_TRIGGER_DAY"


class TestValidation:
    @pytest.mark.parametrize(
        "overrides,key",
        [
            ({"timezone": "Mars/Olympus"}, "timezone"),
            ({"settlement_trigger_day": 0}, "settlement_trigger_day"),
            ({"settlement_trigger_day": 29}, "settlement_trigger_day"),
            ({"owner_count": 0}, "owner_count"),
            ({"scheduler_poll_seconds": 0}, "scheduler_poll_seconds"),
            ({"log_level": "LOUD"}, "log_level"),
        ],
    )
    def test_invalid_values(self, overrides, key):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig(**overrides)
        assert exc_info.value.key == key

    def test_config_is_frozen(self):
        config = EngineConfig()
        with pytest.raises(AttributeError):
            config.owner_count = 3
