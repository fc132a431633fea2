"""Unit tests for configuration loading."""

import json

import pytest

from lumen_calendar.config_loader import Config, apply_env_overrides, load_config
from lumen_calendar.core.exceptions import ConfigError

pytestmark = pytest.mark.unit


class TestFromDict:
    def test_defaults(self):
        config = Config.from_dict(None)

        assert config == Config()
        assert config.server_bind == "127.0.0.1"
        assert config.store_timeout_seconds == 10.0

    def test_values_are_coerced_from_strings(self):
        config = Config.from_dict({"server_port": "9090", "slot_height": "48", "log_level": "debug"})

        assert config.server_port == 9090
        assert config.slot_height == 48.0
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize(
        ("data", "field", "expected"),
        [
            ({"min_event_minutes": 0}, "min_event_minutes", 1),
            ({"minutes_per_slot": 90}, "minutes_per_slot", 60),
            ({"server_port": 70000}, "server_port", 8080),
            ({"server_port": "http"}, "server_port", 8080),
            ({"store_timeout_seconds": 0}, "store_timeout_seconds", 0.1),
            ({"default_view": "YEAR"}, "default_view", "month"),
            ({"default_view": "Week"}, "default_view", "week"),
        ],
    )
    def test_out_of_range_values_fall_back(self, data, field, expected):
        assert getattr(Config.from_dict(data), field) == expected

    def test_to_dict_round_trip(self):
        config = Config(server_port=9000, seed_events_path="seed.yaml")

        assert Config.from_dict(config.to_dict()) == config


class TestLoadConfig:
    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yaml"), environ={}) == Config()

    def test_yaml_file_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("default_view: week\nmax_store_events: 10\nserver_port: 3000\n", encoding="utf-8")

        config = load_config(str(path), environ={})

        assert config.default_view == "week"
        assert config.max_store_events == 10
        assert config.server_port == 3000

    def test_json_file_is_accepted(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"minutes_per_slot": 15}), encoding="utf-8")

        assert load_config(str(path), environ={}).minutes_per_slot == 15

    def test_empty_file_yields_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("", encoding="utf-8")

        assert load_config(str(path), environ={}) == Config()

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("server_port: 3000\n", encoding="utf-8")

        config = load_config(
            str(path),
            environ={"LUMEN_SERVER_PORT": "4000", "LUMEN_STORE_TIMEOUT": "2.5", "LUMEN_SEED_EVENTS": "seed.json"},
        )

        assert config.server_port == 4000
        assert config.store_timeout_seconds == 2.5
        assert config.seed_events_path == "seed.json"

    def test_os_environ_is_used_by_default(self, tmp_path, monkeypatch):
        monkeypatch.setenv("LUMEN_SERVER_BIND", "0.0.0.0")

        assert load_config(str(tmp_path / "absent.yaml")).server_bind == "0.0.0.0"

    def test_non_mapping_top_level_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- just\n- a list\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(str(path), environ={})

    def test_invalid_yaml_raises(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("server_port: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError):
            load_config(str(path), environ={})


def test_apply_env_overrides_ignores_empty_values():
    merged = apply_env_overrides({"server_port": 1}, environ={"LUMEN_SERVER_PORT": ""})

    assert merged == {"server_port": 1}
