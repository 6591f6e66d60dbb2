"""Tests for the YAML configuration manager."""

import logging

import pytest
import yaml

from risk_gate.config_manager import ENVIRONMENT_VARIABLE, ConfigManager

PROFILES = {
    "logging": {"level": "DEBUG"},
    "risk": {"min_position_size": 10, "max_drawdown": 0.10},
    "environments": {
        "development": {"risk": {"max_drawdown": 0.15}},
        "production": {"risk": {"max_drawdown": 0.08}},
    },
}


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "risk_gate.yaml"
    path.write_text(yaml.safe_dump(PROFILES))
    return path


@pytest.fixture
def quiet_logger():
    return logging.getLogger("tests.config_manager")


class TestEnvironmentSelection:
    """Which profile becomes active."""

    def test_explicit_argument_wins(self, config_file, quiet_logger, monkeypatch):
        monkeypatch.setenv(ENVIRONMENT_VARIABLE, "development")

        manager = ConfigManager(str(config_file), quiet_logger, environment="production")

        assert manager.environment == "production"
        assert manager.get_risk_parameters()["max_drawdown"] == 0.08

    def test_file_key_beats_variable(self, tmp_path, quiet_logger, monkeypatch):
        path = tmp_path / "risk_gate.yaml"
        path.write_text(yaml.safe_dump({**PROFILES, "environment": "Production"}))
        monkeypatch.setenv(ENVIRONMENT_VARIABLE, "development")

        manager = ConfigManager(str(path), quiet_logger)

        assert manager.environment == "production"

    def test_environment_variable(self, config_file, quiet_logger, monkeypatch):
        monkeypatch.setenv(ENVIRONMENT_VARIABLE, "production")

        assert ConfigManager(str(config_file), quiet_logger).environment == "production"

    @pytest.mark.usefixtures("test_env")
    def test_session_environment(self, config_file, quiet_logger):
        manager = ConfigManager(str(config_file), quiet_logger)

        assert manager.environment == "development"
        assert manager.get_risk_parameters() == {"min_position_size": 10, "max_drawdown": 0.15}

    def test_unknown_profile_is_invalid(self, config_file, quiet_logger):
        manager = ConfigManager(str(config_file), quiet_logger, environment="staging")

        assert not manager.is_valid()
        assert manager.validation_errors[0].startswith(
            "Active environment 'staging' has no profile")


class TestLoading:
    """Reading, validating and reloading the file."""

    def test_missing_file_gives_empty_config(self, tmp_path, quiet_logger):
        manager = ConfigManager(str(tmp_path / "absent.yaml"), quiet_logger)

        assert manager.get("risk") is None
        assert manager.get_risk_parameters() == {}
        assert manager.is_valid()

    def test_non_mapping_file_gives_empty_config(self, tmp_path, quiet_logger):
        path = tmp_path / "list.yaml"
        path.write_text("- one\n- two\n")

        manager = ConfigManager(str(path), quiet_logger)

        assert manager.get_dict("risk") == {}

    def test_invalid_ratio_is_reported(self, tmp_path, quiet_logger):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"risk": {"max_daily_loss": 2, "max_drawdown": "x"}}))

        manager = ConfigManager(str(path), quiet_logger)

        assert manager.validation_errors == [
            "'risk.max_daily_loss' must be in (0, 1]",
            "'risk.max_drawdown' must be a valid number",
        ]

    def test_reload_picks_up_changes(self, config_file, quiet_logger):
        manager = ConfigManager(str(config_file), quiet_logger, environment="production")
        changed = {**PROFILES, "risk": {"min_position_size": 25}}
        config_file.write_text(yaml.safe_dump(changed))

        assert manager.reload_config() == []
        assert manager.get_int("risk.min_position_size") == 25

    def test_reload_restores_previous_on_invalid_file(self, config_file, quiet_logger):
        manager = ConfigManager(str(config_file), quiet_logger, environment="production")
        broken = {**PROFILES, "environments": {"production": {"risk": {"max_drawdown": 3}}}}
        config_file.write_text(yaml.safe_dump(broken))

        errors = manager.reload_config()

        assert errors == ["'risk.max_drawdown' must be in (0, 1]"]
        assert manager.get_risk_parameters()["max_drawdown"] == 0.08
        assert manager.is_valid()

    def test_in_memory_config_has_nothing_to_reload(self, quiet_logger):
        manager = ConfigManager.from_dict(PROFILES, quiet_logger)

        assert manager.reload_config() == []
        assert manager.get("logging.level") == "DEBUG"


class TestTypedGetters:
    """Dot-path lookups with conversion."""

    @pytest.fixture
    def manager(self, quiet_logger):
        return ConfigManager.from_dict({
            "a": {"count": "7", "flag": "yes", "off": "off", "bad": "seven", "nested": {"x": 1}},
        }, quiet_logger)

    def test_conversions(self, manager):
        assert manager.get_int("a.count") == 7
        assert manager.get_bool("a.flag") is True
        assert manager.get_bool("a.off", default=True) is False
        assert manager.get_dict("a.nested") == {"x": 1}

    def test_unparseable_values(self, manager):
        assert manager.get_int("a.bad", 3) == 3
        assert manager.get_bool("a.bad", default=True) is False
        assert manager.get_dict("a.count") == {}

    def test_missing_paths(self, manager):
        assert manager.get("a.missing", "fallback") == "fallback"
        assert manager.get("a.count.deeper") is None
        assert manager.get_bool("a.missing", default=True) is True
