"""Tests for RiskConfig coercion and validation."""

from decimal import Decimal

import pytest

from risk_gate.config_manager import ConfigManager
from risk_gate.exceptions import ConfigurationError
from risk_gate.risk_config import MAX_DURATION_S, RiskConfig


class TestRiskConfig:
    """Building and validating risk limits."""

    def test_defaults_are_valid(self):
        config = RiskConfig()

        assert config.validate() == []
        assert config.max_drawdown == Decimal("0.10")
        assert config.circuit_breaker_threshold == Decimal("0.12")
        assert config.per_account_admission_lock is True

    def test_from_mapping_coerces_types(self):
        config = RiskConfig.from_mapping({
            "max_drawdown": 0.08,
            "max_daily_trades": "20",
            "circuit_breaker_timeout_s": 60,
        })

        assert config.max_drawdown == Decimal("0.08")
        assert config.max_daily_trades == 20
        assert config.circuit_breaker_timeout_s == 60.0
        assert isinstance(config.circuit_breaker_timeout_s, float)

    def test_unknown_keys_are_rejected(self):
        with pytest.raises(ConfigurationError) as exc_info:
            RiskConfig.from_mapping({"max_bananas": 3})

        assert exc_info.value.errors == ["Unknown risk setting 'max_bananas'"]

    @pytest.mark.parametrize(("key", "value"), [
        ("max_daily_trades", 2.5),
        ("max_daily_trades", True),
        ("per_account_admission_lock", "yes"),
        ("max_drawdown", "nan"),
        ("max_leverage", "lots"),
    ])
    def test_bad_values_are_rejected(self, key, value):
        with pytest.raises(ConfigurationError, match=f"Invalid value for '{key}'"):
            RiskConfig.from_mapping({key: value})

    @pytest.mark.parametrize("key", [
        "circuit_breaker_timeout_s",
        "collaborator_timeout_s",
        "lockout_duration_s",
        "risk_monitoring_interval_s",
    ])
    @pytest.mark.parametrize("value", ["nan", "inf", float("inf")])
    def test_non_finite_durations_are_rejected(self, key, value):
        with pytest.raises(ConfigurationError, match=f"Invalid value for '{key}'"):
            RiskConfig.from_mapping({key: value})

    def test_durations_are_bounded(self):
        with pytest.raises(ConfigurationError) as exc_info:
            RiskConfig(circuit_breaker_timeout_s=MAX_DURATION_S + 1, threat_lookback_s=float("nan"))

        assert exc_info.value.errors == [
            "'threat_lookback_s' must be positive, got nan",
            "'circuit_breaker_timeout_s' must be a finite number of seconds up to 604800, got 604801.0",
            "'threat_lookback_s' must be a finite number of seconds up to 604800, got nan",
        ]

    @pytest.mark.parametrize(("changes", "message"), [
        ({"max_drawdown": "0"}, "'max_drawdown' must be in (0, 1]"),
        ({"max_risk_per_trade": "1.5"}, "'max_risk_per_trade' must be in (0, 1]"),
        ({"max_concurrent_trades": 0}, "'max_concurrent_trades' must be at least 1"),
        ({"lockout_duration_s": -1}, "'lockout_duration_s' must be positive"),
        ({"min_confidence_threshold": 101}, "'min_confidence_threshold' must be between 0 and 100"),
    ])
    def test_out_of_range_values(self, changes, message):
        with pytest.raises(ConfigurationError) as exc_info:
            RiskConfig.from_mapping(changes)

        assert any(error.startswith(message) for error in exc_info.value.errors)

    def test_breaker_threshold_below_drawdown(self):
        with pytest.raises(ConfigurationError) as exc_info:
            RiskConfig(max_drawdown=Decimal("0.2"))

        assert exc_info.value.errors == [
            "'circuit_breaker_threshold' must be greater than or equal to 'max_drawdown'"]

    def test_with_updates_leaves_original_untouched(self, risk_config):
        updated = risk_config.with_updates({"max_daily_trades": 10})

        assert updated.max_daily_trades == 10
        assert risk_config.max_daily_trades == 50
        assert updated is not risk_config

    def test_to_dict_is_json_ready(self, risk_config):
        data = risk_config.to_dict()

        assert data["max_risk_per_trade"] == "0.02"
        assert data["max_daily_trades"] == 50
        assert data["lockout_duration_s"] == 300.0
        assert set(data) == RiskConfig.field_names()

    def test_from_config_manager_reads_profile(self):
        manager = ConfigManager.from_dict({
            "environment": "staging",
            "risk": {"max_alerts": 20},
            "environments": {
                "staging": {
                    "risk": {"max_drawdown": 0.12, "circuit_breaker_threshold": 0.15},
                    "monitoring": {"threat_detection_interval_s": 90},
                },
            },
        })

        config = RiskConfig.from_config_manager(manager)

        assert config.max_alerts == 20
        assert config.max_drawdown == Decimal("0.12")
        assert config.threat_detection_interval_s == 90.0
