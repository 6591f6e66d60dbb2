"""Risk thresholds consumed by the validation pipeline and the monitors."""

import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields, replace
from decimal import Decimal, InvalidOperation
from typing import Any

from .config_manager import ConfigManager
from .exceptions import ConfigurationError

_ZERO = Decimal(0)
_ONE = Decimal(1)
MAX_DURATION_S = 7 * 24 * 3600.0


@dataclass(frozen=True)
class RiskConfig:
    """Immutable set of risk limits.

    A running engine never mutates its config; updates build a new instance
    and swap the reference, so a validation keeps the snapshot it started with.
    """

    # Per-trade and portfolio limits
    max_risk_per_trade: Decimal = Decimal("0.02")
    max_daily_loss: Decimal = Decimal("0.05")
    max_drawdown: Decimal = Decimal("0.10")
    max_concurrent_trades: int = 5
    max_daily_trades: int = 50
    min_confidence_threshold: Decimal = Decimal("75")
    max_leverage: Decimal = Decimal("10")
    max_position_size: Decimal = Decimal("0.5")
    min_position_size: Decimal = Decimal("10")
    correlation_limit: Decimal = Decimal("0.7")
    volatility_limit: Decimal = Decimal("0.3")
    liquidity_threshold: Decimal = Decimal("1000000")

    # Circuit breaker
    circuit_breaker_threshold: Decimal = Decimal("0.12")
    circuit_breaker_timeout_s: float = 3600.0
    circuit_breaker_max_failures: int = 3

    # Resource quotas
    max_memory_usage: Decimal = Decimal("0.8")
    max_cpu_usage: Decimal = Decimal("0.8")
    max_connections: int = 100
    max_requests_per_minute: int = 1000

    # Threat detection
    anomaly_threshold: Decimal = Decimal("3.0")
    suspicious_activity_threshold: int = 10
    max_failed_attempts: int = 5
    lockout_duration_s: float = 300.0
    threat_lookback_s: float = 3600.0

    # Runtime behaviour
    collaborator_timeout_s: float = 5.0
    max_alerts: int = 1000
    per_account_admission_lock: bool = True

    # Monitor intervals
    risk_monitoring_interval_s: float = 30.0
    resource_monitoring_interval_s: float = 20.0
    threat_detection_interval_s: float = 60.0
    circuit_breaker_monitoring_interval_s: float = 5.0

    _UNIT_RATIO_FIELDS = (
        "max_risk_per_trade",
        "max_daily_loss",
        "max_drawdown",
        "max_position_size",
        "correlation_limit",
        "circuit_breaker_threshold",
        "max_memory_usage",
        "max_cpu_usage",
    )
    _POSITIVE_FIELDS = (
        "max_leverage",
        "volatility_limit",
        "anomaly_threshold",
        "circuit_breaker_timeout_s",
        "lockout_duration_s",
        "threat_lookback_s",
        "collaborator_timeout_s",
        "risk_monitoring_interval_s",
        "resource_monitoring_interval_s",
        "threat_detection_interval_s",
        "circuit_breaker_monitoring_interval_s",
    )
    _DURATION_FIELDS = (
        "circuit_breaker_timeout_s",
        "lockout_duration_s",
        "threat_lookback_s",
        "collaborator_timeout_s",
        "risk_monitoring_interval_s",
        "resource_monitoring_interval_s",
        "threat_detection_interval_s",
        "circuit_breaker_monitoring_interval_s",
    )
    _COUNT_FIELDS = (
        "max_concurrent_trades",
        "max_daily_trades",
        "circuit_breaker_max_failures",
        "max_connections",
        "max_requests_per_minute",
        "suspicious_activity_threshold",
        "max_failed_attempts",
        "max_alerts",
    )

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigurationError("Invalid risk configuration", errors)

    @classmethod
    def field_names(cls) -> frozenset[str]:
        """Names accepted by ``from_mapping`` and ``with_updates``."""
        return frozenset(f.name for f in fields(cls))

    @classmethod
    def _coerce(cls, values: Mapping[str, Any]) -> dict[str, Any]:
        """Convert raw values to the declared field types.

        Raises:
            ConfigurationError: On unknown keys or values that cannot be converted.
        """
        known = {f.name: f.type for f in fields(cls)}
        unknown = sorted(set(values) - set(known))
        errors = [f"Unknown risk setting '{key}'" for key in unknown]

        coerced: dict[str, Any] = {}
        for key, raw in values.items():
            if key not in known:
                continue
            target = known[key]
            try:
                if target is bool:
                    if not isinstance(raw, bool):
                        raise TypeError(f"expected a boolean, got {type(raw).__name__}")
                    coerced[key] = raw
                elif target is int:
                    if isinstance(raw, bool) or int(raw) != Decimal(str(raw)):
                        raise ValueError("expected a whole number")
                    coerced[key] = int(raw)
                elif target is float:
                    value = float(raw)
                    if not math.isfinite(value):
                        raise ValueError("expected a finite number")
                    coerced[key] = value
                else:
                    value = Decimal(str(raw))
                    if not value.is_finite():
                        raise ValueError("expected a finite number")
                    coerced[key] = value
            except (InvalidOperation, ValueError, TypeError) as e:
                errors.append(f"Invalid value for '{key}': {raw!r} ({e})")

        if errors:
            raise ConfigurationError("Invalid risk configuration", errors)
        return coerced

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "RiskConfig":
        """Build a config from a plain mapping, starting from the defaults."""
        return cls(**cls._coerce(values))

    @classmethod
    def from_config_manager(cls, config_manager: ConfigManager) -> "RiskConfig":
        """Build a config from the active environment profile."""
        values = dict(config_manager.get_risk_parameters())
        values.update(config_manager.get_monitoring_parameters())
        return cls.from_mapping(values)

    def with_updates(self, changes: Mapping[str, Any]) -> "RiskConfig":
        """Return a new config with ``changes`` applied; self is left untouched."""
        return replace(self, **self._coerce(changes))

    def validate(self) -> list[str]:
        """Return a list of human readable problems with this config."""
        errors: list[str] = []
        for name in self._UNIT_RATIO_FIELDS:
            value = getattr(self, name)
            if not _ZERO < value <= _ONE:
                errors.append(f"'{name}' must be in (0, 1], got {value}")
        for name in self._POSITIVE_FIELDS:
            value = getattr(self, name)
            if not value > 0:
                errors.append(f"'{name}' must be positive, got {value}")
        for name in self._DURATION_FIELDS:
            value = getattr(self, name)
            if not math.isfinite(value) or value > MAX_DURATION_S:
                errors.append(
                    f"'{name}' must be a finite number of seconds up to {MAX_DURATION_S:g}, got {value}",
                )
        for name in self._COUNT_FIELDS:
            value = getattr(self, name)
            if value < 1:
                errors.append(f"'{name}' must be at least 1, got {value}")

        if not _ZERO <= self.min_confidence_threshold <= Decimal(100):
            errors.append("'min_confidence_threshold' must be between 0 and 100")
        if self.min_position_size < 0:
            errors.append("'min_position_size' must not be negative")
        if self.liquidity_threshold < 0:
            errors.append("'liquidity_threshold' must not be negative")
        if self.circuit_breaker_threshold < self.max_drawdown:
            errors.append(
                "'circuit_breaker_threshold' must be greater than or equal to 'max_drawdown'",
            )
        return errors

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation (Decimals as strings)."""
        return {
            key: str(value) if isinstance(value, Decimal) else value
            for key, value in asdict(self).items()
        }
