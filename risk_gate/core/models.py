"""Data model shared by the pipeline, the monitors and the collaborators."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any

from ..exceptions import (
    CircuitOpenError,
    CollaboratorUnavailableError,
    ErrorKind,
    RiskGateError,
    RiskLimitError,
    StructuralError,
    ValidationFailedError,
)


class Side(str, Enum):
    """Direction of a proposed trade."""

    BUY = "BUY"
    SELL = "SELL"


class AlertSeverity(str, Enum):
    """Severity levels for risk alerts."""

    INFO = "INFO"
    WARNING = "WARNING"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class BreakerState(str, Enum):
    """Circuit breaker states."""

    ARMED = "ARMED"
    TRIPPED = "TRIPPED"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class ThreatLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class ResourceStatus(str, Enum):
    NORMAL = "NORMAL"
    CRITICAL = "CRITICAL"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


def utc_now() -> datetime:
    """Default clock."""
    return datetime.now(UTC)


def json_ready(value: Any) -> Any:  # noqa: ANN401
    """Convert Decimals, datetimes, enums and nested containers for JSON output."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Mapping):
        return {str(k): json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_ready(v) for v in value]
    return value


def _parse_decimal(raw: Any, message: str, field_name: str) -> Decimal:  # noqa: ANN401
    if isinstance(raw, bool):
        raise StructuralError(message, field_name)
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError) as e:
        raise StructuralError(message, field_name) from e
    if not value.is_finite():
        raise StructuralError(message, field_name)
    return value


def _parse_timestamp(raw: Any) -> datetime:  # noqa: ANN401
    """Accept datetimes, ISO-8601 strings or epoch milliseconds."""
    try:
        if isinstance(raw, datetime):
            parsed = raw
        elif isinstance(raw, (int, float, Decimal)) and not isinstance(raw, bool):
            parsed = datetime.fromtimestamp(float(raw) / 1000, tz=UTC)
        elif isinstance(raw, str):
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        else:
            raise TypeError(type(raw).__name__)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        raise StructuralError("Invalid signal timestamp", "timestamp") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class Signal:
    """A proposed trade as received from a strategy.

    Prices and amounts are ``Decimal``. ``amount`` and ``leverage`` are
    optional; a missing ``amount`` lets the position sizer derive one.
    """

    symbol: str
    side: Side
    entry_price: Decimal
    stop_loss: Decimal
    take_profit: Decimal
    confidence: Decimal
    amount: Decimal | None = None
    leverage: Decimal | None = None
    timestamp: datetime | None = None
    signal_id: str | None = None

    _ALIASES = {
        "symbol": ("symbol",),
        "side": ("side", "action"),
        "entry_price": ("entry_price", "entry", "entryPrice"),
        "stop_loss": ("stop_loss", "stopLoss"),
        "take_profit": ("take_profit", "takeProfit"),
        "confidence": ("confidence",),
        "amount": ("amount",),
        "leverage": ("leverage",),
        "timestamp": ("timestamp",),
        "signal_id": ("signal_id", "id", "signalId"),
    }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Signal":
        """Parse a signal from a wire mapping.

        Both camelCase wire keys (``entry``, ``stopLoss``, ``takeProfit``,
        ``action``) and snake_case names are accepted.

        Raises:
            StructuralError: If the mapping is missing fields or holds
                values of the wrong shape.
        """
        if not isinstance(data, Mapping):
            raise StructuralError("Signal must be a mapping")

        values: dict[str, Any] = {}
        for name, aliases in cls._ALIASES.items():
            for alias in aliases:
                if data.get(alias) is not None:
                    values[name] = data[alias]
                    break

        required = ("symbol", "side", "entry_price", "stop_loss", "take_profit", "confidence")
        missing = [name for name in required if name not in values]
        if missing:
            raise StructuralError("Missing required signal fields", ",".join(missing))

        try:
            side = Side(str(values["side"]).upper())
        except ValueError as e:
            raise StructuralError("Invalid signal action", "side") from e

        amount = values.get("amount")
        leverage = values.get("leverage")
        timestamp = values.get("timestamp")
        signal_id = values.get("signal_id")
        return cls(
            symbol=str(values["symbol"]),
            side=side,
            entry_price=_parse_decimal(values["entry_price"], "Invalid price values", "entry_price"),
            stop_loss=_parse_decimal(values["stop_loss"], "Invalid price values", "stop_loss"),
            take_profit=_parse_decimal(
                values["take_profit"], "Invalid price values", "take_profit"),
            confidence=_parse_decimal(
                values["confidence"], "Invalid confidence value", "confidence"),
            amount=None if amount is None else _parse_decimal(
                amount, "Invalid signal amount", "amount"),
            leverage=None if leverage is None else _parse_decimal(
                leverage, "Invalid leverage value", "leverage"),
            timestamp=None if timestamp is None else _parse_timestamp(timestamp),
            signal_id=None if signal_id is None else str(signal_id),
        )

    @property
    def stop_distance_ratio(self) -> Decimal:
        """``|entry - stop_loss| / entry``."""
        return abs(self.entry_price - self.stop_loss) / self.entry_price

    @property
    def base_asset(self) -> str:
        return self.symbol.split("/")[0]

    def to_dict(self) -> dict[str, Any]:
        return {f.name: json_ready(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class AdjustedSignal(Signal):
    """Copy of a ``Signal`` whose amount may have been reduced by the sizer."""

    original_amount: Decimal | None = None

    @classmethod
    def from_signal(cls, signal: Signal) -> "AdjustedSignal":
        values = {f.name: getattr(signal, f.name) for f in fields(Signal)}
        return cls(**values, original_amount=signal.amount)

    def with_amount(self, amount: Decimal) -> "AdjustedSignal":
        """Return a copy carrying ``amount``; the amount never grows past the request."""
        if self.original_amount is not None and amount > self.original_amount:
            amount = self.original_amount
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["amount"] = amount
        return AdjustedSignal(**values)


@dataclass(frozen=True)
class Position:
    """An open trade as reported by storage. ``position_size`` is notional."""

    symbol: str
    side: Side
    position_size: Decimal
    entry_price: Decimal = Decimal(0)
    opened_at: datetime | None = None
    trade_id: str | None = None

    @property
    def base_asset(self) -> str:
        return self.symbol.split("/")[0]


@dataclass(frozen=True)
class Trade:
    """A trade opened or closed during the current day."""

    symbol: str
    profit: Decimal | None = None
    closed_at: datetime | None = None
    trade_id: str | None = None


@dataclass(frozen=True)
class AccountSnapshot:
    portfolio_value: Decimal
    peak_portfolio_value: Decimal | None = None


@dataclass(frozen=True)
class MarketAnomaly:
    """An anomaly the market-data collaborator flagged for an instrument."""

    symbol: str
    kind: str
    description: str = ""


@dataclass(frozen=True)
class ThreatRecord:
    """A suspicious-activity or anomaly report about an account."""

    account_id: str
    kind: str
    description: str = ""
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "account_id": self.account_id,
            "kind": self.kind,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class RiskAlert:
    """An immutable alert appended to the alert log."""

    severity: AlertSeverity
    message: str
    data: Mapping[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "message": self.message,
            "data": json_ready(self.data),
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class RiskIssue:
    """One error recorded against a verdict."""

    kind: ErrorKind
    stage: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "stage": self.stage, "message": self.message}

    def to_exception(self) -> RiskGateError:
        """Exception equivalent of this issue."""
        if self.kind is ErrorKind.STRUCTURAL:
            return StructuralError(self.message)
        if self.kind is ErrorKind.RISK_LIMIT:
            return RiskLimitError(self.message, self.stage)
        if self.kind is ErrorKind.COLLABORATOR_UNAVAILABLE:
            return CollaboratorUnavailableError(self.stage, "assess", self.message)
        if self.kind is ErrorKind.CIRCUIT_OPEN:
            return CircuitOpenError(self.message)
        return ValidationFailedError(self.message)


@dataclass
class StageResult:
    """Outcome of a single pipeline stage."""

    stage: str
    errors: list[RiskIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    def add_error(self, message: str, kind: ErrorKind = ErrorKind.RISK_LIMIT) -> None:
        self.errors.append(RiskIssue(kind=kind, stage=self.stage, message=message))

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    @property
    def passed(self) -> bool:
        return not self.errors


@dataclass(frozen=True)
class RiskVerdict:
    """Result of ``validate_signal``. Owned by the caller once returned."""

    valid: bool
    warnings: tuple[str, ...]
    issues: tuple[RiskIssue, ...]
    risk_score: Decimal
    adjusted_signal: AdjustedSignal | None
    account_id: str
    validated_at: datetime
    signal_id: str | None = None
    metrics: Mapping[str, Any] = field(default_factory=dict)

    @property
    def errors(self) -> list[str]:
        return [issue.message for issue in self.issues]

    @property
    def error_kinds(self) -> list[ErrorKind]:
        return [issue.kind for issue in self.issues]

    def raise_if_invalid(self) -> None:
        """Raise the first error as an exception for callers preferring exceptions."""
        if not self.valid and self.issues:
            raise self.issues[0].to_exception()

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            "validated_at": self.validated_at,
            "account_id": self.account_id,
            "signal_id": self.signal_id,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "valid": self.valid,
            "warnings": list(self.warnings),
            "errors": self.errors,
            "issues": [issue.to_dict() for issue in self.issues],
            "risk_score": str(self.risk_score),
            "adjusted_signal": None if self.adjusted_signal is None
            else self.adjusted_signal.to_dict(),
            "metadata": json_ready(self.metadata),
            "metrics": json_ready(self.metrics),
        }


@dataclass
class DailyMetrics:
    """Per-process counters for the current daily window."""

    window_start: datetime
    trades: int = 0
    total_risk: Decimal = Decimal(0)
    realized_pnl: Decimal = Decimal(0)
    unrealized_pnl: Decimal = Decimal(0)
    max_drawdown: Decimal = Decimal(0)

    def to_dict(self) -> dict[str, Any]:
        return {f.name: json_ready(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class ResourceMetrics:
    """Most recent process resource sample."""

    memory_usage: Decimal = Decimal(0)
    cpu_usage: Decimal = Decimal(0)
    active_connections: int = 0
    requests_per_minute: int = 0
    sampled_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {f.name: json_ready(getattr(self, f.name)) for f in fields(self)}


@dataclass(frozen=True)
class ThreatMetrics:
    """Snapshot of the threat bookkeeping."""

    suspicious_activities: tuple[ThreatRecord, ...] = ()
    failed_attempts: Mapping[str, int] = field(default_factory=dict)
    anomalies: tuple[ThreatRecord, ...] = ()
    last_analysis_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "suspicious_activities": len(self.suspicious_activities),
            "failed_attempts": dict(self.failed_attempts),
            "anomalies": len(self.anomalies),
            "last_analysis_at": json_ready(self.last_analysis_at),
        }


@dataclass(frozen=True)
class RiskSummary:
    """Read-only aggregate returned by ``get_risk_summary``."""

    account_id: str
    active_trades: int
    daily_trades: int
    current_drawdown: Decimal
    daily_loss: Decimal
    limits: Mapping[str, Any]
    risk_level: RiskLevel
    circuit_breaker: Mapping[str, Any]
    resource_status: ResourceStatus
    threat_level: ThreatLevel
    alerts: Sequence[RiskAlert]
    daily_metrics: Mapping[str, Any]
    config: Mapping[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {f.name: json_ready(getattr(self, f.name)) for f in fields(self)}


def format_decimal(value: Decimal) -> str:
    """Render a Decimal without exponent notation or trailing zeros."""
    return format(value.normalize(), "f")
