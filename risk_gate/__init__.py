"""Risk gate between trading signal generation and order execution."""

from .core.models import (
    AdjustedSignal,
    AlertSeverity,
    Position,
    RiskAlert,
    RiskSummary,
    RiskVerdict,
    Side,
    Signal,
    Trade,
)
from .exceptions import (
    CircuitOpenError,
    CollaboratorUnavailableError,
    ConfigurationError,
    ErrorKind,
    RiskGateError,
    RiskLimitError,
    StructuralError,
    ValidationFailedError,
)
from .risk_config import RiskConfig
from .risk_engine import RiskEngine

__all__ = [
    "AdjustedSignal",
    "AlertSeverity",
    "CircuitOpenError",
    "CollaboratorUnavailableError",
    "ConfigurationError",
    "ErrorKind",
    "Position",
    "RiskAlert",
    "RiskConfig",
    "RiskEngine",
    "RiskGateError",
    "RiskLimitError",
    "RiskSummary",
    "RiskVerdict",
    "Side",
    "Signal",
    "StructuralError",
    "Trade",
    "ValidationFailedError",
]
