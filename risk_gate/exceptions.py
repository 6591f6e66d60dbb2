"""Standard exceptions for the risk gate."""

from enum import Enum


class ErrorKind(str, Enum):
    """Category attached to every error recorded in a verdict."""

    STRUCTURAL = "structural"
    RISK_LIMIT = "risk_limit"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"
    CIRCUIT_OPEN = "circuit_open"
    VALIDATION_FAILED = "validation_failed"


class RiskGateError(Exception):
    """Base class for risk gate specific errors."""

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED


class StructuralError(RiskGateError):
    """Raised when a signal is malformed and cannot be assessed."""

    kind = ErrorKind.STRUCTURAL

    def __init__(self, reason: str, field_name: str | None = None) -> None:
        """Initialize StructuralError.

        Args:
            reason: Human readable description of the defect
            field_name: Optional name of the offending signal field
        """
        super().__init__(reason)
        self.reason = reason
        self.field_name = field_name


class RiskLimitError(RiskGateError):
    """Raised when a quantitative risk threshold is breached."""

    kind = ErrorKind.RISK_LIMIT

    def __init__(self, reason: str, stage_name: str) -> None:
        """Initialize RiskLimitError.

        Args:
            reason: The reason for the limit breach
            stage_name: The name of the stage that detected the breach
        """
        super().__init__(f"Risk limit breached at {stage_name}: {reason}")
        self.reason = reason
        self.stage_name = stage_name


class CollaboratorUnavailableError(RiskGateError):
    """Raised when storage, market data or the threat feed fails or times out."""

    kind = ErrorKind.COLLABORATOR_UNAVAILABLE

    def __init__(
        self,
        collaborator: str,
        operation: str,
        message: str | None = None,
    ) -> None:
        """Initialize CollaboratorUnavailableError.

        Args:
            collaborator: Name of the collaborator (e.g. "storage")
            operation: The operation that failed (e.g. "find_active_trades")
            message: Optional custom error message
        """
        self.collaborator = collaborator
        self.operation = operation
        if message is None:
            message = f"{collaborator} unavailable during '{operation}'"
        super().__init__(message)


class CircuitOpenError(RiskGateError):
    """Raised on the fast-fail path while the circuit breaker is tripped."""

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(self, message: str = "Circuit breaker is open - trading suspended") -> None:
        """Initialize CircuitOpenError."""
        super().__init__(message)


class ValidationFailedError(RiskGateError):
    """Raised when the pipeline itself fails unexpectedly."""

    kind = ErrorKind.VALIDATION_FAILED


class ConfigurationError(RiskGateError):
    """Exception raised for errors in the configuration."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        """Initialize ConfigurationError.

        Args:
            message: Summary of the problem
            errors: Optional list of individual validation errors
        """
        self.errors = errors or []
        if self.errors:
            message = f"{message}: {'; '.join(self.errors)}"
        super().__init__(message)
