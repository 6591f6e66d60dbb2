"""Common plumbing for the pipeline stages."""

import abc
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..core.collaborators import call_collaborator
from ..core.models import AdjustedSignal, Position, Signal, StageResult
from ..interfaces.storage_interface import RiskStorage
from ..logger_service import LoggerService
from ..risk_config import RiskConfig


@dataclass
class AssessmentRequest:
    """Everything a stage needs to assess one signal.

    Built once per ``validate_signal`` call; ``config`` is the snapshot the
    call started with. Open positions are fetched on first use and shared
    between the stages that need them.
    """

    signal: Signal
    account_id: str
    portfolio_value: Decimal
    config: RiskConfig
    now: datetime
    storage: RiskStorage
    adjusted_signal: AdjustedSignal = field(init=False)
    _positions: list[Position] | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.adjusted_signal = AdjustedSignal.from_signal(self.signal)

    async def active_positions(self) -> list[Position]:
        if self._positions is None:
            positions = await call_collaborator(
                self.storage.find_active_trades(self.account_id),
                collaborator="storage",
                operation="find_active_trades",
                timeout_s=self.config.collaborator_timeout_s)
            self._positions = list(positions)
        return self._positions

    async def storage_call(self, operation: str, *args: Any) -> Any:  # noqa: ANN401
        """Invoke ``storage.<operation>(*args)`` under the collaborator timeout."""
        method = getattr(self.storage, operation)
        return await call_collaborator(
            method(*args),
            collaborator="storage",
            operation=operation,
            timeout_s=self.config.collaborator_timeout_s)


class RiskAssessor(abc.ABC):
    """Base class for a pipeline stage."""

    stage_name: str = "stage"

    def __init__(self, logger_service: LoggerService) -> None:
        self.logger = logger_service
        self._source_module = self.__class__.__name__

    @abc.abstractmethod
    async def assess(self, request: AssessmentRequest) -> StageResult:
        """Assess the request and report errors, warnings and metrics."""
        raise NotImplementedError

    def _new_result(self) -> StageResult:
        return StageResult(stage=self.stage_name)
