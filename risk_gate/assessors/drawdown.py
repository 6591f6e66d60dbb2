"""Drawdown protection and its circuit breaker trigger."""

from decimal import Decimal

from ..core.circuit_breaker import CircuitBreaker
from ..core.collaborators import collaborator_decimal
from ..core.models import AccountSnapshot, StageResult
from ..core.risk_context import DailyMetricsStore
from ..logger_service import LoggerService
from .base import AssessmentRequest, RiskAssessor


def compute_drawdown(current: Decimal, peak: Decimal) -> Decimal:
    """``(peak - current) / peak`` floored at zero."""
    if peak <= 0 or current >= peak:
        return Decimal(0)
    return (peak - current) / peak


def account_values(account: AccountSnapshot) -> tuple[Decimal, Decimal]:
    """Return (current, peak) with the peak defaulting to the current value."""
    current = collaborator_decimal(
        account.portfolio_value, collaborator="storage", operation="get_account")
    peak = current
    if account.peak_portfolio_value is not None:
        peak = collaborator_decimal(
            account.peak_portfolio_value, collaborator="storage", operation="get_account")
    return current, peak


class DrawdownProtector(RiskAssessor):
    """Track each account's peak value and block trading past the drawdown limit.

    A drawdown beyond ``circuit_breaker_threshold`` also trips the breaker.
    """

    stage_name = "drawdown"

    def __init__(
        self,
        logger_service: LoggerService,
        circuit_breaker: CircuitBreaker,
        daily_metrics: DailyMetricsStore,
    ) -> None:
        super().__init__(logger_service)
        self.circuit_breaker = circuit_breaker
        self.daily_metrics = daily_metrics

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        config = request.config

        account = await request.storage_call("get_account", request.account_id)
        current, peak = account_values(account)

        if current >= peak:
            await request.storage_call("update_peak_value", request.account_id, current)
            drawdown = Decimal(0)
        else:
            drawdown = compute_drawdown(current, peak)

        await self.daily_metrics.record_drawdown(request.account_id, drawdown)
        result.metrics.update({"drawdown": drawdown, "peak_value": max(peak, current)})

        if drawdown > config.max_drawdown:
            result.add_error(f"Maximum drawdown exceeded: {drawdown * 100:.1f}%")

        if drawdown > config.circuit_breaker_threshold:
            await self.circuit_breaker.trip(
                "High drawdown detected",
                source=self._source_module,
                data={"account_id": request.account_id, "drawdown": str(drawdown)})
            result.add_error("Circuit breaker triggered due to high drawdown")

        return result

