"""Per-account daily trade count and realized loss limits."""

from datetime import date
from decimal import Decimal

from ..core.collaborators import collaborator_decimal
from ..core.models import StageResult, Trade
from ..core.risk_context import DailyMetricsStore
from ..logger_service import LoggerService
from .base import AssessmentRequest, RiskAssessor


def realized_loss(trades: list[Trade]) -> Decimal:
    """Sum of losses (as a positive number) over the given trades."""
    return sum(
        (abs(t.profit) for t in trades if t.profit is not None and t.profit < 0),
        Decimal(0),
    )


def realized_pnl(trades: list[Trade]) -> Decimal:
    return sum((t.profit for t in trades if t.profit is not None), Decimal(0))


class DailyLimitsTracker(RiskAssessor):
    """Trade count and realized loss for the current UTC day."""

    stage_name = "daily_limits"

    def __init__(self, logger_service: LoggerService, daily_metrics: DailyMetricsStore) -> None:
        super().__init__(logger_service)
        self.daily_metrics = daily_metrics

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        config = request.config
        today = request.now.date()

        daily_trades = int(await request.storage_call(
            "count_daily_trades", request.account_id, today))
        if daily_trades >= config.max_daily_trades:
            result.add_error(f"Daily trade limit reached: {daily_trades}")

        trades = await self._daily_trades(request, today)
        loss_ratio = realized_loss(trades) / request.portfolio_value
        if loss_ratio > config.max_daily_loss:
            result.add_error(f"Daily loss limit exceeded: {loss_ratio * 100:.1f}%")

        await self.daily_metrics.record_realized_pnl(request.account_id, realized_pnl(trades))
        result.metrics.update({"daily_trades": daily_trades, "daily_loss": loss_ratio})
        return result

    async def _daily_trades(self, request: AssessmentRequest, day: date) -> list[Trade]:
        trades = list(await request.storage_call("find_daily_trades", request.account_id, day))
        for trade in trades:
            if trade.profit is not None:
                collaborator_decimal(
                    trade.profit, collaborator="storage", operation="find_daily_trades")
        return trades
