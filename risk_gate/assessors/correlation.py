"""Correlation between the candidate instrument and open positions."""

from decimal import Decimal

from ..core.collaborators import call_collaborator, collaborator_decimal
from ..core.models import Position, Signal, StageResult
from ..interfaces.market_data_interface import MarketDataService
from ..logger_service import LoggerService
from ..utils.correlation_utils import max_correlation_with
from .base import AssessmentRequest, RiskAssessor

MAX_OVERLAPPING_POSITIONS = 3
PRICE_HISTORY_LIMIT = 100


def overlapping_positions(positions: list[Position], signal: Signal) -> list[Position]:
    """Positions whose pair shares a base asset with the candidate, either way round."""
    candidate_base = signal.base_asset
    return [
        p for p in positions
        if candidate_base in p.symbol or p.base_asset in signal.symbol
    ]


class CorrelationRiskAssessor(RiskAssessor):
    """Flag instrument overlap and high return correlation with open positions."""

    stage_name = "correlation"

    def __init__(self, logger_service: LoggerService, market_data: MarketDataService) -> None:
        super().__init__(logger_service)
        self.market_data = market_data

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        positions = await request.active_positions()

        similar = overlapping_positions(positions, request.signal)
        if similar:
            result.add_warning(f"Similar positions detected: {len(similar)}")
        if len(similar) >= MAX_OVERLAPPING_POSITIONS:
            result.add_error("Too many correlated positions")

        correlation = await self._estimate_correlation(request, positions)
        if correlation > request.config.correlation_limit:
            result.add_warning(f"High correlation detected: {correlation * 100:.1f}%")

        result.metrics.update({
            "overlapping_positions": len(similar),
            "correlation": correlation,
        })
        return result

    async def _estimate_correlation(
        self,
        request: AssessmentRequest,
        positions: list[Position],
    ) -> Decimal:
        symbol = request.signal.symbol
        others = sorted({p.symbol for p in positions} - {symbol})
        if not others:
            return Decimal(0)

        price_histories: dict[str, list[float]] = {}
        for s in [symbol, *others]:
            history = await call_collaborator(
                self.market_data.get_price_history(s, PRICE_HISTORY_LIMIT),
                collaborator="market_data",
                operation="get_price_history",
                timeout_s=request.config.collaborator_timeout_s)
            price_histories[s] = [
                float(collaborator_decimal(
                    price, collaborator="market_data", operation="get_price_history"))
                for price in history or []
            ]

        correlation = max_correlation_with(symbol, price_histories)
        self.logger.debug(
            "Estimated return correlation",
            source_module=self._source_module,
            context={"symbol": symbol, "against": others, "correlation": correlation})
        return Decimal(str(round(correlation, 6)))
