"""Portfolio-level exposure checks."""

from collections import defaultdict
from decimal import Decimal

from ..core.models import Position, Signal, StageResult
from ..risk_config import RiskConfig
from .base import AssessmentRequest, RiskAssessor

HIGH_EXPOSURE_FRACTION = Decimal("0.8")
CONCENTRATION_WARNING = Decimal("0.8")


def trade_risk(signal: Signal, portfolio_value: Decimal, config: RiskConfig) -> Decimal:
    """Fraction of the portfolio lost if the stop is hit.

    Without a requested amount the position is assumed to be sized to the
    per-trade budget.
    """
    stop_distance = signal.stop_distance_ratio
    if stop_distance == 0:
        return Decimal(0)
    position_size = signal.amount or (portfolio_value * config.max_risk_per_trade / stop_distance)
    return position_size * stop_distance / portfolio_value


def concentration(positions: list[Position], signal: Signal) -> Decimal:
    """Largest single-instrument share of exposure once the candidate is added.

    Returns 0 when the account holds nothing yet.
    """
    existing = sum((p.position_size for p in positions), Decimal(0))
    if existing <= 0:
        return Decimal(0)

    by_symbol: dict[str, Decimal] = defaultdict(Decimal)
    for position in positions:
        by_symbol[position.symbol] += position.position_size
    candidate = signal.amount or Decimal(0)
    by_symbol[signal.symbol] += candidate

    total = existing + candidate
    return max(by_symbol.values()) / total


class PortfolioRiskAssessor(RiskAssessor):
    """Exposure ratio, concurrent trades, per-trade risk and concentration."""

    stage_name = "portfolio"

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        config = request.config
        positions = await request.active_positions()

        total_exposure = sum((p.position_size for p in positions), Decimal(0))
        exposure_ratio = total_exposure / request.portfolio_value
        if exposure_ratio > config.max_position_size:
            result.add_error(f"Total exposure exceeds limit: {exposure_ratio * 100:.1f}%")
        elif exposure_ratio > config.max_position_size * HIGH_EXPOSURE_FRACTION:
            result.add_warning(f"High exposure: {exposure_ratio * 100:.1f}%")

        if len(positions) >= config.max_concurrent_trades:
            result.add_error(f"Maximum concurrent trades reached: {len(positions)}")

        risk = trade_risk(request.signal, request.portfolio_value, config)
        if risk > config.max_risk_per_trade:
            result.add_error(f"Trade risk exceeds limit: {risk * 100:.1f}%")

        concentration_ratio = concentration(positions, request.signal)
        if concentration_ratio > CONCENTRATION_WARNING:
            result.add_warning(f"High portfolio concentration: {concentration_ratio * 100:.1f}%")

        result.metrics.update({
            "open_positions": len(positions),
            "total_exposure": total_exposure,
            "exposure_ratio": exposure_ratio,
            "trade_risk": risk,
            "concentration": concentration_ratio,
        })
        return result
