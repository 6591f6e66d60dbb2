"""Position sizing against the per-trade risk budget."""

from decimal import Decimal

from ..core.models import StageResult, format_decimal
from ..risk_config import RiskConfig
from .base import AssessmentRequest, RiskAssessor


def max_safe_size(
    entry_price: Decimal,
    stop_distance_ratio: Decimal,
    portfolio_value: Decimal,
    config: RiskConfig,
) -> Decimal | None:
    """``(max_risk_per_trade * portfolio) / (stop_distance_ratio * entry)``.

    Returns None when the stop distance is zero (no bound can be derived).
    """
    denominator = stop_distance_ratio * entry_price
    if denominator == 0:
        return None
    return (config.max_risk_per_trade * portfolio_value) / denominator


class PositionSizer(RiskAssessor):
    """Shrink oversized requests and reject sizes outside the absolute bounds.

    The adjusted amount is never larger than the requested one. A request
    without an amount receives the maximum safe size.
    """

    stage_name = "position_sizing"

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        config = request.config
        signal = request.signal
        adjusted = request.adjusted_signal

        max_size = max_safe_size(
            signal.entry_price, signal.stop_distance_ratio, request.portfolio_value, config)
        requested = signal.amount

        if requested is None:
            if max_size is not None:
                adjusted = adjusted.with_amount(max_size)
        elif max_size is not None and requested > max_size:
            adjusted = adjusted.with_amount(max_size)
            result.add_warning(
                f"Position size adjusted from {format_decimal(requested)} "
                f"to {format_decimal(max_size)}")
            self.logger.info(
                "Clamped position size to risk budget",
                source_module=self._source_module,
                context={"requested": str(requested), "adjusted": str(max_size)})

        resulting = adjusted.amount
        if resulting is not None and resulting < config.min_position_size:
            result.add_error(f"Position size too small: {format_decimal(resulting)}")

        ceiling = request.portfolio_value * config.max_position_size
        if requested is not None and requested > ceiling:
            result.add_error(f"Position size too large: {format_decimal(requested)}")

        if signal.leverage is not None and signal.leverage > config.max_leverage:
            result.add_error(f"Leverage too high: {format_decimal(signal.leverage)}x")

        request.adjusted_signal = adjusted
        result.metrics.update({
            "max_safe_size": max_size,
            "requested_amount": requested,
            "adjusted_amount": resulting,
        })
        return result
