"""Advisory market conditions for the candidate instrument."""

from ..core.collaborators import call_collaborator, collaborator_decimal
from ..core.models import StageResult
from ..interfaces.market_data_interface import MarketDataService
from ..logger_service import LoggerService
from .base import AssessmentRequest, RiskAssessor


class MarketRiskAssessor(RiskAssessor):
    """Volatility, liquidity, trading hours and anomaly flags.

    Findings are warnings only; they feed the risk score. A failing market
    data collaborator is still reported as an error.
    """

    stage_name = "market"

    def __init__(self, logger_service: LoggerService, market_data: MarketDataService) -> None:
        super().__init__(logger_service)
        self.market_data = market_data

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        config = request.config
        symbol = request.signal.symbol
        timeout_s = config.collaborator_timeout_s

        volatility = collaborator_decimal(
            await call_collaborator(
                self.market_data.estimate_volatility(symbol),
                collaborator="market_data",
                operation="estimate_volatility",
                timeout_s=timeout_s),
            collaborator="market_data",
            operation="estimate_volatility")
        result.metrics["volatility"] = volatility
        if volatility > config.volatility_limit:
            result.add_warning(f"High volatility detected: {volatility * 100:.1f}%")

        liquidity = collaborator_decimal(
            await call_collaborator(
                self.market_data.estimate_liquidity(symbol),
                collaborator="market_data",
                operation="estimate_liquidity",
                timeout_s=timeout_s),
            collaborator="market_data",
            operation="estimate_liquidity")
        result.metrics["liquidity"] = liquidity
        if liquidity < config.liquidity_threshold:
            result.add_warning(f"Low liquidity detected: ${liquidity:,.0f}")

        market_closed = await call_collaborator(
            self.market_data.is_market_closed(symbol),
            collaborator="market_data",
            operation="is_market_closed",
            timeout_s=timeout_s)
        result.metrics["market_closed"] = bool(market_closed)
        if market_closed:
            result.add_warning("Market may be closed or have reduced liquidity")

        anomalies = await call_collaborator(
            self.market_data.detect_anomalies(symbol),
            collaborator="market_data",
            operation="detect_anomalies",
            timeout_s=timeout_s)
        result.metrics["anomalies"] = len(anomalies or [])
        if anomalies:
            result.add_warning(f"Market anomalies detected: {len(anomalies)}")
            self.logger.info(
                "Market anomalies flagged for %s",
                symbol,
                source_module=self._source_module,
                context={"kinds": [getattr(a, "kind", str(a)) for a in anomalies]})

        return result
