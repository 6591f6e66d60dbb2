"""Structural validation of an incoming signal."""

import re
from datetime import UTC, datetime
from decimal import Decimal

from ..core.models import Side, Signal, StageResult, format_decimal
from ..exceptions import ErrorKind
from ..logger_service import LoggerService
from ..risk_config import RiskConfig

SYMBOL_PATTERN = re.compile(r"^[A-Z]{2,10}/[A-Z]{2,10}$")
MAX_CONFIDENCE = Decimal(100)


class SignalStructureValidator:
    """Reject signals that are malformed before any risk math runs.

    Every check runs so the caller sees all defects at once; a single failure
    makes the whole pipeline stop after this stage.
    """

    stage_name = "structural"

    def __init__(self, logger_service: LoggerService) -> None:
        self.logger = logger_service
        self._source_module = self.__class__.__name__

    def validate(
        self,
        signal: Signal,
        portfolio_value: Decimal,
        now: datetime,
        config: RiskConfig,
    ) -> StageResult:
        result = StageResult(stage=self.stage_name)

        def fail(message: str) -> None:
            result.add_error(message, ErrorKind.STRUCTURAL)

        if not signal.symbol or signal.side is None or signal.entry_price is None \
                or signal.stop_loss is None or signal.take_profit is None \
                or signal.confidence is None:
            fail("Missing required signal fields")
            return result

        if not isinstance(signal.side, Side):
            fail("Invalid signal action")

        prices = (signal.entry_price, signal.stop_loss, signal.take_profit)
        prices_valid = all(price > 0 for price in prices)
        if not prices_valid:
            fail("Invalid price values")

        if not Decimal(0) <= signal.confidence <= MAX_CONFIDENCE:
            fail("Invalid confidence value")

        if prices_valid and signal.side is Side.BUY:
            if signal.stop_loss >= signal.entry_price or signal.take_profit <= signal.entry_price:
                fail("Invalid BUY signal stop loss or take profit")
        elif prices_valid and signal.side is Side.SELL:
            if signal.stop_loss <= signal.entry_price or signal.take_profit >= signal.entry_price:
                fail("Invalid SELL signal stop loss or take profit")

        if not isinstance(signal.symbol, str) or not SYMBOL_PATTERN.match(signal.symbol):
            fail("Invalid trading symbol")

        timestamp = signal.timestamp
        if timestamp is not None and timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        if timestamp is not None and timestamp > now:
            fail("Future timestamp not allowed")

        if signal.amount is not None and signal.amount <= 0:
            fail("Invalid signal amount")

        if signal.leverage is not None and signal.leverage <= 0:
            fail("Invalid leverage value")

        if portfolio_value is None or portfolio_value <= 0:
            fail("Invalid portfolio value")

        if result.passed and signal.confidence < config.min_confidence_threshold:
            result.add_warning(
                f"Low signal confidence: {format_decimal(signal.confidence)} "
                f"(threshold {format_decimal(config.min_confidence_threshold)})")

        if not result.passed:
            self.logger.warning(
                "Signal failed structural validation",
                source_module=self._source_module,
                context={"signal_id": signal.signal_id, "errors": [e.message for e in result.errors]})
        return result
