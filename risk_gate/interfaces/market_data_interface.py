"""Interface definition for market analytics consumed by the risk checks."""

import abc

from ..core.models import MarketAnomaly


class MarketDataService(abc.ABC):
    """Abstract Base Class for components providing per-instrument analytics.

    Numeric estimates may be returned as ``float``, ``int`` or ``Decimal``;
    callers convert them to ``Decimal`` and treat NaN or infinity as a
    failed lookup.
    """

    @abc.abstractmethod
    async def estimate_volatility(self, symbol: str) -> float:
        """Estimate the instrument's volatility as a fraction (0.25 == 25%).

        Args:
            symbol: The trading pair symbol (e.g., "BTC/USDT").
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def estimate_liquidity(self, symbol: str) -> float:
        """Estimate tradable liquidity in quote currency units."""
        raise NotImplementedError

    @abc.abstractmethod
    async def is_market_closed(self, symbol: str) -> bool:
        """Return True when the instrument cannot currently be traded."""
        raise NotImplementedError

    @abc.abstractmethod
    async def detect_anomalies(self, symbol: str) -> list[MarketAnomaly]:
        """Return anomalies currently flagged for the instrument."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_price_history(self, symbol: str, limit: int) -> list[float]:
        """Return up to ``limit`` most recent closing prices, oldest first.

        Used to estimate the return correlation between instruments. An empty
        list means no history is available.
        """
        raise NotImplementedError
