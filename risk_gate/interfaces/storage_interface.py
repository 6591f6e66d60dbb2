"""Interface definition for the persistence collaborator."""

import abc
from datetime import date
from decimal import Decimal

from ..core.models import AccountSnapshot, Position, Trade


class RiskStorage(abc.ABC):
    """Abstract Base Class for the store of trades and account values.

    Implementations should:
    1. Be implemented asynchronously.
    2. Raise on failure rather than return partial data; the caller applies
       its own timeout and treats any exception as the store being unavailable.
    3. Treat ``update_peak_value`` as an idempotent upsert.
    """

    @abc.abstractmethod
    async def find_active_trades(self, account_id: str) -> list[Position]:
        """Return the account's open positions.

        Args:
            account_id: The account whose positions are requested.

        Returns:
            Open positions, possibly empty.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def count_daily_trades(self, account_id: str, day: date) -> int:
        """Return how many trades the account opened on ``day`` (UTC)."""
        raise NotImplementedError

    @abc.abstractmethod
    async def find_daily_trades(self, account_id: str, day: date) -> list[Trade]:
        """Return the trades the account opened or closed on ``day`` (UTC)."""
        raise NotImplementedError

    @abc.abstractmethod
    async def get_account(self, account_id: str) -> AccountSnapshot:
        """Return the account's current and peak portfolio value."""
        raise NotImplementedError

    @abc.abstractmethod
    async def update_peak_value(self, account_id: str, value: Decimal) -> None:
        """Persist a new peak portfolio value for the account."""
        raise NotImplementedError
