"""Interface definition for the account threat intelligence feed."""

import abc

from ..core.models import ThreatRecord


class ThreatFeed(abc.ABC):
    """Abstract Base Class for a source of per-account threat reports."""

    @abc.abstractmethod
    async def suspicious_activity(self, account_id: str) -> list[ThreatRecord]:
        """Return recent suspicious-activity records for the account."""
        raise NotImplementedError

    @abc.abstractmethod
    async def anomalies(self, account_id: str) -> list[ThreatRecord]:
        """Return recent behavioural anomaly records for the account."""
        raise NotImplementedError
