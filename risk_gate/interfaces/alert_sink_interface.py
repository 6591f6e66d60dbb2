"""Interface definition for alert delivery."""

import abc

from ..core.models import RiskAlert


class AlertSink(abc.ABC):
    """Abstract Base Class for alert delivery (chat, email, webhook...).

    ``publish`` is awaited from a background task with a timeout, so a slow
    sink never delays signal validation.
    """

    @abc.abstractmethod
    async def publish(self, alert: RiskAlert) -> None:
        """Deliver one alert."""
        raise NotImplementedError


class NullAlertSink(AlertSink):
    """Sink used when no delivery channel is configured."""

    async def publish(self, alert: RiskAlert) -> None:
        return None
