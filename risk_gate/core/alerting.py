"""Bounded alert log with fire-and-forget delivery to an alert sink."""

import asyncio
from collections import deque

from ..interfaces.alert_sink_interface import AlertSink, NullAlertSink
from ..logger_service import LoggerService
from .models import RiskAlert


class AlertLog:
    """FIFO-trimmed log of risk alerts.

    ``emit`` appends under the log's own lock, releases it, and then hands the
    alert to the sink on a background task bounded by ``publish_timeout_s``.
    """

    def __init__(
        self,
        logger_service: LoggerService,
        sink: AlertSink | None = None,
        max_alerts: int = 1000,
        publish_timeout_s: float = 5.0,
    ) -> None:
        self.logger = logger_service
        self._source_module = self.__class__.__name__
        self._sink = sink or NullAlertSink()
        self._alerts: deque[RiskAlert] = deque(maxlen=max_alerts)
        self._lock = asyncio.Lock()
        self._background_tasks: set[asyncio.Task] = set()
        self.publish_timeout_s = publish_timeout_s

    async def emit(self, alert: RiskAlert) -> None:
        """Record ``alert`` and schedule its delivery."""
        async with self._lock:
            self._alerts.append(alert)

        task = asyncio.create_task(self._publish(alert))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def _publish(self, alert: RiskAlert) -> None:
        try:
            await asyncio.wait_for(self._sink.publish(alert), timeout=self.publish_timeout_s)
        except TimeoutError:
            self.logger.error(
                "Alert sink timed out (> %ss) publishing alert",
                self.publish_timeout_s,
                source_module=self._source_module,
                context={"severity": alert.severity.value, "alert": alert.message})
        except Exception:
            self.logger.exception(
                "Alert sink failed publishing alert",
                source_module=self._source_module,
                context={"severity": alert.severity.value, "alert": alert.message})

    def resize(self, max_alerts: int) -> None:
        """Change the capacity, keeping the most recent alerts."""
        if self._alerts.maxlen != max_alerts:
            self._alerts = deque(self._alerts, maxlen=max_alerts)

    async def recent(self, limit: int = 10) -> list[RiskAlert]:
        """Return up to ``limit`` most recent alerts, oldest first."""
        async with self._lock:
            if limit <= 0:
                return []
            return list(self._alerts)[-limit:]

    async def page(self, limit: int = 100, offset: int = 0) -> list[RiskAlert]:
        """Return alerts newest first, skipping ``offset`` entries."""
        async with self._lock:
            newest_first = list(reversed(self._alerts))
        return newest_first[offset:offset + limit]

    async def count(self) -> int:
        async with self._lock:
            return len(self._alerts)

    async def drain(self) -> None:
        """Wait for pending deliveries to finish."""
        if self._background_tasks:
            self.logger.debug(
                "Waiting for %s alert deliveries to complete...",
                len(self._background_tasks),
                source_module=self._source_module)
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
