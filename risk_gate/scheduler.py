"""Background monitors refreshing the shared risk state.

Four independent loops: risk metrics, resource sampling, threat sweep and
circuit breaker timeout. Each reads its interval from the current config on
every iteration and survives errors in its own tick.
"""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import timedelta
from decimal import Decimal
from typing import Any

from .assessors.resource_governor import ResourceGovernor
from .core.models import AlertSeverity, RiskAlert
from .core.risk_context import RiskContext
from .logger_service import LoggerService
from .risk_config import RiskConfig

APPROACH_FRACTION = Decimal("0.8")
TOTAL_RISK_MULTIPLIER = 10
RESOURCE_TRIP_MARGIN = Decimal("0.05")


class RiskMonitorScheduler:
    """Own the four periodic monitor tasks."""

    def __init__(
        self,
        context: RiskContext,
        resource_governor: ResourceGovernor,
        config_provider: Callable[[], RiskConfig],
        logger_service: LoggerService,
    ) -> None:
        self.context = context
        self.resource_governor = resource_governor
        self._config_provider = config_provider
        self.logger = logger_service
        self._source_module = self.__class__.__name__
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    async def start(self) -> None:
        """Start every monitor loop."""
        if self.is_running:
            self.logger.warning(
                "RiskMonitorScheduler already started.", source_module=self._source_module)
            return

        monitors: dict[str, tuple[Callable[[RiskConfig], float], Callable[[], Awaitable[None]]]] = {
            "risk_metrics": (lambda c: c.risk_monitoring_interval_s, self.run_risk_metrics_check),
            "resources": (lambda c: c.resource_monitoring_interval_s, self.run_resource_check),
            "threats": (lambda c: c.threat_detection_interval_s, self.run_threat_sweep),
            "circuit_breaker": (
                lambda c: c.circuit_breaker_monitoring_interval_s,
                self.run_circuit_breaker_check),
        }
        for name, (interval, tick) in monitors.items():
            self._tasks[name] = asyncio.create_task(
                self._run_periodic(name, interval, tick), name=f"risk-monitor-{name}")
        self.logger.info(
            "Risk monitoring started",
            source_module=self._source_module,
            context={"monitors": list(monitors)})

    async def stop(self) -> None:
        """Cancel the monitor loops and wait for them to finish."""
        for task in self._tasks.values():
            task.cancel()
        for name, task in self._tasks.items():
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                self.logger.exception(
                    "Error stopping %s monitor", name, source_module=self._source_module)
        self._tasks.clear()
        self.logger.info("Risk monitoring stopped", source_module=self._source_module)

    async def _run_periodic(
        self,
        name: str,
        interval: Callable[[RiskConfig], float],
        tick: Callable[[], Awaitable[None]],
    ) -> None:
        while True:
            try:
                await asyncio.sleep(interval(self._config_provider()))
                await tick()
            except asyncio.CancelledError:
                break
            except Exception:
                self.logger.exception(
                    "Error in %s monitor", name, source_module=self._source_module)

    async def _raise_alert(
        self,
        severity: AlertSeverity,
        message: str,
        data: dict[str, Any],
    ) -> None:
        self.logger.warning(
            "Risk alert [%s]: %s",
            severity.value,
            message,
            source_module=self._source_module,
            context=data)
        await self.context.alerts.emit(RiskAlert(
            severity=severity, message=message, data=data, created_at=self.context.clock()))

    async def run_risk_metrics_check(self) -> None:
        """Roll the daily window if needed and refresh aggregate risk figures."""
        config = self._config_provider()
        closed = await self.context.daily.reset_if_new_day()
        if closed is not None:
            self.logger.info(
                "Daily risk metrics reset at day boundary",
                source_module=self._source_module,
                context={"closed_window": closed.to_dict()})

        metrics = await self.context.daily.refresh()
        self.logger.debug(
            "Risk metrics refreshed", source_module=self._source_module, context=metrics.to_dict())

        if metrics.max_drawdown > config.max_drawdown * APPROACH_FRACTION:
            await self._raise_alert(AlertSeverity.WARNING, "Approaching maximum drawdown", {
                "current": str(metrics.max_drawdown),
                "limit": str(config.max_drawdown),
            })

        total_risk_limit = config.max_risk_per_trade * TOTAL_RISK_MULTIPLIER
        if metrics.total_risk > total_risk_limit:
            await self._raise_alert(AlertSeverity.HIGH, "High total risk exposure", {
                "total": str(metrics.total_risk),
                "limit": str(total_risk_limit),
            })

    async def run_resource_check(self) -> None:
        """Sample resources, warn near quota and trip the breaker on exhaustion."""
        config = self._config_provider()
        metrics = await self.resource_governor.sample(self.context.clock())

        ratio_checks = (
            ("memory", metrics.memory_usage, config.max_memory_usage),
            ("CPU", metrics.cpu_usage, config.max_cpu_usage),
        )
        for label, usage, limit in ratio_checks:
            if usage > limit * APPROACH_FRACTION:
                await self._raise_alert(AlertSeverity.WARNING, f"High {label} usage detected", {
                    "usage": str(usage),
                    "limit": str(limit),
                })

        count_checks = (
            ("active connections", metrics.active_connections, config.max_connections),
            ("request rate", metrics.requests_per_minute, config.max_requests_per_minute),
        )
        for label, value, limit in count_checks:
            if value > limit * APPROACH_FRACTION:
                await self._raise_alert(AlertSeverity.WARNING, f"High {label} detected", {
                    "value": value,
                    "limit": limit,
                })

        exhausted = [
            label for label, usage, limit in ratio_checks
            if usage > limit + RESOURCE_TRIP_MARGIN
        ]
        if exhausted:
            await self.context.circuit_breaker.trip(
                f"Resource exhaustion: {', '.join(exhausted)}",
                source=self._source_module,
                data={
                    "memory_usage": str(metrics.memory_usage),
                    "cpu_usage": str(metrics.cpu_usage),
                })

    async def run_threat_sweep(self) -> None:
        """Evict stale threat records and alert on accumulated activity."""
        config = self._config_provider()
        now = self.context.clock()
        evicted_suspicious, evicted_anomalies = await self.context.threats.sweep(
            now,
            record_lookback=timedelta(seconds=config.threat_lookback_s),
            attempt_window=timedelta(seconds=config.lockout_duration_s))
        if evicted_suspicious or evicted_anomalies:
            self.logger.debug(
                "Evicted stale threat records",
                source_module=self._source_module,
                context={"suspicious": evicted_suspicious, "anomalies": evicted_anomalies})

        threats = await self.context.threats.snapshot()
        suspicious_count = len(threats.suspicious_activities)
        if suspicious_count > config.suspicious_activity_threshold:
            await self._raise_alert(AlertSeverity.HIGH, "Multiple suspicious activities detected", {
                "count": suspicious_count,
                "threshold": config.suspicious_activity_threshold,
            })

        anomaly_count = len(threats.anomalies)
        if anomaly_count:
            severity = (
                AlertSeverity.HIGH if anomaly_count >= config.anomaly_threshold
                else AlertSeverity.WARNING
            )
            await self._raise_alert(severity, "Anomalies detected in system", {
                "count": anomaly_count,
                "latest": threats.anomalies[-1].to_dict(),
            })

    async def run_circuit_breaker_check(self) -> None:
        """Re-arm the breaker once its cooldown has elapsed."""
        if await self.context.circuit_breaker.maybe_reset():
            self.logger.debug(
                "Circuit breaker re-armed by monitor", source_module=self._source_module)
