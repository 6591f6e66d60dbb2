"""Public entry point of the risk gate.

``RiskEngine`` owns the shared ``RiskContext``, the validation pipeline and
the monitor scheduler, and exposes validation, reporting and administrative
operations.
"""

from collections.abc import Callable, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any

from .assessors.daily_limits import realized_loss
from .assessors.drawdown import account_values, compute_drawdown
from .assessors.resource_governor import ResourceUsage, psutil_sampler, resource_status
from .config_manager import ConfigManager
from .core.collaborators import call_collaborator
from .core.models import (
    HealthStatus,
    ResourceStatus,
    RiskAlert,
    RiskLevel,
    RiskSummary,
    RiskVerdict,
    Signal,
    ThreatLevel,
    ThreatMetrics,
    ThreatRecord,
    utc_now,
)
from .core.risk_context import RiskContext
from .exceptions import ConfigurationError
from .interfaces.alert_sink_interface import AlertSink
from .interfaces.market_data_interface import MarketDataService
from .interfaces.storage_interface import RiskStorage
from .interfaces.threat_feed_interface import ThreatFeed
from .logger_service import LoggerService
from .pipeline import SignalValidationPipeline
from .risk_config import RiskConfig
from .scheduler import RiskMonitorScheduler

RECENT_ALERTS_IN_SUMMARY = 10


def risk_level(drawdown: Decimal, daily_loss: Decimal) -> RiskLevel:
    """Bucket drawdown and daily loss fractions into a summary risk level."""
    if drawdown > Decimal("0.08") or daily_loss > Decimal("0.04"):
        return RiskLevel.CRITICAL
    if drawdown > Decimal("0.05") or daily_loss > Decimal("0.02"):
        return RiskLevel.HIGH
    if drawdown > Decimal("0.02") or daily_loss > Decimal("0.01"):
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def threat_level(threats: ThreatMetrics) -> ThreatLevel:
    """Bucket recorded suspicious activity and anomaly counts into a threat level."""
    suspicious = len(threats.suspicious_activities)
    anomalies = len(threats.anomalies)
    if suspicious > 10 or anomalies > 5:
        return ThreatLevel.HIGH
    if suspicious > 5 or anomalies > 2:
        return ThreatLevel.MEDIUM
    return ThreatLevel.LOW


class RiskEngine:
    """Risk gate between signal generation and order execution."""

    def __init__(
        self,
        storage: RiskStorage,
        market_data: MarketDataService,
        threat_feed: ThreatFeed,
        logger_service: LoggerService,
        config: RiskConfig | None = None,
        config_manager: ConfigManager | None = None,
        alert_sink: AlertSink | None = None,
        clock: Callable[[], datetime] = utc_now,
        resource_sampler: Callable[[], ResourceUsage] = psutil_sampler,
    ) -> None:
        """Initialize the engine.

        Args:
            storage: Trade and account persistence.
            market_data: Per-instrument analytics.
            threat_feed: Per-account threat reports.
            logger_service: Logging service shared by every component.
            config: Explicit limits; built from ``config_manager`` when omitted.
            config_manager: Optional YAML-backed configuration used for
                ``reload_config``.
            alert_sink: Optional alert delivery channel.
            clock: Source of the current UTC time.
            resource_sampler: Reads host resource usage for the resource monitor.
        """
        self.logger = logger_service
        self._source_module = self.__class__.__name__
        self.storage = storage
        self.config_manager = config_manager
        if config is None:
            config = (
                RiskConfig.from_config_manager(config_manager) if config_manager else RiskConfig()
            )
        self._config = config
        self.clock = clock

        self.context = RiskContext(config, logger_service, alert_sink=alert_sink, clock=clock)
        self.pipeline = SignalValidationPipeline(
            self.context,
            storage,
            market_data,
            threat_feed,
            logger_service,
            resource_sampler=resource_sampler)
        self.scheduler = RiskMonitorScheduler(
            self.context,
            self.pipeline.resource_governor,
            lambda: self._config,
            logger_service)

        self.logger.info(
            "RiskEngine initialized",
            source_module=self._source_module,
            context={"environment": config_manager.environment if config_manager else None})

    @classmethod
    def from_config_file(
        cls,
        config_path: str,
        storage: RiskStorage,
        market_data: MarketDataService,
        threat_feed: ThreatFeed,
        alert_sink: AlertSink | None = None,
        environment: str | None = None,
    ) -> "RiskEngine":
        """Build an engine, its logger and its limits from a YAML file."""
        config_manager = ConfigManager(config_path, environment=environment)
        if not config_manager.is_valid():
            raise ConfigurationError("Invalid configuration file", config_manager.validation_errors)
        logger_service = LoggerService(config_manager)
        return cls(
            storage,
            market_data,
            threat_feed,
            logger_service,
            config_manager=config_manager,
            alert_sink=alert_sink)

    @property
    def config(self) -> RiskConfig:
        return self._config

    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.context.alerts.drain()

    async def validate_signal(
        self,
        signal: Signal | Mapping[str, Any],
        account_id: str,
        portfolio_value: Decimal | float | str,
    ) -> RiskVerdict:
        """Validate a signal; always returns a verdict for pipeline-level failures."""
        return await self.pipeline.validate(signal, account_id, portfolio_value, self._config)

    async def get_risk_summary(self, account_id: str) -> RiskSummary:
        """Aggregate the account's current risk position.

        Read-only: unlike validation, this never moves the stored peak value.

        Raises:
            CollaboratorUnavailableError: If storage fails or times out.
        """
        config = self._config
        today = self.clock().date()

        async def storage_call(operation: str, *args: Any) -> Any:  # noqa: ANN401
            return await call_collaborator(
                getattr(self.storage, operation)(*args),
                collaborator="storage",
                operation=operation,
                timeout_s=config.collaborator_timeout_s)

        positions = await storage_call("find_active_trades", account_id)
        daily_trades = int(await storage_call("count_daily_trades", account_id, today))
        current, peak = account_values(await storage_call("get_account", account_id))
        trades = await storage_call("find_daily_trades", account_id, today)

        drawdown = compute_drawdown(current, peak)
        daily_loss = realized_loss(list(trades)) / current if current > 0 else Decimal(0)

        resources = await self.context.resources.snapshot()
        threats = await self.context.threats.snapshot()
        daily = await self.context.daily.snapshot()

        return RiskSummary(
            account_id=account_id,
            active_trades=len(positions),
            daily_trades=daily_trades,
            current_drawdown=drawdown,
            daily_loss=daily_loss,
            limits={
                "max_concurrent_trades": config.max_concurrent_trades,
                "max_daily_trades": config.max_daily_trades,
                "max_drawdown": config.max_drawdown,
                "max_daily_loss": config.max_daily_loss,
            },
            risk_level=risk_level(drawdown, daily_loss),
            circuit_breaker=await self.context.circuit_breaker.status(),
            resource_status=resource_status(resources, config),
            threat_level=threat_level(threats),
            alerts=tuple(await self.context.alerts.recent(RECENT_ALERTS_IN_SUMMARY)),
            daily_metrics=daily.to_dict(),
            config=config.to_dict())

    async def get_health(self) -> dict[str, Any]:
        """Report engine health; never raises."""
        now = self.clock()
        try:
            config = self._config
            breaker = await self.context.circuit_breaker.status()
            resources = await self.context.resources.snapshot()
            threats = await self.context.threats.snapshot()
            daily = await self.context.daily.snapshot()
            resources_state = resource_status(resources, config)

            degraded = breaker["is_open"] or resources_state is ResourceStatus.CRITICAL
            status = HealthStatus.DEGRADED if degraded else HealthStatus.HEALTHY
            return {
                "status": status.value,
                "timestamp": now.isoformat(),
                "summary": {
                    "monitoring": self.scheduler.is_running,
                    "environment": self.config_manager.environment if self.config_manager else None,
                    "alerts": await self.context.alerts.count(),
                    "daily_metrics": daily.to_dict(),
                },
                "circuit_breaker": breaker,
                "resources": {**resources.to_dict(), "status": resources_state.value},
                "threats": {**threats.to_dict(), "level": threat_level(threats).value},
            }
        except Exception as e:
            self.logger.exception("Health check failed", source_module=self._source_module)
            return {
                "status": HealthStatus.UNHEALTHY.value,
                "timestamp": now.isoformat(),
                "error": str(e),
            }

    def update_config(self, changes: Mapping[str, Any] | None = None, **kwargs: Any) -> RiskConfig:
        """Validate and atomically swap in new limits.

        Raises:
            ConfigurationError: On unknown keys or invalid values; the current
                config stays in place.
        """
        merged = {**(changes or {}), **kwargs}
        new_config = self._config.with_updates(merged)
        self._apply_config(new_config)
        self.logger.info(
            "Risk manager configuration updated",
            source_module=self._source_module,
            context={key: str(value) for key, value in merged.items()})
        return new_config

    def reload_config(self) -> list[str]:
        """Re-read the YAML file and rebuild the limits.

        Returns:
            Validation errors; empty when the reload succeeded.
        """
        if self.config_manager is None:
            return ["No configuration file is attached to this engine"]
        errors = self.config_manager.reload_config()
        if errors:
            return errors
        try:
            new_config = RiskConfig.from_config_manager(self.config_manager)
        except ConfigurationError as e:
            self.logger.error(
                "Reloaded configuration rejected: %s", e, source_module=self._source_module)
            return e.errors or [str(e)]
        self._apply_config(new_config)
        self.logger.info("Risk configuration reloaded", source_module=self._source_module)
        return []

    def _apply_config(self, config: RiskConfig) -> None:
        self._config = config
        self.context.apply_config(config)

    async def reset_daily_metrics(self) -> None:
        closed = await self.context.daily.reset()
        self.logger.info(
            "Daily risk metrics reset",
            source_module=self._source_module,
            context={"closed_window": closed.to_dict()})

    async def record_failed_attempt(self, account_id: str) -> None:
        """Count a failed authentication or validation attempt against the account."""
        await self.context.threats.record_failed_attempt(account_id, self.clock())

    async def record_suspicious_activity(
        self,
        account_id: str,
        kind: str,
        description: str = "",
    ) -> None:
        await self.context.threats.add_suspicious([ThreatRecord(
            account_id=account_id, kind=kind, description=description, timestamp=self.clock())])

    async def record_anomaly(self, account_id: str, kind: str, description: str = "") -> None:
        await self.context.threats.add_anomalies([ThreatRecord(
            account_id=account_id, kind=kind, description=description, timestamp=self.clock())])

    async def trip_circuit_breaker(self, reason: str) -> None:
        """Administrative trip."""
        await self.context.circuit_breaker.trip(reason, source="admin")

    async def reset_circuit_breaker(self) -> bool:
        """Administrative reset; returns False if the breaker was not tripped."""
        return await self.context.circuit_breaker.force_reset("manual reset")

    async def get_alerts(self, limit: int = 100, offset: int = 0) -> list[RiskAlert]:
        """Return alerts newest first."""
        return await self.context.alerts.page(limit=limit, offset=offset)
