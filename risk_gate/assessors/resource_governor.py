"""Process resource gate fed by the resource monitor."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

import psutil

from ..core.models import ResourceMetrics, ResourceStatus, StageResult
from ..core.risk_context import ResourceMetricsStore
from ..logger_service import LoggerService
from ..risk_config import RiskConfig
from .base import AssessmentRequest, RiskAssessor


@dataclass(frozen=True)
class ResourceUsage:
    """Raw host readings; ratios are fractions of 1."""

    memory_usage: Decimal
    cpu_usage: Decimal
    active_connections: int


def psutil_sampler() -> ResourceUsage:
    """Read memory, CPU and socket usage through psutil.

    ``cpu_percent(interval=None)`` is non-blocking and compares against the
    previous call, so the first reading after start-up may be 0.
    """
    cpu_usage = psutil.cpu_percent(interval=None)
    memory_usage = psutil.virtual_memory().percent
    try:
        connections = len(psutil.Process().net_connections(kind="inet"))
    except (psutil.AccessDenied, OSError):
        connections = 0
    return ResourceUsage(
        memory_usage=Decimal(str(memory_usage)) / 100,
        cpu_usage=Decimal(str(cpu_usage)) / 100,
        active_connections=connections,
    )


def resource_status(metrics: ResourceMetrics, config: RiskConfig) -> ResourceStatus:
    if metrics.memory_usage > config.max_memory_usage or metrics.cpu_usage > config.max_cpu_usage:
        return ResourceStatus.CRITICAL
    return ResourceStatus.NORMAL


class ResourceGovernor(RiskAssessor):
    """Fail signals while the last resource sample is over quota.

    ``assess`` only reads the stored sample; ``sample`` is called by the
    resource monitor.
    """

    stage_name = "resources"

    def __init__(
        self,
        logger_service: LoggerService,
        resource_metrics: ResourceMetricsStore,
        sampler: Callable[[], ResourceUsage] = psutil_sampler,
    ) -> None:
        super().__init__(logger_service)
        self.resource_metrics = resource_metrics
        self.sampler = sampler

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        config = request.config
        metrics = await self.resource_metrics.snapshot()

        if metrics.memory_usage > config.max_memory_usage:
            result.add_error(f"High memory usage: {metrics.memory_usage * 100:.1f}%")
        if metrics.cpu_usage > config.max_cpu_usage:
            result.add_error(f"High CPU usage: {metrics.cpu_usage * 100:.1f}%")
        if metrics.active_connections > config.max_connections:
            result.add_error(f"Too many active connections: {metrics.active_connections}")
        if metrics.requests_per_minute > config.max_requests_per_minute:
            result.add_error(f"Request rate too high: {metrics.requests_per_minute}/min")

        result.metrics["resource_sampled_at"] = metrics.sampled_at
        return result

    async def sample(self, now: datetime) -> ResourceMetrics:
        """Take a fresh reading and publish it to the shared store."""
        usage = self.sampler()
        metrics = ResourceMetrics(
            memory_usage=usage.memory_usage,
            cpu_usage=usage.cpu_usage,
            active_connections=usage.active_connections,
            requests_per_minute=await self.resource_metrics.requests_per_minute(now),
            sampled_at=now,
        )
        await self.resource_metrics.update(metrics)
        self.logger.debug(
            "System Resources: CPU=%.1f%%, Memory=%.1f%%",
            float(metrics.cpu_usage * 100),
            float(metrics.memory_usage * 100),
            source_module=self._source_module,
            context={
                "connections": metrics.active_connections,
                "requests_per_minute": metrics.requests_per_minute,
            })
        return metrics
