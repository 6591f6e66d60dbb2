"""Shared mutable state read by the pipeline and refreshed by the monitors.

Each store guards its own data with its own ``asyncio.Lock``. Store methods
never await anything else while holding their lock, so no two store locks
are ever held together.
"""

import asyncio
from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime, timedelta
from decimal import Decimal

from ..interfaces.alert_sink_interface import AlertSink
from ..logger_service import LoggerService
from ..risk_config import RiskConfig
from .alerting import AlertLog
from .circuit_breaker import CircuitBreaker
from .models import DailyMetrics, ResourceMetrics, ThreatMetrics, ThreatRecord, utc_now

MAX_THREAT_RECORDS = 1000
REQUEST_WINDOW = timedelta(minutes=1)


class DailyMetricsStore:
    """Counters for the current daily window plus the latest per-account figures."""

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = asyncio.Lock()
        self._metrics = DailyMetrics(window_start=clock())
        self._account_drawdowns: dict[str, Decimal] = {}
        self._account_realized_pnl: dict[str, Decimal] = {}

    async def snapshot(self) -> DailyMetrics:
        async with self._lock:
            return replace(self._metrics)

    async def increment_trades(self) -> None:
        async with self._lock:
            self._metrics.trades += 1

    async def add_risk(self, risk: Decimal) -> None:
        if risk <= 0:
            return
        async with self._lock:
            self._metrics.total_risk += risk

    async def record_drawdown(self, account_id: str, drawdown: Decimal) -> None:
        async with self._lock:
            self._account_drawdowns[account_id] = drawdown

    async def record_realized_pnl(self, account_id: str, pnl: Decimal) -> None:
        async with self._lock:
            self._account_realized_pnl[account_id] = pnl

    async def refresh(self) -> DailyMetrics:
        """Fold the per-account figures into the window totals.

        ``max_drawdown`` only ever grows within a window.
        """
        async with self._lock:
            latest = max(self._account_drawdowns.values(), default=Decimal(0))
            self._metrics.max_drawdown = max(self._metrics.max_drawdown, latest)
            self._metrics.realized_pnl = sum(
                self._account_realized_pnl.values(), Decimal(0))
            return replace(self._metrics)

    async def account_drawdown(self, account_id: str) -> Decimal | None:
        async with self._lock:
            return self._account_drawdowns.get(account_id)

    async def reset(self) -> DailyMetrics:
        """Start a new window; returns the metrics of the window just closed.

        Per-account figures are dropped with the window, so only accounts seen
        since the reset are held.
        """
        async with self._lock:
            closed = self._metrics
            self._metrics = DailyMetrics(window_start=self._clock())
            self._account_realized_pnl.clear()
            self._account_drawdowns.clear()
            return closed

    async def reset_if_new_day(self) -> DailyMetrics | None:
        """Reset when the clock's UTC date differs from the window start date."""
        async with self._lock:
            now = self._clock()
            if now.date() == self._metrics.window_start.date():
                return None
            closed = self._metrics
            self._metrics = DailyMetrics(window_start=now)
            self._account_realized_pnl.clear()
            self._account_drawdowns.clear()
            return closed


class ResourceMetricsStore:
    """Latest resource sample and the request timestamps used for the request rate."""

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._metrics = ResourceMetrics()
        self._requests: deque[datetime] = deque()

    async def snapshot(self) -> ResourceMetrics:
        async with self._lock:
            return self._metrics

    async def record_request(self, now: datetime) -> None:
        async with self._lock:
            self._requests.append(now)
            self._evict_requests(now)

    async def requests_per_minute(self, now: datetime) -> int:
        async with self._lock:
            self._evict_requests(now)
            return len(self._requests)

    def _evict_requests(self, now: datetime) -> None:
        cutoff = now - REQUEST_WINDOW
        while self._requests and self._requests[0] <= cutoff:
            self._requests.popleft()

    async def update(self, metrics: ResourceMetrics) -> None:
        async with self._lock:
            self._metrics = metrics


class ThreatMetricsStore:
    """Bounded threat records and timestamped failed attempts per account."""

    def __init__(self, max_records: int = MAX_THREAT_RECORDS) -> None:
        self._lock = asyncio.Lock()
        self._suspicious: deque[ThreatRecord] = deque(maxlen=max_records)
        self._anomalies: deque[ThreatRecord] = deque(maxlen=max_records)
        self._failed_attempts: dict[str, deque[datetime]] = {}
        self._last_analysis_at: datetime | None = None

    async def add_suspicious(self, records: Iterable[ThreatRecord]) -> int:
        """Append records not already held; returns how many were added."""
        async with self._lock:
            return self._append_new(self._suspicious, records)

    async def add_anomalies(self, records: Iterable[ThreatRecord]) -> int:
        async with self._lock:
            return self._append_new(self._anomalies, records)

    @staticmethod
    def _append_new(target: deque[ThreatRecord], records: Iterable[ThreatRecord]) -> int:
        added = 0
        for record in records:
            if record not in target:
                target.append(record)
                added += 1
        return added

    async def record_failed_attempt(self, account_id: str, now: datetime) -> None:
        async with self._lock:
            self._failed_attempts.setdefault(account_id, deque()).append(now)

    async def failed_attempts(self, account_id: str, now: datetime, window: timedelta) -> int:
        """Count the account's attempts inside ``window``, dropping older ones."""
        async with self._lock:
            attempts = self._failed_attempts.get(account_id)
            if not attempts:
                return 0
            cutoff = now - window
            while attempts and attempts[0] <= cutoff:
                attempts.popleft()
            if not attempts:
                del self._failed_attempts[account_id]
                return 0
            return len(attempts)

    async def clear_failed_attempts(self, account_id: str) -> None:
        async with self._lock:
            self._failed_attempts.pop(account_id, None)

    async def sweep(
        self,
        now: datetime,
        record_lookback: timedelta,
        attempt_window: timedelta,
    ) -> tuple[int, int]:
        """Evict stale records and attempts.

        Returns:
            Number of evicted (suspicious, anomaly) records.
        """
        async with self._lock:
            cutoff = now - record_lookback
            evicted_suspicious = self._evict(self._suspicious, cutoff)
            evicted_anomalies = self._evict(self._anomalies, cutoff)

            attempt_cutoff = now - attempt_window
            for account_id in list(self._failed_attempts):
                attempts = self._failed_attempts[account_id]
                while attempts and attempts[0] <= attempt_cutoff:
                    attempts.popleft()
                if not attempts:
                    del self._failed_attempts[account_id]

            self._last_analysis_at = now
            return evicted_suspicious, evicted_anomalies

    @staticmethod
    def _evict(records: deque[ThreatRecord], cutoff: datetime) -> int:
        kept = [record for record in records if record.timestamp > cutoff]
        evicted = len(records) - len(kept)
        if evicted:
            records.clear()
            records.extend(kept)
        return evicted

    async def snapshot(self) -> ThreatMetrics:
        async with self._lock:
            return ThreatMetrics(
                suspicious_activities=tuple(self._suspicious),
                failed_attempts={k: len(v) for k, v in self._failed_attempts.items()},
                anomalies=tuple(self._anomalies),
                last_analysis_at=self._last_analysis_at,
            )


class RiskContext:
    """Explicit owner of all state shared by the request path and the monitors."""

    def __init__(
        self,
        config: RiskConfig,
        logger_service: LoggerService,
        alert_sink: AlertSink | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.clock = clock
        self.alerts = AlertLog(
            logger_service,
            sink=alert_sink,
            max_alerts=config.max_alerts,
            publish_timeout_s=config.collaborator_timeout_s)
        self.circuit_breaker = CircuitBreaker(
            self.alerts,
            logger_service,
            timeout_s=config.circuit_breaker_timeout_s,
            max_failures=config.circuit_breaker_max_failures,
            clock=clock)
        self.daily = DailyMetricsStore(clock)
        self.resources = ResourceMetricsStore()
        self.threats = ThreatMetricsStore()

    def apply_config(self, config: RiskConfig) -> None:
        """Propagate settings that live inside the stores."""
        self.circuit_breaker.configure(
            config.circuit_breaker_timeout_s, config.circuit_breaker_max_failures)
        self.alerts.publish_timeout_s = config.collaborator_timeout_s
        self.alerts.resize(config.max_alerts)
