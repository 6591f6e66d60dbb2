"""Circuit breaker guarding the whole validation pipeline.

Two states: ARMED (signals are assessed normally) and TRIPPED (every signal
fails fast). A trip sets a cooldown deadline; once the clock passes it the
breaker re-arms on whichever comes first, the next validation or the next
monitor tick. Both paths go through ``maybe_reset`` which is idempotent.
"""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from ..logger_service import LoggerService
from .alerting import AlertLog
from .models import AlertSeverity, BreakerState, RiskAlert, utc_now


class CircuitBreaker:
    """Two-state breaker with timed auto-reset."""

    def __init__(
        self,
        alert_log: AlertLog,
        logger_service: LoggerService,
        timeout_s: float = 3600.0,
        max_failures: int = 3,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the breaker in the ARMED state.

        Args:
            alert_log: Destination for trip and reset alerts.
            logger_service: Logger used for state transitions.
            timeout_s: Cooldown applied from the latest trip.
            max_failures: Trip count (without an intervening reset) at which
                trips are reported as escalated.
            clock: Source of the current UTC time.
        """
        self.alert_log = alert_log
        self.logger = logger_service
        self._source_module = self.__class__.__name__
        self._clock = clock
        self._lock = asyncio.Lock()

        self.timeout_s = timeout_s
        self.max_failures = max_failures

        self._state = BreakerState.ARMED
        self._failure_count = 0
        self._last_trip_at: datetime | None = None
        self._cooldown_deadline: datetime | None = None
        self._trip_reason = ""
        self._trip_source = ""

    def configure(self, timeout_s: float, max_failures: int) -> None:
        """Apply new settings; an active cooldown keeps its deadline."""
        self.timeout_s = timeout_s
        self.max_failures = max_failures

    async def trip(
        self,
        reason: str,
        source: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Move to TRIPPED and push the cooldown deadline out from now.

        Tripping an already tripped breaker counts as another failure and
        restarts the cooldown.
        """
        async with self._lock:
            now = self._clock()
            deadline = now + timedelta(seconds=self.timeout_s)
            already_tripped = self._state is BreakerState.TRIPPED
            self._state = BreakerState.TRIPPED
            self._failure_count += 1
            self._last_trip_at = now
            self._cooldown_deadline = deadline
            self._trip_reason = reason
            self._trip_source = source
            failure_count = self._failure_count

        escalated = failure_count >= self.max_failures
        payload = {
            "reason": reason,
            "source": source,
            "failure_count": failure_count,
            "cooldown_deadline": deadline.isoformat(),
            "escalated": escalated,
            **(data or {}),
        }
        if already_tripped:
            self.logger.warning(
                "Circuit breaker re-tripped by %s while open. Reason: %s",
                source,
                reason,
                source_module=self._source_module,
                context=payload)
        self.logger.critical(
            "CIRCUIT BREAKER TRIPPED by %s. Reason: %s",
            source,
            reason,
            source_module=self._source_module,
            context=payload)
        await self.alert_log.emit(RiskAlert(
            severity=AlertSeverity.CRITICAL,
            message=f"Circuit breaker tripped: {reason}",
            data=payload,
            created_at=now))

    async def maybe_reset(self, now: datetime | None = None) -> bool:
        """Re-arm if the cooldown has elapsed.

        Returns:
            True only for the call that performed the transition.
        """
        async with self._lock:
            now = now or self._clock()
            if self._state is not BreakerState.TRIPPED:
                return False
            if self._cooldown_deadline is not None and now < self._cooldown_deadline:
                return False
            previous_failures = self._failure_count
            self._reset_locked()

        self.logger.info(
            "Circuit breaker re-armed after cooldown",
            source_module=self._source_module,
            context={"previous_failures": previous_failures})
        await self.alert_log.emit(RiskAlert(
            severity=AlertSeverity.INFO,
            message="Circuit breaker reset",
            data={"previous_failures": previous_failures, "trigger": "cooldown"},
            created_at=now))
        return True

    async def force_reset(self, reason: str = "manual reset") -> bool:
        """Re-arm immediately regardless of the cooldown.

        Returns:
            True if the breaker was tripped.
        """
        async with self._lock:
            if self._state is not BreakerState.TRIPPED:
                return False
            previous_failures = self._failure_count
            self._reset_locked()
            now = self._clock()

        self.logger.warning(
            "Circuit breaker manually reset. Reason: %s",
            reason,
            source_module=self._source_module,
            context={"previous_failures": previous_failures})
        await self.alert_log.emit(RiskAlert(
            severity=AlertSeverity.INFO,
            message="Circuit breaker reset",
            data={"previous_failures": previous_failures, "trigger": reason},
            created_at=now))
        return True

    def _reset_locked(self) -> None:
        self._state = BreakerState.ARMED
        self._failure_count = 0
        self._cooldown_deadline = None
        self._trip_reason = ""
        self._trip_source = ""

    async def is_tripped(self) -> bool:
        """Lazily re-arm if due, then report whether the breaker is open."""
        await self.maybe_reset()
        async with self._lock:
            return self._state is BreakerState.TRIPPED

    async def state(self) -> BreakerState:
        async with self._lock:
            return self._state

    async def status(self) -> dict[str, Any]:
        """Return a JSON-ready view of the breaker."""
        async with self._lock:
            return {
                "state": self._state.value,
                "is_open": self._state is BreakerState.TRIPPED,
                "failure_count": self._failure_count,
                "max_failures": self.max_failures,
                "last_trip_at": self._last_trip_at.isoformat() if self._last_trip_at else None,
                "cooldown_deadline": (
                    self._cooldown_deadline.isoformat() if self._cooldown_deadline else None
                ),
                "reason": self._trip_reason,
                "source": self._trip_source,
            }
