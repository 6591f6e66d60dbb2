"""Staged signal validation.

Stage order is fixed: circuit breaker, structure, portfolio, position sizing,
correlation, market, risk score, daily limits, drawdown, threats, resources.
Only a structural failure (or an open breaker) stops the run early; every
other stage runs so the caller sees the complete set of findings.
"""

import asyncio
import contextlib
from collections import Counter
from collections.abc import AsyncIterator, Callable, Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from .assessors.base import AssessmentRequest, RiskAssessor
from .assessors.correlation import CorrelationRiskAssessor
from .assessors.daily_limits import DailyLimitsTracker
from .assessors.drawdown import DrawdownProtector
from .assessors.market import MarketRiskAssessor
from .assessors.portfolio import PortfolioRiskAssessor
from .assessors.position_sizer import PositionSizer
from .assessors.resource_governor import ResourceGovernor, ResourceUsage, psutil_sampler
from .assessors.structural import SignalStructureValidator
from .assessors.threat_gate import ThreatGate
from .core.models import AdjustedSignal, RiskIssue, RiskVerdict, Signal, StageResult
from .core.risk_context import RiskContext
from .exceptions import CircuitOpenError, CollaboratorUnavailableError, ErrorKind, StructuralError
from .interfaces.market_data_interface import MarketDataService
from .interfaces.storage_interface import RiskStorage
from .interfaces.threat_feed_interface import ThreatFeed
from .logger_service import LoggerService
from .risk_config import RiskConfig

MIN_SCORE = Decimal(0)
MAX_SCORE = Decimal(100)
VOLATILITY_BASELINE = Decimal("0.1")
MAX_LEVERAGE_SCORE = Decimal(20)
VALIDATION_FAILED_MESSAGE = "Risk validation failed"


def composite_risk_score(
    signal: Signal,
    portfolio_warnings: int,
    market_warnings: int,
    volatility: Decimal,
) -> Decimal:
    """Weighted heuristic clamped to [0, 100]."""
    score = (Decimal(100) - signal.confidence) * Decimal("0.1")
    score += Decimal(5) * portfolio_warnings
    score += Decimal(3) * market_warnings
    if signal.leverage is not None:
        score += min(signal.leverage * 2, MAX_LEVERAGE_SCORE)
    score += max(Decimal(0), volatility - VOLATILITY_BASELINE) * 100
    return max(MIN_SCORE, min(MAX_SCORE, score))


class SignalValidationPipeline:
    """Run one signal through every risk stage and build the verdict."""

    def __init__(
        self,
        context: RiskContext,
        storage: RiskStorage,
        market_data: MarketDataService,
        threat_feed: ThreatFeed,
        logger_service: LoggerService,
        resource_sampler: Callable[[], ResourceUsage] = psutil_sampler,
    ) -> None:
        self.context = context
        self.storage = storage
        self.logger = logger_service
        self._source_module = self.__class__.__name__
        self._admission_locks: dict[str, asyncio.Lock] = {}
        self._admission_users: Counter[str] = Counter()

        self.structural = SignalStructureValidator(logger_service)
        self.portfolio = PortfolioRiskAssessor(logger_service)
        self.position_sizer = PositionSizer(logger_service)
        self.correlation = CorrelationRiskAssessor(logger_service, market_data)
        self.market = MarketRiskAssessor(logger_service, market_data)
        self.daily_limits = DailyLimitsTracker(logger_service, context.daily)
        self.drawdown = DrawdownProtector(logger_service, context.circuit_breaker, context.daily)
        self.threat_gate = ThreatGate(logger_service, threat_feed, context.threats)
        self.resource_governor = ResourceGovernor(
            logger_service, context.resources, sampler=resource_sampler)

    async def validate(
        self,
        signal: Signal | Mapping[str, Any],
        account_id: str,
        portfolio_value: Decimal | float | str,
        config: RiskConfig,
    ) -> RiskVerdict:
        """Assess ``signal`` for ``account_id`` under the ``config`` snapshot.

        Risk violations, collaborator failures and unexpected faults all come
        back as an invalid verdict. Cancellation propagates to the caller.
        """
        now = self.context.clock()
        await self.context.resources.record_request(now)

        if await self.context.circuit_breaker.is_tripped():
            return self._circuit_open_verdict(signal, account_id, now)

        try:
            verdict = await self._validate_admitted(signal, account_id, portfolio_value, config, now)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.logger.exception(
                "Risk validation error",
                source_module=self._source_module,
                context={"account_id": account_id, "signal_id": _signal_id(signal)})
            verdict = self._failed_verdict(signal, account_id, now, [RiskIssue(
                kind=ErrorKind.VALIDATION_FAILED,
                stage="pipeline",
                message=VALIDATION_FAILED_MESSAGE)])

        if verdict.valid:
            await self.context.threats.clear_failed_attempts(account_id)
        else:
            await self.context.threats.record_failed_attempt(account_id, now)
        return verdict

    @contextlib.asynccontextmanager
    async def _admission_lock(self, account_id: str, config: RiskConfig) -> AsyncIterator[None]:
        """Serialise validations per account; a lock lives only while it has users."""
        if not config.per_account_admission_lock:
            yield
            return
        lock = self._admission_locks.get(account_id)
        if lock is None:
            lock = self._admission_locks[account_id] = asyncio.Lock()
        self._admission_users[account_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._admission_users[account_id] -= 1
            if not self._admission_users[account_id]:
                del self._admission_users[account_id]
                del self._admission_locks[account_id]

    async def _validate_admitted(
        self,
        raw_signal: Signal | Mapping[str, Any],
        account_id: str,
        raw_portfolio_value: Decimal | float | str,
        config: RiskConfig,
        now: datetime,
    ) -> RiskVerdict:
        try:
            signal = raw_signal if isinstance(raw_signal, Signal) else Signal.from_dict(raw_signal)
        except StructuralError as e:
            self.logger.warning(
                "Rejected malformed signal: %s",
                e.reason,
                source_module=self._source_module,
                context={"account_id": account_id, "field": e.field_name})
            return self._failed_verdict(raw_signal, account_id, now, [RiskIssue(
                kind=ErrorKind.STRUCTURAL, stage="structural", message=e.reason)])

        portfolio_value = _to_portfolio_value(raw_portfolio_value)

        structural = self.structural.validate(signal, portfolio_value, now, config)
        if not structural.passed:
            return self._failed_verdict(
                signal, account_id, now, structural.errors, warnings=structural.warnings)

        await self.context.daily.increment_trades()

        async with self._admission_lock(account_id, config):
            request = AssessmentRequest(
                signal=signal,
                account_id=account_id,
                portfolio_value=portfolio_value,
                config=config,
                now=now,
                storage=self.storage)
            return await self._run_stages(request, structural)

    async def _run_stages(self, request: AssessmentRequest, structural: StageResult) -> RiskVerdict:
        results: list[StageResult] = [structural]
        for stage in (self.portfolio, self.position_sizer, self.correlation, self.market):
            results.append(await self._run_stage(stage, request))

        by_name = {r.stage: r for r in results}
        risk_score = composite_risk_score(
            request.signal,
            portfolio_warnings=len(by_name[self.portfolio.stage_name].warnings),
            market_warnings=len(by_name[self.market.stage_name].warnings),
            volatility=by_name[self.market.stage_name].metrics.get("volatility", Decimal(0)))

        for stage in (self.daily_limits, self.drawdown, self.threat_gate, self.resource_governor):
            results.append(await self._run_stage(stage, request))

        issues = tuple(issue for r in results for issue in r.errors)
        warnings = tuple(warning for r in results for warning in r.warnings)
        metrics = {
            f"{r.stage}.{key}": value for r in results for key, value in r.metrics.items()
        }
        valid = not issues

        if valid:
            await self.context.daily.add_risk(
                by_name[self.portfolio.stage_name].metrics.get("trade_risk", Decimal(0)))

        verdict = RiskVerdict(
            valid=valid,
            warnings=warnings,
            issues=issues,
            risk_score=risk_score,
            adjusted_signal=request.adjusted_signal,
            account_id=request.account_id,
            validated_at=request.now,
            signal_id=request.signal.signal_id,
            metrics=metrics)

        self.logger.info(
            "Signal risk validation completed",
            source_module=self._source_module,
            context={
                "signal_id": request.signal.signal_id,
                "account_id": request.account_id,
                "valid": valid,
                "risk_score": str(risk_score),
                "warnings": len(warnings),
                "errors": len(issues),
            })
        return verdict

    async def _run_stage(self, stage: RiskAssessor, request: AssessmentRequest) -> StageResult:
        """Run a stage, turning collaborator failures into a single stage error."""
        try:
            return await stage.assess(request)
        except CollaboratorUnavailableError as e:
            self.logger.error(
                "Stage %s failed closed: %s",
                stage.stage_name,
                e,
                source_module=self._source_module,
                context={
                    "account_id": request.account_id,
                    "collaborator": e.collaborator,
                    "operation": e.operation,
                })
            result = StageResult(stage=stage.stage_name)
            result.add_error(str(e), ErrorKind.COLLABORATOR_UNAVAILABLE)
            return result

    def _circuit_open_verdict(
        self,
        signal: Signal | Mapping[str, Any],
        account_id: str,
        now: datetime,
    ) -> RiskVerdict:
        error = CircuitOpenError()
        self.logger.warning(
            "Rejected signal while circuit breaker is open",
            source_module=self._source_module,
            context={"account_id": account_id, "signal_id": _signal_id(signal)})
        return self._failed_verdict(signal, account_id, now, [RiskIssue(
            kind=error.kind, stage="circuit_breaker", message=str(error))])

    @staticmethod
    def _failed_verdict(
        signal: Signal | Mapping[str, Any],
        account_id: str,
        now: datetime,
        issues: list[RiskIssue],
        warnings: list[str] | None = None,
    ) -> RiskVerdict:
        return RiskVerdict(
            valid=False,
            warnings=tuple(warnings or ()),
            issues=tuple(issues),
            risk_score=MIN_SCORE,
            adjusted_signal=AdjustedSignal.from_signal(signal) if isinstance(signal, Signal) else None,
            account_id=account_id,
            validated_at=now,
            signal_id=_signal_id(signal))


def _signal_id(signal: object) -> str | None:
    if isinstance(signal, Signal):
        return signal.signal_id
    if isinstance(signal, Mapping):
        raw = signal.get("id", signal.get("signal_id"))
        return None if raw is None else str(raw)
    return None


def _to_portfolio_value(raw: Decimal | float | str) -> Decimal:
    """Convert the caller's portfolio value; unusable input becomes 0 (rejected later)."""
    if isinstance(raw, bool) or raw is None:
        return Decimal(0)
    try:
        value = raw if isinstance(raw, Decimal) else Decimal(str(raw))
    except (InvalidOperation, ValueError, TypeError):
        return Decimal(0)
    return value if value.is_finite() else Decimal(0)
