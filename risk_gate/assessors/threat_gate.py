"""Account threat checks: failed-attempt lockout and threat feed reports."""

from datetime import timedelta

from ..core.collaborators import call_collaborator
from ..core.models import StageResult, ThreatRecord
from ..core.risk_context import ThreatMetricsStore
from ..interfaces.threat_feed_interface import ThreatFeed
from ..logger_service import LoggerService
from .base import AssessmentRequest, RiskAssessor


class ThreatGate(RiskAssessor):
    """Block locked-out accounts and surface recent threat reports.

    The failed-attempt count only includes attempts inside
    ``lockout_duration_s``. Feed records are copied into the shared threat
    metrics so the threat monitor sees them.
    """

    stage_name = "threat"

    def __init__(
        self,
        logger_service: LoggerService,
        threat_feed: ThreatFeed,
        threat_metrics: ThreatMetricsStore,
    ) -> None:
        super().__init__(logger_service)
        self.threat_feed = threat_feed
        self.threat_metrics = threat_metrics

    async def assess(self, request: AssessmentRequest) -> StageResult:
        result = self._new_result()
        config = request.config

        failed_attempts = await self.threat_metrics.failed_attempts(
            request.account_id,
            request.now,
            timedelta(seconds=config.lockout_duration_s))
        result.metrics["failed_attempts"] = failed_attempts
        if failed_attempts >= config.max_failed_attempts:
            result.add_error("Too many failed attempts - account temporarily locked")
            self.logger.warning(
                "Account %s locked out after %s failed attempts",
                request.account_id,
                failed_attempts,
                source_module=self._source_module)

        suspicious = self._recent(request, await call_collaborator(
            self.threat_feed.suspicious_activity(request.account_id),
            collaborator="threat_feed",
            operation="suspicious_activity",
            timeout_s=config.collaborator_timeout_s))
        if suspicious:
            await self.threat_metrics.add_suspicious(suspicious)
            result.add_warning(f"Suspicious activity detected: {len(suspicious)} patterns")

        anomalies = self._recent(request, await call_collaborator(
            self.threat_feed.anomalies(request.account_id),
            collaborator="threat_feed",
            operation="anomalies",
            timeout_s=config.collaborator_timeout_s))
        if anomalies:
            await self.threat_metrics.add_anomalies(anomalies)
            result.add_warning(f"Anomalies detected: {len(anomalies)}")

        result.metrics.update({"suspicious": len(suspicious), "anomalies": len(anomalies)})
        return result

    @staticmethod
    def _recent(request: AssessmentRequest, records: list[ThreatRecord] | None) -> list[ThreatRecord]:
        cutoff = request.now - timedelta(seconds=request.config.threat_lookback_s)
        return [r for r in records or [] if r.timestamp > cutoff]
