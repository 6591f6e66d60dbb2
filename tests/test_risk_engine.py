"""Tests for the reporting and administrative surface of ``RiskEngine``."""

from decimal import Decimal
from pathlib import Path

import pytest

from risk_gate.assessors.resource_governor import ResourceUsage
from risk_gate.core.models import (
    AccountSnapshot,
    AlertSeverity,
    Position,
    RiskLevel,
    Side,
    ThreatLevel,
    ThreatMetrics,
    ThreatRecord,
    Trade,
)
from risk_gate.exceptions import CollaboratorUnavailableError, ConfigurationError
from risk_gate.risk_config import RiskConfig
from risk_gate.risk_engine import RiskEngine, risk_level, threat_level

CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "risk_gate.yaml"


class TestRiskSummary:
    """``get_risk_summary`` aggregation."""

    @pytest.mark.asyncio
    async def test_summary_reports_account_position(self, engine, storage):
        storage.positions = [Position(symbol="ETH/USDT", side=Side.BUY, position_size=Decimal("500"))]
        storage.daily_trade_count = 3
        storage.daily_trades = [Trade(symbol="ETH/USDT", profit=Decimal("-150"))]
        storage.account = AccountSnapshot(
            portfolio_value=Decimal("9500"), peak_portfolio_value=Decimal("10000"))

        summary = await engine.get_risk_summary("acct-1")

        assert summary.active_trades == 1
        assert summary.daily_trades == 3
        assert summary.current_drawdown == Decimal("0.05")
        assert summary.daily_loss == Decimal("150") / Decimal("9500")
        assert summary.risk_level is RiskLevel.MEDIUM
        assert summary.threat_level is ThreatLevel.LOW
        assert summary.circuit_breaker["state"] == "ARMED"
        assert summary.limits["max_daily_trades"] == 50

    @pytest.mark.asyncio
    async def test_summary_is_idempotent_and_read_only(self, engine, storage):
        storage.account = AccountSnapshot(
            portfolio_value=Decimal("12000"), peak_portfolio_value=Decimal("10000"))

        first = await engine.get_risk_summary("acct-1")
        second = await engine.get_risk_summary("acct-1")

        assert first.to_dict() == second.to_dict()
        assert storage.peak_updates == []

    @pytest.mark.asyncio
    async def test_summary_includes_recent_alerts(self, engine):
        await engine.trip_circuit_breaker("manual halt")

        summary = await engine.get_risk_summary("acct-1")

        assert [a.message for a in summary.alerts] == ["Circuit breaker tripped: manual halt"]
        assert summary.to_dict()["alerts"][0]["severity"] == "CRITICAL"

    @pytest.mark.asyncio
    async def test_summary_surfaces_storage_outage(self, engine, storage):
        storage.fail_on = {"find_active_trades"}

        with pytest.raises(CollaboratorUnavailableError):
            await engine.get_risk_summary("acct-1")


class TestHealth:
    """``get_health`` status reporting."""

    @pytest.mark.asyncio
    async def test_healthy_by_default(self, engine, clock):
        health = await engine.get_health()

        assert health["status"] == "healthy"
        assert health["timestamp"] == clock.now.isoformat()
        assert health["circuit_breaker"]["is_open"] is False
        assert health["resources"]["status"] == "NORMAL"
        assert health["threats"]["level"] == "LOW"
        assert health["summary"]["monitoring"] is False

    @pytest.mark.asyncio
    async def test_degraded_while_breaker_open(self, engine):
        await engine.trip_circuit_breaker("maintenance")

        health = await engine.get_health()

        assert health["status"] == "degraded"

    @pytest.mark.asyncio
    async def test_degraded_on_critical_resources(self, engine, sampler, clock):
        sampler.usage = ResourceUsage(
            memory_usage=Decimal("0.82"), cpu_usage=Decimal("0.1"), active_connections=1)
        await engine.pipeline.resource_governor.sample(clock())

        health = await engine.get_health()

        assert health["status"] == "degraded"
        assert health["resources"]["status"] == "CRITICAL"

    @pytest.mark.asyncio
    async def test_unhealthy_when_report_fails(self, engine, mock_logger):
        async def broken():
            raise RuntimeError("store corrupted")

        engine.context.resources.snapshot = broken

        health = await engine.get_health()

        assert health["status"] == "unhealthy"
        assert health["error"] == "store corrupted"
        assert "Health check failed" in mock_logger.find("EXCEPTION")


class TestConfigUpdates:
    """Runtime configuration changes."""

    def test_update_swaps_config(self, engine):
        old = engine.config

        new = engine.update_config({"max_daily_trades": 10}, max_leverage="5")

        assert engine.config is new
        assert new.max_daily_trades == 10
        assert new.max_leverage == Decimal("5")
        assert old.max_daily_trades == 50

    def test_unknown_key_is_rejected(self, engine):
        old = engine.config

        with pytest.raises(ConfigurationError, match="Unknown risk setting 'max_bananas'"):
            engine.update_config(max_bananas=3)

        assert engine.config is old

    def test_out_of_range_value_is_rejected(self, engine):
        old = engine.config

        with pytest.raises(ConfigurationError):
            engine.update_config(max_drawdown="1.5")

        assert engine.config is old

    @pytest.mark.parametrize("value", ["inf", float("nan")])
    def test_non_finite_timeout_is_rejected(self, engine, value):
        old = engine.config

        with pytest.raises(ConfigurationError):
            engine.update_config(circuit_breaker_timeout_s=value)

        assert engine.config is old
        assert engine.context.circuit_breaker.timeout_s == old.circuit_breaker_timeout_s

    def test_update_propagates_to_breaker(self, engine):
        engine.update_config(circuit_breaker_timeout_s=60, circuit_breaker_max_failures=7)

        assert engine.context.circuit_breaker.timeout_s == 60.0
        assert engine.context.circuit_breaker.max_failures == 7

    @pytest.mark.asyncio
    async def test_alert_capacity_follows_config(self, engine):
        engine.update_config(max_alerts=2)
        for i in range(3):
            await engine.trip_circuit_breaker(f"trip {i}")

        alerts = await engine.get_alerts()

        assert [a.message for a in alerts] == [
            "Circuit breaker tripped: trip 2",
            "Circuit breaker tripped: trip 1",
        ]

    def test_reload_without_file(self, engine):
        assert engine.reload_config() == ["No configuration file is attached to this engine"]

    def test_from_config_file_uses_profile(self, storage, market_data, threat_feed):
        engine = RiskEngine.from_config_file(
            str(CONFIG_PATH), storage, market_data, threat_feed, environment="production")
        try:
            assert engine.config == RiskConfig()
            assert engine.reload_config() == []
        finally:
            engine.logger.close()

    def test_from_config_file_development_profile(self, storage, market_data, threat_feed):
        engine = RiskEngine.from_config_file(
            str(CONFIG_PATH), storage, market_data, threat_feed, environment="development")
        try:
            assert engine.config.max_daily_trades == 100
            assert engine.config.risk_monitoring_interval_s == 60.0
            assert engine.config.min_position_size == Decimal("10")
        finally:
            engine.logger.close()


class TestAdministration:
    """Manual controls and external reports."""

    @pytest.mark.asyncio
    async def test_manual_trip_and_reset(self, engine, alert_sink):
        await engine.trip_circuit_breaker("operator halt")
        assert (await engine.get_health())["circuit_breaker"]["source"] == "admin"

        assert await engine.reset_circuit_breaker() is True
        assert await engine.reset_circuit_breaker() is False

        alerts = await engine.get_alerts()
        assert [a.severity for a in alerts] == [AlertSeverity.INFO, AlertSeverity.CRITICAL]

        await engine.stop()
        assert len(alert_sink.alerts) == 2

    @pytest.mark.asyncio
    async def test_get_alerts_pagination(self, engine):
        for i in range(5):
            await engine.trip_circuit_breaker(f"trip {i}")

        page = await engine.get_alerts(limit=2, offset=1)

        assert [a.message for a in page] == [
            "Circuit breaker tripped: trip 3",
            "Circuit breaker tripped: trip 2",
        ]

    @pytest.mark.asyncio
    async def test_reset_daily_metrics(self, engine, sample_signal):
        await engine.validate_signal(sample_signal, "acct-1", Decimal("10000"))
        assert (await engine.context.daily.snapshot()).trades == 1

        await engine.reset_daily_metrics()

        metrics = await engine.context.daily.snapshot()
        assert metrics.trades == 0
        assert metrics.total_risk == Decimal("0")

    @pytest.mark.asyncio
    async def test_external_threat_reports(self, engine):
        await engine.record_failed_attempt("acct-9")
        await engine.record_suspicious_activity("acct-9", "login_burst", "20 logins in 1 min")
        await engine.record_anomaly("acct-9", "order_spike")

        threats = (await engine.get_health())["threats"]

        assert threats["failed_attempts"] == {"acct-9": 1}
        assert threats["suspicious_activities"] == 1
        assert threats["anomalies"] == 1

    @pytest.mark.asyncio
    async def test_start_and_stop_monitors(self, engine):
        await engine.start()
        assert engine.scheduler.is_running

        await engine.stop()
        assert not engine.scheduler.is_running


class TestLevels:
    """Risk and threat level classification."""

    @pytest.mark.parametrize(("drawdown", "daily_loss", "expected"), [
        ("0", "0", RiskLevel.LOW),
        ("0.03", "0", RiskLevel.MEDIUM),
        ("0", "0.015", RiskLevel.MEDIUM),
        ("0.06", "0", RiskLevel.HIGH),
        ("0", "0.05", RiskLevel.CRITICAL),
        ("0.09", "0", RiskLevel.CRITICAL),
    ])
    def test_risk_level(self, drawdown, daily_loss, expected):
        assert risk_level(Decimal(drawdown), Decimal(daily_loss)) is expected

    def test_threat_level(self):
        def records(n):
            return tuple(ThreatRecord(account_id="a", kind=f"k{i}") for i in range(n))

        assert threat_level(ThreatMetrics()) is ThreatLevel.LOW
        assert threat_level(ThreatMetrics(anomalies=records(3))) is ThreatLevel.MEDIUM
        assert threat_level(ThreatMetrics(suspicious_activities=records(11))) is ThreatLevel.HIGH
