"""Core test fixtures for the risk gate.

In-memory collaborators, a controllable clock and a recording logger shared
by the unit and integration tests.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from risk_gate.assessors.base import AssessmentRequest
from risk_gate.assessors.resource_governor import ResourceUsage
from risk_gate.core.models import AccountSnapshot, Side, Signal
from risk_gate.interfaces import AlertSink, MarketDataService, RiskStorage, ThreatFeed
from risk_gate.risk_config import RiskConfig
from risk_gate.risk_engine import RiskEngine

START_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = START_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.now += timedelta(seconds=seconds, **kwargs)
        return self.now


class MockLogger:
    """Record every log call instead of emitting it."""

    def __init__(self):
        self.messages = []

    def log(self, level, message, *args, **kwargs):
        self.messages.append({
            "level": level,
            "message": message % args if args else message,
            "kwargs": kwargs,
        })

    def debug(self, message, *args, **kwargs):
        self.log("DEBUG", message, *args, **kwargs)

    def info(self, message, *args, **kwargs):
        self.log("INFO", message, *args, **kwargs)

    def warning(self, message, *args, **kwargs):
        self.log("WARNING", message, *args, **kwargs)

    def error(self, message, *args, **kwargs):
        self.log("ERROR", message, *args, **kwargs)

    def exception(self, message, *args, **kwargs):
        self.log("EXCEPTION", message, *args, **kwargs)

    def critical(self, message, *args, **kwargs):
        self.log("CRITICAL", message, *args, **kwargs)

    def find(self, level: str) -> list[str]:
        return [m["message"] for m in self.messages if m["level"] == level]


class FakeStorage(RiskStorage):
    """Storage collaborator backed by plain attributes."""

    def __init__(self):
        self.positions = []
        self.daily_trade_count = 0
        self.daily_trades = []
        self.account = AccountSnapshot(
            portfolio_value=Decimal("10000"), peak_portfolio_value=Decimal("10000"))
        self.peak_updates = []
        self.calls = []
        self.fail_on = set()
        self.delay = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    async def _record(self, operation, *args):
        self.calls.append((operation, args))
        if operation in self.fail_on:
            raise ConnectionError(f"{operation} unavailable")

    async def find_active_trades(self, account_id):
        await self._record("find_active_trades", account_id)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        return list(self.positions)

    async def count_daily_trades(self, account_id, day):
        await self._record("count_daily_trades", account_id, day)
        return self.daily_trade_count

    async def find_daily_trades(self, account_id, day):
        await self._record("find_daily_trades", account_id, day)
        return list(self.daily_trades)

    async def get_account(self, account_id):
        await self._record("get_account", account_id)
        return self.account

    async def update_peak_value(self, account_id, value):
        await self._record("update_peak_value", account_id, value)
        self.peak_updates.append((account_id, value))
        self.account = AccountSnapshot(
            portfolio_value=self.account.portfolio_value, peak_portfolio_value=value)


class FakeMarketData(MarketDataService):
    """Market analytics with fixed, overridable answers."""

    def __init__(self):
        self.volatility = 0.1
        self.liquidity = 2_000_000.0
        self.market_closed = False
        self.anomalies = []
        self.price_histories = {}
        self.calls = []
        self.fail_on = set()
        self.delay = 0.0

    async def _record(self, operation, *args):
        self.calls.append((operation, args))
        if self.delay:
            await asyncio.sleep(self.delay)
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} failed")

    async def estimate_volatility(self, symbol):
        await self._record("estimate_volatility", symbol)
        return self.volatility

    async def estimate_liquidity(self, symbol):
        await self._record("estimate_liquidity", symbol)
        return self.liquidity

    async def is_market_closed(self, symbol):
        await self._record("is_market_closed", symbol)
        return self.market_closed

    async def detect_anomalies(self, symbol):
        await self._record("detect_anomalies", symbol)
        return list(self.anomalies)

    async def get_price_history(self, symbol, limit):
        await self._record("get_price_history", symbol, limit)
        return list(self.price_histories.get(symbol, []))[-limit:]


class FakeThreatFeed(ThreatFeed):
    """Threat feed returning preset records."""

    def __init__(self):
        self.suspicious = []
        self.anomaly_records = []
        self.calls = []
        self.fail = False

    async def suspicious_activity(self, account_id):
        self.calls.append(("suspicious_activity", account_id))
        if self.fail:
            raise ConnectionError("threat feed down")
        return list(self.suspicious)

    async def anomalies(self, account_id):
        self.calls.append(("anomalies", account_id))
        if self.fail:
            raise ConnectionError("threat feed down")
        return list(self.anomaly_records)


class RecordingAlertSink(AlertSink):
    """Alert sink keeping every published alert."""

    def __init__(self, delay: float = 0.0, fail: bool = False):
        self.alerts = []
        self.delay = delay
        self.fail = fail

    async def publish(self, alert):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise RuntimeError("sink rejected alert")
        self.alerts.append(alert)


class FakeSampler:
    """Resource sampler returning a settable reading."""

    def __init__(self):
        self.usage = ResourceUsage(
            memory_usage=Decimal("0.30"), cpu_usage=Decimal("0.20"), active_connections=5)

    def __call__(self) -> ResourceUsage:
        return self.usage


@pytest.fixture
def mock_logger():
    """Create a mock logger for testing."""
    return MockLogger()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def market_data():
    return FakeMarketData()


@pytest.fixture
def threat_feed():
    return FakeThreatFeed()


@pytest.fixture
def alert_sink():
    return RecordingAlertSink()


@pytest.fixture
def sampler():
    return FakeSampler()


@pytest.fixture
def risk_config():
    """Production defaults."""
    return RiskConfig()


@pytest.fixture
def sample_signal(clock):
    """BUY signal sized above its risk budget (clamped from 100 to 40)."""
    return Signal(
        symbol="BTC/USDT",
        side=Side.BUY,
        entry_price=Decimal("100"),
        stop_loss=Decimal("95"),
        take_profit=Decimal("110"),
        confidence=Decimal("80"),
        amount=Decimal("100"),
        timestamp=clock.now - timedelta(seconds=1),
        signal_id="sig-1",
    )


@pytest.fixture
def make_request(storage, risk_config, clock):
    """Build an ``AssessmentRequest`` against the fake storage."""
    def _make(signal, portfolio_value=Decimal("10000"), config=None, account_id="acct-1"):
        return AssessmentRequest(
            signal=signal,
            account_id=account_id,
            portfolio_value=Decimal(portfolio_value),
            config=config or risk_config,
            now=clock(),
            storage=storage)
    return _make


@pytest.fixture
def engine(storage, market_data, threat_feed, mock_logger, alert_sink, clock, sampler):
    """Risk engine wired to in-memory collaborators; monitors are not started."""
    return RiskEngine(
        storage,
        market_data,
        threat_feed,
        mock_logger,
        config=RiskConfig(),
        alert_sink=alert_sink,
        clock=clock,
        resource_sampler=sampler)
