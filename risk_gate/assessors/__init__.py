"""Pipeline stages, one module per risk concern."""

from .base import AssessmentRequest, RiskAssessor
from .correlation import CorrelationRiskAssessor
from .daily_limits import DailyLimitsTracker
from .drawdown import DrawdownProtector
from .market import MarketRiskAssessor
from .portfolio import PortfolioRiskAssessor
from .position_sizer import PositionSizer
from .resource_governor import ResourceGovernor, ResourceUsage, psutil_sampler
from .structural import SignalStructureValidator
from .threat_gate import ThreatGate

__all__ = [
    "AssessmentRequest",
    "CorrelationRiskAssessor",
    "DailyLimitsTracker",
    "DrawdownProtector",
    "MarketRiskAssessor",
    "PortfolioRiskAssessor",
    "PositionSizer",
    "ResourceGovernor",
    "ResourceUsage",
    "RiskAssessor",
    "SignalStructureValidator",
    "ThreatGate",
    "psutil_sampler",
]
