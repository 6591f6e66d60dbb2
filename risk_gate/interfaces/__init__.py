"""Collaborator interfaces for the risk gate.

Implementations live outside this package; the engine only depends on these
abstract base classes.
"""

from .alert_sink_interface import AlertSink, NullAlertSink
from .market_data_interface import MarketDataService
from .storage_interface import RiskStorage
from .threat_feed_interface import ThreatFeed

__all__ = [
    "AlertSink",
    "MarketDataService",
    "NullAlertSink",
    "RiskStorage",
    "ThreatFeed",
]
