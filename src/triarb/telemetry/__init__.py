"""Telemetry modules for logging and metrics."""

from triarb.telemetry.logger import AsyncLogger, MicrosecondFormatter, setup_logging
from triarb.telemetry.metrics import LatencyStats, MetricsCollector, TradingStats


__all__ = [
    "AsyncLogger",
    "LatencyStats",
    "MetricsCollector",
    "MicrosecondFormatter",
    "TradingStats",
    "setup_logging",
]
