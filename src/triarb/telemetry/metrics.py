"""
Metrics collection for performance monitoring.

Tracks latencies, counters and trading statistics with in-memory storage.
P&L is accumulated per start currency in Decimal.
"""

import time
from collections import defaultdict, deque
from dataclasses import dataclass, field
from decimal import Decimal

from triarb.core.types import ExecutionResult, Opportunity
from triarb.utils.money import ZERO


@dataclass
class LatencyStats:
    """Aggregated latency statistics."""

    min_us: int = 0
    max_us: int = 0
    avg_us: float = 0.0
    p50_us: int = 0
    p95_us: int = 0
    p99_us: int = 0
    count: int = 0


@dataclass
class TradingStats:
    """Trading performance statistics."""

    scans: int = 0
    opportunities_found: int = 0
    opportunities_profitable: int = 0
    executions_successful: int = 0
    executions_failed: int = 0
    executions_rolled_back: int = 0
    rollback_failures: int = 0
    best_profit_pct: Decimal = ZERO
    realized_pnl: dict[str, Decimal] = field(default_factory=lambda: defaultdict(lambda: ZERO))

    @property
    def execution_success_rate(self) -> float:
        """Calculate execution success rate."""
        total = self.executions_successful + self.executions_failed
        return self.executions_successful / total if total > 0 else 0.0


class MetricsCollector:
    """
    Collects and aggregates performance metrics.

    Features:
    - Rolling window latency tracking
    - Counter-based event tracking
    - Decimal P&L per currency
    - Rollback tallies
    """

    def __init__(self, latency_window_size: int = 1000) -> None:
        """
        Initialize metrics collector.

        Args:
            latency_window_size: Number of samples to keep for latency stats.
        """
        self._window_size = latency_window_size
        self._latencies: dict[str, deque[int]] = {}
        self._counters: dict[str, int] = {}
        self._trading_stats = TradingStats()
        self._start_time = time.time()

    def record_latency(self, name: str, latency_us: int) -> None:
        """
        Record a latency measurement.

        Args:
            name: Metric name (e.g., "scan", "execution").
            latency_us: Latency in microseconds.
        """
        if name not in self._latencies:
            self._latencies[name] = deque(maxlen=self._window_size)
        self._latencies[name].append(latency_us)

    def increment_counter(self, name: str, value: int = 1) -> None:
        """Increment a counter."""
        self._counters[name] = self._counters.get(name, 0) + value

    def get_counter(self, name: str) -> int:
        """Get counter value."""
        return self._counters.get(name, 0)

    def record_scan(self, opportunities: list[Opportunity], latency_us: int) -> None:
        """
        Record one scan batch.

        Args:
            opportunities: Ranked scan output.
            latency_us: Wall time of the scan.
        """
        stats = self._trading_stats
        stats.scans += 1
        stats.opportunities_found += len(opportunities)
        for opportunity in opportunities:
            if opportunity.profitable:
                stats.opportunities_profitable += 1
            if opportunity.net_profit_pct > stats.best_profit_pct:
                stats.best_profit_pct = opportunity.net_profit_pct
        self.record_latency("scan", latency_us)

    def record_execution(self, result: ExecutionResult) -> None:
        """
        Record a finalized execution result.

        Args:
            result: Execution outcome.
        """
        stats = self._trading_stats
        if result.success:
            stats.executions_successful += 1
            if result.net_profit is not None and not result.dry_run:
                stats.realized_pnl[result.start_currency] += result.net_profit
        else:
            stats.executions_failed += 1
            if result.status == "rolled_back":
                stats.executions_rolled_back += 1
            if result.rollback_error is not None:
                stats.rollback_failures += 1

        self.increment_counter("executions_dry_run" if result.dry_run else "executions_live")
        self.record_latency("execution", result.total_latency_us)

    def get_latency_stats(self, name: str) -> LatencyStats:
        """
        Get latency statistics for a metric.

        Args:
            name: Metric name.

        Returns:
            LatencyStats with aggregated values.
        """
        samples = self._latencies.get(name)
        if not samples:
            return LatencyStats()

        sorted_samples = sorted(samples)
        n = len(sorted_samples)

        return LatencyStats(
            min_us=sorted_samples[0],
            max_us=sorted_samples[-1],
            avg_us=sum(sorted_samples) / n,
            p50_us=sorted_samples[n // 2],
            p95_us=sorted_samples[int(n * 0.95)],
            p99_us=sorted_samples[int(n * 0.99)] if n > 1 else sorted_samples[-1],
            count=n,
        )

    def get_all_latency_stats(self) -> dict[str, LatencyStats]:
        """Get latency stats for all metrics."""
        return {name: self.get_latency_stats(name) for name in self._latencies}

    @property
    def trading_stats(self) -> TradingStats:
        """Get trading statistics."""
        return self._trading_stats

    @property
    def uptime_seconds(self) -> float:
        """Get uptime in seconds."""
        return time.time() - self._start_time

    def to_dict(self) -> dict[str, object]:
        """
        Export all metrics as a dict.

        Decimal values are rendered as strings.
        """
        stats = self._trading_stats
        return {
            "uptime_seconds": self.uptime_seconds,
            "counters": dict(self._counters),
            "latencies": {
                name: {
                    "min": s.min_us,
                    "max": s.max_us,
                    "avg": s.avg_us,
                    "p50": s.p50_us,
                    "p99": s.p99_us,
                    "count": s.count,
                }
                for name, s in self.get_all_latency_stats().items()
            },
            "trading": {
                "scans": stats.scans,
                "opportunities_found": stats.opportunities_found,
                "opportunities_profitable": stats.opportunities_profitable,
                "executions_successful": stats.executions_successful,
                "executions_failed": stats.executions_failed,
                "executions_rolled_back": stats.executions_rolled_back,
                "rollback_failures": stats.rollback_failures,
                "success_rate": stats.execution_success_rate,
                "best_profit_pct": str(stats.best_profit_pct),
                "realized_pnl": {k: str(v) for k, v in stats.realized_pnl.items()},
            },
        }

    def reset(self) -> None:
        """Reset all metrics."""
        self._latencies.clear()
        self._counters.clear()
        self._trading_stats = TradingStats()
        self._start_time = time.time()
