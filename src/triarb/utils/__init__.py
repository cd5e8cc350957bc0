"""Utility modules for clocks and Decimal arithmetic."""

from triarb.utils.money import format_amount, pct_change, round_step, to_decimal
from triarb.utils.time import (
    LatencyTimer,
    format_duration_us,
    get_timestamp_ms,
    get_timestamp_us,
    measure_latency_us,
    monotonic_us,
)


__all__ = [
    "LatencyTimer",
    "format_amount",
    "format_duration_us",
    "get_timestamp_ms",
    "get_timestamp_us",
    "measure_latency_us",
    "monotonic_us",
    "pct_change",
    "round_step",
    "to_decimal",
]
