"""
Clock helpers.

Wall-clock timestamps stamp records and signed requests; elapsed times
come from the monotonic clock so they never run backwards.
"""

import time


def get_timestamp_us() -> int:
    """Wall-clock Unix time in microseconds, used to stamp records."""
    return time.time_ns() // 1000


def get_timestamp_ms() -> int:
    """
    Wall-clock Unix time in milliseconds.

    Exchange request signing and execution ids use this resolution.
    """
    return time.time_ns() // 1_000_000


def monotonic_us() -> int:
    """Monotonic clock reading in microseconds."""
    return time.perf_counter_ns() // 1000


def measure_latency_us(start_us: int) -> int:
    """Microseconds elapsed since a monotonic_us() reading."""
    return monotonic_us() - start_us


class LatencyTimer:
    """
    Context manager timing a block on the monotonic clock.

    Example:
        >>> with LatencyTimer() as timer:
        ...     await scanner.scan_all(paths, amount)
        >>> format_duration_us(timer.latency_us)
        '3.42ms'
    """

    __slots__ = ("_start_us", "latency_us")

    def __init__(self) -> None:
        self._start_us = 0
        self.latency_us = 0

    def __enter__(self) -> "LatencyTimer":
        self._start_us = monotonic_us()
        return self

    def __exit__(self, *args: object) -> None:
        self.latency_us = measure_latency_us(self._start_us)


def format_duration_us(duration_us: int) -> str:
    """
    Render a duration with a unit suited to its size.

    Examples:
        >>> format_duration_us(500)
        '500μs'
        >>> format_duration_us(1500)
        '1.50ms'
        >>> format_duration_us(2_500_000)
        '2.50s'
    """
    if duration_us < 1000:
        return f"{duration_us}μs"
    if duration_us < 1_000_000:
        return f"{duration_us / 1000:.2f}ms"
    return f"{duration_us / 1_000_000:.2f}s"
