"""
Core engine components: types, errors and event bus.

The engine itself lives in triarb.core.engine and is imported from there
directly, since it depends on every other subpackage.
"""

from triarb.core.errors import (
    DataUnavailableError,
    ExchangeError,
    ExecutionInProgressError,
    InsufficientBalanceError,
    InvalidTransitionError,
    OrderRejectedError,
    OrderTimeoutError,
    RollbackFailureError,
    SlippageExceededError,
    TransientExchangeError,
    TriArbError,
    ValidationError,
)
from triarb.core.event_bus import Event, EventBus, EventType


__all__ = [
    "DataUnavailableError",
    "Event",
    "EventBus",
    "EventType",
    "ExchangeError",
    "ExecutionInProgressError",
    "InsufficientBalanceError",
    "InvalidTransitionError",
    "OrderRejectedError",
    "OrderTimeoutError",
    "RollbackFailureError",
    "SlippageExceededError",
    "TransientExchangeError",
    "TriArbError",
    "ValidationError",
]
