"""
Internal event bus for decoupled communication.

Lets the engine announce scan and execution outcomes to the dashboard,
metrics and any other listener without the core knowing about them.
"""

import inspect
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Generic, TypeVar

from triarb.utils.time import get_timestamp_us


logger = logging.getLogger(__name__)


class EventType(Enum):
    """System event types."""

    # Strategy events
    SCAN_COMPLETE = auto()
    OPPORTUNITY_FOUND = auto()

    # Execution events
    EXECUTION_STARTED = auto()
    LEG_FILLED = auto()
    EXECUTION_COMPLETE = auto()
    ROLLBACK_FAILED = auto()

    # System events
    SHUTDOWN = auto()


T = TypeVar("T")


@dataclass
class Event(Generic[T]):
    """Generic event with typed payload."""

    type: EventType
    payload: T
    timestamp_us: int = 0
    source: str = ""


# Handlers may be plain functions or coroutine functions
EventHandler = Callable[[Event[Any]], Awaitable[None] | None]


class EventBus:
    """
    Async-safe event bus for internal messaging.

    Features:
    - Sync and async handlers on the same subscription list
    - Priority-based handler ordering
    - Error isolation per handler
    """

    def __init__(self) -> None:
        """Initialize event bus."""
        self._handlers: dict[EventType, list[tuple[int, EventHandler]]] = defaultdict(list)
        self._paused = False

    def subscribe(
        self,
        event_type: EventType,
        handler: EventHandler,
        priority: int = 0,
    ) -> None:
        """
        Subscribe a handler to an event type.

        Args:
            event_type: Event type to handle.
            handler: Sync or async handler function.
            priority: Handler priority (higher = earlier execution).
        """
        self._handlers[event_type].append((priority, handler))
        self._handlers[event_type].sort(key=lambda x: x[0], reverse=True)

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> bool:
        """
        Unsubscribe a handler.

        Returns:
            True if handler was found and removed.
        """
        for i, (_, registered) in enumerate(self._handlers[event_type]):
            if registered is handler:
                self._handlers[event_type].pop(i)
                return True
        return False

    async def publish(self, event_type: EventType, payload: Any, source: str = "") -> None:
        """
        Publish an event to all subscribers in priority order.

        A failing handler is logged and does not stop delivery to the rest.
        """
        if self._paused:
            return

        event = Event(type=event_type, payload=payload, timestamp_us=get_timestamp_us(), source=source)

        for _, handler in list(self._handlers[event_type]):
            try:
                outcome = handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.error(f"Handler error for {event_type.name}: {e}")

    def pause(self) -> None:
        """Pause event delivery."""
        self._paused = True

    def resume(self) -> None:
        """Resume event delivery."""
        self._paused = False

    def clear(self, event_type: EventType | None = None) -> None:
        """Clear handlers for one type, or all when None."""
        if event_type:
            self._handlers[event_type].clear()
        else:
            self._handlers.clear()

    def handler_count(self, event_type: EventType) -> int:
        """Get number of handlers for an event type."""
        return len(self._handlers[event_type])

    @property
    def is_paused(self) -> bool:
        """Check if event bus is paused."""
        return self._paused
