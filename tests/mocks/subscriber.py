"""
Mock price subscriber for testing.

Collects delivered messages in memory, optionally failing or stalling
to exercise the registry's drop logic.
"""

import asyncio
from typing import Any

import orjson


class MockSubscriber:
    """In-memory listener implementing the Subscriber interface."""

    def __init__(self, subscriber_id: str, fail: bool = False, delay_s: float = 0.0) -> None:
        """
        Initialize mock subscriber.

        Args:
            subscriber_id: Listener id.
            fail: Raise ConnectionError on every send.
            delay_s: Sleep before accepting each message.
        """
        self._id = subscriber_id
        self._fail = fail
        self._delay = delay_s
        self.messages: list[str] = []

    @property
    def id(self) -> str:
        return self._id

    async def send(self, message: str) -> None:
        if self._delay:
            await asyncio.sleep(self._delay)
        if self._fail:
            raise ConnectionError("socket closed")
        self.messages.append(message)

    def decoded(self) -> list[dict[str, Any]]:
        """Delivered messages parsed from JSON."""
        return [orjson.loads(m) for m in self.messages]
