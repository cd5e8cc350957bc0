"""
Real-time price distribution.

An explicit subscriber registry plus a periodic distributor that re-reads
order books for every subscribed pair and pushes updates to listeners.
Listeners may vanish at any time; a failed or slow send drops that
listener without holding up the others.
"""

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

import orjson

from triarb.config.constants import (
    DEFAULT_DISTRIBUTION_INTERVAL_S,
    DEFAULT_SUBSCRIBER_IDLE_TIMEOUT_S,
    DEFAULT_SUBSCRIBER_SEND_TIMEOUT_S,
)
from triarb.core.types import OrderBookSnapshot
from triarb.market.gateway import MarketDataGateway


logger = logging.getLogger(__name__)


class Subscriber(Protocol):
    """A listener that receives serialized price messages."""

    @property
    def id(self) -> str:
        """Unique listener identifier."""
        ...

    async def send(self, message: str) -> None:
        """Deliver one message. Raises on a broken connection."""
        ...


@dataclass(slots=True)
class SubscriberEntry:
    """Registry bookkeeping for one listener."""

    subscriber: Subscriber
    pairs: set[str] = field(default_factory=set)
    last_seen: float = 0.0
    messages_sent: int = 0


def encode_snapshot(book: OrderBookSnapshot, levels: int = 5) -> str:
    """Serialize a snapshot as an orderbook message."""
    return orjson.dumps(
        {
            "type": "orderbook",
            "data": {
                "pair": book.pair,
                "bids": [[str(lv.price), str(lv.quantity)] for lv in book.bids[:levels]],
                "asks": [[str(lv.price), str(lv.quantity)] for lv in book.asks[:levels]],
                "timestamp_us": book.timestamp_us,
            },
        }
    ).decode()


class SubscriberRegistry:
    """
    Registry of price listeners.

    Owned by the composition root and injected wherever listeners are
    added or messages are broadcast.

    Features:
    - Per-listener pair subscriptions
    - Idle eviction based on last client activity
    - Concurrent broadcast with per-send timeout
    - Failed listeners are removed during broadcast
    """

    def __init__(
        self,
        idle_timeout_s: float = DEFAULT_SUBSCRIBER_IDLE_TIMEOUT_S,
        send_timeout_s: float = DEFAULT_SUBSCRIBER_SEND_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize registry.

        Args:
            idle_timeout_s: Silence after which a listener is evicted.
            send_timeout_s: Maximum time one send may take.
            clock: Monotonic time source.
        """
        self._entries: dict[str, SubscriberEntry] = {}
        self._idle_timeout = idle_timeout_s
        self._send_timeout = send_timeout_s
        self._clock = clock
        self._dropped = 0

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def add(self, subscriber: Subscriber, pairs: Iterable[str] = ()) -> None:
        """Register a listener, replacing any entry with the same id."""
        self._entries[subscriber.id] = SubscriberEntry(
            subscriber=subscriber,
            pairs=set(pairs),
            last_seen=self._clock(),
        )
        logger.debug(f"Subscriber {subscriber.id} added ({len(self._entries)} total)")

    def remove(self, subscriber_id: str) -> bool:
        """
        Unregister a listener.

        Returns:
            True if the listener was registered.
        """
        removed = self._entries.pop(subscriber_id, None) is not None
        if removed:
            logger.debug(f"Subscriber {subscriber_id} removed ({len(self._entries)} left)")
        return removed

    def subscribe(self, subscriber_id: str, pairs: Iterable[str]) -> set[str]:
        """Add pairs to a listener's subscription. Returns the new set."""
        entry = self._entries.get(subscriber_id)
        if entry is None:
            return set()
        entry.pairs.update(pairs)
        entry.last_seen = self._clock()
        return set(entry.pairs)

    def unsubscribe(self, subscriber_id: str, pairs: Iterable[str]) -> set[str]:
        """Remove pairs from a listener's subscription. Returns the new set."""
        entry = self._entries.get(subscriber_id)
        if entry is None:
            return set()
        entry.pairs.difference_update(pairs)
        entry.last_seen = self._clock()
        return set(entry.pairs)

    def touch(self, subscriber_id: str) -> None:
        """Record client activity, postponing idle eviction."""
        entry = self._entries.get(subscriber_id)
        if entry is not None:
            entry.last_seen = self._clock()

    def evict_idle(self) -> list[str]:
        """
        Drop listeners silent for longer than the idle timeout.

        Returns:
            Ids of evicted listeners.
        """
        cutoff = self._clock() - self._idle_timeout
        stale = [sid for sid, entry in self._entries.items() if entry.last_seen < cutoff]
        for sid in stale:
            del self._entries[sid]
            self._dropped += 1
        if stale:
            logger.warning(f"Evicted {len(stale)} idle subscriber(s): {stale}")
        return stale

    def clear(self) -> None:
        """Remove every listener."""
        self._entries.clear()

    # =========================================================================
    # Broadcast
    # =========================================================================

    async def broadcast(self, message: str, pair: str | None = None) -> int:
        """
        Send a message to every listener, or to those subscribed to pair.

        Returns:
            Number of successful deliveries.
        """
        targets = [
            entry for entry in self._entries.values()
            if pair is None or pair in entry.pairs
        ]
        if not targets:
            return 0

        results = await asyncio.gather(*(self._deliver(entry, message) for entry in targets))
        return sum(results)

    async def _deliver(self, entry: SubscriberEntry, message: str) -> bool:
        sid = entry.subscriber.id
        try:
            await asyncio.wait_for(entry.subscriber.send(message), timeout=self._send_timeout)
        except Exception as e:
            logger.info(f"Dropping subscriber {sid}: {type(e).__name__} {e}")
            if self._entries.get(sid) is entry:
                del self._entries[sid]
                self._dropped += 1
            return False
        entry.messages_sent += 1
        return True

    # =========================================================================
    # Introspection
    # =========================================================================

    def active_pairs(self) -> set[str]:
        """Union of all subscribed pairs."""
        pairs: set[str] = set()
        for entry in self._entries.values():
            pairs |= entry.pairs
        return pairs

    def pairs_for(self, subscriber_id: str) -> set[str]:
        """Pairs one listener is subscribed to."""
        entry = self._entries.get(subscriber_id)
        return set(entry.pairs) if entry else set()

    def __contains__(self, subscriber_id: object) -> bool:
        return subscriber_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict[str, Any]:
        """Get registry statistics."""
        return {
            "subscribers": len(self._entries),
            "active_pairs": len(self.active_pairs()),
            "dropped": self._dropped,
        }


class PriceDistributor:
    """
    Periodically pushes order-book updates to subscribed listeners.

    Each cycle evicts idle listeners, fetches books for the union of
    subscribed pairs in one batch, and broadcasts each book to the
    listeners of that pair.
    """

    def __init__(
        self,
        gateway: MarketDataGateway,
        registry: SubscriberRegistry,
        interval_s: float = DEFAULT_DISTRIBUTION_INTERVAL_S,
    ) -> None:
        """
        Initialize distributor.

        Args:
            gateway: Source of order books.
            registry: Listener registry.
            interval_s: Delay between cycles.
        """
        self._gateway = gateway
        self._registry = registry
        self._interval = interval_s
        self._task: asyncio.Task[None] | None = None
        self._cycles = 0

    async def run_once(self) -> int:
        """
        Run a single distribution cycle.

        Returns:
            Number of messages delivered.
        """
        self._registry.evict_idle()
        pairs = self._registry.active_pairs()
        if not pairs:
            return 0

        books = await self._gateway.get_order_books(sorted(pairs))
        delivered = 0
        for pair, book in books.items():
            delivered += await self._registry.broadcast(encode_snapshot(book), pair=pair)

        self._cycles += 1
        return delivered

    async def _run(self) -> None:
        logger.info(f"Price distribution started (interval {self._interval}s)")
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Price distribution cycle failed: {e}")
            await asyncio.sleep(self._interval)

    def start(self) -> asyncio.Task[None]:
        """Start the background loop if not already running."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="price-distributor")
        return self._task

    async def stop(self) -> None:
        """Stop the background loop and wait for it to finish."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Price distribution stopped")

    @property
    def is_running(self) -> bool:
        """Check if the background loop is active."""
        return self._task is not None and not self._task.done()

    @property
    def cycles(self) -> int:
        """Completed distribution cycles."""
        return self._cycles
