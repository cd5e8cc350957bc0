"""
Market data gateway.

Single query interface for order-book snapshots. Reads are retried with
bounded exponential backoff on transient exchange errors, and batches
fan out concurrently.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TypeVar

from triarb.config.constants import (
    DEFAULT_BOOK_DEPTH,
    MAX_CONCURRENT_BOOK_REQUESTS,
    RETRY_INITIAL_DELAY,
    RETRY_JITTER,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY,
    RETRY_MULTIPLIER,
)
from triarb.core.errors import DataUnavailableError, ExchangeError, TransientExchangeError
from triarb.core.types import ExchangeClient, OrderBookSnapshot


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for idempotent reads."""

    max_attempts: int = RETRY_MAX_ATTEMPTS
    initial_delay: float = RETRY_INITIAL_DELAY
    max_delay: float = RETRY_MAX_DELAY
    multiplier: float = RETRY_MULTIPLIER
    jitter: float = RETRY_JITTER

    def delay_for(self, attempt: int) -> float:
        """
        Sleep before the given retry (1-based), capped at max_delay.

        Example:
            >>> RetryPolicy(jitter=0.0).delay_for(3)
            1.0
        """
        base = self.initial_delay * (self.multiplier ** (attempt - 1))
        return min(base, self.max_delay) + random.uniform(0, self.jitter)


async def retry_read(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    description: str,
) -> T:
    """
    Run a read operation, retrying transient failures.

    Only TransientExchangeError is retried. Anything else, and the last
    transient error once attempts are exhausted, propagates.
    """
    attempt = 1
    while True:
        try:
            return await operation()
        except TransientExchangeError as e:
            if attempt >= policy.max_attempts:
                logger.warning(f"{description} failed after {attempt} attempts: {e}")
                raise
            delay = policy.delay_for(attempt)
            logger.info(f"{description} failed ({e}), retry {attempt} in {delay:.2f}s")
            await asyncio.sleep(delay)
            attempt += 1


class MarketDataGateway:
    """
    Order-book access for the scanner, coordinator and distributor.

    Features:
    - Retry with bounded exponential backoff on transient errors
    - Concurrent batch fetch with a request cap
    - Failed pairs are logged and omitted from batches
    """

    def __init__(
        self,
        client: ExchangeClient,
        retry_policy: RetryPolicy | None = None,
        depth: int = DEFAULT_BOOK_DEPTH,
        max_concurrent: int = MAX_CONCURRENT_BOOK_REQUESTS,
    ) -> None:
        """
        Initialize gateway.

        Args:
            client: Exchange client used for public market data.
            retry_policy: Backoff policy for reads.
            depth: Levels requested per book.
            max_concurrent: Cap on in-flight book requests.
        """
        self._client = client
        self._retry = retry_policy or RetryPolicy()
        self._depth = depth
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._fetch_count = 0
        self._failure_count = 0

    async def get_order_book(self, pair: str) -> OrderBookSnapshot:
        """
        Fetch one order book.

        Raises:
            DataUnavailableError: If the book cannot be read.
        """
        async with self._semaphore:
            try:
                book = await retry_read(
                    lambda: self._client.get_order_book(pair, self._depth),
                    self._retry,
                    f"Order book {pair}",
                )
            except DataUnavailableError:
                self._failure_count += 1
                raise
            except ExchangeError as e:
                self._failure_count += 1
                raise DataUnavailableError(pair, str(e)) from e

        self._fetch_count += 1
        return book

    async def get_order_books(self, pairs: Iterable[str]) -> dict[str, OrderBookSnapshot]:
        """
        Fetch several books concurrently.

        Pairs whose fetch fails are logged and left out; callers treat a
        missing pair as data-unavailable for the paths that need it.
        """
        unique = list(dict.fromkeys(pairs))
        if not unique:
            return {}

        results = await asyncio.gather(
            *(self.get_order_book(pair) for pair in unique),
            return_exceptions=True,
        )

        books: dict[str, OrderBookSnapshot] = {}
        for pair, result in zip(unique, results, strict=True):
            if isinstance(result, OrderBookSnapshot):
                books[pair] = result
            elif isinstance(result, Exception):
                logger.warning(f"Skipping {pair}: {result}")
            else:
                raise result

        if not books:
            logger.error(f"All {len(unique)} order book fetches failed")
        else:
            logger.debug(f"Fetched {len(books)}/{len(unique)} order books")

        return books

    @property
    def stats(self) -> dict[str, int]:
        """Get fetch statistics."""
        return {"fetched": self._fetch_count, "failed": self._failure_count}
