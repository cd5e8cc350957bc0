"""
Unit tests for the market data gateway and read retry.
"""

from unittest.mock import AsyncMock

import pytest

from triarb.core.errors import DataUnavailableError, ExchangeError, TransientExchangeError
from triarb.market.gateway import MarketDataGateway, RetryPolicy, retry_read
from tests.mocks.exchange import MockExchangeClient


NO_WAIT = RetryPolicy(max_attempts=3, initial_delay=0.0, jitter=0.0)


class TestRetryPolicy:
    """Tests for RetryPolicy backoff."""

    def test_exponential_capped(self) -> None:
        """Test delays double up to the cap."""
        policy = RetryPolicy(initial_delay=0.25, multiplier=2.0, max_delay=1.0, jitter=0.0)

        assert [policy.delay_for(n) for n in range(1, 6)] == [0.25, 0.5, 1.0, 1.0, 1.0]


class TestRetryRead:
    """Tests for retry_read."""

    @pytest.mark.asyncio
    async def test_recovers_from_transient(self) -> None:
        """Test transient failures are retried until success."""
        operation = AsyncMock(
            side_effect=[TransientExchangeError("reset"), TransientExchangeError("reset"), "ok"]
        )

        result = await retry_read(operation, NO_WAIT, "test read")

        assert result == "ok"
        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_bounded(self) -> None:
        """Test the last transient error propagates once attempts run out."""
        operation = AsyncMock(side_effect=TransientExchangeError("down"))

        with pytest.raises(TransientExchangeError):
            await retry_read(operation, NO_WAIT, "test read")

        assert operation.await_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_not_retried(self) -> None:
        """Test permanent errors surface on the first attempt."""
        operation = AsyncMock(side_effect=ExchangeError("bad symbol"))

        with pytest.raises(ExchangeError):
            await retry_read(operation, NO_WAIT, "test read")

        assert operation.await_count == 1


class TestMarketDataGateway:
    """Tests for MarketDataGateway."""

    @pytest.mark.asyncio
    async def test_fetch_with_retry(self, mock_client: MockExchangeClient) -> None:
        """Test a book read survives a transient failure."""
        mock_client.fail_book("ETHUSDT", TransientExchangeError("timeout"))
        gateway = MarketDataGateway(mock_client, retry_policy=NO_WAIT)

        book = await gateway.get_order_book("ETHUSDT")

        assert book.pair == "ETHUSDT"
        assert mock_client.book_requests.count("ETHUSDT") == 2
        assert gateway.stats == {"fetched": 1, "failed": 0}

    @pytest.mark.asyncio
    async def test_unavailable_after_exhaustion(self, mock_client: MockExchangeClient) -> None:
        """Test exhausted retries become DataUnavailableError."""
        mock_client.fail_book("ETHUSDT", *(TransientExchangeError("timeout") for _ in range(3)))
        gateway = MarketDataGateway(mock_client, retry_policy=NO_WAIT)

        with pytest.raises(DataUnavailableError) as exc_info:
            await gateway.get_order_book("ETHUSDT")

        assert exc_info.value.pair == "ETHUSDT"
        assert gateway.stats["failed"] == 1

    @pytest.mark.asyncio
    async def test_unknown_pair(self, mock_client: MockExchangeClient) -> None:
        """Test a permanent error is not retried."""
        gateway = MarketDataGateway(mock_client, retry_policy=NO_WAIT)

        with pytest.raises(DataUnavailableError):
            await gateway.get_order_book("DOGEUSDT")

        assert mock_client.book_requests == ["DOGEUSDT"]

    @pytest.mark.asyncio
    async def test_batch_dedupes_and_skips_failures(self, mock_client: MockExchangeClient) -> None:
        """Test each pair is fetched once and failed pairs are omitted."""
        gateway = MarketDataGateway(mock_client, retry_policy=NO_WAIT)

        books = await gateway.get_order_books(["ETHUSDT", "ETHBTC", "ETHUSDT", "DOGEUSDT"])

        assert set(books) == {"ETHUSDT", "ETHBTC"}
        assert sorted(mock_client.book_requests) == ["DOGEUSDT", "ETHBTC", "ETHUSDT"]

    @pytest.mark.asyncio
    async def test_empty_batch(self, mock_client: MockExchangeClient) -> None:
        """Test an empty batch makes no requests."""
        gateway = MarketDataGateway(mock_client)

        assert await gateway.get_order_books([]) == {}
        assert mock_client.book_requests == []
