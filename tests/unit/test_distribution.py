"""
Unit tests for the subscriber registry and price distributor.
"""

import pytest

from triarb.market.distribution import PriceDistributor, SubscriberRegistry, encode_snapshot
from triarb.market.gateway import MarketDataGateway, RetryPolicy
from tests.mocks.exchange import MockExchangeClient, make_book
from tests.mocks.subscriber import MockSubscriber


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestSubscriberRegistry:
    """Tests for SubscriberRegistry."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def registry(self, clock: FakeClock) -> SubscriberRegistry:
        return SubscriberRegistry(idle_timeout_s=60.0, send_timeout_s=0.05, clock=clock)

    def test_subscriptions(self, registry: SubscriberRegistry) -> None:
        """Test per-listener pair sets and their union."""
        registry.add(MockSubscriber("a"), ["ETHUSDT"])
        registry.add(MockSubscriber("b"))

        assert registry.subscribe("b", ["BTCUSDT", "ETHBTC"]) == {"BTCUSDT", "ETHBTC"}
        assert registry.unsubscribe("b", ["ETHBTC"]) == {"BTCUSDT"}
        assert registry.active_pairs() == {"ETHUSDT", "BTCUSDT"}
        assert registry.pairs_for("a") == {"ETHUSDT"}
        assert registry.subscribe("missing", ["X"]) == set()

    def test_remove(self, registry: SubscriberRegistry) -> None:
        """Test explicit removal."""
        registry.add(MockSubscriber("a"))

        assert registry.remove("a") is True
        assert registry.remove("a") is False
        assert "a" not in registry
        assert len(registry) == 0

    def test_idle_eviction(self, registry: SubscriberRegistry, clock: FakeClock) -> None:
        """Test silent listeners are evicted and active ones kept."""
        registry.add(MockSubscriber("quiet"))
        registry.add(MockSubscriber("chatty"))

        clock.now = 45.0
        registry.touch("chatty")
        clock.now = 61.0

        assert registry.evict_idle() == ["quiet"]
        assert "chatty" in registry
        assert registry.stats["dropped"] == 1

    @pytest.mark.asyncio
    async def test_broadcast_by_pair(self, registry: SubscriberRegistry) -> None:
        """Test only listeners of the pair receive its update."""
        eth = MockSubscriber("eth")
        btc = MockSubscriber("btc")
        registry.add(eth, ["ETHUSDT"])
        registry.add(btc, ["BTCUSDT"])

        delivered = await registry.broadcast("hello", pair="ETHUSDT")

        assert delivered == 1
        assert eth.messages == ["hello"]
        assert btc.messages == []

    @pytest.mark.asyncio
    async def test_failed_listener_dropped(self, registry: SubscriberRegistry) -> None:
        """Test a broken listener is removed without affecting others."""
        good = MockSubscriber("good")
        registry.add(good)
        registry.add(MockSubscriber("broken", fail=True))

        delivered = await registry.broadcast("tick")

        assert delivered == 1
        assert good.messages == ["tick"]
        assert "broken" not in registry

    @pytest.mark.asyncio
    async def test_slow_listener_dropped(self, registry: SubscriberRegistry) -> None:
        """Test a send exceeding the timeout drops the listener."""
        registry.add(MockSubscriber("slow", delay_s=1.0))
        registry.add(MockSubscriber("fast"))

        delivered = await registry.broadcast("tick")

        assert delivered == 1
        assert "slow" not in registry
        assert "fast" in registry


class TestPriceDistributor:
    """Tests for PriceDistributor."""

    @pytest.mark.asyncio
    async def test_run_once(self, mock_client: MockExchangeClient) -> None:
        """Test one cycle fetches subscribed pairs and pushes snapshots."""
        gateway = MarketDataGateway(mock_client, retry_policy=RetryPolicy(max_attempts=1))
        registry = SubscriberRegistry()
        listener = MockSubscriber("l1")
        registry.add(listener, ["ETHUSDT", "BTCUSDT"])
        distributor = PriceDistributor(gateway, registry, interval_s=60.0)

        delivered = await distributor.run_once()

        assert delivered == 2
        assert sorted(mock_client.book_requests) == ["BTCUSDT", "ETHUSDT"]
        messages = listener.decoded()
        assert {m["data"]["pair"] for m in messages} == {"ETHUSDT", "BTCUSDT"}
        assert all(m["type"] == "orderbook" for m in messages)
        assert distributor.cycles == 1

    @pytest.mark.asyncio
    async def test_no_subscribers_no_requests(self, mock_client: MockExchangeClient) -> None:
        """Test an idle registry costs no market data."""
        gateway = MarketDataGateway(mock_client)
        distributor = PriceDistributor(gateway, SubscriberRegistry())

        assert await distributor.run_once() == 0
        assert mock_client.book_requests == []

    @pytest.mark.asyncio
    async def test_start_stop(self, mock_client: MockExchangeClient) -> None:
        """Test the background loop lifecycle."""
        distributor = PriceDistributor(
            MarketDataGateway(mock_client), SubscriberRegistry(), interval_s=60.0
        )

        distributor.start()
        assert distributor.is_running
        await distributor.stop()
        assert not distributor.is_running


def test_encode_snapshot() -> None:
    """Test prices are serialized as exact strings."""
    message = encode_snapshot(make_book("ETHBTC", "0.05", "0.0501", bid_qty="1.5"))

    assert '"pair":"ETHBTC"' in message
    assert '["0.05","1.5"]' in message
    assert '["0.0501","1000"]' in message
