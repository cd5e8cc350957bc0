"""
Unit tests for BinanceClient request building and response mapping.

The HTTP layer is replaced by an AsyncMock on _request.
"""

from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock

import pytest

from triarb.config.constants import ENDPOINT_ACCOUNT, ENDPOINT_DEPTH, ENDPOINT_EXCHANGE_INFO, ENDPOINT_ORDER
from triarb.core.errors import TransientExchangeError
from triarb.core.types import OrderStatus, Side
from triarb.exchange.client import (
    MAX_TRACKED_COMMISSIONS,
    BinanceClient,
    BinanceClientError,
    BinanceNetworkError,
    BinanceResponseError,
)


EXCHANGE_INFO = {
    "timezone": "UTC",
    "serverTime": 1704067200000,
    "symbols": [
        {
            "symbol": "ETHUSDT",
            "status": "TRADING",
            "baseAsset": "ETH",
            "baseAssetPrecision": 8,
            "quoteAsset": "USDT",
            "quoteAssetPrecision": 2,
            "filters": [{"filterType": "LOT_SIZE", "minQty": "0.0001", "stepSize": "0.0001"}],
        }
    ],
}


def route(responses: dict[tuple[str, str], Any]) -> AsyncMock:
    """AsyncMock answering by (method, endpoint)."""

    async def handler(method: str, endpoint: str, params: Any = None, signed: bool = False) -> Any:
        return responses[(method, endpoint)]

    return AsyncMock(side_effect=handler)


class TestBinanceClient:
    """Tests for BinanceClient."""

    @pytest.fixture
    def client(self) -> BinanceClient:
        return BinanceClient(api_key="key", api_secret="secret")

    def test_account_id(self) -> None:
        """Test account ids are derived from the key, never the key itself."""
        keyed = BinanceClient(api_key="my-key", api_secret="s")
        public = BinanceClient()

        assert keyed.account_id.startswith("binance:")
        assert "my-key" not in keyed.account_id
        assert keyed.account_id == BinanceClient(api_key="my-key", api_secret="s").account_id
        assert public.account_id == "binance:public"

    @pytest.mark.asyncio
    async def test_order_book(self, client: BinanceClient) -> None:
        """Test depth payloads become Decimal snapshots."""
        client._request = route(
            {("GET", ENDPOINT_DEPTH): {"lastUpdateId": 1, "bids": [["1999.5", "2"]], "asks": [["2000.1", "3"]]}}
        )

        book = await client.get_order_book("ETHUSDT", 5)

        assert book.pair == "ETHUSDT"
        assert book.best_bid is not None and book.best_bid.price == Decimal("1999.5")
        assert book.best_ask is not None and book.best_ask.quantity == Decimal("3")
        client._request.assert_awaited_once_with("GET", ENDPOINT_DEPTH, {"symbol": "ETHUSDT", "limit": 5})

    @pytest.mark.asyncio
    async def test_balance(self, client: BinanceClient) -> None:
        """Test balance lookup, zero when the asset is absent."""
        client._request = route(
            {("GET", ENDPOINT_ACCOUNT): {"canTrade": True, "balances": [{"asset": "USDT", "free": "500", "locked": "20"}]}}
        )

        usdt = await client.get_balance("USDT")
        btc = await client.get_balance("BTC")

        assert usdt.available == Decimal("500")
        assert usdt.total == Decimal("520")
        assert btc.available == 0

    @pytest.mark.asyncio
    async def test_market_buy_uses_quote_amount(self, client: BinanceClient) -> None:
        """Test BUY spends a quote amount rounded to quote precision."""
        client._request = route(
            {
                ("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO,
                ("POST", ENDPOINT_ORDER): {
                    "symbol": "ETHUSDT",
                    "orderId": 77,
                    "status": "FILLED",
                    "side": "BUY",
                    "fills": [{"price": "2000", "qty": "0.5", "commission": "0.0005", "commissionAsset": "ETH"}],
                },
            }
        )

        order_id = await client.place_market_order("ETHUSDT", Side.BUY, Decimal("1000.129"))

        assert order_id == "77"
        _, endpoint, params = client._request.await_args_list[-1].args
        assert endpoint == ENDPOINT_ORDER
        assert params["quoteOrderQty"] == "1000.12"
        assert "quantity" not in params
        assert params["newOrderRespType"] == "FULL"

    @pytest.mark.asyncio
    async def test_market_sell_uses_lot_step(self, client: BinanceClient) -> None:
        """Test SELL spends a base quantity rounded down to the lot step."""
        client._request = route(
            {
                ("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO,
                ("POST", ENDPOINT_ORDER): {"symbol": "ETHUSDT", "orderId": 78, "status": "NEW", "side": "SELL"},
            }
        )

        await client.place_market_order("ETHUSDT", Side.SELL, Decimal("0.49956"))

        params = client._request.await_args_list[-1].args[2]
        assert params["quantity"] == "0.4995"

    @pytest.mark.asyncio
    async def test_unknown_symbol(self, client: BinanceClient) -> None:
        """Test orders on unlisted pairs fail before reaching the exchange."""
        client._request = route({("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO})

        with pytest.raises(BinanceClientError, match="Unknown symbol"):
            await client.place_market_order("DOGEUSDT", Side.BUY, Decimal("10"))

    @pytest.mark.asyncio
    async def test_order_status_carries_commission(self, client: BinanceClient) -> None:
        """Test the placement commission is attached to the fill report."""
        client._request = route(
            {
                ("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO,
                ("POST", ENDPOINT_ORDER): {
                    "symbol": "ETHUSDT",
                    "orderId": 79,
                    "status": "FILLED",
                    "side": "BUY",
                    "fills": [{"price": "2000", "qty": "0.5", "commission": "0.0005", "commissionAsset": "ETH"}],
                },
                ("GET", ENDPOINT_ORDER): {
                    "symbol": "ETHUSDT",
                    "orderId": 79,
                    "status": "FILLED",
                    "side": "BUY",
                    "executedQty": "0.5",
                    "cummulativeQuoteQty": "1000",
                },
            }
        )

        order_id = await client.place_market_order("ETHUSDT", Side.BUY, Decimal("1000"))
        report = await client.get_order_status("ETHUSDT", order_id)

        assert report.status is OrderStatus.FILLED
        assert report.filled_qty == Decimal("0.5")
        assert report.quote_qty == Decimal("1000")
        assert report.avg_price == Decimal("2000")
        assert report.fee == Decimal("0.0005")
        assert report.fee_currency == "ETH"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("final_status", ["FILLED", "CANCELED", "REJECTED", "EXPIRED"])
    async def test_commission_released_on_final_status(
        self,
        client: BinanceClient,
        final_status: str,
    ) -> None:
        """Test the captured commission is dropped once the order is done."""
        client._request = route(
            {
                ("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO,
                ("POST", ENDPOINT_ORDER): {"symbol": "ETHUSDT", "orderId": 80, "status": "NEW", "side": "BUY"},
                ("GET", ENDPOINT_ORDER): {"symbol": "ETHUSDT", "orderId": 80, "status": final_status, "side": "BUY"},
            }
        )

        order_id = await client.place_market_order("ETHUSDT", Side.BUY, Decimal("1000"))
        assert order_id in client._commissions

        await client.get_order_status("ETHUSDT", order_id)

        assert order_id not in client._commissions

    @pytest.mark.asyncio
    async def test_commission_kept_while_open(self, client: BinanceClient) -> None:
        """Test an order still working keeps its commission for the fill report."""
        client._request = route(
            {
                ("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO,
                ("POST", ENDPOINT_ORDER): {"symbol": "ETHUSDT", "orderId": 81, "status": "NEW", "side": "BUY"},
                ("GET", ENDPOINT_ORDER): {"symbol": "ETHUSDT", "orderId": 81, "status": "NEW", "side": "BUY"},
            }
        )

        order_id = await client.place_market_order("ETHUSDT", Side.BUY, Decimal("1000"))
        await client.get_order_status("ETHUSDT", order_id)

        assert order_id in client._commissions

    @pytest.mark.asyncio
    async def test_commission_cache_bounded(self, client: BinanceClient) -> None:
        """Test orders never queried to completion are evicted oldest first."""
        responses: dict[tuple[str, str], Any] = {("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO}
        client._request = route(responses)

        for order_id in range(MAX_TRACKED_COMMISSIONS + 1):
            responses[("POST", ENDPOINT_ORDER)] = {
                "symbol": "ETHUSDT",
                "orderId": order_id,
                "status": "NEW",
                "side": "BUY",
            }
            await client.place_market_order("ETHUSDT", Side.BUY, Decimal("10"))

        assert len(client._commissions) == MAX_TRACKED_COMMISSIONS
        assert "0" not in client._commissions
        assert str(MAX_TRACKED_COMMISSIONS) in client._commissions

    @pytest.mark.asyncio
    async def test_unreadable_order_response(self, client: BinanceClient) -> None:
        """Test a placement payload missing fields is an unknown-outcome client error."""
        client._request = route(
            {
                ("GET", ENDPOINT_EXCHANGE_INFO): EXCHANGE_INFO,
                ("POST", ENDPOINT_ORDER): {"symbol": "ETHUSDT", "status": "FILLED"},
            }
        )

        with pytest.raises(BinanceResponseError, match="OrderResponse") as exc_info:
            await client.place_market_order("ETHUSDT", Side.BUY, Decimal("1000"))

        assert isinstance(exc_info.value, BinanceClientError)
        assert isinstance(exc_info.value, TransientExchangeError)

    @pytest.mark.asyncio
    async def test_signed_request_requires_credentials(self) -> None:
        """Test account endpoints refuse to run without keys."""
        client = BinanceClient()

        with pytest.raises(BinanceClientError, match="requires API credentials"):
            await client.get_balance("USDT")

    def test_network_error_is_transient(self) -> None:
        """Test transport failures are retryable for reads."""
        assert issubclass(BinanceNetworkError, TransientExchangeError)
