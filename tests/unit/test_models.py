"""
Unit tests for Binance response models.
"""

from decimal import Decimal

import pytest

from triarb.core.types import OrderStatus
from triarb.exchange.models import (
    AccountInfo,
    DepthResponse,
    OrderResponse,
    QueryOrderResponse,
    SymbolData,
    map_order_status,
)


class TestStatusMapping:
    """Tests for map_order_status."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("FILLED", OrderStatus.FILLED),
            ("NEW", OrderStatus.NEW),
            ("CANCELED", OrderStatus.CANCELLED),
            ("EXPIRED_IN_MATCH", OrderStatus.EXPIRED),
            ("REJECTED", OrderStatus.REJECTED),
            ("SOMETHING_NEW", OrderStatus.UNKNOWN),
        ],
    )
    def test_mapping(self, raw: str, expected: OrderStatus) -> None:
        assert map_order_status(raw) is expected


class TestModels:
    """Tests for payload parsing."""

    def test_depth_parsed_as_decimal(self) -> None:
        """Test price strings keep their exact value."""
        depth = DepthResponse.model_validate(
            {"lastUpdateId": 7, "bids": [["0.05000000", "1.2"]], "asks": [["0.05010000", "3"]]}
        )

        (bid,) = depth.bid_levels()
        assert bid.price == Decimal("0.05")
        assert isinstance(bid.quantity, Decimal)
        assert depth.ask_levels()[0].price == Decimal("0.0501")

    def test_symbol_steps(self) -> None:
        """Test lot step and quote precision."""
        symbol = SymbolData.model_validate(
            {
                "symbol": "ETHBTC",
                "status": "TRADING",
                "baseAsset": "ETH",
                "baseAssetPrecision": 8,
                "quoteAsset": "BTC",
                "quoteAssetPrecision": 6,
                "filters": [
                    {"filterType": "PRICE_FILTER", "tickSize": "0.000001"},
                    {"filterType": "LOT_SIZE", "minQty": "0.0001", "stepSize": "0.0001"},
                ],
            }
        )

        assert symbol.step_size == Decimal("0.0001")
        assert symbol.quote_step == Decimal("0.000001")
        assert symbol.get_filter("NOTIONAL") is None

    def test_order_commission(self) -> None:
        """Test commission totals across fills."""
        order = OrderResponse.model_validate(
            {
                "symbol": "ETHUSDT",
                "orderId": 42,
                "status": "FILLED",
                "side": "BUY",
                "executedQty": "0.5",
                "cummulativeQuoteQty": "1000",
                "fills": [
                    {"price": "2000", "qty": "0.3", "commission": "0.0003", "commissionAsset": "ETH"},
                    {"price": "2000", "qty": "0.2", "commission": "0.0002", "commissionAsset": "ETH"},
                ],
            }
        )

        assert order.total_commission == Decimal("0.0005")
        assert order.commission_asset == "ETH"

    def test_query_avg_price(self) -> None:
        """Test average price from cumulative quantities."""
        order = QueryOrderResponse.model_validate(
            {
                "symbol": "ETHUSDT",
                "orderId": 42,
                "status": "FILLED",
                "side": "BUY",
                "executedQty": "0.5",
                "cummulativeQuoteQty": "1000",
            }
        )

        assert order.avg_price == Decimal("2000")

    def test_account_balance_lookup(self) -> None:
        """Test balance lookup by asset."""
        account = AccountInfo.model_validate(
            {"canTrade": True, "balances": [{"asset": "USDT", "free": "100.5", "locked": "1"}]}
        )

        balance = account.get_balance("USDT")
        assert balance is not None
        assert balance.total == Decimal("101.5")
        assert account.get_balance("BTC") is None
