"""
Pydantic models for Binance API responses.

These models provide type-safe parsing of exchange responses with
automatic validation. Prices, quantities and commissions are parsed
straight from Binance's decimal strings into Decimal.
"""

from decimal import Decimal

from pydantic import BaseModel, Field

from triarb.core.types import OrderStatus, PriceLevel
from triarb.utils.money import ZERO


# Binance status strings mapped onto the engine's vocabulary
_STATUS_MAP: dict[str, OrderStatus] = {
    "NEW": OrderStatus.NEW,
    "PARTIALLY_FILLED": OrderStatus.PARTIALLY_FILLED,
    "FILLED": OrderStatus.FILLED,
    "CANCELED": OrderStatus.CANCELLED,
    "PENDING_CANCEL": OrderStatus.CANCELLED,
    "REJECTED": OrderStatus.REJECTED,
    "EXPIRED": OrderStatus.EXPIRED,
    "EXPIRED_IN_MATCH": OrderStatus.EXPIRED,
}


def map_order_status(status: str) -> OrderStatus:
    """Translate a Binance order status, UNKNOWN for anything unrecognized."""
    return _STATUS_MAP.get(status.upper(), OrderStatus.UNKNOWN)


class SymbolFilter(BaseModel):
    """Symbol trading filter from exchange info."""

    filter_type: str = Field(alias="filterType")
    tick_size: Decimal | None = Field(default=None, alias="tickSize")
    min_qty: Decimal | None = Field(default=None, alias="minQty")
    max_qty: Decimal | None = Field(default=None, alias="maxQty")
    step_size: Decimal | None = Field(default=None, alias="stepSize")
    min_notional: Decimal | None = Field(default=None, alias="minNotional")

    model_config = {"populate_by_name": True}


class SymbolData(BaseModel):
    """Symbol information from exchange info."""

    symbol: str
    status: str
    base_asset: str = Field(alias="baseAsset")
    base_asset_precision: int = Field(alias="baseAssetPrecision")
    quote_asset: str = Field(alias="quoteAsset")
    quote_asset_precision: int = Field(alias="quoteAssetPrecision")
    filters: list[SymbolFilter] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def get_filter(self, filter_type: str) -> SymbolFilter | None:
        """Get a specific filter by type."""
        for f in self.filters:
            if f.filter_type == filter_type:
                return f
        return None

    @property
    def step_size(self) -> Decimal | None:
        """Base quantity increment from the LOT_SIZE filter."""
        lot = self.get_filter("LOT_SIZE")
        return lot.step_size if lot and lot.step_size else None

    @property
    def quote_step(self) -> Decimal:
        """Smallest quote amount increment."""
        return Decimal(1).scaleb(-self.quote_asset_precision)


class ExchangeInfo(BaseModel):
    """Exchange information response."""

    timezone: str = "UTC"
    server_time: int = Field(default=0, alias="serverTime")
    symbols: list[SymbolData]

    model_config = {"populate_by_name": True}


class DepthResponse(BaseModel):
    """Order book depth response."""

    last_update_id: int = Field(alias="lastUpdateId")
    bids: list[tuple[Decimal, Decimal]]
    asks: list[tuple[Decimal, Decimal]]

    model_config = {"populate_by_name": True}

    def bid_levels(self) -> tuple[PriceLevel, ...]:
        """Bids as price levels, best first."""
        return tuple(PriceLevel(price=p, quantity=q) for p, q in self.bids)

    def ask_levels(self) -> tuple[PriceLevel, ...]:
        """Asks as price levels, best first."""
        return tuple(PriceLevel(price=p, quantity=q) for p, q in self.asks)


class Balance(BaseModel):
    """Account balance for a single asset."""

    asset: str
    free: Decimal
    locked: Decimal

    @property
    def total(self) -> Decimal:
        """Get total balance (free + locked)."""
        return self.free + self.locked


class AccountInfo(BaseModel):
    """Account information response."""

    can_trade: bool = Field(default=True, alias="canTrade")
    balances: list[Balance]

    model_config = {"populate_by_name": True}

    def get_balance(self, asset: str) -> Balance | None:
        """Get the balance entry for an asset."""
        for b in self.balances:
            if b.asset == asset:
                return b
        return None


class OrderFill(BaseModel):
    """Single fill in an order response."""

    price: Decimal
    qty: Decimal
    commission: Decimal
    commission_asset: str = Field(alias="commissionAsset")

    model_config = {"populate_by_name": True}


class OrderResponse(BaseModel):
    """Order placement response (FULL response type)."""

    symbol: str
    order_id: int = Field(alias="orderId")
    client_order_id: str = Field(default="", alias="clientOrderId")
    transact_time: int = Field(default=0, alias="transactTime")
    executed_qty: Decimal = Field(default=ZERO, alias="executedQty")
    cummulative_quote_qty: Decimal = Field(default=ZERO, alias="cummulativeQuoteQty")
    status: str
    side: str
    fills: list[OrderFill] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @property
    def total_commission(self) -> Decimal:
        """Total commission across all fills."""
        return sum((f.commission for f in self.fills), ZERO)

    @property
    def commission_asset(self) -> str:
        """Asset the commission was charged in."""
        return self.fills[0].commission_asset if self.fills else ""


class QueryOrderResponse(BaseModel):
    """Order status query response."""

    symbol: str
    order_id: int = Field(alias="orderId")
    executed_qty: Decimal = Field(default=ZERO, alias="executedQty")
    cummulative_quote_qty: Decimal = Field(default=ZERO, alias="cummulativeQuoteQty")
    status: str
    side: str
    update_time: int = Field(default=0, alias="updateTime")

    model_config = {"populate_by_name": True}

    @property
    def avg_price(self) -> Decimal:
        """Average fill price in quote per base."""
        if self.executed_qty <= 0:
            return ZERO
        return self.cummulative_quote_qty / self.executed_qty

