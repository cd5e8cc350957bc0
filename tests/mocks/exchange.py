"""
Mock exchange client for testing.

Implements the ExchangeClient capability interface in memory, with
programmable order books, balances and per-pair order behaviour.
"""

from dataclasses import dataclass
from decimal import Decimal

from triarb.core.errors import ExchangeError, TransientExchangeError
from triarb.core.types import (
    AccountBalance,
    OrderBookSnapshot,
    OrderStatus,
    OrderStatusReport,
    PriceLevel,
    Side,
)
from triarb.utils.time import get_timestamp_us


# Order behaviours
FILL = "fill"
HANG = "hang"
REJECT = "reject"
RAISE = "raise"
TRANSIENT = "transient"
MALFORMED = "malformed"
GARBLED = "garbled"


def make_book(
    pair: str,
    bid: str | Decimal,
    ask: str | Decimal,
    bid_qty: str | Decimal = "1000",
    ask_qty: str | Decimal = "1000",
) -> OrderBookSnapshot:
    """Single-level book with the given top of book."""
    return OrderBookSnapshot(
        pair=pair,
        bids=(PriceLevel(Decimal(bid), Decimal(bid_qty)),),
        asks=(PriceLevel(Decimal(ask), Decimal(ask_qty)),),
        timestamp_us=get_timestamp_us(),
    )


@dataclass(slots=True)
class PlacedOrder:
    """Order recorded by the mock."""

    order_id: str
    pair: str
    side: Side
    amount: Decimal
    behaviour: str


class MockExchangeClient:
    """
    Mock exchange client for testing.

    Orders fill at the current top of book with a commission charged in
    the received currency, unless a behaviour was queued for the pair.
    """

    def __init__(
        self,
        books: dict[str, OrderBookSnapshot] | None = None,
        balances: dict[str, Decimal] | None = None,
        account_id: str = "mock:account",
        fee_rate: Decimal = Decimal("0.001"),
    ) -> None:
        """
        Initialize mock client.

        Args:
            books: Order books by pair.
            balances: Available balances by currency.
            account_id: Account identifier.
            fee_rate: Commission rate applied to fills.
        """
        self._books = dict(books or {})
        self._balances = dict(balances or {"USDT": Decimal("10000")})
        self._account_id = account_id
        self._fee_rate = fee_rate
        self._behaviours: dict[str, list[str]] = {}
        self._book_errors: dict[str, list[Exception]] = {}
        self._orders: dict[str, PlacedOrder] = {}
        self._next_id = 0

        self.orders: list[PlacedOrder] = []
        self.book_requests: list[str] = []
        self.status_requests = 0
        self.closed = False

    @property
    def account_id(self) -> str:
        """Account identifier."""
        return self._account_id

    # =========================================================================
    # Programming
    # =========================================================================

    def set_book(self, book: OrderBookSnapshot) -> None:
        """Replace the book for its pair."""
        self._books[book.pair] = book

    def fail_book(self, pair: str, *errors: Exception) -> None:
        """Raise the given errors, in order, on the next book reads."""
        self._book_errors.setdefault(pair, []).extend(errors)

    def queue_behaviour(self, pair: str, *behaviours: str) -> None:
        """Apply behaviours, in order, to the next orders on pair."""
        self._behaviours.setdefault(pair, []).extend(behaviours)

    # =========================================================================
    # ExchangeClient
    # =========================================================================

    async def get_order_book(self, pair: str, depth: int = 20) -> OrderBookSnapshot:
        """Return the programmed book."""
        self.book_requests.append(pair)
        errors = self._book_errors.get(pair)
        if errors:
            raise errors.pop(0)

        book = self._books.get(pair)
        if book is None:
            raise ExchangeError(f"Unknown symbol: {pair}", code=-1121)
        return book

    async def get_balance(self, currency: str) -> AccountBalance:
        """Return the programmed balance."""
        amount = self._balances.get(currency, Decimal("0"))
        return AccountBalance(currency=currency, available=amount, total=amount)

    async def place_market_order(self, pair: str, side: Side, amount: Decimal) -> str:
        """Record an order and apply its behaviour."""
        queue = self._behaviours.get(pair)
        behaviour = queue.pop(0) if queue else FILL

        if behaviour == RAISE:
            raise ExchangeError(f"Order on {pair} refused", code=-2010)
        if behaviour == TRANSIENT:
            raise TransientExchangeError(f"Connection reset placing order on {pair}")
        if behaviour == MALFORMED:
            raise ValueError("1 validation error for OrderResponse: orderId field required")

        self._next_id += 1
        order = PlacedOrder(str(self._next_id), pair, side, amount, behaviour)
        self._orders[order.order_id] = order
        self.orders.append(order)
        return order.order_id

    async def get_order_status(self, pair: str, order_id: str) -> OrderStatusReport:
        """Report the order according to its behaviour."""
        self.status_requests += 1
        order = self._orders[order_id]

        if order.behaviour == HANG:
            return OrderStatusReport(order_id=order_id, status=OrderStatus.NEW)
        if order.behaviour == REJECT:
            return OrderStatusReport(order_id=order_id, status=OrderStatus.REJECTED)
        if order.behaviour == GARBLED:
            raise ValueError("1 validation error for QueryOrderResponse: status field required")

        book = self._books[pair]
        if order.side is Side.BUY:
            price = book.asks[0].price
            filled = order.amount / price
            return OrderStatusReport(
                order_id=order_id,
                status=OrderStatus.FILLED,
                filled_qty=filled,
                quote_qty=order.amount,
                avg_price=price,
                fee=filled * self._fee_rate,
                fee_currency=pair_base(pair),
            )

        price = book.bids[0].price
        proceeds = order.amount * price
        return OrderStatusReport(
            order_id=order_id,
            status=OrderStatus.FILLED,
            filled_qty=order.amount,
            quote_qty=proceeds,
            avg_price=price,
            fee=proceeds * self._fee_rate,
            fee_currency=pair_quote(pair),
        )

    async def close(self) -> None:
        """Mock close."""
        self.closed = True


_QUOTES = ("USDT", "BTC", "ETH", "ZAR")


def pair_quote(pair: str) -> str:
    """Quote currency of a concatenated pair, e.g. ETHUSDT -> USDT."""
    for quote in _QUOTES:
        if pair.endswith(quote) and len(pair) > len(quote):
            return quote
    raise ValueError(f"Unknown quote in {pair}")


def pair_base(pair: str) -> str:
    """Base currency of a concatenated pair, e.g. ETHUSDT -> ETH."""
    return pair[: -len(pair_quote(pair))]
