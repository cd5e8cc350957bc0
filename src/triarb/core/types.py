"""
Type definitions for the engine.

This module contains the dataclasses, enums and Protocol definitions used
throughout the application. All amounts, prices and fees are Decimal so
multi-leg arithmetic carries no binary rounding error.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Protocol

from triarb.core.errors import RollbackFailureError, TriArbError, ValidationError


ZERO = Decimal("0")


# =============================================================================
# Enums
# =============================================================================


class Side(str, Enum):
    """Order side enumeration."""

    BUY = "BUY"
    SELL = "SELL"

    @property
    def opposite(self) -> "Side":
        """Side of the compensating order."""
        return Side.SELL if self is Side.BUY else Side.BUY


class RiskLevel(str, Enum):
    """Risk classification of an opportunity."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        """Ordering key, LOW first."""
        return _RISK_RANK[self]

    @classmethod
    def from_factor_count(cls, count: int) -> "RiskLevel":
        """LOW with no factors, MEDIUM with one, HIGH otherwise."""
        if count == 0:
            return cls.LOW
        if count == 1:
            return cls.MEDIUM
        return cls.HIGH


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2}


class Recommendation(str, Enum):
    """Action recommended for an opportunity."""

    EXECUTE = "EXECUTE"
    CAUTIOUS = "CAUTIOUS"
    AVOID = "AVOID"


class OrderStatus(str, Enum):
    """Order status as reported by the exchange."""

    NEW = "NEW"
    PARTIALLY_FILLED = "PARTIALLY_FILLED"
    FILLED = "FILLED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"
    UNKNOWN = "UNKNOWN"

    @property
    def is_terminal_failure(self) -> bool:
        """Order ended without a complete fill."""
        return self in (
            OrderStatus.CANCELLED,
            OrderStatus.REJECTED,
            OrderStatus.EXPIRED,
            OrderStatus.FAILED,
        )


class ExecutionState(str, Enum):
    """States of the execution saga."""

    VALIDATING = "VALIDATING"
    EXECUTING_LEG = "EXECUTING_LEG"
    ROLLING_BACK = "ROLLING_BACK"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @property
    def is_final(self) -> bool:
        """Check if no further transitions are possible."""
        return self in (ExecutionState.SUCCEEDED, ExecutionState.FAILED)


# =============================================================================
# Market Data Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class PriceLevel:
    """Single order-book level."""

    price: Decimal
    quantity: Decimal


@dataclass(slots=True, frozen=True)
class OrderBookSnapshot:
    """
    Point-in-time order book for one pair.

    Bids are sorted best (highest) first, asks best (lowest) first.
    Snapshots are never mutated, only replaced.
    """

    pair: str
    bids: tuple[PriceLevel, ...]
    asks: tuple[PriceLevel, ...]
    timestamp_us: int = 0

    @property
    def best_bid(self) -> PriceLevel | None:
        """Highest bid, if any."""
        return self.bids[0] if self.bids else None

    @property
    def best_ask(self) -> PriceLevel | None:
        """Lowest ask, if any."""
        return self.asks[0] if self.asks else None

    def levels_for(self, side: Side) -> tuple[PriceLevel, ...]:
        """Levels a taker order of the given side consumes."""
        return self.asks if side is Side.BUY else self.bids

    def top_for(self, side: Side) -> PriceLevel | None:
        """Best level a taker order of the given side would hit."""
        return self.best_ask if side is Side.BUY else self.best_bid

    @property
    def spread_pct(self) -> Decimal:
        """Bid-ask spread as a percentage of mid price."""
        if not self.bids or not self.asks:
            return ZERO
        bid, ask = self.bids[0].price, self.asks[0].price
        mid = (bid + ask) / 2
        return (ask - bid) / mid * 100 if mid > 0 else ZERO


# =============================================================================
# Path Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class Step:
    """
    One leg of a triangular path.

    BUY spends the quote currency to acquire the base currency,
    SELL spends the base currency to acquire the quote currency.
    """

    pair: str
    side: Side
    base: str
    quote: str

    @property
    def from_currency(self) -> str:
        """Currency spent by this step."""
        return self.quote if self.side is Side.BUY else self.base

    @property
    def to_currency(self) -> str:
        """Currency received by this step."""
        return self.base if self.side is Side.BUY else self.quote

    def reversed(self) -> "Step":
        """Compensating step on the same pair."""
        return Step(pair=self.pair, side=self.side.opposite, base=self.base, quote=self.quote)

    def __repr__(self) -> str:
        return f"{self.from_currency}->{self.to_currency}({self.pair}:{self.side.value})"


@dataclass(slots=True, frozen=True)
class TriangularPath:
    """
    Closed currency cycle of three or four steps.

    Supplied by the path catalog. Construction fails loudly with
    ValidationError when the steps do not form a cycle.
    """

    id: str
    sequence: str
    steps: tuple[Step, ...]
    exchange: str = "binance"

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """
        Check path shape.

        Raises:
            ValidationError: If the path has the wrong length or is not closed.
        """
        if len(self.steps) not in (3, 4):
            raise ValidationError(
                f"Path {self.id} must have 3 or 4 steps, got {len(self.steps)}"
            )

        for prev, step in zip(self.steps, self.steps[1:], strict=False):
            if prev.to_currency != step.from_currency:
                raise ValidationError(
                    f"Path {self.id} is broken between {prev.pair} and {step.pair}: "
                    f"{prev.to_currency} != {step.from_currency}"
                )

        if self.steps[-1].to_currency != self.steps[0].from_currency:
            raise ValidationError(
                f"Path {self.id} does not return to {self.steps[0].from_currency}"
            )

    @property
    def start_currency(self) -> str:
        """Currency the cycle starts and ends in."""
        return self.steps[0].from_currency

    @property
    def pairs(self) -> tuple[str, ...]:
        """Pairs in step order."""
        return tuple(step.pair for step in self.steps)


# =============================================================================
# Evaluation Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class DepthReport:
    """Result of walking order-book levels for a required quantity."""

    side: Side
    required_amount: Decimal
    filled_amount: Decimal
    levels_consumed: int
    best_price: Decimal
    average_price: Decimal
    price_impact_pct: Decimal
    notional: Decimal
    liquidity_risk: bool

    @property
    def fully_filled(self) -> bool:
        """Check if the visible book covers the required amount."""
        return self.filled_amount >= self.required_amount


@dataclass(slots=True, frozen=True)
class LegResult:
    """
    Outcome of one simulated or executed step.

    Amounts are in the step's own currencies: input in from_currency,
    output in to_currency.
    """

    step: Step
    input_amount: Decimal
    output_amount: Decimal
    price: Decimal
    fee: Decimal
    slippage_pct: Decimal = ZERO
    available_liquidity: Decimal = ZERO
    depth_risk: bool = False
    order_id: str | None = None
    status: OrderStatus | None = None
    simulated: bool = True
    latency_us: int = 0
    error: str = ""

    @property
    def is_filled(self) -> bool:
        """Check if the leg completed."""
        return self.status is OrderStatus.FILLED


@dataclass(slots=True, frozen=True)
class Opportunity:
    """
    Calculator verdict for one path at one point in time.

    Fees and slippage totals are expressed in the starting currency.
    """

    path: TriangularPath
    start_amount: Decimal
    end_amount: Decimal
    gross_profit: Decimal
    gross_profit_pct: Decimal
    net_profit: Decimal
    net_profit_pct: Decimal
    legs: tuple[LegResult, ...]
    total_fees: Decimal
    total_slippage: Decimal
    order_book_depth: Mapping[str, DepthReport]
    risk_factors: tuple[str, ...]
    risk_level: RiskLevel
    recommendation: Recommendation
    profitable: bool
    as_of_us: int = 0

    @property
    def start_currency(self) -> str:
        """Currency the cycle starts in."""
        return self.path.start_currency

    def expected_price(self, leg_index: int) -> Decimal:
        """Quote assumed for a leg when the opportunity was computed."""
        return self.legs[leg_index].price


# =============================================================================
# Execution Types
# =============================================================================


@dataclass(slots=True, frozen=True)
class RollbackAttempt:
    """One compensating order for a completed leg."""

    leg_index: int
    pair: str
    side: Side
    amount: Decimal
    success: bool
    order_id: str | None = None
    status: OrderStatus = OrderStatus.UNKNOWN
    simulated: bool = False
    latency_us: int = 0
    error: str = ""


@dataclass(slots=True)
class ExecutionResult:
    """
    Record of one execution attempt.

    Created before validation starts and finalized exactly once.
    """

    id: str
    opportunity: Opportunity
    start_amount: Decimal
    dry_run: bool
    started_at_us: int
    state: ExecutionState = ExecutionState.VALIDATING
    legs: list[LegResult] = field(default_factory=list)
    failed_leg: LegResult | None = None
    rollbacks: list[RollbackAttempt] = field(default_factory=list)
    success: bool = False
    error: TriArbError | None = None
    rollback_error: RollbackFailureError | None = None
    end_amount: Decimal | None = None
    net_profit: Decimal | None = None
    net_profit_pct: Decimal | None = None
    finished_at_us: int = 0
    transitions: list[str] = field(default_factory=list)
    finalized: bool = False

    @property
    def path_id(self) -> str:
        """Identifier of the executed path."""
        return self.opportunity.path.id

    @property
    def start_currency(self) -> str:
        """Currency the cycle starts in."""
        return self.opportunity.start_currency

    @property
    def total_latency_us(self) -> int:
        """Wall time of the attempt."""
        return self.finished_at_us - self.started_at_us if self.finished_at_us else 0

    @property
    def error_type(self) -> str:
        """Class name of the triggering error."""
        return type(self.error).__name__ if self.error else ""

    @property
    def requires_manual_intervention(self) -> bool:
        """Check if the account may hold an unintended currency mix."""
        if self.rollback_error is not None:
            return True
        return self.failed_leg is not None and self.failed_leg.status is OrderStatus.UNKNOWN

    @property
    def status(self) -> str:
        """Journal status: completed, rolled_back or failed."""
        if self.success:
            return "completed"
        if self.rollbacks and all(r.success for r in self.rollbacks):
            return "rolled_back"
        return "failed"


@dataclass(slots=True, frozen=True)
class AccountBalance:
    """Balance of one currency, read fresh before each execution."""

    currency: str
    available: Decimal
    total: Decimal


@dataclass(slots=True, frozen=True)
class OrderStatusReport:
    """
    Order state returned by an exchange status query.

    filled_qty is in the base currency, quote_qty in the quote currency.
    """

    order_id: str
    status: OrderStatus
    filled_qty: Decimal = ZERO
    quote_qty: Decimal = ZERO
    avg_price: Decimal = ZERO
    fee: Decimal = ZERO
    fee_currency: str = ""


# =============================================================================
# Protocols (Interfaces)
# =============================================================================


class ExchangeClient(Protocol):
    """
    Capability interface every exchange adapter implements.

    Order amounts are denominated in the currency being spent.
    """

    @property
    def account_id(self) -> str:
        """Identifier used to serialize executions per account."""
        ...

    async def get_order_book(self, pair: str, depth: int = 20) -> OrderBookSnapshot:
        """Fetch the current order book."""
        ...

    async def get_balance(self, currency: str) -> AccountBalance:
        """Fetch the balance of one currency."""
        ...

    async def place_market_order(self, pair: str, side: Side, amount: Decimal) -> str:
        """Place a market order and return the exchange order id."""
        ...

    async def get_order_status(self, pair: str, order_id: str) -> OrderStatusReport:
        """Query the state of an order."""
        ...


class PathCatalog(Protocol):
    """Provider of triangular path definitions."""

    def get_paths(self, exchange: str, path_set: str | None = None) -> list[TriangularPath]:
        """Get paths for an exchange, optionally one named set."""
        ...


class ExecutionSink(Protocol):
    """Persistence collaborator for execution records."""

    def record_execution(self, result: ExecutionResult) -> None:
        """Store a finalized execution result."""
        ...

    def record_opportunity(self, opportunity: Opportunity) -> None:
        """Store a computed opportunity for audit."""
        ...
