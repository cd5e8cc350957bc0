"""
Exception hierarchy for the engine.

Every failure the core can report is a subclass of TriArbError so callers
can catch the whole family at a single seam. None of these are fatal to the
process: the scanner skips paths on DataUnavailableError and the execution
coordinator folds leg and rollback failures into its ExecutionResult.
"""

from decimal import Decimal


class TriArbError(Exception):
    """Base exception for all engine errors."""


# =============================================================================
# Input and Data Errors
# =============================================================================


class ValidationError(TriArbError):
    """Bad input amount or malformed path, rejected before any I/O."""


class InsufficientBalanceError(ValidationError):
    """Available balance does not cover the start amount plus fee buffer."""


class DataUnavailableError(TriArbError):
    """Order-book data is missing or has an empty side."""

    def __init__(self, pair: str, reason: str = "no order book") -> None:
        super().__init__(f"Order book unavailable for {pair}: {reason}")
        self.pair = pair
        self.reason = reason


# =============================================================================
# Execution Errors
# =============================================================================


class SlippageExceededError(TriArbError):
    """The live quote moved beyond tolerance before the order was placed."""

    def __init__(
        self,
        pair: str,
        expected_price: Decimal,
        current_price: Decimal,
        change_pct: Decimal,
        max_slippage_pct: Decimal,
    ) -> None:
        super().__init__(
            f"Quote for {pair} moved {change_pct:.4f}% "
            f"({expected_price} -> {current_price}), limit {max_slippage_pct}%"
        )
        self.pair = pair
        self.expected_price = expected_price
        self.current_price = current_price
        self.change_pct = change_pct
        self.max_slippage_pct = max_slippage_pct


class OrderTimeoutError(TriArbError):
    """No fill observed within the per-leg timeout. The outcome is unknown."""

    def __init__(self, pair: str, order_id: str, timeout_ms: int) -> None:
        super().__init__(f"Order {order_id} on {pair} not filled within {timeout_ms}ms")
        self.pair = pair
        self.order_id = order_id
        self.timeout_ms = timeout_ms


class OrderRejectedError(TriArbError):
    """The exchange rejected, cancelled or expired the order."""

    def __init__(self, pair: str, reason: str, order_id: str | None = None) -> None:
        super().__init__(f"Order on {pair} rejected: {reason}")
        self.pair = pair
        self.reason = reason
        self.order_id = order_id


class RollbackFailureError(TriArbError):
    """
    One or more compensating orders failed.

    The account is left holding an intermediate currency mix and needs
    manual reconciliation.
    """

    def __init__(self, execution_id: str, failed_legs: list[int]) -> None:
        legs = ", ".join(str(i + 1) for i in failed_legs)
        super().__init__(f"Rollback failed for execution {execution_id} on leg(s) {legs}")
        self.execution_id = execution_id
        self.failed_legs = failed_legs


class ExecutionInProgressError(TriArbError):
    """The account is already executing or still cooling down."""

    def __init__(self, account_id: str, reason: str, retry_after: float = 0.0) -> None:
        super().__init__(f"Account {account_id} unavailable: {reason}")
        self.account_id = account_id
        self.reason = reason
        self.retry_after = retry_after


class InvalidTransitionError(RuntimeError):
    """Programmer error: the execution state machine was driven illegally."""


# =============================================================================
# Exchange Boundary Errors
# =============================================================================


class ExchangeError(TriArbError):
    """Error reported by an exchange client."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class TransientExchangeError(ExchangeError):
    """Network-level failure that is safe to retry for read requests."""
