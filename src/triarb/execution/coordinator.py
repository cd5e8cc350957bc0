"""
Atomic multi-leg execution coordinator.

Runs a path's legs strictly in sequence as market orders, each guarded by
a fresh quote check and a fill timeout. When a leg fails, every completed
leg is compensated in reverse order with a best-effort opposite order.
Rollback is not a guaranteed undo; failed compensations are reported,
never retried.
"""

import asyncio
import logging
import random
import secrets
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from triarb.config.constants import (
    DEFAULT_DRY_RUN_JITTER_PCT,
    DEFAULT_DRY_RUN_LATENCY_MS,
    DEFAULT_FEE_RATE,
    DEFAULT_LEG_TIMEOUT_MS,
    DEFAULT_MAX_SLIPPAGE_PCT,
    DEFAULT_POLL_INTERVAL_MS,
    EXECUTION_ID_PREFIX,
)
from triarb.config.settings import Settings
from triarb.core.errors import (
    DataUnavailableError,
    ExchangeError,
    ExecutionInProgressError,
    InsufficientBalanceError,
    OrderRejectedError,
    OrderTimeoutError,
    RollbackFailureError,
    SlippageExceededError,
    TransientExchangeError,
    TriArbError,
    ValidationError,
)
from triarb.core.event_bus import EventBus, EventType
from triarb.core.types import (
    ExchangeClient,
    ExecutionResult,
    ExecutionSink,
    ExecutionState,
    LegResult,
    Opportunity,
    OrderStatus,
    OrderStatusReport,
    Recommendation,
    RollbackAttempt,
    Side,
    Step,
)
from triarb.execution.balance import BalanceValidator
from triarb.execution.guard import AccountExecutionGuard
from triarb.execution.state import ExecutionStateMachine
from triarb.market.gateway import MarketDataGateway
from triarb.utils.money import HUNDRED, ZERO, pct_change
from triarb.utils.time import (
    format_duration_us,
    get_timestamp_ms,
    get_timestamp_us,
    measure_latency_us,
    monotonic_us,
)


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ExecutionOptions:
    """Per-call execution parameters."""

    max_slippage_pct: Decimal = DEFAULT_MAX_SLIPPAGE_PCT
    leg_timeout_ms: int = DEFAULT_LEG_TIMEOUT_MS
    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    dry_run: bool = True
    # Dry runs without account access cannot read a balance
    skip_balance_check: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExecutionOptions":
        """Build from application settings."""
        return cls(
            max_slippage_pct=settings.max_slippage_pct,
            leg_timeout_ms=settings.leg_timeout_ms,
            poll_interval_ms=settings.poll_interval_ms,
            dry_run=settings.dry_run,
            skip_balance_check=settings.dry_run and not settings.has_credentials,
        )


@dataclass(slots=True, frozen=True)
class CoordinatorConfig:
    """Simulation parameters for dry runs."""

    fee_rate: Decimal = DEFAULT_FEE_RATE
    dry_run_jitter_pct: Decimal = DEFAULT_DRY_RUN_JITTER_PCT
    dry_run_latency_ms: int = DEFAULT_DRY_RUN_LATENCY_MS

    @classmethod
    def from_settings(cls, settings: Settings) -> "CoordinatorConfig":
        """Build from application settings."""
        return cls(
            fee_rate=settings.fee_rate,
            dry_run_jitter_pct=settings.dry_run_jitter_pct,
            dry_run_latency_ms=settings.dry_run_latency_ms,
        )


class _LegFailed(Exception):
    """Internal signal carrying the failed leg and its typed error."""

    def __init__(self, leg: LegResult, error: TriArbError) -> None:
        super().__init__(str(error))
        self.leg = leg
        self.error = error


def generate_execution_id() -> str:
    """Execution id of the form EXEC_<ms>_<random>."""
    return f"{EXECUTION_ID_PREFIX}_{get_timestamp_ms()}_{secrets.token_hex(4)}"


class ExecutionCoordinator:
    """
    Executes opportunities as sequential multi-leg sagas.

    Features:
    - Explicit state machine per attempt
    - Per-account serialization with cooldown
    - Stale-quote guard before every order
    - Fill polling under a per-leg timeout, no automatic order retry
    - Reverse-order best-effort rollback of completed legs
    - Dry-run mode with jittered simulated fills
    - Result always returned, finalized and persisted exactly once
    """

    def __init__(
        self,
        gateway: MarketDataGateway,
        validator: BalanceValidator | None = None,
        guard: AccountExecutionGuard | None = None,
        sink: ExecutionSink | None = None,
        config: CoordinatorConfig | None = None,
        event_bus: EventBus | None = None,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize coordinator.

        Args:
            gateway: Source of fresh quotes for the slippage guard.
            validator: Pre-flight balance check.
            guard: Per-account serialization.
            sink: Persistence collaborator, called once per attempt.
            config: Dry-run simulation parameters.
            event_bus: Optional bus for execution events.
            rng: Random source for dry-run jitter.
        """
        self._gateway = gateway
        self._validator = validator or BalanceValidator()
        self._guard = guard or AccountExecutionGuard()
        self._sink = sink
        self._config = config or CoordinatorConfig()
        self._event_bus = event_bus
        self._rng = rng or random.Random()

        # Statistics
        self._total_executions = 0
        self._successful_executions = 0
        self._failed_executions = 0
        self._rollback_failures = 0

    # =========================================================================
    # Entry Point
    # =========================================================================

    async def execute(
        self,
        opportunity: Opportunity,
        account: ExchangeClient,
        options: ExecutionOptions | None = None,
    ) -> ExecutionResult:
        """
        Execute an opportunity.

        Never raises for trading failures: the returned result carries the
        triggering error, per-leg outcomes and rollback attempts.

        Args:
            opportunity: Opportunity to execute.
            account: Exchange client bound to the trading account.
            options: Slippage, timeout and dry-run parameters.

        Returns:
            Finalized ExecutionResult.
        """
        opts = options or ExecutionOptions()
        result = ExecutionResult(
            id=generate_execution_id(),
            opportunity=opportunity,
            start_amount=opportunity.start_amount,
            dry_run=opts.dry_run,
            started_at_us=get_timestamp_us(),
        )
        machine = ExecutionStateMachine(len(opportunity.path.steps))
        result.transitions = machine.history
        self._total_executions += 1

        mode = "DRY RUN" if opts.dry_run else "LIVE"
        logger.info(
            f"[{mode}] Execution {result.id} started: {opportunity.path.sequence} "
            f"with {opportunity.start_amount} {opportunity.start_currency}"
        )
        await self._publish(EventType.EXECUTION_STARTED, result)

        try:
            async with self._guard.acquire(account.account_id):
                await self._run(result, machine, account, opts)
        except ExecutionInProgressError as e:
            logger.warning(f"Execution {result.id} refused: {e}")
            result.error = e
            self._advance(result, machine, ExecutionState.FAILED)

        await self._finalize(result)
        return result

    async def _run(
        self,
        result: ExecutionResult,
        machine: ExecutionStateMachine,
        account: ExchangeClient,
        opts: ExecutionOptions,
    ) -> None:
        """Drive one attempt from VALIDATING to a final state."""
        opportunity = result.opportunity

        # VALIDATING
        try:
            await self._validate(opportunity, account, opts)
        except TriArbError as e:
            logger.warning(f"Execution {result.id} failed validation: {e}")
            result.error = e
            self._advance(result, machine, ExecutionState.FAILED)
            return

        # EXECUTING_LEG[i]
        carried = opportunity.start_amount
        for index, step in enumerate(opportunity.path.steps):
            self._advance(result, machine, ExecutionState.EXECUTING_LEG, index)
            try:
                leg = await self._execute_leg(index, step, carried, opportunity, account, opts)
            except _LegFailed as failure:
                logger.error(f"Execution {result.id} leg {index + 1} failed: {failure.error}")
                result.failed_leg = failure.leg
                result.error = failure.error
                break

            result.legs.append(leg)
            carried = leg.output_amount
            await self._publish(EventType.LEG_FILLED, leg)
        else:
            self._advance(result, machine, ExecutionState.SUCCEEDED)
            result.success = True
            result.end_amount = carried
            result.net_profit = carried - result.start_amount
            result.net_profit_pct = result.net_profit / result.start_amount * HUNDRED
            return

        # ROLLING_BACK
        self._advance(result, machine, ExecutionState.ROLLING_BACK)
        await self._rollback(result, account, opts)
        self._advance(result, machine, ExecutionState.FAILED)

    async def _validate(
        self,
        opportunity: Opportunity,
        account: ExchangeClient,
        opts: ExecutionOptions,
    ) -> None:
        """
        Pre-flight checks, before any order is placed.

        Raises:
            ValidationError: On a malformed path, an AVOID verdict or
                insufficient balance.
        """
        opportunity.path.validate()

        if opportunity.recommendation is Recommendation.AVOID:
            raise ValidationError(f"Opportunity {opportunity.path.id} is recommended AVOID")

        if opts.skip_balance_check:
            return

        try:
            balance = await account.get_balance(opportunity.start_currency)
        except ExchangeError as e:
            raise ValidationError(f"Cannot read {opportunity.start_currency} balance: {e}") from e

        check = self._validator.validate_for_execution(opportunity, balance)
        if not check:
            raise InsufficientBalanceError(check.message)

    # =========================================================================
    # Legs
    # =========================================================================

    async def _execute_leg(
        self,
        index: int,
        step: Step,
        amount: Decimal,
        opportunity: Opportunity,
        account: ExchangeClient,
        opts: ExecutionOptions,
    ) -> LegResult:
        """
        Run one leg: quote guard, order, fill.

        Raises:
            _LegFailed: With the failed leg record and the typed error.
        """
        start_us = monotonic_us()

        try:
            book = await self._gateway.get_order_book(step.pair)
            top = book.top_for(step.side)
            if top is None:
                raise DataUnavailableError(step.pair, "empty side")

            expected = opportunity.expected_price(index)
            change = pct_change(top.price, expected)
            if change > opts.max_slippage_pct:
                raise SlippageExceededError(
                    step.pair, expected, top.price, change, opts.max_slippage_pct
                )
        except (DataUnavailableError, SlippageExceededError) as e:
            leg = self._failed_leg(step, amount, OrderStatus.FAILED, start_us, str(e))
            raise _LegFailed(leg, e) from e

        if opts.dry_run:
            return await self._simulate_fill(step, amount, top.price, start_us)

        return await self._place_and_wait(step, amount, account, opts, start_us)

    async def _simulate_fill(
        self,
        step: Step,
        amount: Decimal,
        quote: Decimal,
        start_us: int,
    ) -> LegResult:
        """Fill at the live quote with random jitter, never touching orders."""
        jitter_pct = self._config.dry_run_jitter_pct
        jitter = Decimal(str(self._rng.uniform(-1.0, 1.0))) * jitter_pct
        price = quote * (1 + jitter / HUNDRED)
        output, fee = self._convert(step.side, amount, price, self._config.fee_rate)

        if self._config.dry_run_latency_ms > 0:
            await asyncio.sleep(self._config.dry_run_latency_ms / 1000)

        logger.debug(f"[DRY RUN] {step!r} {amount} -> {output} @ {price}")
        return LegResult(
            step=step,
            input_amount=amount,
            output_amount=output,
            price=price,
            fee=fee,
            slippage_pct=abs(jitter),
            status=OrderStatus.FILLED,
            simulated=True,
            latency_us=measure_latency_us(start_us),
        )

    async def _place_and_wait(
        self,
        step: Step,
        amount: Decimal,
        account: ExchangeClient,
        opts: ExecutionOptions,
        start_us: int,
    ) -> LegResult:
        """Place a market order and poll it to completion."""
        try:
            order_id = await account.place_market_order(step.pair, step.side, amount)
        except ExchangeError as e:
            # A transport failure may hide an accepted order
            status = (
                OrderStatus.UNKNOWN
                if isinstance(e, TransientExchangeError)
                else OrderStatus.REJECTED
            )
            error = OrderRejectedError(step.pair, str(e))
            raise _LegFailed(self._failed_leg(step, amount, status, start_us, str(e)), error) from e
        except Exception as e:
            # Unreadable response: the order may have been accepted
            logger.exception(f"Unexpected error placing {step!r}")
            error = OrderRejectedError(step.pair, f"unexpected error: {e!r}")
            leg = self._failed_leg(step, amount, OrderStatus.UNKNOWN, start_us, str(error))
            raise _LegFailed(leg, error) from e

        try:
            report = await self._wait_for_fill(step.pair, order_id, account, opts)
        except TimeoutError as e:
            error = OrderTimeoutError(step.pair, order_id, opts.leg_timeout_ms)
            leg = self._failed_leg(
                step, amount, OrderStatus.UNKNOWN, start_us, str(error), order_id
            )
            raise _LegFailed(leg, error) from e
        except ExchangeError as e:
            error = OrderRejectedError(step.pair, f"status query failed: {e}", order_id)
            leg = self._failed_leg(
                step, amount, OrderStatus.UNKNOWN, start_us, str(error), order_id
            )
            raise _LegFailed(leg, error) from e
        except Exception as e:
            logger.exception(f"Unexpected error polling order {order_id} on {step.pair}")
            error = OrderRejectedError(step.pair, f"status query failed: {e!r}", order_id)
            leg = self._failed_leg(
                step, amount, OrderStatus.UNKNOWN, start_us, str(error), order_id
            )
            raise _LegFailed(leg, error) from e

        if report.status is not OrderStatus.FILLED:
            error = OrderRejectedError(step.pair, report.status.value, order_id)
            leg = self._failed_leg(step, amount, report.status, start_us, str(error), order_id)
            raise _LegFailed(leg, error)

        return self._leg_from_report(step, amount, report, start_us)

    async def _wait_for_fill(
        self,
        pair: str,
        order_id: str,
        account: ExchangeClient,
        opts: ExecutionOptions,
    ) -> OrderStatusReport:
        """
        Poll until the order is filled or ends in failure.

        Raises:
            TimeoutError: If neither happens within the leg timeout.
            ExchangeError: On a non-transient status query failure.
        """
        interval = opts.poll_interval_ms / 1000
        async with asyncio.timeout(opts.leg_timeout_ms / 1000):
            while True:
                try:
                    report = await account.get_order_status(pair, order_id)
                except TransientExchangeError as e:
                    logger.debug(f"Status poll for {order_id} failed, will poll again: {e}")
                else:
                    if report.status is OrderStatus.FILLED or report.status.is_terminal_failure:
                        return report
                await asyncio.sleep(interval)

    def _leg_from_report(
        self,
        step: Step,
        amount: Decimal,
        report: OrderStatusReport,
        start_us: int,
    ) -> LegResult:
        """Build a leg result from actual fill quantities."""
        if step.side is Side.BUY:
            spent, received = report.quote_qty, report.filled_qty
        else:
            spent, received = report.filled_qty, report.quote_qty

        # Commission paid in the received currency reduces what is carried forward
        output = received - report.fee if report.fee_currency == step.to_currency else received

        leg = LegResult(
            step=step,
            input_amount=spent or amount,
            output_amount=output,
            price=report.avg_price,
            fee=report.fee,
            order_id=report.order_id,
            status=OrderStatus.FILLED,
            simulated=False,
            latency_us=measure_latency_us(start_us),
        )
        logger.info(
            f"Leg {step!r} filled: order {report.order_id} "
            f"{leg.input_amount} -> {leg.output_amount} @ {leg.price}"
        )
        return leg

    def _failed_leg(
        self,
        step: Step,
        amount: Decimal,
        status: OrderStatus,
        start_us: int,
        error: str,
        order_id: str | None = None,
    ) -> LegResult:
        return LegResult(
            step=step,
            input_amount=amount,
            output_amount=ZERO,
            price=ZERO,
            fee=ZERO,
            order_id=order_id,
            status=status,
            simulated=False,
            latency_us=measure_latency_us(start_us),
            error=error,
        )

    @staticmethod
    def _convert(
        side: Side,
        amount: Decimal,
        price: Decimal,
        fee_rate: Decimal,
    ) -> tuple[Decimal, Decimal]:
        """Output and fee of spending amount at price, fee on input for BUY."""
        if side is Side.BUY:
            fee = amount * fee_rate
            return (amount - fee) / price, fee
        proceeds = amount * price
        fee = proceeds * fee_rate
        return proceeds - fee, fee

    # =========================================================================
    # Rollback
    # =========================================================================

    async def _rollback(
        self,
        result: ExecutionResult,
        account: ExchangeClient,
        opts: ExecutionOptions,
    ) -> None:
        """Compensate completed legs in reverse order, once each."""
        if not result.legs:
            logger.info(f"Execution {result.id}: nothing to roll back")
            return

        failed: list[int] = []
        for index in range(len(result.legs) - 1, -1, -1):
            leg = result.legs[index]
            attempt = await self._compensate(index, leg, account, opts)
            result.rollbacks.append(attempt)
            if not attempt.success:
                failed.append(index)

        if failed:
            error = RollbackFailureError(result.id, failed)
            result.rollback_error = error
            self._rollback_failures += 1
            logger.critical(f"{error}: manual reconciliation required")
            await self._publish(EventType.ROLLBACK_FAILED, result)
        else:
            logger.info(f"Execution {result.id}: rolled back {len(result.rollbacks)} leg(s)")

    async def _compensate(
        self,
        index: int,
        leg: LegResult,
        account: ExchangeClient,
        opts: ExecutionOptions,
    ) -> RollbackAttempt:
        """Place one compensating order spending the leg's output."""
        reverse = leg.step.reversed()
        amount = leg.output_amount
        start_us = monotonic_us()

        if opts.dry_run:
            return RollbackAttempt(
                leg_index=index,
                pair=reverse.pair,
                side=reverse.side,
                amount=amount,
                success=True,
                status=OrderStatus.FILLED,
                simulated=True,
                latency_us=measure_latency_us(start_us),
            )

        order_id: str | None = None
        try:
            order_id = await account.place_market_order(reverse.pair, reverse.side, amount)
            report = await self._wait_for_fill(reverse.pair, order_id, account, opts)
        except TimeoutError:
            status, error = OrderStatus.UNKNOWN, f"not filled within {opts.leg_timeout_ms}ms"
        except ExchangeError as e:
            status, error = OrderStatus.UNKNOWN if order_id else OrderStatus.REJECTED, str(e)
        except Exception as e:
            logger.exception(f"Unexpected error compensating leg {index + 1} {reverse!r}")
            status, error = OrderStatus.UNKNOWN, f"unexpected error: {e!r}"
        else:
            status = report.status
            error = "" if status is OrderStatus.FILLED else f"order ended {status.value}"

        success = status is OrderStatus.FILLED
        log = logger.info if success else logger.error
        log(
            f"Rollback leg {index + 1} {reverse!r} {amount}: "
            f"{'filled' if success else error} (order {order_id})"
        )
        return RollbackAttempt(
            leg_index=index,
            pair=reverse.pair,
            side=reverse.side,
            amount=amount,
            success=success,
            order_id=order_id,
            status=status,
            simulated=False,
            latency_us=measure_latency_us(start_us),
            error=error,
        )

    # =========================================================================
    # Finalization
    # =========================================================================

    def _advance(
        self,
        result: ExecutionResult,
        machine: ExecutionStateMachine,
        target: ExecutionState,
        leg_index: int | None = None,
    ) -> None:
        machine.transition(target, leg_index)
        result.state = machine.state
        result.transitions = machine.history

    async def _finalize(self, result: ExecutionResult) -> None:
        """Stamp, count, persist and announce the result exactly once."""
        if result.finalized:
            raise RuntimeError(f"Execution {result.id} finalized twice")
        result.finished_at_us = get_timestamp_us()
        result.finalized = True

        if result.success:
            self._successful_executions += 1
            logger.info(
                f"Execution {result.id} completed: {result.start_amount} -> "
                f"{result.end_amount} {result.start_currency} "
                f"(net {result.net_profit_pct:.4f}%) in {format_duration_us(result.total_latency_us)}"
            )
        else:
            self._failed_executions += 1
            logger.info(f"Execution {result.id} {result.status}: {result.error_type} {result.error}")

        if self._sink is not None:
            try:
                self._sink.record_execution(result)
            except Exception:
                logger.exception(f"Failed to persist execution {result.id}")

        await self._publish(EventType.EXECUTION_COMPLETE, result)

    async def _publish(self, event_type: EventType, payload: Any) -> None:
        if self._event_bus is not None:
            await self._event_bus.publish(event_type, payload, source="coordinator")

    @property
    def stats(self) -> dict[str, int]:
        """Get execution statistics."""
        return {
            "total": self._total_executions,
            "successful": self._successful_executions,
            "failed": self._failed_executions,
            "rollback_failures": self._rollback_failures,
        }
