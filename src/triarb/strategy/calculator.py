"""
Opportunity calculation engine.

Simulates a triangular path leg by leg against order-book snapshots,
applying fees, a slippage penalty for legs larger than the top of book,
and depth analysis, then classifies risk and recommends an action.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal

from triarb.config.constants import (
    DEFAULT_DEPTH_MAX_IMPACT_PCT,
    DEFAULT_DEPTH_MAX_LEVELS,
    DEFAULT_FEE_RATE,
    DEFAULT_HIGH_FEE_FRACTION,
    DEFAULT_MAX_ORDER_SIZE,
    DEFAULT_MIN_ORDER_SIZE,
    DEFAULT_MIN_PROFIT_THRESHOLD,
    DEFAULT_SLIPPAGE_BUFFER_PCT,
    RISK_FACTOR_HIGH_FEES,
    RISK_FACTOR_LIQUIDITY,
    RISK_FACTOR_SLIPPAGE,
)
from triarb.config.settings import Settings
from triarb.core.errors import DataUnavailableError, ValidationError
from triarb.core.types import (
    DepthReport,
    LegResult,
    Opportunity,
    OrderBookSnapshot,
    Recommendation,
    RiskLevel,
    Side,
    Step,
    TriangularPath,
)
from triarb.strategy.depth import analyze_depth
from triarb.utils.money import HUNDRED, ZERO


logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CalculatorConfig:
    """Engine-configured constants the calculator depends on."""

    fee_rate: Decimal = DEFAULT_FEE_RATE
    min_order_size: Decimal = DEFAULT_MIN_ORDER_SIZE
    max_order_size: Decimal = DEFAULT_MAX_ORDER_SIZE
    min_profit_threshold: Decimal = DEFAULT_MIN_PROFIT_THRESHOLD
    high_fee_fraction: Decimal = DEFAULT_HIGH_FEE_FRACTION
    slippage_buffer_pct: Decimal = DEFAULT_SLIPPAGE_BUFFER_PCT
    depth_max_levels: int = DEFAULT_DEPTH_MAX_LEVELS
    depth_max_impact_pct: Decimal = DEFAULT_DEPTH_MAX_IMPACT_PCT

    @classmethod
    def from_settings(cls, settings: Settings) -> "CalculatorConfig":
        """Build from application settings."""
        return cls(
            fee_rate=settings.fee_rate,
            min_order_size=settings.min_order_size,
            max_order_size=settings.max_order_size,
            min_profit_threshold=settings.min_profit_threshold,
            high_fee_fraction=settings.high_fee_fraction,
            slippage_buffer_pct=settings.slippage_buffer_pct,
            depth_max_levels=settings.depth_max_levels,
            depth_max_impact_pct=settings.depth_max_impact_pct,
        )


@dataclass(slots=True, frozen=True)
class EvaluationOptions:
    """Per-call overrides, e.g. a path set's own profit threshold."""

    fee_rate: Decimal | None = None
    min_profit_threshold: Decimal | None = None


class OpportunityCalculator:
    """
    Scores triangular paths against order-book snapshots.

    Features:
    - Pure function of path, snapshots, amount and configuration
    - Decimal arithmetic across all legs
    - Fee-on-input for buys, fee-on-proceeds for sells
    - Depth analysis and liquidity risk per leg
    - Risk level and recommendation from counted risk factors
    """

    __slots__ = ("_config",)

    def __init__(self, config: CalculatorConfig | None = None) -> None:
        """
        Initialize calculator.

        Args:
            config: Fee rate, size bounds and risk thresholds.
        """
        self._config = config or CalculatorConfig()

    @property
    def config(self) -> CalculatorConfig:
        """Get calculator configuration."""
        return self._config

    def validate_amount(self, start_amount: Decimal) -> None:
        """
        Check a start amount against the configured order-size bounds.

        Raises:
            ValidationError: If the amount is outside [min, max].
        """
        cfg = self._config
        if not cfg.min_order_size <= start_amount <= cfg.max_order_size:
            raise ValidationError(
                f"Start amount {start_amount} outside "
                f"[{cfg.min_order_size}, {cfg.max_order_size}]"
            )

    def evaluate(
        self,
        path: TriangularPath,
        books: Mapping[str, OrderBookSnapshot],
        start_amount: Decimal,
        options: EvaluationOptions | None = None,
    ) -> Opportunity:
        """
        Simulate the cycle and produce a profitability verdict.

        Args:
            path: Closed cycle of 3 or 4 steps.
            books: Snapshots keyed by pair.
            start_amount: Amount of the path's start currency to cycle.
            options: Optional fee and threshold overrides.

        Returns:
            Opportunity with per-leg results, risk level and recommendation.

        Raises:
            ValidationError: If start_amount is outside the configured bounds.
            DataUnavailableError: If a required book is missing or one-sided.
        """
        self.validate_amount(start_amount)

        cfg = self._config
        opts = options or EvaluationOptions()
        fee_rate = opts.fee_rate if opts.fee_rate is not None else cfg.fee_rate
        threshold = (
            opts.min_profit_threshold
            if opts.min_profit_threshold is not None
            else cfg.min_profit_threshold
        )

        current_amount = start_amount
        # Start-currency value of the amount being carried, used to total
        # fees and slippage in one currency
        carried_value = start_amount
        total_fees = ZERO
        total_slippage = ZERO
        legs: list[LegResult] = []
        depth: dict[str, DepthReport] = {}
        as_of_us = 0

        for step in path.steps:
            book = books.get(step.pair)
            if book is None:
                raise DataUnavailableError(step.pair)

            leg, report, fee_fraction, slippage_fraction = self._simulate_leg(
                step, book, current_amount, fee_rate
            )

            fee_value = carried_value * fee_fraction
            slippage_value = (carried_value - fee_value) * slippage_fraction
            total_fees += fee_value
            total_slippage += slippage_value
            carried_value = carried_value - fee_value - slippage_value

            legs.append(leg)
            depth[step.pair] = report
            as_of_us = max(as_of_us, book.timestamp_us)
            current_amount = leg.output_amount

        gross_profit = current_amount - start_amount
        # Fees and slippage are already netted into the leg walk
        net_profit = gross_profit
        net_profit_pct = net_profit / start_amount * HUNDRED

        risk_factors: list[str] = []
        if total_slippage > 0:
            risk_factors.append(RISK_FACTOR_SLIPPAGE)
        if total_fees > start_amount * cfg.high_fee_fraction:
            risk_factors.append(RISK_FACTOR_HIGH_FEES)
        if any(leg.depth_risk for leg in legs):
            risk_factors.append(RISK_FACTOR_LIQUIDITY)

        risk_level = RiskLevel.from_factor_count(len(risk_factors))
        profitable = net_profit > start_amount * threshold

        if profitable and not risk_factors:
            recommendation = Recommendation.EXECUTE
        elif profitable and len(risk_factors) == 1:
            recommendation = Recommendation.CAUTIOUS
        else:
            recommendation = Recommendation.AVOID

        logger.debug(
            f"Evaluated {path.id}: net={net_profit_pct:.4f}% "
            f"risk={risk_level.value} factors={risk_factors} -> {recommendation.value}"
        )

        return Opportunity(
            path=path,
            start_amount=start_amount,
            end_amount=current_amount,
            gross_profit=gross_profit,
            gross_profit_pct=net_profit_pct,
            net_profit=net_profit,
            net_profit_pct=net_profit_pct,
            legs=tuple(legs),
            total_fees=total_fees,
            total_slippage=total_slippage,
            order_book_depth=depth,
            risk_factors=tuple(risk_factors),
            risk_level=risk_level,
            recommendation=recommendation,
            profitable=profitable,
            as_of_us=as_of_us,
        )

    def _simulate_leg(
        self,
        step: Step,
        book: OrderBookSnapshot,
        amount: Decimal,
        fee_rate: Decimal,
    ) -> tuple[LegResult, DepthReport, Decimal, Decimal]:
        """
        Simulate one step at the top of book.

        Returns:
            Leg result, depth report, fee fraction of the leg's value and
            slippage fraction of the post-fee value.
        """
        cfg = self._config
        top = book.top_for(step.side)
        if top is None:
            side_name = "ask" if step.side is Side.BUY else "bid"
            raise DataUnavailableError(step.pair, f"empty {side_name} side")
        if top.price <= 0:
            raise DataUnavailableError(step.pair, f"invalid price {top.price}")

        if step.side is Side.BUY:
            fee = amount * fee_rate
            gross_output = (amount - fee) / top.price
            required_qty = gross_output
        else:
            proceeds = amount * top.price
            fee = proceeds * fee_rate
            gross_output = proceeds - fee
            required_qty = amount

        report = analyze_depth(
            book.levels_for(step.side),
            required_qty,
            step.side,
            max_levels=cfg.depth_max_levels,
            max_impact_pct=cfg.depth_max_impact_pct,
        )
        depth_risk = required_qty > top.quantity or report.liquidity_risk

        slippage_pct = cfg.slippage_buffer_pct if depth_risk else ZERO
        penalty = gross_output * slippage_pct / HUNDRED
        output = gross_output - penalty

        leg = LegResult(
            step=step,
            input_amount=amount,
            output_amount=output,
            price=top.price,
            fee=fee,
            slippage_pct=slippage_pct,
            available_liquidity=top.quantity,
            depth_risk=depth_risk,
        )
        return leg, report, fee_rate, slippage_pct / HUNDRED
