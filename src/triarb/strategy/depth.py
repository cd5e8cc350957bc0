"""
Order-book depth analysis.

Walks price levels to find what filling a required quantity would cost,
and whether the fill is deep enough into the book to be a liquidity risk.
"""

from collections.abc import Sequence
from decimal import Decimal

from triarb.config.constants import DEFAULT_DEPTH_MAX_IMPACT_PCT, DEFAULT_DEPTH_MAX_LEVELS
from triarb.core.types import DepthReport, PriceLevel, Side
from triarb.utils.money import HUNDRED, ZERO


def analyze_depth(
    levels: Sequence[PriceLevel],
    required_amount: Decimal,
    side: Side,
    max_levels: int = DEFAULT_DEPTH_MAX_LEVELS,
    max_impact_pct: Decimal = DEFAULT_DEPTH_MAX_IMPACT_PCT,
) -> DepthReport:
    """
    Simulate filling required_amount against levels.

    Levels must be ordered best first (asks ascending for BUY, bids
    descending for SELL). Quantities are in the base currency.

    Args:
        levels: Book side the taker order consumes.
        required_amount: Base quantity to fill.
        side: Side of the taker order.
        max_levels: Levels that may be consumed before flagging risk.
        max_impact_pct: Price impact that flags risk.

    Returns:
        DepthReport. An empty book or an unfilled requirement is
        always a liquidity risk.
    """
    if not levels:
        return DepthReport(
            side=side,
            required_amount=required_amount,
            filled_amount=ZERO,
            levels_consumed=0,
            best_price=ZERO,
            average_price=ZERO,
            price_impact_pct=ZERO,
            notional=ZERO,
            liquidity_risk=True,
        )

    best_price = levels[0].price
    remaining = required_amount
    filled = ZERO
    notional = ZERO
    consumed = 0

    for level in levels:
        if remaining <= 0:
            break
        take = min(level.quantity, remaining)
        filled += take
        notional += take * level.price
        remaining -= take
        consumed += 1

    average_price = notional / filled if filled > 0 else best_price
    impact = abs(average_price - best_price) / best_price * HUNDRED if best_price > 0 else ZERO

    return DepthReport(
        side=side,
        required_amount=required_amount,
        filled_amount=filled,
        levels_consumed=consumed,
        best_price=best_price,
        average_price=average_price,
        price_impact_pct=impact,
        notional=notional,
        liquidity_risk=(
            consumed > max_levels or impact > max_impact_pct or remaining > 0
        ),
    )
