"""
Decimal helpers for money arithmetic.

Exchange payloads carry prices and quantities as strings; these helpers
keep them exact from parsing to order formatting.
"""

from decimal import ROUND_DOWN, Decimal, InvalidOperation


ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: str | int | float | Decimal) -> Decimal:
    """
    Convert a payload value to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1"), not its
    binary expansion.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal value: {value!r}") from e


def pct_change(current: Decimal, reference: Decimal) -> Decimal:
    """
    Absolute relative change of current against reference, in percent.

    Example:
        >>> pct_change(Decimal("101"), Decimal("100"))
        Decimal('1.00')
    """
    if reference == 0:
        return ZERO
    return abs(current - reference) / reference * HUNDRED


def round_step(value: Decimal, step: Decimal) -> Decimal:
    """
    Round a quantity down to a multiple of step.

    Rounds down so an order never exceeds the available balance.

    Example:
        >>> round_step(Decimal("1.23456"), Decimal("0.001"))
        Decimal('1.234')
    """
    if step <= 0:
        return value
    return (value / step).to_integral_value(rounding=ROUND_DOWN) * step


def format_amount(value: Decimal) -> str:
    """
    Render a Decimal for an API request without exponent or trailing zeros.

    Example:
        >>> format_amount(Decimal("1.2300"))
        '1.23'
        >>> format_amount(Decimal("1E+2"))
        '100'
    """
    return format(value.normalize(), "f")
