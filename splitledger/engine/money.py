"""Cent-precision money helpers shared by the engine."""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Amounts closer than this are treated as equal
TOLERANCE = CENT

_LEADING_NUMBER = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number) -> Decimal:
    """Convert without float artifacts (floats go through str)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Number) -> Decimal:
    """Round half-up to cents. Never returns negative zero."""
    rounded = to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    if not rounded:
        return Decimal("0.00")
    return rounded


def parse_amount(raw: Optional[str]) -> Decimal:
    """
    Parse raw user input the way a lenient number field does.

    The leading numeric part is used ("12.5abc" -> 12.5); blank,
    missing or non-numeric input is zero.
    """
    if raw is None:
        return ZERO
    match = _LEADING_NUMBER.match(str(raw))
    if not match:
        return ZERO
    try:
        return Decimal(match.group(1))
    except InvalidOperation:
        return ZERO


def format_money(value: Decimal) -> str:
    return f"{round_money(value):.2f}"


def format_number(value: Decimal) -> str:
    """Two decimals at most, trailing zeros dropped (90.00 -> '90', 92.50 -> '92.5')."""
    text = f"{round_money(value):.2f}"
    return text.rstrip("0").rstrip(".")
