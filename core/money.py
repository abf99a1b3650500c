"""Decimal helpers for monetary values.

All amounts are exact ``Decimal``. Rounding to cents happens only for display
and for amounts that are themselves stored in cents (receipt amounts).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional


CENT = Decimal("0.01")
ZERO = Decimal("0")
AMOUNT_TOLERANCE = Decimal("0.01")


def to_decimal(value) -> Optional[Decimal]:
    """Convert value to Decimal."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: Decimal) -> Decimal:
    """Round half-up to whole cents."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    total = ZERO
    for value in values:
        total += value
    return total


def amounts_match(
    a: Optional[Decimal],
    b: Optional[Decimal],
    tolerance: Decimal = AMOUNT_TOLERANCE,
) -> bool:
    """Check if two amounts match within tolerance."""
    if a is None or b is None:
        return False
    return abs(a - b) <= tolerance


def format_money(value: Optional[Decimal]) -> str:
    """Format as currency text, e.g. ``$1,234.50`` or ``-$12.00``."""
    if value is None:
        return "-"
    rounded = round_money(value)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,.2f}"
