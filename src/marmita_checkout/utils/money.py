"""Currency helpers.

Amounts travel through the pipeline as ``Decimal`` and are only rounded
when they are displayed or written to an order row.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Convert a stored or user supplied amount to ``Decimal``.

    Floats go through ``str`` so that ``29.9`` becomes ``Decimal("29.9")``
    instead of its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if value is None:
        raise ValueError("amount is required")
    if isinstance(value, bool):
        raise ValueError(f"invalid amount: {value!r}")
    return Decimal(str(value))


def round_cents(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_price(value: Decimal) -> str:
    """Render an amount the way the storefront shows it, e.g. ``R$ 1.234,56``."""
    rounded = round_cents(to_decimal(value))
    sign = "-" if rounded < 0 else ""
    integer, _, fraction = f"{abs(rounded):.2f}".partition(".")
    groups = []
    while len(integer) > 3:
        groups.insert(0, integer[-3:])
        integer = integer[:-3]
    groups.insert(0, integer)
    return f"{sign}R$ {'.'.join(groups)},{fraction}"
