"""Money helpers - all amounts are Decimal quantized to cents."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """
    Convert a number or numeric string to a 2dp Decimal.

    Floats go through str() first so 80.1 becomes Decimal("80.10"),
    not the binary expansion of 80.1.

    Raises:
        ValueError: If the value is not numeric
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        if isinstance(value, float):
            value = str(value)
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"Not a monetary amount: {value!r}")


def cents_to_money(cents: int) -> Decimal:
    """Convert provider minor units (cents) to a 2dp Decimal."""
    return (Decimal(int(cents)) / 100).quantize(CENT, rounding=ROUND_HALF_UP)


def money_to_cents(amount: Decimal) -> int:
    """Convert a Decimal amount to provider minor units (cents)."""
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
