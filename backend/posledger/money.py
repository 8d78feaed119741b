"""
Money helpers.

All amounts are Rupiah held as Decimal with two places and rounded
half-up, matching the Numeric(15, 2) columns they are stored in.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    """Coerce int/str/Decimal (and float via str) to a 2-place Decimal."""
    if value is None:
        return ZERO
    if isinstance(value, bool):
        raise ValueError("boolean is not a monetary amount")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid monetary amount: {value!r}")


def money_str(value) -> str | None:
    if value is None:
        return None
    return str(to_money(value))


def to_quantity(value) -> Decimal:
    """
    Coerce a stock or line quantity to a 2-place Decimal.

    Quantities share the Numeric(15, 2) scale with money; fractional
    units such as 1.5 kg are valid.
    """
    if value is None or isinstance(value, bool):
        raise ValueError(f"invalid quantity: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        quantity = Decimal(value)
    except (InvalidOperation, TypeError):
        raise ValueError(f"invalid quantity: {value!r}")
    if not quantity.is_finite():
        raise ValueError(f"invalid quantity: {value!r}")
    return quantity.quantize(CENT, rounding=ROUND_HALF_UP)


def quantity_str(value) -> str | None:
    if value is None:
        return None
    return str(to_quantity(value))
