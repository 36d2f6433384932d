# academy_ledger/core/money.py - Decimal helpers for currency amounts
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
# Remaining balances below one cent count as settled
EPSILON = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert a number, string or Decimal to a 2-place Decimal (half-up)"""
    if value is None:
        return ZERO
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValueError(f"Invalid monetary amount: {value!r}") from e


def percent_of(amount: Decimal, percent: Any) -> Decimal:
    """``amount * percent / 100`` rounded to cents"""
    return to_money(Decimal(amount) * Decimal(str(percent)) / Decimal(100))


def is_settled(remaining: Decimal) -> bool:
    return remaining < EPSILON


def clamp_zero(amount: Decimal) -> Decimal:
    return amount if amount > ZERO else ZERO
