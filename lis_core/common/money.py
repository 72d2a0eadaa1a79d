# lis_core/common/money.py
from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Iterable

# Tolerance shared by every balance and price comparison.
EPSILON = Decimal("0.0001")
CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable) -> Decimal:
    return to_money(sum((Decimal(str(v)) for v in values if v is not None), ZERO))


def exceeds(amount: Decimal, limit: Decimal) -> bool:
    """True when ``amount`` is above ``limit`` by more than the tolerance."""
    return amount > limit + EPSILON


def differs(a: Decimal, b: Decimal) -> bool:
    return abs(Decimal(a) - Decimal(b)) > EPSILON


def non_negative(value: Decimal) -> Decimal:
    return to_money(value) if value > ZERO else ZERO


def split_evenly(total: Decimal, parts: int) -> list[Decimal]:
    """
    Split ``total`` into ``parts`` cent amounts that add up to ``total`` exactly.
    The rounding remainder lands on the last share.
    """
    if parts <= 0:
        return []
    total = to_money(total)
    share = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    shares = [share] * parts
    shares[-1] = total - share * (parts - 1)
    return shares
