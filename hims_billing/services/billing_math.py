# hims_billing/services/billing_math.py
from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

Q2 = Decimal("0.01")
D0 = Decimal("0.00")


def D(x) -> Decimal:
    try:
        return Decimal(str(x if x is not None else 0))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def money2(x) -> Decimal:
    return D(x).quantize(Q2, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable) -> Decimal:
    total = Decimal("0")
    for v in values:
        total += D(v)
    return money2(total)


def within_tolerance(a, b, tolerance=Q2) -> bool:
    return abs(D(a) - D(b)) <= D(tolerance)
