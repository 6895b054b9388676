# accounting/services/aging.py

"""
Shared age buckets for AR/AP aging and party-control role ageing.

days <= 0 -> CURRENT, 1-30, 31-60, 61-90, over 90 -> 90_PLUS
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

TWOPLACES = Decimal("0.01")

CURRENT = "CURRENT"
DAYS_1_30 = "1_30"
DAYS_31_60 = "31_60"
DAYS_61_90 = "61_90"
DAYS_90_PLUS = "90_PLUS"

BUCKETS = (CURRENT, DAYS_1_30, DAYS_31_60, DAYS_61_90, DAYS_90_PLUS)


def bucket_for(days: int) -> str:
    if days <= 0:
        return CURRENT
    if days <= 30:
        return DAYS_1_30
    if days <= 60:
        return DAYS_31_60
    if days <= 90:
        return DAYS_61_90
    return DAYS_90_PLUS


def empty_buckets() -> dict[str, Decimal]:
    return {b: Decimal("0.00") for b in BUCKETS}


def money_str(amount) -> str:
    return str(Decimal(amount or 0).quantize(TWOPLACES, rounding=ROUND_HALF_UP))


def buckets_as_str(buckets: dict) -> dict[str, str]:
    return {b: money_str(buckets.get(b)) for b in BUCKETS}
