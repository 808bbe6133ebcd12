"""Rounding policies.

Two policies exist and must not be mixed:
- PKP (taxable income) is floored to a multiple of 1,000 rupiah
- every other money amount is rounded half-up to whole rupiah
"""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

WHOLE_RUPIAH = Decimal("1")
THOUSAND = Decimal("1000")
RATE_PRECISION = Decimal("0.01")


def round_half_up(amount: Decimal) -> Decimal:
    """Round to whole rupiah, halves away from zero."""
    return amount.quantize(WHOLE_RUPIAH, rounding=ROUND_HALF_UP)


def floor_to_thousand(amount: Decimal) -> Decimal:
    """Round toward zero to the nearest 1,000 boundary."""
    return (amount / THOUSAND).quantize(WHOLE_RUPIAH, rounding=ROUND_DOWN) * THOUSAND


def quantize_rate(value: Decimal) -> Decimal:
    """Round hourly rates, percentages and multipliers to 2 decimals."""
    return value.quantize(RATE_PRECISION, rounding=ROUND_HALF_UP)
