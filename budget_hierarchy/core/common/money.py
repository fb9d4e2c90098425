"""
Decimal helpers for amounts and percentages.

Amounts are rounded per hierarchy level (parent amount x percentage / 100, then
quantized to the currency's minor units). Rounding is never deferred to a final
pass, so a few cents of drift across levels is expected.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

DEFAULT_CURRENCY = "BRL"
HUNDRED = Decimal("100")
ZERO = Decimal("0")
PERCENT_TOLERANCE = Decimal("0.01")
PERCENTAGE_QUANTUM = Decimal("0.0000000001")

_CURRENCY_MINOR_UNITS = {
    "BHD": 3,
    "JPY": 0,
    "KRW": 0,
    "KWD": 3,
    "OMR": 3,
    "VND": 0,
}


def quantize_amount_for_currency(amount: Decimal, currency: str = DEFAULT_CURRENCY) -> Decimal:
    digits = _CURRENCY_MINOR_UNITS.get(currency.upper(), 2)
    quantum = Decimal("1") if digits == 0 else Decimal(f"1e-{digits}")
    return Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)


def amount_for_percentage(
    parent_amount: Decimal, percentage: Decimal, currency: str = DEFAULT_CURRENCY
) -> Decimal:
    return quantize_amount_for_currency(
        Decimal(parent_amount) * Decimal(percentage) / HUNDRED, currency
    )


def percentage_of(amount: Decimal, parent_amount: Decimal) -> Decimal:
    if parent_amount == ZERO:
        raise ValueError("parent_amount must be non-zero")
    return (Decimal(amount) / Decimal(parent_amount) * HUNDRED).quantize(
        PERCENTAGE_QUANTUM, rounding=ROUND_HALF_UP
    )


def even_percentages(count: int) -> list[Decimal]:
    """Split 100% across ``count`` siblings; the last one absorbs the remainder."""
    if count <= 0:
        return []
    share = (HUNDRED / Decimal(count)).quantize(PERCENTAGE_QUANTUM, rounding=ROUND_HALF_UP)
    shares = [share] * (count - 1)
    shares.append(HUNDRED - sum(shares, ZERO))
    return shares


def sum_decimals(values: Iterable[Decimal]) -> Decimal:
    return sum((Decimal(value) for value in values), ZERO)


def within_percent_tolerance(total: Decimal) -> bool:
    return abs(Decimal(total) - HUNDRED) <= PERCENT_TOLERANCE
