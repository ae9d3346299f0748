"""
Money — decimal amounts, flat tax estimate, minor-unit conversion.

    from toolshed import money

    breakdown = money.PriceBreakdown.of(Decimal("149.99"))
    breakdown.tax          # Decimal("12.37")
    breakdown.total_minor  # 16236

Amounts stay decimal currency values everywhere. `to_minor_units` is the
single conversion to integer cents and is only called at the gateway boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

CURRENCY = "usd"
TAX_RATE = Decimal("0.0825")
CENT = Decimal("0.01")

type Amount = Decimal | int | float | str


# ═══════════════════════════════════════════════════════════════════════════════
# Conversion
# ═══════════════════════════════════════════════════════════════════════════════


def to_decimal(value: Amount) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # str() keeps 149.99 as 149.99 instead of its binary expansion
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: Amount) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Amount) -> int:
    return int(quantize(value) * 100)


def from_minor_units(cents: int) -> Decimal:
    return (Decimal(cents) / 100).quantize(CENT)


def estimate_tax(subtotal: Amount) -> Decimal:
    """Flat sales-tax estimate. No tax engine is consulted."""
    return quantize(to_decimal(subtotal) * TAX_RATE)


def format_usd(value: Amount) -> str:
    return f"${quantize(value):,.2f}"


# ═══════════════════════════════════════════════════════════════════════════════
# Price Breakdown
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class PriceBreakdown:
    """Subtotal, estimated tax and the total that gets charged."""

    subtotal: Decimal
    tax: Decimal
    total: Decimal

    @classmethod
    def of(cls, subtotal: Amount) -> PriceBreakdown:
        sub = quantize(subtotal)
        tax = estimate_tax(sub)
        return cls(subtotal=sub, tax=tax, total=sub + tax)

    @property
    def total_minor(self) -> int:
        return to_minor_units(self.total)


__all__ = (
    "CURRENCY",
    "TAX_RATE",
    "Amount",
    "to_decimal",
    "quantize",
    "to_minor_units",
    "from_minor_units",
    "estimate_tax",
    "format_usd",
    "PriceBreakdown",
)
