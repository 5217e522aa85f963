"""
lpo_engines.pricing -- Order total computation.

    total = subtotal * (1 + vat% / 100) - subtotal * discount% / 100

Subtotal, VAT and discount are each rounded half-up to the order
currency's minor unit, and the total is built from those rounded parts,
so ``subtotal + vat_amount - discount_amount == total`` holds exactly for
the stored amounts.  Against the unrounded formula the total can differ
by at most one and a half minor units.
The subtotal is rounded from the exact sum of unrounded line totals.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from lpo_kernel.domain.currency import quantize_amount

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PricedLine:
    quantity: Decimal
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return self.quantity * self.unit_price


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    vat_amount: Decimal
    discount_amount: Decimal
    total: Decimal


def compute_totals(
    lines: list[PricedLine] | tuple[PricedLine, ...],
    vat_percent: Decimal,
    discount_percent: Decimal,
    currency: str,
) -> OrderTotals:
    subtotal = sum((line.line_total for line in lines), Decimal("0"))
    vat = subtotal * vat_percent / HUNDRED
    discount = subtotal * discount_percent / HUNDRED
    subtotal = quantize_amount(subtotal, currency)
    vat = quantize_amount(vat, currency)
    discount = quantize_amount(discount, currency)
    return OrderTotals(
        subtotal=subtotal,
        vat_amount=vat,
        discount_amount=discount,
        total=subtotal + vat - discount,
    )


def line_total(quantity: Decimal, unit_price: Decimal, currency: str) -> Decimal:
    return quantize_amount(quantity * unit_price, currency)
