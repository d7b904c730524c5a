"""Line and order pricing for checkout.

All amounts are ``Decimal`` with two fractional digits. Only products are
rounded (ROUND_HALF_UP); subtraction and addition stay exact, so::

    subtotal_after_discount == subtotal_before_discount - discount_amount
    final_total             == subtotal_after_discount + vat_amount

hold for every line, and order totals are plain sums of line values.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

DEFAULT_VAT_PERCENTAGE = Decimal("15.00")

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def q(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class LinePricing:
    subtotal_before_discount: Decimal
    discount_amount: Decimal
    subtotal_after_discount: Decimal
    vat_amount: Decimal
    final_total: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal_before_discount: Decimal
    discount_amount: Decimal
    subtotal_after_discount: Decimal
    vat_amount: Decimal
    final_total: Decimal

    @property
    def discount_percentage(self) -> Decimal:
        """Effective order-level discount, derived from the line sums."""
        if self.subtotal_before_discount == ZERO:
            return ZERO
        return q(self.discount_amount / self.subtotal_before_discount * HUNDRED)


def price_line(
    quantity: int,
    unit_price: Decimal,
    discount_percentage: Decimal = ZERO,
    vat_percentage: Decimal = DEFAULT_VAT_PERCENTAGE,
) -> LinePricing:
    subtotal_before = q(Decimal(quantity) * unit_price)
    discount = q(subtotal_before * discount_percentage / HUNDRED)
    subtotal_after = subtotal_before - discount
    vat = q(subtotal_after * vat_percentage / HUNDRED)
    return LinePricing(
        subtotal_before_discount=subtotal_before,
        discount_amount=discount,
        subtotal_after_discount=subtotal_after,
        vat_amount=vat,
        final_total=subtotal_after + vat,
    )


def unit_price_after_discount(unit_price: Decimal, discount_percentage: Decimal) -> Decimal:
    return q(unit_price * (HUNDRED - discount_percentage) / HUNDRED)


def total_order(lines: Iterable[LinePricing]) -> OrderTotals:
    lines = list(lines)
    return OrderTotals(
        subtotal_before_discount=sum((ln.subtotal_before_discount for ln in lines), ZERO),
        discount_amount=sum((ln.discount_amount for ln in lines), ZERO),
        subtotal_after_discount=sum((ln.subtotal_after_discount for ln in lines), ZERO),
        vat_amount=sum((ln.vat_amount for ln in lines), ZERO),
        final_total=sum((ln.final_total for ln in lines), ZERO),
    )
