"""
Pricing & tax resolution for order lines.

Resolution order is variant override -> product default -> configured
default (tax only). "Not set" is None; an explicit zero is a real value and
is never replaced by a fallback.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from flask import current_app

from ..models import Product, ProductVariant


ZERO = Decimal("0")
ONE = Decimal("1")


@dataclass(frozen=True)
class ResolvedLine:
    unit_price_cents: int
    unit_cost_cents: int
    tax_rate: Decimal

    def to_dict(self) -> dict:
        return {
            "unit_price_cents": self.unit_price_cents,
            "unit_cost_cents": self.unit_cost_cents,
            "tax_rate": str(self.tax_rate),
        }


@dataclass(frozen=True)
class PricedLine:
    """One cart line with its money fully computed (all in cents)."""
    quantity: int
    unit_price_cents: int
    unit_cost_cents: int
    discount_cents: int
    tax_rate: Decimal
    tax_cents: int
    line_total_cents: int

    @property
    def gross_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    @property
    def net_cents(self) -> int:
        return self.gross_cents - self.discount_cents


@dataclass(frozen=True)
class CartTotals:
    lines: list[PricedLine]
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int


def round_cents(value: Decimal) -> int:
    """Half-up rounding to whole cents."""
    return int(value.quantize(ONE, rounding=ROUND_HALF_UP))


def _first_set(override, fallback):
    return fallback if override is None else override


def default_tax_rate() -> Decimal:
    return Decimal(str(current_app.config.get("DEFAULT_TAX_RATE", "0") or "0"))


def resolve_line(
    product: Product,
    variant: Optional[ProductVariant] = None,
    *,
    fallback_tax_rate: Optional[Decimal] = None,
) -> ResolvedLine:
    """Effective unit price, unit cost and tax rate for a product/variant."""
    if fallback_tax_rate is None:
        fallback_tax_rate = default_tax_rate()

    price = product.selling_price_cents or 0
    cost = product.cost_price_cents or 0
    rate = _first_set(product.tax_rate, fallback_tax_rate)

    if variant is not None:
        price = _first_set(variant.selling_price_cents, price)
        cost = _first_set(variant.cost_price_cents, cost)
        rate = _first_set(variant.tax_rate, rate)

    return ResolvedLine(unit_price_cents=price, unit_cost_cents=cost, tax_rate=Decimal(str(rate)))


def calculate_totals(lines: list[tuple[int, int, int, int, Decimal]], order_discount_cents: int = 0) -> CartTotals:
    """
    Compute cart money from (quantity, unit_price, unit_cost, line_discount, tax_rate) tuples.

    subtotal = sum(price * qty) - sum(line discounts)
    line tax = line net * rate * (subtotal - order discount) / subtotal
    total    = subtotal - order discount + sum(line tax)

    Spreading the order discount over lines by that ratio makes the tax
    equal to (subtotal - order discount) times the cart's effective rate.
    """
    subtotal = 0
    for quantity, unit_price, _cost, discount, _rate in lines:
        subtotal += unit_price * quantity - discount

    if order_discount_cents > subtotal:
        raise ValueError("order discount exceeds subtotal")

    if subtotal > 0:
        discount_ratio = Decimal(subtotal - order_discount_cents) / Decimal(subtotal)
    else:
        discount_ratio = ONE

    priced: list[PricedLine] = []
    tax_total = 0
    for quantity, unit_price, unit_cost, discount, rate in lines:
        net = unit_price * quantity - discount
        tax = round_cents(Decimal(net) * rate * discount_ratio)
        tax_total += tax
        priced.append(PricedLine(
            quantity=quantity,
            unit_price_cents=unit_price,
            unit_cost_cents=unit_cost,
            discount_cents=discount,
            tax_rate=rate,
            tax_cents=tax,
            line_total_cents=net + tax,
        ))

    return CartTotals(
        lines=priced,
        subtotal_cents=subtotal,
        discount_cents=order_discount_cents,
        tax_cents=tax_total,
        total_cents=subtotal - order_discount_cents + tax_total,
    )
