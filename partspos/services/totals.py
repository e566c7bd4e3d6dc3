"""
Cart totals calculator.

Unit prices are tax-inclusive. Tax is backed out per line before any cart
level discount is applied; discounts then run in a fixed order:

    line discount -> global discount (on the tax-inclusive subtotal)
                  -> loyalty discount (on the post-global subtotal)

Everything here is a pure function over already-validated input.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from partspos.schemas import CartTotals, Customer, LineItem, LineTotals

HUNDRED = Decimal(100)
ZERO = Decimal(0)

# only the tax back-out divides by a non power of ten
TAX_PRECISION = Decimal("0.000001")


def final_unit_price(base_unit_price: Decimal, discount_rate: Decimal) -> Decimal:
    price = base_unit_price - base_unit_price * discount_rate / HUNDRED
    return max(price, ZERO)


def exclude_tax(amount_incl_tax: Decimal, tax_rate: Decimal) -> Decimal:
    if not tax_rate:
        return amount_incl_tax
    excl = amount_incl_tax * HUNDRED / (HUNDRED + tax_rate)
    return excl.quantize(TAX_PRECISION, rounding=ROUND_HALF_UP)


def compute_line_totals(item: LineItem) -> LineTotals:
    unit = final_unit_price(item.base_unit_price, item.discount_rate)
    incl = unit * item.quantity
    excl = exclude_tax(incl, item.tax_rate)
    return LineTotals(
        product_id=item.product_id,
        quantity=item.quantity,
        final_unit_price=unit,
        total_incl_tax=incl,
        total_excl_tax=excl,
        tax=incl - excl,
    )


def applied_loyalty_discount(customer: Optional[Customer]) -> Decimal:
    if customer is None or not customer.is_loyal_client:
        return ZERO
    if customer.loyalty_discount <= 0:
        return ZERO
    return customer.loyalty_discount


def compute_cart_totals(
    items: Iterable[LineItem],
    global_discount: Decimal = ZERO,
    customer: Optional[Customer] = None,
) -> CartTotals:
    lines = tuple(compute_line_totals(it) for it in items)

    total_excl = sum((ln.total_excl_tax for ln in lines), ZERO)
    total_tax = sum((ln.tax for ln in lines), ZERO)
    subtotal = total_excl + total_tax

    global_rate = Decimal(global_discount)
    global_amount = subtotal * global_rate / HUNDRED
    after_global = subtotal - global_amount

    loyalty_rate = applied_loyalty_discount(customer)
    loyalty_amount = after_global * loyalty_rate / HUNDRED

    return CartTotals(
        lines=lines,
        total_excl_tax=total_excl,
        total_tax=total_tax,
        subtotal_incl_tax=subtotal,
        global_discount=global_rate,
        global_discount_amount=global_amount,
        subtotal_after_global_discount=after_global,
        loyalty_discount=loyalty_rate,
        loyalty_discount_amount=loyalty_amount,
        total_incl_tax=after_global - loyalty_amount,
    )
