from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, List, Optional

from partspos.config import settings
from partspos.constants import PAYMENT_CREDIT, SALE_REFERENCE_PREFIX
from partspos.errors import ApiError, SaleValidationError
from partspos.schemas import CartTotals
from partspos.services.cart import Cart, CartSessions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleReceipt:
    reference: str
    customer_name: str
    payment_method: str
    sale_date: str
    lines: tuple
    totals: CartTotals
    payload: Dict[str, Any]
    sale: Dict[str, Any]


def to_money(v: Decimal, decimals: Optional[int] = None) -> float:
    places = settings.decimals if decimals is None else decimals
    q = Decimal(1).scaleb(-places)
    return float(Decimal(v).quantize(q, rounding=ROUND_HALF_UP))


def new_sale_reference(now: Optional[float] = None) -> str:
    ts = int((time.time() if now is None else now) * 1000)
    return f"{SALE_REFERENCE_PREFIX}{ts % 1000000:06d}"


def collect_submission_errors(cart: Cart) -> List[str]:
    """
    Rules the cashier screen enforces before handing a sale to the backend.

    Quantities are summed per product before being compared to the stock that
    was known when the product was added; lines with unknown stock are not
    checked here (the backend re-checks everything anyway).
    """
    if cart.is_empty():
        return ["The cart is empty"]

    errors: List[str] = []
    if cart.payment_method == PAYMENT_CREDIT and cart.customer is None:
        errors.append("A customer must be selected to pay on credit")

    requested: Dict[str, int] = {}
    for it in cart.lines:
        requested[it.product_id] = requested.get(it.product_id, 0) + it.quantity

    for pid, qty in requested.items():
        it = cart.get_line(pid)
        if it.stock_qty is not None and qty > it.stock_qty:
            errors.append(f"{it.label}: insufficient stock (available: {it.stock_qty}, requested: {qty})")
    return errors


def validate_for_submission(cart: Cart) -> None:
    errors = collect_submission_errors(cart)
    if errors:
        raise SaleValidationError(errors)


def customer_name_for(cart: Cart) -> str:
    if cart.customer is not None and cart.customer.full_name:
        return cart.customer.full_name
    return settings.counter_customer


def build_sale_payload(
    cart: Cart,
    totals: Optional[CartTotals] = None,
    sale_date: Optional[date] = None,
) -> Dict[str, Any]:
    totals = totals or cart.totals()
    items = []
    for it, ln in zip(cart.lines, totals.lines):
        items.append(
            {
                "productId": it.product_id,
                "qty": it.quantity,
                "unitPrice": to_money(ln.final_unit_price),
                "baseUnitPrice": to_money(it.base_unit_price),
                "discountRate": float(it.discount_rate),
                "taxRate": float(it.tax_rate),
            }
        )

    payload: Dict[str, Any] = {
        "customerName": customer_name_for(cart),
        "paymentMethod": cart.payment_method,
        "reference": cart.reference or new_sale_reference(),
        "saleDate": (sale_date or date.today()).isoformat(),
        "items": items,
        "totalExclTax": to_money(totals.total_excl_tax),
        "totalTax": to_money(totals.total_tax),
        "totalInclTax": to_money(totals.total_incl_tax),
    }
    if cart.customer is not None:
        payload["customerId"] = cart.customer.id

    # discounts are only sent when they apply
    if totals.global_discount > 0:
        payload["globalDiscount"] = float(totals.global_discount)
        payload["globalDiscountAmount"] = to_money(totals.global_discount_amount)
    if totals.loyalty_discount > 0:
        payload["loyaltyDiscount"] = float(totals.loyalty_discount)
        payload["loyaltyDiscountAmount"] = to_money(totals.loyalty_discount_amount)
    return payload


def submit_sale(cart: Cart, client, sessions: Optional[CartSessions] = None) -> SaleReceipt:
    """
    Validate, flatten and send the sale.

    Raises SaleValidationError before anything is sent, and re-raises the
    backend's ApiError untouched. In both cases the cart is left as it was so
    the cashier can fix it and retry. On success the cart is discarded from
    `sessions` (or cleared when no registry is given).
    """
    validate_for_submission(cart)

    totals = cart.totals()
    if not cart.reference:
        cart.reference = new_sale_reference()
    payload = build_sale_payload(cart, totals)

    try:
        response = client.create_sale(payload)
    except ApiError as e:
        logger.warning("sale %s rejected (status=%s): %s", cart.reference, e.status, e.message)
        raise

    receipt = SaleReceipt(
        reference=payload["reference"],
        customer_name=payload["customerName"],
        payment_method=payload["paymentMethod"],
        sale_date=payload["saleDate"],
        lines=cart.lines,
        totals=totals,
        payload=payload,
        sale=(response or {}).get("sale") or {},
    )
    logger.info("sale %s submitted: total=%s", receipt.reference, payload["totalInclTax"])

    if sessions is not None:
        sessions.discard(cart.session_id)
    else:
        cart.clear()
    return receipt
