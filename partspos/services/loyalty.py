from __future__ import annotations

from decimal import Decimal
from typing import Optional, Tuple

from partspos.constants import LOYALTY_CLASSIFICATION, LOYALTY_MIN_MONTHLY_PURCHASE, LOYALTY_TIERS
from partspos.schemas import Customer


def loyalty_discount_for(monthly_average_purchase: Optional[float]) -> int:
    if not monthly_average_purchase or monthly_average_purchase < LOYALTY_MIN_MONTHLY_PURCHASE:
        return 0
    for threshold, rate in LOYALTY_TIERS:
        if monthly_average_purchase >= threshold:
            return rate
    return 0


def is_eligible_for_loyalty(
    classification: str,
    monthly_average_purchase: Optional[float],
    is_active: bool = True,
    is_deleted: bool = False,
    blocked_manually: bool = False,
) -> bool:
    if not is_active or is_deleted or blocked_manually:
        return False
    if classification != LOYALTY_CLASSIFICATION:
        return False
    return (monthly_average_purchase or 0) >= LOYALTY_MIN_MONTHLY_PURCHASE


def loyalty_status(
    classification: str,
    monthly_average_purchase: Optional[float],
    is_active: bool = True,
    is_deleted: bool = False,
    blocked_manually: bool = False,
) -> Tuple[bool, int]:
    """Returns (is_loyal_client, loyalty_discount %)."""
    if is_eligible_for_loyalty(classification, monthly_average_purchase, is_active, is_deleted, blocked_manually):
        return True, loyalty_discount_for(monthly_average_purchase)
    return False, 0


def refresh_loyalty(customer: Customer) -> Customer:
    """
    Recompute the loyalty flag and discount from the customer's current
    classification and monthly average purchase, when the backend sent them.
    """
    if not customer.classification or customer.monthly_average_purchase is None:
        return customer
    loyal, rate = loyalty_status(
        customer.classification,
        float(customer.monthly_average_purchase),
        is_active=customer.is_active,
    )
    return customer.model_copy(update={"is_loyal_client": loyal, "loyalty_discount": Decimal(rate)})
