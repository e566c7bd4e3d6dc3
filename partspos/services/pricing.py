from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from partspos.constants import PRICING_HYBRID

PRICE_DECIMALS = 3


def _num(v: Any) -> float:
    # catalog records coming from the backend may carry strings or nulls
    try:
        return float(v) if v is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def weighted_average_cost(old_stock: Any, old_price: Any, new_qty: Any, new_price: Any) -> float:
    """CMP: (old_stock*old_price + new_qty*new_price) / (old_stock + new_qty)."""
    old_q, old_p = _num(old_stock), _num(old_price)
    new_q, new_p = _num(new_qty), _num(new_price)

    if new_q <= 0 or new_p <= 0:
        return old_p
    if old_q <= 0 or old_p <= 0:
        return new_p

    avg = (old_q * old_p + new_q * new_p) / (old_q + new_q)
    return round(avg, PRICE_DECIMALS)


def hybrid_recommended_price(
    avg_cost: Any,
    last_cost: Any,
    target_margin: Any,
    min_margin_on_last: Any,
    tax_rate: Any = 0,
) -> float:
    """
    Tax-inclusive sale price from the HYBRID rule.

    The pre-tax price is the higher of the average cost plus the target
    margin and the last purchase cost plus the minimum margin, so a recent
    expensive purchase is never sold at a loss. Tax is added on top.
    """
    avg, last = _num(avg_cost), _num(last_cost)
    target, floor = _num(target_margin), _num(min_margin_on_last)
    tax = _num(tax_rate)

    if avg <= 0 and last <= 0:
        return 0.0

    price_target = avg * (1 + target / 100) if avg > 0 and target > 0 else 0.0
    price_min_safe = last * (1 + floor / 100) if last > 0 else 0.0

    if target > 0 and price_target > 0:
        price_ht = max(price_target, price_min_safe)
    else:
        price_ht = price_min_safe

    price_ttc = price_ht * (1 + tax / 100) if price_ht > 0 else 0.0
    return round(price_ttc, PRICE_DECIMALS)


def _get(product: Mapping[str, Any], key: str, default: Any) -> Any:
    v = product.get(key)
    return default if v is None else v


def recommended_sale_price(product: Optional[Mapping[str, Any]]) -> float:
    if not product:
        return 0.0

    mode = product.get("pricingMode") or PRICING_HYBRID
    if mode == PRICING_HYBRID:
        return hybrid_recommended_price(
            avg_cost=_get(product, "purchasePrice", 0),
            last_cost=_get(product, "lastPurchasePrice", 0),
            target_margin=_get(product, "marginRate", 20),
            min_margin_on_last=_get(product, "minMarginOnLastPurchase", 10),
            tax_rate=_get(product, "taxRate", 0),
        )
    return _num(product.get("salePrice"))


def decompose_pricing(product: Optional[Mapping[str, Any]]) -> Dict[str, float]:
    keys = (
        "lastPurchasePrice",
        "cmpPrice",
        "priceHT",
        "priceWithoutMargin",
        "marginRate",
        "taxRate",
        "salePriceTTC",
        "marginAmount",
        "taxAmount",
    )
    if not product:
        return {k: 0.0 for k in keys}

    sale_ttc = _num(product.get("salePrice"))
    tax_rate = _num(product.get("taxRate"))
    cmp_price = _num(product.get("purchasePrice"))

    price_ht = sale_ttc / (1 + tax_rate / 100) if sale_ttc > 0 and tax_rate >= 0 else 0.0

    out = {
        "lastPurchasePrice": _num(product.get("lastPurchasePrice")),
        "cmpPrice": cmp_price,
        "priceHT": price_ht,
        "priceWithoutMargin": cmp_price,
        "marginRate": _num(product.get("marginRate")),
        "taxRate": tax_rate,
        "salePriceTTC": sale_ttc,
        "marginAmount": price_ht - cmp_price,
        "taxAmount": sale_ttc - price_ht,
    }
    return {k: round(out[k], PRICE_DECIMALS) for k in keys}
