from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from partspos.constants import PAYMENT_CASH, PAYMENT_METHODS
from partspos.errors import CartValidationError, LineNotFound
from partspos.schemas import CartTotals, Customer, LineItem, Product, parse_model, parse_percent
from partspos.services.totals import compute_cart_totals

logger = logging.getLogger(__name__)


@dataclass
class Cart:
    """
    One in-progress sale, owned by a single cashier session.

    Lines are kept in insertion order. Totals are never stored: `totals()`
    recomputes them from a snapshot of the current lines every time.
    """

    session_id: Any
    global_discount: Decimal = Decimal(0)
    customer: Optional[Customer] = None
    payment_method: str = PAYMENT_CASH
    reference: str = ""
    _lines: List[LineItem] = field(default_factory=list, repr=False)

    @property
    def lines(self) -> Tuple[LineItem, ...]:
        return tuple(self._lines)

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[LineItem]:
        return iter(self.lines)

    def is_empty(self) -> bool:
        return not self._lines

    def _index(self, product_id: str) -> int:
        for i, it in enumerate(self._lines):
            if it.product_id == product_id:
                return i
        raise LineNotFound(product_id)

    def get_line(self, product_id: str) -> LineItem:
        return self._lines[self._index(str(product_id))]

    def _replace(self, product_id: str, **changes: Any) -> LineItem:
        i = self._index(str(product_id))
        data: Dict[str, Any] = self._lines[i].model_dump()
        data.update(changes)
        item = parse_model(LineItem, data, "line item")
        self._lines[i] = item
        return item

    # ---------------- lines ----------------

    def add_line(self, **fields: Any) -> LineItem:
        """
        Add a line, or bump the quantity when the product is already in the cart.

        Keyword arguments are LineItem fields (snake_case or camelCase).
        """
        item = parse_model(LineItem, fields, "line item")
        try:
            existing = self.get_line(item.product_id)
        except LineNotFound:
            self._lines.append(item)
            logger.debug("cart %s: added %s x%s", self.session_id, item.product_id, item.quantity)
            return item
        return self._replace(item.product_id, quantity=existing.quantity + item.quantity)

    def add_product(
        self,
        product: Product,
        quantity: int = 1,
        discount_rate: Any = 0,
        unit_price: Any = None,
    ) -> LineItem:
        return self.add_line(
            product_id=product.id,
            name=product.name,
            sku=product.sku,
            quantity=quantity,
            base_unit_price=product.sale_price if unit_price is None else unit_price,
            discount_rate=discount_rate,
            tax_rate=product.tax_rate,
            stock_qty=max(product.stock_qty, 0),
        )

    def update_quantity(self, product_id: str, quantity: Any) -> LineItem:
        return self._replace(product_id, quantity=quantity)

    def set_discount_rate(self, product_id: str, rate: Any) -> LineItem:
        return self._replace(product_id, discount_rate=parse_percent(rate, "discount_rate"))

    def set_unit_price(self, product_id: str, price: Any) -> LineItem:
        return self._replace(product_id, base_unit_price=price)

    def remove_line(self, product_id: str) -> LineItem:
        return self._lines.pop(self._index(str(product_id)))

    # ---------------- sale settings ----------------

    def set_global_discount(self, rate: Any) -> Decimal:
        self.global_discount = parse_percent(rate, "global_discount")
        return self.global_discount

    def select_customer(self, customer: Optional[Customer]) -> None:
        self.customer = customer

    def set_payment_method(self, method: str) -> str:
        m = (method or "").strip().upper()
        if m not in PAYMENT_METHODS:
            raise CartValidationError(
                f"payment method must be one of {', '.join(PAYMENT_METHODS)}, got {method!r}",
                ("payment_method",),
            )
        self.payment_method = m
        return m

    def clear(self) -> None:
        self._lines.clear()
        self.global_discount = Decimal(0)
        self.customer = None
        self.payment_method = PAYMENT_CASH
        self.reference = ""

    # ---------------- totals ----------------

    def snapshot(self) -> Tuple[LineItem, ...]:
        return self.lines

    def totals(self) -> CartTotals:
        return compute_cart_totals(self.snapshot(), self.global_discount, self.customer)


class CartSessions:
    """Carts keyed by session id (a chat id for the bot)."""

    def __init__(self) -> None:
        self._carts: Dict[Any, Cart] = {}

    def start(self, session_id: Any) -> Cart:
        cart = Cart(session_id=session_id)
        self._carts[session_id] = cart
        return cart

    def get(self, session_id: Any) -> Optional[Cart]:
        return self._carts.get(session_id)

    def discard(self, session_id: Any) -> None:
        self._carts.pop(session_id, None)

    def __contains__(self, session_id: Any) -> bool:
        return session_id in self._carts

    def __len__(self) -> int:
        return len(self._carts)
