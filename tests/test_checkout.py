import re
from datetime import date
from decimal import Decimal

import pytest

from partspos.errors import ApiError, SaleValidationError
from partspos.services.cart import Cart, CartSessions
from partspos.services.checkout import (
    build_sale_payload,
    collect_submission_errors,
    new_sale_reference,
    submit_sale,
    to_money,
    validate_for_submission,
)


@pytest.fixture
def sessions():
    return CartSessions()


@pytest.fixture
def cart(sessions, brake_pads):
    c = sessions.start("chat-1")
    c.add_product(brake_pads, quantity=2, discount_rate=10)
    return c


def test_empty_cart_is_blocked():
    errors = collect_submission_errors(Cart(session_id=1))

    assert errors == ["The cart is empty"]


def test_credit_requires_customer(cart, loyal_customer):
    cart.set_payment_method("CREDIT")

    assert collect_submission_errors(cart) == ["A customer must be selected to pay on credit"]

    cart.select_customer(loyal_customer)
    assert collect_submission_errors(cart) == []


def test_quantity_beyond_stock_is_blocked(cart):
    cart.update_quantity("p-brake", 6)

    with pytest.raises(SaleValidationError) as exc:
        validate_for_submission(cart)

    assert exc.value.errors == ["Brake pads: insufficient stock (available: 5, requested: 6)"]


def test_quantity_equal_to_stock_is_fine(cart):
    cart.update_quantity("p-brake", 5)

    validate_for_submission(cart)


def test_unknown_stock_is_not_checked():
    c = Cart(session_id=1)
    c.add_line(product_id="x", quantity=999, base_unit_price="1")

    assert collect_submission_errors(c) == []


def test_all_rules_are_reported_together(cart):
    cart.update_quantity("p-brake", 9)
    cart.set_payment_method("CREDIT")

    errors = collect_submission_errors(cart)

    assert len(errors) == 2


def test_payload_without_discounts(cart):
    cart.reference = "AUTO-000042"

    payload = build_sale_payload(cart, sale_date=date(2024, 3, 1))

    assert payload["reference"] == "AUTO-000042"
    assert payload["saleDate"] == "2024-03-01"
    assert payload["customerName"] == "client comptoir"
    assert payload["paymentMethod"] == "CASH"
    assert "customerId" not in payload
    assert "globalDiscount" not in payload
    assert "loyaltyDiscount" not in payload
    assert payload["items"] == [
        {
            "productId": "p-brake",
            "qty": 2,
            "unitPrice": 90.0,
            "baseUnitPrice": 100.0,
            "discountRate": 10.0,
            "taxRate": 19.0,
        }
    ]
    assert payload["totalInclTax"] == 180.0
    assert payload["totalTax"] == 28.739
    assert payload["totalExclTax"] == 151.261


def test_payload_with_discounts_and_customer(cart, loyal_customer):
    cart.set_global_discount(10)
    cart.select_customer(loyal_customer)

    payload = build_sale_payload(cart)

    assert payload["customerId"] == "c1"
    assert payload["customerName"] == "Sami Ben Ali"
    assert payload["globalDiscount"] == 10.0
    assert payload["globalDiscountAmount"] == 18.0
    assert payload["loyaltyDiscount"] == 5.0
    assert payload["loyaltyDiscountAmount"] == 8.1
    assert payload["totalInclTax"] == 153.9
    assert re.fullmatch(r"AUTO-\d{6}", payload["reference"])


def test_to_money_rounds_half_up():
    assert to_money(Decimal("1.0005")) == 1.001
    assert to_money(Decimal("2.675"), decimals=2) == 2.68


def test_new_sale_reference():
    assert new_sale_reference(now=1700000123.5) == "AUTO-123500"


def test_submit_success_discards_cart(cart, sessions, backend):
    receipt = submit_sale(cart, backend, sessions)

    assert len(backend.sales) == 1
    assert backend.sales[0]["reference"] == receipt.reference
    assert receipt.sale["_id"] == "s1"
    assert receipt.totals.total_incl_tax == Decimal(180)
    assert [it.product_id for it in receipt.lines] == ["p-brake"]
    assert "chat-1" not in sessions


def test_submit_success_without_registry_clears_cart(brake_pads, backend):
    c = Cart(session_id=9)
    c.add_product(brake_pads)

    submit_sale(c, backend)

    assert c.is_empty()


def test_backend_failure_keeps_cart(cart, sessions, fake_backend_cls):
    failing = fake_backend_cls(fail_with=ApiError("Insufficient stock for product Brake pads", status=400))

    with pytest.raises(ApiError) as exc:
        submit_sale(cart, failing, sessions)

    assert exc.value.message == "Insufficient stock for product Brake pads"
    assert sessions.get("chat-1") is cart
    assert cart.get_line("p-brake").quantity == 2
    assert cart.reference


def test_retry_after_failure_reuses_reference(cart, sessions, fake_backend_cls):
    backend = fake_backend_cls(fail_with=ApiError("timeout"))
    with pytest.raises(ApiError):
        submit_sale(cart, backend, sessions)
    first_ref = cart.reference

    backend.fail_with = None
    receipt = submit_sale(cart, backend, sessions)

    assert receipt.reference == first_ref


def test_invalid_cart_is_not_sent(backend):
    with pytest.raises(SaleValidationError):
        submit_sale(Cart(session_id=1), backend)

    assert backend.sales == []
