import dataclasses
from decimal import Decimal

import pytest

from partspos import config
from partspos.backend import api
from partspos.bot import handlers
from partspos.errors import ApiError
from partspos.schemas import Customer, LineItem, Product
from partspos.services import checkout, receipt_pdf
from partspos.utils import formatters

ADMIN_ID = 4242


@pytest.fixture(autouse=True)
def pinned_settings(monkeypatch, tmp_path):
    """Same settings for every test, whatever the local .env says."""
    s = dataclasses.replace(
        config.settings,
        bot_token="test-token",
        admin_ids=frozenset({ADMIN_ID}),
        api_url="http://backend.test",
        api_token="",
        api_timeout=5.0,
        export_dir=str(tmp_path / "exports"),
        currency="TND",
        decimals=3,
        counter_customer="client comptoir",
    )
    for mod in (config, api, checkout, receipt_pdf, formatters, handlers):
        monkeypatch.setattr(mod, "settings", s)
    return s


@pytest.fixture
def make_item():
    def _make(product_id="p1", quantity=1, price="100", discount="0", tax="0", **extra):
        return LineItem(
            product_id=product_id,
            quantity=quantity,
            base_unit_price=Decimal(price),
            discount_rate=Decimal(discount),
            tax_rate=Decimal(tax),
            **extra,
        )

    return _make


@pytest.fixture
def loyal_customer():
    return Customer(id="c1", first_name="Sami", last_name="Ben Ali", is_loyal_client=True, loyalty_discount=Decimal(5))


@pytest.fixture
def plain_customer():
    return Customer(id="c2", first_name="Walk", last_name="In")


class FakeBackend:
    """Stands in for BackendClient; records submitted sales."""

    def __init__(self, products=(), customers=(), fail_with=None):
        self.products = {p.id: p for p in products}
        self.records = {}
        self.customers = list(customers)
        self.sales = []
        self.history = []
        self.fail_with = fail_with

    def search_products(self, search="", page=1, limit=20):
        return [p for p in self.products.values() if search.lower() in (p.name + p.sku).lower()]

    def get_product(self, product_id):
        if product_id not in self.products:
            raise ApiError("Product not found", status=404, data={"error": "Product not found"})
        return self.products[product_id]

    def get_product_record(self, product_id):
        if product_id not in self.records:
            raise ApiError("Product not found", status=404, data={"error": "Product not found"})
        return self.records[product_id]

    def search_customers(self, search="", page=1, limit=20):
        return [c for c in self.customers if search.lower() in c.full_name.lower()]

    def get_customer(self, customer_id):
        for c in self.customers:
            if c.id == customer_id:
                return c
        raise ApiError("Customer not found", status=404)

    def create_sale(self, payload):
        if self.fail_with is not None:
            raise self.fail_with
        self.sales.append(payload)
        return {"sale": {"_id": f"s{len(self.sales)}", "reference": payload["reference"]}}

    def list_sales(self, page=1, limit=20, start_date=None, end_date=None, payment_method=None, customer_id=None):
        rows = [s for s in self.history if payment_method is None or s.payment_method == payment_method]
        return rows[:limit]


@pytest.fixture
def brake_pads():
    return Product(id="p-brake", sku="BRK-01", name="Brake pads", sale_price=Decimal(100), tax_rate=Decimal(19), stock_qty=5)


@pytest.fixture
def oil_filter():
    return Product(id="p-oil", sku="OIL-7", name="Oil filter", sale_price=Decimal("12.5"), tax_rate=Decimal(7), stock_qty=40)


@pytest.fixture
def backend(brake_pads, oil_filter, loyal_customer):
    return FakeBackend(products=[brake_pads, oil_filter], customers=[loyal_customer])


@pytest.fixture
def fake_backend_cls():
    return FakeBackend
