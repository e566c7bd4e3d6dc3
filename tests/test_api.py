import json
from decimal import Decimal

import pytest
import requests

from partspos.backend.api import BackendClient
from partspos.errors import ApiError


def make_response(status, body=None, content_type="application/json"):
    r = requests.Response()
    r.status_code = status
    r.headers["content-type"] = content_type
    if body is None:
        r._content = b""
    elif isinstance(body, (dict, list)):
        r._content = json.dumps(body).encode()
    else:
        r._content = str(body).encode()
    return r


class StubSession(requests.Session):
    def __init__(self, *responses, error=None):
        super().__init__()
        self.responses = list(responses)
        self.error = error
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


def client_with(*responses, error=None, token=""):
    session = StubSession(*responses, error=error)
    return BackendClient(base_url="http://backend.test/", token=token, timeout=3, session=session), session


def test_search_products_unwraps_envelope():
    body = {
        "products": [{"_id": "a1", "sku": "F-1", "name": "Filter", "salePrice": 8.5, "taxRate": 19, "stockQty": 3}],
        "pagination": {"page": 1, "limit": 20, "total": 1, "pages": 1},
    }
    client, session = client_with(make_response(200, body))

    products = client.search_products("filter")

    assert [p.id for p in products] == ["a1"]
    assert products[0].sale_price == Decimal("8.5")
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "http://backend.test/api/products")
    assert kwargs["params"] == {"page": 1, "limit": 20, "search": "filter"}
    assert kwargs["timeout"] == 3


def test_get_customer():
    client, session = client_with(make_response(200, {"customer": {"_id": "c9", "firstName": "Ali", "lastName": "B"}}))

    c = client.get_customer("c9")

    assert c.full_name == "Ali B"
    assert session.calls[0][1] == "http://backend.test/api/customers/c9"


def test_create_sale_posts_payload():
    client, session = client_with(make_response(201, {"sale": {"_id": "s1"}, "stockMovements": []}))

    data = client.create_sale({"items": [{"productId": "a1", "qty": 1}]})

    assert data["sale"]["_id"] == "s1"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://backend.test/api/pos/sales")
    assert kwargs["json"] == {"items": [{"productId": "a1", "qty": 1}]}


@pytest.mark.parametrize(
    "body,expected",
    [
        ({"error": "Sale must have at least one item"}, "Sale must have at least one item"),
        ({"message": "Validation failed"}, "Validation failed"),
        ({}, "Request failed"),
    ],
)
def test_error_body_is_surfaced_verbatim(body, expected):
    client, _ = client_with(make_response(400, body))

    with pytest.raises(ApiError) as exc:
        client.create_sale({})

    assert exc.value.message == expected
    assert exc.value.status == 400
    assert exc.value.data == body


def test_non_json_error():
    client, _ = client_with(make_response(502, "Bad Gateway", content_type="text/html"))

    with pytest.raises(ApiError) as exc:
        client.get_product("a1")

    assert exc.value.status == 502
    assert exc.value.message == "Request failed"


def test_network_error_has_status_zero():
    client, _ = client_with(error=requests.ConnectionError("connection refused"))

    with pytest.raises(ApiError) as exc:
        client.search_customers("x")

    assert exc.value.status == 0
    assert "connection refused" in exc.value.message


def test_bearer_token_header():
    client, session = client_with(token="secret")

    assert session.headers["Authorization"] == "Bearer secret"
    assert session.headers["Content-Type"] == "application/json"


def test_no_token_no_header():
    _, session = client_with()

    assert "Authorization" not in session.headers


def test_list_sales_passes_filters():
    body = {
        "sales": [
            {
                "_id": "s7",
                "reference": "AUTO-000042",
                "customerName": "client comptoir",
                "paymentMethod": "CHECK",
                "saleDate": "2024-03-05T10:12:00.000Z",
                "totalInclTax": 153.5,
                "items": [],
            }
        ],
        "pagination": {"page": 1, "limit": 10, "total": 1, "pages": 1},
    }
    client, session = client_with(make_response(200, body))

    sales = client.list_sales(limit=10, start_date="2024-03-01", payment_method="check", customer_id="c1")

    assert [s.reference for s in sales] == ["AUTO-000042"]
    assert sales[0].day == "2024-03-05"
    assert sales[0].total_incl_tax == Decimal("153.5")
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "http://backend.test/api/pos/sales")
    assert kwargs["params"] == {"page": 1, "limit": 10, "startDate": "2024-03-01", "paymentMethod": "CHECK", "client": "c1"}
