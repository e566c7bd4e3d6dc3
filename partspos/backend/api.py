from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import requests

from partspos.config import settings
from partspos.errors import ApiError
from partspos.schemas import Customer, Product, SaleSummary, parse_model

logger = logging.getLogger(__name__)


def _error_message(data: Any) -> str:
    if isinstance(data, dict):
        return str(data.get("error") or data.get("message") or "Request failed")
    return "Request failed"


class BackendClient:
    """
    Thin client for the store backend's JSON API.

    Error bodies look like {"error": ...} or {"message": ...}; whichever is
    present becomes the ApiError message, unchanged.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or settings.api_url).rstrip("/")
        self.timeout = settings.api_timeout if timeout is None else timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})
        token = settings.api_token if token is None else token
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = self._url(path)
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Network error calling %s %s: %s", method, url, e)
            raise ApiError(str(e) or "Network error", status=0) from e

        data: Any = {}
        if "application/json" in (resp.headers.get("content-type") or ""):
            try:
                data = resp.json()
            except ValueError:
                data = {}

        if resp.status_code >= 400:
            msg = _error_message(data)
            logger.warning("HTTP %s calling %s %s: %s", resp.status_code, method, url, msg)
            raise ApiError(msg, status=resp.status_code, data=data)
        return data if isinstance(data, dict) else {"data": data}

    # ---------------- products ----------------

    def search_products(self, search: str = "", page: int = 1, limit: int = 20) -> List[Product]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        data = self._request("GET", "/api/products", params=params)
        return [parse_model(Product, p, "product") for p in data.get("products") or []]

    def get_product_record(self, product_id: str) -> Dict[str, Any]:
        """Raw catalog record, pricing fields included."""
        data = self._request("GET", f"/api/products/{product_id}")
        return data.get("product") or {}

    def get_product(self, product_id: str) -> Product:
        return parse_model(Product, self.get_product_record(product_id), "product")

    # ---------------- customers ----------------

    def search_customers(self, search: str = "", page: int = 1, limit: int = 20) -> List[Customer]:
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        data = self._request("GET", "/api/customers", params=params)
        return [parse_model(Customer, c, "customer") for c in data.get("customers") or []]

    def get_customer(self, customer_id: str) -> Customer:
        data = self._request("GET", f"/api/customers/{customer_id}")
        return parse_model(Customer, data.get("customer") or {}, "customer")

    # ---------------- sales ----------------

    def create_sale(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/api/pos/sales", json=payload)

    def list_sales(
        self,
        page: int = 1,
        limit: int = 20,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        payment_method: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> List[SaleSummary]:
        """Most recent first. Dates are YYYY-MM-DD."""
        params: Dict[str, Any] = {"page": page, "limit": limit}
        if start_date:
            params["startDate"] = start_date
        if end_date:
            params["endDate"] = end_date
        if payment_method:
            params["paymentMethod"] = payment_method.upper()
        if customer_id:
            params["client"] = customer_id
        data = self._request("GET", "/api/pos/sales", params=params)
        return [parse_model(SaleSummary, s, "sale") for s in data.get("sales") or []]
