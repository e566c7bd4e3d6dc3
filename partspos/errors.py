from __future__ import annotations

from typing import Any, Iterable, List, Optional


class PosError(Exception):
    """Base class for every error raised by partspos."""


class CartValidationError(PosError, ValueError):
    """A line item, customer or discount failed boundary validation."""

    def __init__(self, message: str, fields: Iterable[str] = ()):
        super().__init__(message)
        self.fields = tuple(fields)


class LineNotFound(PosError, KeyError):
    def __init__(self, product_id: str):
        super().__init__(product_id)
        self.product_id = product_id

    def __str__(self) -> str:
        return f"product {self.product_id} is not in the cart"


class SaleValidationError(PosError):
    """Submission rules blocked the sale. `errors` holds one message per rule broken."""

    def __init__(self, errors: List[str]):
        super().__init__("\n".join(errors))
        self.errors = list(errors)


class ApiError(PosError):
    def __init__(self, message: str, status: int = 0, data: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data
