"""
Typed structures passed between the cashier screen, the cart and the backend.

Input models (LineItem, Customer, Product) are pydantic models validated at the
boundary: a missing, negative or non-numeric price, rate or quantity is
rejected with CartValidationError instead of being silently read as zero.
Backend payloads use camelCase keys (and `_id` for identifiers); both those
and the snake_case field names are accepted.

Output structures (LineTotals, CartTotals) are frozen dataclasses produced by
partspos.services.totals.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Annotated, Any, Mapping, Optional, Tuple, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from partspos.errors import CartValidationError

Percent = Annotated[Decimal, Field(ge=0, le=100)]
Money = Annotated[Decimal, Field(ge=0)]

M = TypeVar("M", bound=BaseModel)


class _Boundary(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        str_strip_whitespace=True,
        extra="ignore",
    )


class LineItem(_Boundary):
    product_id: str = Field(min_length=1)
    quantity: int = Field(gt=0, validation_alias=AliasChoices("quantity", "qty"))
    base_unit_price: Money
    discount_rate: Percent = Decimal(0)
    tax_rate: Percent = Decimal(0)
    name: str = ""
    sku: str = ""
    stock_qty: Optional[int] = Field(default=None, ge=0)

    @property
    def label(self) -> str:
        return self.name or self.sku or self.product_id


class Customer(_Boundary):
    id: str = Field(min_length=1, validation_alias=AliasChoices("_id", "id"))
    first_name: str = ""
    last_name: str = ""
    is_loyal_client: bool = False
    loyalty_discount: Percent = Decimal(0)
    is_active: bool = True
    classification: Optional[str] = None
    monthly_average_purchase: Optional[Decimal] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Product(_Boundary):
    id: str = Field(min_length=1, validation_alias=AliasChoices("_id", "id"))
    sku: str = ""
    name: str = ""
    sale_price: Money = Decimal(0)
    tax_rate: Percent = Decimal(0)
    stock_qty: int = 0


class SaleSummary(_Boundary):
    """A row of the backend's sales history."""

    id: str = Field(min_length=1, validation_alias=AliasChoices("_id", "id"))
    reference: str = ""
    customer_name: str = ""
    payment_method: str = ""
    sale_date: Optional[str] = None
    total_incl_tax: Money = Decimal(0)

    @property
    def day(self) -> str:
        return (self.sale_date or "")[:10]


def _describe(exc: ValidationError) -> Tuple[str, Tuple[str, ...]]:
    fields = []
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "value"
        fields.append(loc)
        parts.append(f"{loc} ({err.get('msg', 'invalid')})")
    return ", ".join(parts), tuple(fields)


def parse_model(model: Type[M], data: Mapping[str, Any], what: str) -> M:
    """Validate `data` into `model`, raising CartValidationError on bad input."""
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        detail, fields = _describe(e)
        raise CartValidationError(f"invalid {what}: {detail}", fields) from e


def parse_percent(value: Any, what: str = "discount") -> Decimal:
    try:
        rate = Decimal(str(value).strip().replace(",", "."))
    except ArithmeticError as e:
        raise CartValidationError(f"{what} must be a number, got {value!r}", (what,)) from e
    if not rate.is_finite() or rate < 0 or rate > 100:
        raise CartValidationError(f"{what} must be between 0 and 100, got {value!r}", (what,))
    return rate


@dataclass(frozen=True)
class LineTotals:
    product_id: str
    quantity: int
    final_unit_price: Decimal
    total_incl_tax: Decimal
    total_excl_tax: Decimal
    tax: Decimal


@dataclass(frozen=True)
class CartTotals:
    lines: Tuple[LineTotals, ...]
    total_excl_tax: Decimal
    total_tax: Decimal
    subtotal_incl_tax: Decimal
    global_discount: Decimal
    global_discount_amount: Decimal
    subtotal_after_global_discount: Decimal
    loyalty_discount: Decimal
    loyalty_discount_amount: Decimal
    total_incl_tax: Decimal

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)
