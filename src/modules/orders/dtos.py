"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.  These are
the contract between checkout and ``OrderService.place_order``.  DTOs are
immutable (``frozen=True``).

- ``CreateOrderItemDTO``: input for a single order line.
- ``CreateOrderDTO``: input for order placement (nested items, in entry
  order).
"""

from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modules.orders.constants import DEFAULT_CURRENCY


class CreateOrderItemDTO(BaseModel):
    """Immutable DTO for a single order line in a placement request.

    ``unit_price`` is resolved by the Service Layer from the catalog.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order placement requests.

    Validates:
    - ``items`` must contain at least one item.
    - Each item quantity must be positive.
    - The same product/variant appears at most once.
    - ``currency`` is a three-letter code.
    """

    model_config = ConfigDict(frozen=True)

    customer_id: UUID
    items: List[CreateOrderItemDTO]
    currency: str = DEFAULT_CURRENCY
    payment_method_id: Optional[UUID] = None
    notes: Optional[str] = ""
    idempotency_key: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[CreateOrderItemDTO]
    ) -> List[CreateOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("currency")
    @classmethod
    def currency_must_be_iso_code(cls, v: str) -> str:
        code = v.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError("Currency must be a three-letter ISO 4217 code.")
        return code

    @model_validator(mode="after")
    def no_duplicate_lines(self):
        """Prevent the same product/variant twice in one order."""
        keys = [(item.product_id, item.variant_id) for item in self.items]
        if len(keys) != len(set(keys)):
            raise ValueError("Duplicate products are not allowed in the same order.")
        return self
