"""
Wire schemas — pydantic request/response models.

Request models convert to domain values via to_domain(), response models are
built from domain values via from_domain().
"""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from convergent.orders import Order, OrderRequest

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
MAX_KEY_LENGTH = 256
_KEY_PATTERN = re.compile(r"^[A-Za-z0-9\-_.:]+$")


def is_valid_key(key: str) -> bool:
    return 0 < len(key) <= MAX_KEY_LENGTH and _KEY_PATTERN.fullmatch(key) is not None


class CreateOrderBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(alias="productId")
    quantity: int = Field(ge=1)
    customer_id: str = Field(alias="customerId")

    @field_validator("product_id", "customer_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    def to_domain(self) -> OrderRequest:
        return OrderRequest(
            product_id=self.product_id,
            quantity=self.quantity,
            customer_id=self.customer_id,
        )


class OrderResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId")
    product_id: str = Field(alias="productId")
    quantity: int
    customer_id: str = Field(alias="customerId")
    total_amount: Decimal = Field(alias="totalAmount")
    status: str

    @classmethod
    def from_domain(cls, order: Order) -> OrderResponse:
        return cls(
            order_id=order.order_id,
            product_id=order.product_id,
            quantity=order.quantity,
            customer_id=order.customer_id,
            total_amount=order.total_amount,
            status=order.status.value,
        )

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ErrorBody(BaseModel):
    status: int
    error: str
    message: str
    details: dict[str, str] | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


__all__ = (
    "IDEMPOTENCY_KEY_HEADER",
    "MAX_KEY_LENGTH",
    "is_valid_key",
    "CreateOrderBody",
    "OrderResponse",
    "ErrorBody",
)
