"""
Order codec — the cached response body.

The wire shape matches the HTTP response (camelCase, amount as a decimal
string) so a replayed body is byte-for-byte what the first caller saw.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any

from convergent.idempotency import fingerprint
from convergent.orders._domain import Order, OrderRequest, OrderStatus


def order_to_dict(order: Order) -> dict[str, Any]:
    return {
        "orderId": order.order_id,
        "productId": order.product_id,
        "quantity": order.quantity,
        "customerId": order.customer_id,
        "totalAmount": str(order.total_amount),
        "status": order.status.value,
    }


def order_from_dict(data: dict[str, Any]) -> Order:
    return Order(
        order_id=data["orderId"],
        product_id=data["productId"],
        quantity=int(data["quantity"]),
        customer_id=data["customerId"],
        total_amount=Decimal(str(data["totalAmount"])),
        status=OrderStatus(data["status"]),
    )


def encode_order(order: Order) -> str:
    return json.dumps(order_to_dict(order), separators=(",", ":"))


def decode_order(body: str) -> Order:
    return order_from_dict(json.loads(body))


def request_fingerprint(request: OrderRequest) -> str:
    """Digest over exactly the fields that decide the outcome."""
    return fingerprint(
        {
            "productId": request.product_id,
            "quantity": request.quantity,
            "customerId": request.customer_id,
        }
    )


__all__ = (
    "order_to_dict",
    "order_from_dict",
    "encode_order",
    "decode_order",
    "request_fingerprint",
)
