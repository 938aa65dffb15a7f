"""
HTTP adapters for the inventory and payment services (httpx).

    async with httpx.AsyncClient(base_url=settings.inventory_base_url) as http:
        inventory = HttpInventoryClient(http)
        stock = await inventory.check("P-1")

Any transport error, non-2xx status or malformed body raises CollaboratorError;
the saga turns that into an ERROR order.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import httpx

from convergent.log import get_logger
from convergent.orders._domain import (
    CollaboratorError,
    Settlement,
    SettlementOutcome,
    StockLevel,
)

log = get_logger(__name__)


async def _send(
    collaborator: str, http: httpx.AsyncClient, method: str, url: str, **kwargs: Any
) -> dict[str, Any]:
    try:
        response = await http.request(method, url, **kwargs)
    except httpx.HTTPError as e:
        log.error(f"{collaborator}.unreachable", url=url, error=str(e))
        raise CollaboratorError(collaborator, f"request failed: {e}") from e

    if response.is_error:
        log.error(
            f"{collaborator}.error_status",
            url=url,
            status_code=response.status_code,
            body=response.text[:500],
        )
        raise CollaboratorError(collaborator, f"HTTP {response.status_code}")

    if not response.content:
        raise CollaboratorError(collaborator, "empty response")

    try:
        body = response.json(parse_float=Decimal)
    except ValueError as e:
        raise CollaboratorError(collaborator, f"invalid JSON: {e}") from e
    if not isinstance(body, dict):
        raise CollaboratorError(collaborator, "response is not an object")
    return body


class HttpInventoryClient:
    """GET /api/inventory/{productId}."""

    def __init__(self, http: httpx.AsyncClient) -> None:
        self._http = http

    async def check(self, product_id: str) -> StockLevel:
        log.info("inventory.check", product_id=product_id)
        body = await _send("inventory", self._http, "GET", f"/api/inventory/{product_id}")
        try:
            return StockLevel(
                product_id=str(body.get("productId", product_id)),
                available=bool(body["available"]),
                quantity=int(body["quantity"]),
                unit_price=Decimal(str(body["unitPrice"])),
                product_name=body.get("productName"),
            )
        except (KeyError, TypeError, ArithmeticError, ValueError) as e:
            raise CollaboratorError("inventory", f"malformed response: {e}") from e


class HttpPaymentClient:
    """POST /api/payments."""

    def __init__(self, http: httpx.AsyncClient, currency: str = "JPY") -> None:
        self._http = http
        self._currency = currency

    async def settle(self, order_id: str, customer_id: str, amount: Decimal) -> Settlement:
        log.info("payment.settle", order_id=order_id, amount=str(amount))
        payload = {
            "orderId": order_id,
            "customerId": customer_id,
            # JSON number; amounts in the settlement currency are whole units
            "amount": float(amount),
            "currency": self._currency,
        }
        body = await _send("payment", self._http, "POST", "/api/payments", json=payload)
        try:
            return Settlement(
                outcome=SettlementOutcome(body["status"]),
                transaction_id=body.get("transactionId"),
                payment_id=body.get("paymentId"),
            )
        except (KeyError, ValueError) as e:
            raise CollaboratorError("payment", f"malformed response: {e}") from e


__all__ = ("HttpInventoryClient", "HttpPaymentClient")
