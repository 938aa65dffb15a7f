"""
Order routes.

POST /api/orders maps the coordinator outcome exhaustively:

    Fresh | Cached        → 200, order body
    Conflict              → 409, Retry-After
    FingerprintMismatch   → 422
    Error(StoreError)     → 500
"""

from __future__ import annotations

import math
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import JSONResponse
from kungfu import Error, Ok

from convergent import idempotency as I
from convergent.api._schemas import (
    IDEMPOTENCY_KEY_HEADER,
    MAX_KEY_LENGTH,
    CreateOrderBody,
    ErrorBody,
    OrderResponse,
    is_valid_key,
)
from convergent.idempotency import StoreError
from convergent.log import get_logger
from convergent.orders import Order, OrderService, OrderStatus

log = get_logger(__name__)

router = APIRouter(prefix="/api/orders", tags=["orders"])


def get_service(request: Request) -> OrderService:
    return request.app.state.service


Service = Annotated[OrderService, Depends(get_service)]


# ═══════════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════════

def _error(
    status: int,
    error: str,
    message: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorBody(status=status, error=error, message=message)
    return JSONResponse(status_code=status, content=body.to_json(), headers=headers)


def _key_headers(key: str | None) -> dict[str, str]:
    return {IDEMPOTENCY_KEY_HEADER: key} if key is not None else {}


def _order(order: Order, status_code: int, key: str | None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=OrderResponse.from_domain(order).to_json(),
        headers=_key_headers(key),
    )


def _internal_error(err: StoreError) -> JSONResponse:
    log.error("api.store_error", error=err.message)
    return _error(500, "Internal Server Error", "An unexpected error occurred")


# ═══════════════════════════════════════════════════════════════════════════════
# Routes
# ═══════════════════════════════════════════════════════════════════════════════

@router.post("")
async def create_order(
    body: CreateOrderBody,
    service: Service,
    idempotency_key: Annotated[str | None, Header(alias=IDEMPOTENCY_KEY_HEADER)] = None,
) -> JSONResponse:
    if idempotency_key is not None and not is_valid_key(idempotency_key):
        return _error(
            400,
            "Bad Request",
            f"{IDEMPOTENCY_KEY_HEADER} must be 1-{MAX_KEY_LENGTH} alphanumeric characters, "
            "hyphens, underscores, dots, or colons",
        )

    result = await service.create_order(body.to_domain(), idempotency_key)

    match result:
        case Ok(I.Fresh(order)):
            return _order(order, 200, idempotency_key)
        case Ok(I.Cached(order, status_code)):
            return _order(order, status_code, idempotency_key)
        case Ok(I.Conflict(retry_after=retry_after)):
            return _error(
                409,
                "Conflict",
                f"A request with this {IDEMPOTENCY_KEY_HEADER} is currently being processed",
                headers={
                    "Retry-After": str(max(1, math.ceil(retry_after))),
                    **_key_headers(idempotency_key),
                },
            )
        case Ok(I.FingerprintMismatch()):
            return _error(
                422,
                "Unprocessable Entity",
                f"{IDEMPOTENCY_KEY_HEADER} was already used with a different request body",
                headers=_key_headers(idempotency_key),
            )
        case Error(err):
            return _internal_error(err)


@router.get("/{order_id}")
async def get_order(order_id: str, service: Service) -> JSONResponse:
    match await service.get_order(order_id):
        case Ok(None):
            return _error(404, "Not Found", f"Order not found: {order_id}")
        case Ok(order):
            return _order(order, 200, None)
        case Error(err):
            return _internal_error(err)


@router.get("")
async def list_orders(
    service: Service,
    customer_id: Annotated[str | None, Query(alias="customerId")] = None,
    status: Annotated[str | None, Query()] = None,
) -> JSONResponse:
    if customer_id is not None:
        result = await service.orders_for_customer(customer_id)
    elif status is not None:
        try:
            wanted = OrderStatus(status.upper())
        except ValueError:
            allowed = ", ".join(s.value for s in OrderStatus)
            return _error(400, "Bad Request", f"status must be one of: {allowed}")
        result = await service.orders_with_status(wanted)
    else:
        return _error(400, "Bad Request", "customerId or status query parameter is required")

    match result:
        case Ok(orders):
            return JSONResponse(
                status_code=200,
                content=[OrderResponse.from_domain(o).to_json() for o in orders],
            )
        case Error(err):
            return _internal_error(err)


__all__ = ("router", "get_service")
