"""
Ports — what the saga needs from the outside world.

Collaborators raise on failure (the saga lifts and bounds each call); the
repository returns Result like the idempotency store does.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from kungfu import Result

from convergent.idempotency import StoreError
from convergent.orders._domain import Order, OrderStatus, Settlement, StockLevel


class InventoryPort(Protocol):
    async def check(self, product_id: str) -> StockLevel:
        """Current stock and unit price. Raises on any failure."""
        ...


class PaymentPort(Protocol):
    async def settle(self, order_id: str, customer_id: str, amount: Decimal) -> Settlement:
        """Capture amount for the order. Raises on any failure."""
        ...


class OrderRepository(Protocol):
    async def save(self, order: Order) -> Result[Order, StoreError]: ...

    async def find_by_id(self, order_id: str) -> Result[Order | None, StoreError]: ...

    async def find_by_customer(self, customer_id: str) -> Result[list[Order], StoreError]: ...

    async def find_by_status(self, status: OrderStatus) -> Result[list[Order], StoreError]: ...


__all__ = ("InventoryPort", "PaymentPort", "OrderRepository")
