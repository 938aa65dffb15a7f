"""
Order repositories — in-memory and SQLAlchemy.
"""

from __future__ import annotations

import asyncio
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kungfu import Error, Ok, Result

from convergent.db import OrderTable
from convergent.idempotency import StoreError
from convergent.orders._domain import Order, OrderStatus


class MemoryOrderRepository:
    """
    In-memory order repository.

    Note: keeps insertion order, which is what the list queries return.
    """

    def __init__(self) -> None:
        self._orders: dict[str, Order] = {}
        self._lock = asyncio.Lock()

    async def save(self, order: Order) -> Result[Order, StoreError]:
        async with self._lock:
            self._orders[order.order_id] = order
            return Ok(order)

    async def find_by_id(self, order_id: str) -> Result[Order | None, StoreError]:
        return Ok(self._orders.get(order_id))

    async def find_by_customer(self, customer_id: str) -> Result[list[Order], StoreError]:
        return Ok([o for o in self._orders.values() if o.customer_id == customer_id])

    async def find_by_status(self, status: OrderStatus) -> Result[list[Order], StoreError]:
        return Ok([o for o in self._orders.values() if o.status == status])

    def __len__(self) -> int:
        return len(self._orders)


class SQLAlchemyOrderRepository:
    """Order repository over OrderTable."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, order: Order) -> Result[Order, StoreError]:
        try:
            async with self._session_factory() as session:
                await session.merge(_to_row(order))
                await session.commit()
                return Ok(order)

        except Exception as e:
            return Error(StoreError(f"Failed to save order {order.order_id}: {e}", e))

    async def find_by_id(self, order_id: str) -> Result[Order | None, StoreError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(OrderTable, order_id)
                return Ok(_to_order(row) if row is not None else None)

        except Exception as e:
            return Error(StoreError(f"Failed to load order {order_id}: {e}", e))

    async def find_by_customer(self, customer_id: str) -> Result[list[Order], StoreError]:
        try:
            async with self._session_factory() as session:
                stmt = select(OrderTable).where(OrderTable.customer_id == customer_id)
                rows = (await session.execute(stmt)).scalars().all()
                return Ok([_to_order(row) for row in rows])

        except Exception as e:
            return Error(StoreError(f"Failed to query orders of {customer_id}: {e}", e))

    async def find_by_status(self, status: OrderStatus) -> Result[list[Order], StoreError]:
        try:
            async with self._session_factory() as session:
                stmt = select(OrderTable).where(OrderTable.status == status.value)
                rows = (await session.execute(stmt)).scalars().all()
                return Ok([_to_order(row) for row in rows])

        except Exception as e:
            return Error(StoreError(f"Failed to query {status.value} orders: {e}", e))


def _to_row(order: Order) -> OrderTable:
    return OrderTable(
        order_id=order.order_id,
        product_id=order.product_id,
        quantity=order.quantity,
        customer_id=order.customer_id,
        total_amount=order.total_amount,
        status=order.status.value,
    )


def _to_order(row: OrderTable) -> Order:
    return Order(
        order_id=row.order_id,
        product_id=row.product_id,
        quantity=row.quantity,
        customer_id=row.customer_id,
        total_amount=Decimal(row.total_amount),
        status=OrderStatus(row.status),
    )


__all__ = ("MemoryOrderRepository", "SQLAlchemyOrderRepository")
