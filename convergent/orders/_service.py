"""
Order service — the saga behind the idempotency coordinator, plus queries.
"""

from __future__ import annotations

from kungfu import Result

from convergent import idempotency as I
from convergent._types import Clock, utcnow
from convergent.idempotency import StoreError
from convergent.orders._codec import decode_order, encode_order, request_fingerprint
from convergent.orders._domain import Order, OrderRequest, OrderStatus
from convergent.orders._ports import OrderRepository
from convergent.orders._saga import OrderSaga


class OrderService:
    """
    Entry point used by transport code.

    create_order never calls the saga directly: with or without a key it goes
    through the coordinator.
    """

    def __init__(
        self,
        saga: OrderSaga,
        repository: OrderRepository,
        store: I.Store,
        policy: I.Policy = I.Policy(),
        clock: Clock = utcnow,
    ) -> None:
        self._repository = repository
        self._coordinator: I.IdempotencyCoordinator[OrderRequest, Order, StoreError] = (
            I.idempotent(saga.execute)
            .fingerprint(request_fingerprint)
            .codec(encode_order, decode_order)
            .store(store)
            .policy(policy)
            .clock(clock)
            .build()
        )

    @property
    def coordinator(self) -> I.IdempotencyCoordinator[OrderRequest, Order, StoreError]:
        return self._coordinator

    async def create_order(
        self, request: OrderRequest, idempotency_key: str | None = None
    ) -> Result[I.Outcome[Order], StoreError]:
        return await self._coordinator.handle(request, idempotency_key)

    async def get_order(self, order_id: str) -> Result[Order | None, StoreError]:
        return await self._repository.find_by_id(order_id)

    async def orders_for_customer(self, customer_id: str) -> Result[list[Order], StoreError]:
        return await self._repository.find_by_customer(customer_id)

    async def orders_with_status(self, status: OrderStatus) -> Result[list[Order], StoreError]:
        return await self._repository.find_by_status(status)

    async def drain(self) -> None:
        await self._coordinator.drain()


__all__ = ("OrderService",)
