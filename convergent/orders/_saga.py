"""
Order saga — stock check → payment → one terminal order.

Every path persists exactly one Order and returns it. Collaborator failures and
timeouts become Order statuses; only a failing order repository comes back as
an Error.

    saga = OrderSaga(inventory, payment, repository, timeout=5.0)
    result = await saga.execute(OrderRequest("P-1", 2, "C-1"))
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from decimal import Decimal

from combinators import flow, lift as L
from combinators import TimeoutError as StepTimeout
from kungfu import Error, Ok, Result

from convergent._types import Lazy
from convergent.idempotency import StoreError
from convergent.log import get_logger
from convergent.orders._domain import (
    CollaboratorFault,
    Order,
    OrderRequest,
    OrderStatus,
    Settlement,
    StockLevel,
)
from convergent.orders._ports import InventoryPort, OrderRepository, PaymentPort

log = get_logger(__name__)

ZERO = Decimal("0")


def _new_order_id() -> str:
    return str(uuid.uuid4())


def _fault(collaborator: str) -> Callable[[CollaboratorFault | StepTimeout], CollaboratorFault]:
    def to_fault(err: CollaboratorFault | StepTimeout) -> CollaboratorFault:
        if isinstance(err, CollaboratorFault):
            return err
        return CollaboratorFault(collaborator, f"timed out after {err.seconds}s", err)

    return to_fault


class OrderSaga:
    """
    Three-stage order flow.

    Note: inventory is always consulted before payment, and payment only when
    stock covers the request.
    """

    def __init__(
        self,
        inventory: InventoryPort,
        payment: PaymentPort,
        repository: OrderRepository,
        timeout: float = 5.0,
        new_order_id: Callable[[], str] = _new_order_id,
    ) -> None:
        self._inventory = inventory
        self._payment = payment
        self._repository = repository
        self._timeout = timeout
        self._new_order_id = new_order_id

    async def execute(self, request: OrderRequest) -> Result[Order, StoreError]:
        order_id = self._new_order_id()
        log.info(
            "saga.started",
            order_id=order_id,
            product_id=request.product_id,
            quantity=request.quantity,
        )

        match await self._check_stock(request.product_id):
            case Error(fault):
                log.warning("saga.inventory_fault", order_id=order_id, error=fault.message)
                return await self._finish(request, order_id, ZERO, OrderStatus.ERROR)
            case Ok(stock) if not stock.covers(request.quantity):
                log.info(
                    "saga.out_of_stock",
                    order_id=order_id,
                    available=stock.available,
                    in_stock=stock.quantity,
                )
                return await self._finish(request, order_id, ZERO, OrderStatus.OUT_OF_STOCK)
            case Ok(stock):
                total = stock.unit_price * request.quantity

        match await self._settle(order_id, request.customer_id, total):
            case Error(fault):
                log.warning("saga.payment_fault", order_id=order_id, error=fault.message)
                return await self._finish(request, order_id, total, OrderStatus.ERROR)
            case Ok(settlement) if not settlement.succeeded:
                log.info(
                    "saga.payment_failed",
                    order_id=order_id,
                    outcome=settlement.outcome.value,
                )
                return await self._finish(request, order_id, total, OrderStatus.PAYMENT_FAILED)
            case Ok(settlement):
                log.info(
                    "saga.payment_settled",
                    order_id=order_id,
                    transaction_id=settlement.transaction_id,
                )
                return await self._finish(request, order_id, total, OrderStatus.CONFIRMED)

    def _check_stock(self, product_id: str) -> Lazy[StockLevel, CollaboratorFault]:
        return (
            flow(
                L.catching_async(
                    lambda: self._inventory.check(product_id),
                    on_error=lambda e: CollaboratorFault("inventory", str(e), e),
                )
            )
            .timeout(seconds=self._timeout)
            .compile()
            .map_err(_fault("inventory"))
        )

    def _settle(
        self, order_id: str, customer_id: str, amount: Decimal
    ) -> Lazy[Settlement, CollaboratorFault]:
        return (
            flow(
                L.catching_async(
                    lambda: self._payment.settle(order_id, customer_id, amount),
                    on_error=lambda e: CollaboratorFault("payment", str(e), e),
                )
            )
            .timeout(seconds=self._timeout)
            .compile()
            .map_err(_fault("payment"))
        )

    async def _finish(
        self,
        request: OrderRequest,
        order_id: str,
        total: Decimal,
        status: OrderStatus,
    ) -> Result[Order, StoreError]:
        order = Order(
            order_id=order_id,
            product_id=request.product_id,
            quantity=request.quantity,
            customer_id=request.customer_id,
            total_amount=total,
            status=status,
        )
        match await self._repository.save(order):
            case Ok(saved):
                log.info("saga.finished", order_id=order_id, status=status.value, total=str(total))
                return Ok(saved)
            case Error(err):
                log.error("saga.save_failed", order_id=order_id, error=err.message)
                return Error(err)


__all__ = ("OrderSaga",)
