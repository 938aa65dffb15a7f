"""Tests for OrderSaga: stock → payment → exactly one terminal order."""

from decimal import Decimal

from kungfu import Error, Ok

from convergent.idempotency import StoreError
from convergent.orders import (
    CollaboratorError,
    OrderSaga,
    OrderStatus,
    SettlementOutcome,
)


class FailingRepository:
    def __init__(self) -> None:
        self.saved = 0

    async def save(self, order):
        self.saved += 1
        return Error(StoreError("disk full"))


class TestHappyPath:
    async def test_confirmed(self, saga, inventory, payment, repository, order_request):
        order = (await saga.execute(order_request)).unwrap()

        assert order.status == OrderStatus.CONFIRMED
        assert order.total_amount == Decimal("3000")
        assert order.product_id == "P-1"
        assert order.customer_id == "C-1"
        assert inventory.calls == ["P-1"]
        assert payment.calls == [(order.order_id, "C-1", Decimal("3000"))]
        assert (await repository.find_by_id(order.order_id)) == Ok(order)

    async def test_each_run_gets_new_order_id(self, saga, order_request):
        first = (await saga.execute(order_request)).unwrap()
        second = (await saga.execute(order_request)).unwrap()
        assert first.order_id != second.order_id

    async def test_injected_order_id(self, inventory, payment, repository, order_request):
        saga = OrderSaga(inventory, payment, repository, new_order_id=lambda: "order-1")
        order = (await saga.execute(order_request)).unwrap()
        assert order.order_id == "order-1"


class TestOutOfStock:
    async def test_insufficient_quantity(self, saga, inventory, payment, order_request):
        inventory.quantity = 1

        order = (await saga.execute(order_request)).unwrap()

        assert order.status == OrderStatus.OUT_OF_STOCK
        assert order.total_amount == Decimal("0")
        assert payment.calls == []

    async def test_unavailable(self, saga, inventory, payment, order_request):
        inventory.available = False

        order = (await saga.execute(order_request)).unwrap()

        assert order.status == OrderStatus.OUT_OF_STOCK
        assert payment.calls == []

    async def test_exact_quantity_is_enough(self, saga, inventory, order_request):
        inventory.quantity = order_request.quantity
        order = (await saga.execute(order_request)).unwrap()
        assert order.status == OrderStatus.CONFIRMED


class TestPaymentOutcomes:
    async def test_declined(self, saga, payment, order_request):
        payment.outcome = SettlementOutcome.FAILED

        order = (await saga.execute(order_request)).unwrap()

        assert order.status == OrderStatus.PAYMENT_FAILED
        assert order.total_amount == Decimal("3000")

    async def test_pending_is_not_settled(self, saga, payment, order_request):
        payment.outcome = SettlementOutcome.PENDING
        order = (await saga.execute(order_request)).unwrap()
        assert order.status == OrderStatus.PAYMENT_FAILED


class TestCollaboratorFaults:
    async def test_inventory_raises(self, saga, inventory, payment, order_request):
        inventory.error = CollaboratorError("inventory", "HTTP 503")

        order = (await saga.execute(order_request)).unwrap()

        assert order.status == OrderStatus.ERROR
        assert order.total_amount == Decimal("0")
        assert payment.calls == []

    async def test_inventory_timeout(self, saga, inventory, payment, order_request):
        inventory.delay = 2.0

        order = (await saga.execute(order_request)).unwrap()

        assert order.status == OrderStatus.ERROR
        assert payment.calls == []

    async def test_payment_raises(self, saga, payment, order_request):
        payment.error = ConnectionError("connection reset")

        order = (await saga.execute(order_request)).unwrap()

        assert order.status == OrderStatus.ERROR
        assert order.total_amount == Decimal("3000")

    async def test_payment_timeout(self, saga, payment, order_request):
        payment.delay = 2.0
        order = (await saga.execute(order_request)).unwrap()
        assert order.status == OrderStatus.ERROR


class TestPersistence:
    async def test_every_outcome_saved_once(self, saga, inventory, payment, repository, order_request):
        await saga.execute(order_request)
        inventory.quantity = 0
        await saga.execute(order_request)
        inventory.quantity = 10
        payment.outcome = SettlementOutcome.FAILED
        await saga.execute(order_request)
        payment.error = RuntimeError("boom")
        await saga.execute(order_request)

        assert len(repository) == 4
        statuses = {o.status for o in (await repository.find_by_customer("C-1")).unwrap()}
        assert statuses == {
            OrderStatus.CONFIRMED,
            OrderStatus.OUT_OF_STOCK,
            OrderStatus.PAYMENT_FAILED,
            OrderStatus.ERROR,
        }

    async def test_save_failure_is_error(self, inventory, payment, order_request):
        repository = FailingRepository()
        saga = OrderSaga(inventory, payment, repository)

        match await saga.execute(order_request):
            case Error(err):
                assert err.message == "disk full"
            case Ok(_):
                raise AssertionError("expected save failure")
        assert repository.saved == 1
