"""End-to-end order flow through OrderService (in-memory store and repository)."""

import asyncio
from decimal import Decimal

from kungfu import Ok

from convergent import idempotency as I
from convergent.orders import (
    Order,
    OrderRequest,
    OrderStatus,
    SettlementOutcome,
    decode_order,
    encode_order,
)


class TestCreateOrder:
    async def test_retry_replays_same_order(self, service, inventory, payment, repository, order_request):
        first = (await service.create_order(order_request, "key-1")).unwrap()
        second = (await service.create_order(order_request, "key-1")).unwrap()

        assert isinstance(first, I.Fresh)
        assert isinstance(second, I.Cached)
        assert second.value == first.value
        assert second.status_code == 200
        assert len(inventory.calls) == 1
        assert len(payment.calls) == 1
        assert len(repository) == 1

    async def test_terminal_failures_are_replayed(self, service, inventory, payment, order_request):
        inventory.quantity = 0

        first = (await service.create_order(order_request, "key-1")).unwrap()
        inventory.quantity = 100
        second = (await service.create_order(order_request, "key-1")).unwrap()

        assert first.value.status == OrderStatus.OUT_OF_STOCK
        assert second.value == first.value
        assert payment.calls == []

    async def test_without_key_runs_each_time(self, service, payment, repository, order_request):
        await service.create_order(order_request)
        await service.create_order(order_request)

        assert len(payment.calls) == 2
        assert len(repository) == 2

    async def test_key_reuse_with_other_body(self, service, payment, order_request):
        await service.create_order(order_request, "key-1")
        other = OrderRequest(product_id="P-1", quantity=5, customer_id="C-1")

        assert await service.create_order(other, "key-1") == Ok(I.FingerprintMismatch(key="key-1"))
        assert len(payment.calls) == 1

    async def test_concurrent_duplicates_charge_once(self, service, payment, order_request):
        payment.delay = 0.05
        results = await asyncio.gather(
            *(service.create_order(order_request, "key-1") for _ in range(5))
        )

        assert sum(isinstance(r.unwrap(), I.Fresh) for r in results) == 1
        assert len(payment.calls) == 1

    async def test_pending_payment_is_terminal(self, service, payment, order_request):
        payment.outcome = SettlementOutcome.PENDING

        first = (await service.create_order(order_request, "key-1")).unwrap()
        payment.outcome = SettlementOutcome.SUCCESS
        second = (await service.create_order(order_request, "key-1")).unwrap()

        assert first.value.status == OrderStatus.PAYMENT_FAILED
        assert second.value.status == OrderStatus.PAYMENT_FAILED
        assert len(payment.calls) == 1


class TestQueries:
    async def test_get_and_list(self, service, order_request):
        order = (await service.create_order(order_request, "key-1")).unwrap().value

        assert await service.get_order(order.order_id) == Ok(order)
        assert await service.get_order("missing") == Ok(None)
        assert await service.orders_for_customer("C-1") == Ok([order])
        assert await service.orders_with_status(OrderStatus.CONFIRMED) == Ok([order])
        assert await service.orders_with_status(OrderStatus.ERROR) == Ok([])


class TestCodec:
    def test_encoded_order_decodes(self):
        order = Order(
            order_id="o-1",
            product_id="P-1",
            quantity=2,
            customer_id="C-1",
            total_amount=Decimal("3000.50"),
            status=OrderStatus.CONFIRMED,
        )
        body = encode_order(order)

        assert '"totalAmount":"3000.50"' in body
        assert decode_order(body) == order
