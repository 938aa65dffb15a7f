"""
Order Saga Example — duplicate requests, one charge.

In-memory store and repository, fake inventory and payment services.

Run: uv run python examples/order_saga_example.py
"""

import asyncio
from decimal import Decimal

from kungfu import Error, Ok, Result

from convergent import idempotency as I
from convergent import orders as O
from convergent.log import configure_logging


# ═══════════════════════════════════════════════════════════════════════════════
# Fake collaborators
# ═══════════════════════════════════════════════════════════════════════════════


class Warehouse:
    def __init__(self, stock: dict[str, int]) -> None:
        self.stock = stock

    async def check(self, product_id: str) -> O.StockLevel:
        await asyncio.sleep(0.01)
        quantity = self.stock.get(product_id, 0)
        return O.StockLevel(product_id, quantity > 0, quantity, Decimal("1500"), "Widget")


class Bank:
    def __init__(self) -> None:
        self.charges = 0

    async def settle(self, order_id: str, customer_id: str, amount: Decimal) -> O.Settlement:
        self.charges += 1
        print(f"  [bank] charging {customer_id} {amount} JPY for {order_id[:8]} (#{self.charges})")
        await asyncio.sleep(0.05)
        return O.Settlement(O.SettlementOutcome.SUCCESS, transaction_id=f"txn-{self.charges}")


def banner(title: str) -> None:
    print(f"\n{'─' * 50}\n{title}\n{'─' * 50}")


def describe(result: Result[I.Outcome[O.Order], I.StoreError]) -> str:
    match result:
        case Ok(I.Fresh(order)):
            return f"fresh   {order.order_id[:8]} {order.status.value}"
        case Ok(I.Cached(order, status_code)):
            return f"cached  {order.order_id[:8]} {order.status.value} ({status_code})"
        case Ok(I.Conflict(retry_after=delay)):
            return f"conflict, retry after {delay:g}s"
        case Ok(I.FingerprintMismatch(key)):
            return f"key {key} reused with another body"
        case Error(err):
            return f"error: {err.message}"


# ═══════════════════════════════════════════════════════════════════════════════
# Demo
# ═══════════════════════════════════════════════════════════════════════════════


async def main() -> None:
    configure_logging(json_output=False, log_level="WARNING")

    bank = Bank()
    repository = O.MemoryOrderRepository()
    saga = O.OrderSaga(Warehouse({"P-1": 10}), bank, repository)
    service = O.OrderService(saga, repository, store=I.MemoryStore())
    request = O.OrderRequest(product_id="P-1", quantity=2, customer_id="C-1")

    banner("1. Five concurrent duplicates")
    results = await asyncio.gather(*(service.create_order(request, "key-1") for _ in range(5)))
    for result in results:
        print(f"  {describe(result)}")

    banner("2. Client retry after completion")
    print(f"  {describe(await service.create_order(request, 'key-1'))}")

    banner("3. Same key, different body")
    other = O.OrderRequest(product_id="P-1", quantity=7, customer_id="C-1")
    print(f"  {describe(await service.create_order(other, 'key-1'))}")

    banner("4. No key")
    print(f"  {describe(await service.create_order(request))}")

    print(f"\nSummary: {bank.charges} charges, {len(repository)} orders")


if __name__ == "__main__":
    asyncio.run(main())
