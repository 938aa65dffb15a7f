"""Shared fixtures: fake collaborators, a controllable clock, in-memory wiring."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from convergent import idempotency as I
from convergent.api import Components
from convergent.config import Settings
from convergent.orders import (
    MemoryOrderRepository,
    OrderRequest,
    OrderSaga,
    OrderService,
    Settlement,
    SettlementOutcome,
    StockLevel,
)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = datetime(2026, 1, 1, 12, 0, 0)) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeInventory:
    """Inventory double that records every product id it was asked about."""

    def __init__(
        self,
        available: bool = True,
        quantity: int = 10,
        unit_price: Decimal = Decimal("1500"),
    ) -> None:
        self.available = available
        self.quantity = quantity
        self.unit_price = unit_price
        self.error: Exception | None = None
        self.delay = 0.0
        self.calls: list[str] = []

    async def check(self, product_id: str) -> StockLevel:
        self.calls.append(product_id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return StockLevel(
            product_id=product_id,
            available=self.available,
            quantity=self.quantity,
            unit_price=self.unit_price,
            product_name="Widget",
        )


class FakePayment:
    """Payment double that records (order_id, customer_id, amount) per call."""

    def __init__(self, outcome: SettlementOutcome = SettlementOutcome.SUCCESS) -> None:
        self.outcome = outcome
        self.error: Exception | None = None
        self.delay = 0.0
        self.calls: list[tuple[str, str, Decimal]] = []

    async def settle(self, order_id: str, customer_id: str, amount: Decimal) -> Settlement:
        self.calls.append((order_id, customer_id, amount))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return Settlement(outcome=self.outcome, transaction_id=f"txn-{len(self.calls)}")


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory()


@pytest.fixture
def payment() -> FakePayment:
    return FakePayment()


@pytest.fixture
def repository() -> MemoryOrderRepository:
    return MemoryOrderRepository()


@pytest.fixture
def store(clock: FrozenClock) -> I.MemoryStore:
    return I.MemoryStore(clock)


@pytest.fixture
def saga(
    inventory: FakeInventory, payment: FakePayment, repository: MemoryOrderRepository
) -> OrderSaga:
    return OrderSaga(inventory, payment, repository, timeout=0.5)


@pytest.fixture
def service(
    saga: OrderSaga,
    repository: MemoryOrderRepository,
    store: I.MemoryStore,
    clock: FrozenClock,
) -> OrderService:
    return OrderService(saga, repository, store=store, clock=clock)


@pytest.fixture
def order_request() -> OrderRequest:
    return OrderRequest(product_id="P-1", quantity=2, customer_id="C-1")


@pytest.fixture
def settings() -> Settings:
    return Settings(cleanup_interval_seconds=3600.0, log_json=False)


@pytest.fixture
def memory_components(service: OrderService, store: I.MemoryStore):
    """Components factory that hands the app the in-memory service."""

    @asynccontextmanager
    async def factory(settings: Settings) -> AsyncIterator[Components]:
        yield Components(service=service, store=store)

    return factory
