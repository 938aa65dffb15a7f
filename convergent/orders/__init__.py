"""
Orders — the order saga and its collaborators.

    from convergent import orders as O

    saga = O.OrderSaga(inventory, payment, O.MemoryOrderRepository())
    service = O.OrderService(saga, repository, store=I.MemoryStore())

    result = await service.create_order(O.OrderRequest("P-1", 2, "C-1"), "key-1")

Saga:

    check stock ─ fault ────────────────▶ ERROR          (amount 0)
        │       └ short ────────────────▶ OUT_OF_STOCK   (amount 0)
        ▼
    total = unit_price * quantity
        │
    settle ───── fault ─────────────────▶ ERROR          (amount total)
        │       └ FAILED | PENDING ─────▶ PAYMENT_FAILED (amount total)
        ▼
    CONFIRMED (amount total)
"""

from convergent.orders._domain import (
    OrderStatus,
    OrderRequest,
    Order,
    StockLevel,
    SettlementOutcome,
    Settlement,
    CollaboratorError,
    CollaboratorFault,
)
from convergent.orders._ports import (
    InventoryPort,
    PaymentPort,
    OrderRepository,
)
from convergent.orders._codec import (
    order_to_dict,
    order_from_dict,
    encode_order,
    decode_order,
    request_fingerprint,
)
from convergent.orders._saga import OrderSaga
from convergent.orders._repository import (
    MemoryOrderRepository,
    SQLAlchemyOrderRepository,
)
from convergent.orders._clients import (
    HttpInventoryClient,
    HttpPaymentClient,
)
from convergent.orders._service import OrderService

__all__ = (
    # Domain
    "OrderStatus",
    "OrderRequest",
    "Order",
    "StockLevel",
    "SettlementOutcome",
    "Settlement",
    "CollaboratorError",
    "CollaboratorFault",
    # Ports
    "InventoryPort",
    "PaymentPort",
    "OrderRepository",
    # Codec
    "order_to_dict",
    "order_from_dict",
    "encode_order",
    "decode_order",
    "request_fingerprint",
    # Saga
    "OrderSaga",
    # Repositories
    "MemoryOrderRepository",
    "SQLAlchemyOrderRepository",
    # Clients
    "HttpInventoryClient",
    "HttpPaymentClient",
    # Service
    "OrderService",
)
