"""Order domain models."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class OrderStatus(Enum):
    CONFIRMED = "CONFIRMED"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    ERROR = "ERROR"


@dataclass(frozen=True, slots=True)
class OrderRequest:
    product_id: str
    quantity: int
    customer_id: str

    def __post_init__(self) -> None:
        if not self.product_id.strip():
            raise ValueError("productId must not be blank")
        if not self.customer_id.strip():
            raise ValueError("customerId must not be blank")
        if self.quantity < 1:
            raise ValueError("quantity must be at least 1")


@dataclass(frozen=True, slots=True)
class Order:
    """
    Terminal result of one saga run.

    status is decided once, at the end of the run. A re-executed request gets a
    new order_id.
    """

    order_id: str
    product_id: str
    quantity: int
    customer_id: str
    total_amount: Decimal
    status: OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Collaborator results
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StockLevel:
    product_id: str
    available: bool
    quantity: int
    unit_price: Decimal
    product_name: str | None = None

    def covers(self, requested: int) -> bool:
        return self.available and self.quantity >= requested


class SettlementOutcome(Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


@dataclass(frozen=True, slots=True)
class Settlement:
    outcome: SettlementOutcome
    transaction_id: str | None = None
    payment_id: str | None = None

    @property
    def succeeded(self) -> bool:
        # PENDING counts as not settled
        return self.outcome == SettlementOutcome.SUCCESS


# ═══════════════════════════════════════════════════════════════════════════════
# Errors
# ═══════════════════════════════════════════════════════════════════════════════


class CollaboratorError(Exception):
    """An inventory or payment call failed: transport, status or body."""

    def __init__(self, collaborator: str, message: str) -> None:
        self.collaborator = collaborator
        self.message = message
        super().__init__(f"{collaborator}: {message}")


@dataclass(frozen=True, slots=True)
class CollaboratorFault:
    """A failed collaborator call, as a value."""

    collaborator: str
    message: str
    cause: Exception | None = None


__all__ = (
    "OrderStatus",
    "OrderRequest",
    "Order",
    "StockLevel",
    "SettlementOutcome",
    "Settlement",
    "CollaboratorError",
    "CollaboratorFault",
)
