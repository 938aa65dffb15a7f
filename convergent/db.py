"""
Database layer — SQLAlchemy tables and engine setup.
"""

from decimal import Decimal

from sqlalchemy import Integer, Numeric, String
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import AsyncAdaptedQueuePool

from convergent.idempotency import IdempotencyMixin


# ═══════════════════════════════════════════════════════════════════════════════
# Base
# ═══════════════════════════════════════════════════════════════════════════════

class Base(DeclarativeBase):
    pass


# ═══════════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════════

class IdempotencyKeyTable(Base, IdempotencyMixin):
    """One row per idempotency key; columns come from IdempotencyMixin."""
    __tablename__ = "idempotency_keys"


class OrderTable(Base):
    __tablename__ = "orders"

    order_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    product_id: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(19, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════

async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create engine and schema, return (session_factory, engine)."""
    if ":memory:" in url:
        # The connection is the database: keep exactly one, held by one session at a time
        engine = create_async_engine(
            url,
            echo=False,
            poolclass=AsyncAdaptedQueuePool,
            pool_size=1,
            max_overflow=0,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


__all__ = (
    "Base",
    "IdempotencyKeyTable",
    "OrderTable",
    "create_database",
)
