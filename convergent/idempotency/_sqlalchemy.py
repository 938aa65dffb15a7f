"""
SQLAlchemy integration — durable idempotency store.

Usage:
    1. Add IdempotencyMixin to a table:

        class IdempotencyKeyTable(Base, IdempotencyMixin):
            __tablename__ = "idempotency_keys"

    2. Create the store:

        store = SQLAlchemyStore(session_factory, model=IdempotencyKeyTable)

The primary key on idempotency_key is what makes try_create atomic. On SQLite
and PostgreSQL the claim is a single INSERT ... ON CONFLICT DO NOTHING; on other
dialects a plain INSERT whose IntegrityError means "already claimed".
"""

from datetime import datetime
from typing import Any, cast

from sqlalchemy import DateTime, Integer, String, Text, delete, insert, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from kungfu import Result, Ok, Error

from convergent._types import Clock, utcnow
from convergent.idempotency._types import IdempotencyRecord, RecordStatus
from convergent.idempotency._store import StoreError


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency Mixin — add to your SQLAlchemy model
# ═══════════════════════════════════════════════════════════════════════════════

class IdempotencyMixin:
    """
    Columns of an idempotency record table.

    - idempotency_key: primary key, the uniqueness constraint behind claims
    - status: PROCESSING | COMPLETED | FAILED
    - request_fingerprint: digest of the payload that claimed the key
    - response_body: serialized response, only when COMPLETED
    - response_status: status code recorded with the response
    - created_at / expires_at: naive UTC; expires_at is indexed for the sweeper
    """

    idempotency_key: Mapped[str] = mapped_column(String(256), primary_key=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    request_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)

    response_body: Mapped[str | None] = mapped_column(Text, nullable=True)

    response_status: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)


# ═══════════════════════════════════════════════════════════════════════════════
# SQLAlchemy Store
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyStore:
    """
    Idempotency store over any table with IdempotencyMixin.

    Each call opens its own session and commits before returning, so a claim is
    visible to every other process sharing the database as soon as it returns.
    Driver errors never escape: they come back as Error(StoreError).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[IdempotencyMixin],
        clock: Clock = utcnow,
    ) -> None:
        self._session_factory = session_factory
        self._model = model
        self._clock = clock

    async def try_create(
        self, key: str, fingerprint: str, expires_at: datetime
    ) -> Result[bool, StoreError]:
        """Claim key atomically."""
        values = {
            "idempotency_key": key,
            "status": RecordStatus.PROCESSING.value,
            "request_fingerprint": fingerprint,
            "response_body": None,
            "response_status": None,
            "created_at": self._clock(),
            "expires_at": expires_at,
        }
        try:
            async with self._session_factory() as session:
                stmt = self._insert_ignoring_conflict(session, values)
                if stmt is None:
                    try:
                        await session.execute(insert(self._model).values(**values))
                        await session.commit()
                    except IntegrityError:
                        await session.rollback()
                        return Ok(False)
                    return Ok(True)

                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount > 0)

        except Exception as e:
            return Error(StoreError(f"Failed to claim {key}: {e}", e))

    async def find(self, key: str) -> Result[IdempotencyRecord | None, StoreError]:
        """Get record by idempotency_key."""
        try:
            async with self._session_factory() as session:
                stmt = select(self._model).where(self._model.idempotency_key == key)
                row = (await session.execute(stmt)).scalar_one_or_none()
                if row is None:
                    return Ok(None)
                return Ok(self._to_record(row))

        except Exception as e:
            return Error(StoreError(f"Failed to find {key}: {e}", e))

    async def reclaim(
        self, key: str, fingerprint: str, expires_at: datetime
    ) -> Result[bool, StoreError]:
        """Conditional UPDATE FAILED → PROCESSING; rowcount decides the winner."""
        model = self._model
        try:
            async with self._session_factory() as session:
                stmt = (
                    update(model)
                    .where(
                        model.idempotency_key == key,
                        model.status == RecordStatus.FAILED.value,
                        model.request_fingerprint == fingerprint,
                    )
                    .values(
                        status=RecordStatus.PROCESSING.value,
                        response_body=None,
                        response_status=None,
                        expires_at=expires_at,
                    )
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount > 0)

        except Exception as e:
            return Error(StoreError(f"Failed to reclaim {key}: {e}", e))

    async def mark_completed(
        self, key: str, response_body: str, status_code: int
    ) -> Result[None, StoreError]:
        """Mark record as completed."""
        return await self._transition(
            key,
            status=RecordStatus.COMPLETED.value,
            response_body=response_body,
            response_status=status_code,
        )

    async def mark_failed(self, key: str) -> Result[None, StoreError]:
        """Mark record as failed."""
        return await self._transition(
            key,
            status=RecordStatus.FAILED.value,
            response_body=None,
            response_status=None,
        )

    async def invalidate(
        self, key: str, response_body: str | None
    ) -> Result[bool, StoreError]:
        """Conditional UPDATE COMPLETED → FAILED on the response actually read."""
        model = self._model
        if response_body is None:
            same_response = model.response_body.is_(None)
        else:
            same_response = model.response_body == response_body
        try:
            async with self._session_factory() as session:
                stmt = (
                    update(model)
                    .where(
                        model.idempotency_key == key,
                        model.status == RecordStatus.COMPLETED.value,
                        same_response,
                    )
                    .values(
                        status=RecordStatus.FAILED.value,
                        response_body=None,
                        response_status=None,
                    )
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount > 0)

        except Exception as e:
            return Error(StoreError(f"Failed to invalidate {key}: {e}", e))

    async def delete_expired(self, now: datetime) -> Result[int, StoreError]:
        """Delete every record with expires_at < now."""
        try:
            async with self._session_factory() as session:
                stmt = delete(self._model).where(self._model.expires_at < now)
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount)

        except Exception as e:
            return Error(StoreError(f"Failed to delete expired records: {e}", e))

    async def _transition(self, key: str, **values: Any) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                stmt = (
                    update(self._model)
                    .where(self._model.idempotency_key == key)
                    .values(**values)
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                if cursor.rowcount == 0:
                    return Error(StoreError(f"Idempotency key not found: {key}"))
                return Ok(None)

        except Exception as e:
            return Error(StoreError(f"Failed to update {key}: {e}", e))

    def _insert_ignoring_conflict(
        self, session: AsyncSession, values: dict[str, Any]
    ) -> Any:
        match session.get_bind().dialect.name:
            case "sqlite":
                return (
                    sqlite_insert(self._model)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["idempotency_key"])
                )
            case "postgresql":
                return (
                    pg_insert(self._model)
                    .values(**values)
                    .on_conflict_do_nothing(index_elements=["idempotency_key"])
                )
            case _:
                return None

    @staticmethod
    def _to_record(row: IdempotencyMixin) -> IdempotencyRecord:
        return IdempotencyRecord(
            key=row.idempotency_key,
            status=RecordStatus(row.status),
            request_fingerprint=row.request_fingerprint,
            cached_response=row.response_body,
            cached_status_code=row.response_status,
            created_at=row.created_at,
            expires_at=row.expires_at,
        )


__all__ = (
    "IdempotencyMixin",
    "SQLAlchemyStore",
)
