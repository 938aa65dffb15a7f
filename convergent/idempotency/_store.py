"""
Idempotency store — Result-based storage protocol.

Every method returns Result for explicit error handling. The coordinator only
ever reasons about what the store says, so any implementation shared between
processes gives cross-process deduplication for free.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from kungfu import Result, Ok, Error

from convergent._types import Clock, utcnow
from convergent.idempotency._types import IdempotencyRecord, RecordStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Store Error
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class StoreError:
    """Storage operation error."""

    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class Store(Protocol):
    """
    Idempotency store protocol.

    try_create and reclaim are the only primitives that decide who executes.
    Both must be atomic per key (unique constraint, compare-and-set, or a lock
    around the whole check-and-write). A read followed by a separate write is
    not an implementation.
    """

    async def try_create(
        self, key: str, fingerprint: str, expires_at: datetime
    ) -> Result[bool, StoreError]:
        """
        Insert a PROCESSING record iff none exists for key.

        Ok(True) if inserted, Ok(False) if a record (of any status, expired or
        not) already exists.
        """
        ...

    async def find(self, key: str) -> Result[IdempotencyRecord | None, StoreError]:
        """Get record by key. Ok(None) if absent."""
        ...

    async def reclaim(
        self, key: str, fingerprint: str, expires_at: datetime
    ) -> Result[bool, StoreError]:
        """
        Compare-and-set FAILED → PROCESSING for a matching fingerprint.

        Ok(True) only for the caller whose write performed the transition.
        """
        ...

    async def mark_completed(
        self, key: str, response_body: str, status_code: int
    ) -> Result[None, StoreError]:
        """Store the response and move to COMPLETED. Error if key missing."""
        ...

    async def mark_failed(self, key: str) -> Result[None, StoreError]:
        """Move to FAILED, clearing any response. Error if key missing."""
        ...

    async def invalidate(
        self, key: str, response_body: str | None
    ) -> Result[bool, StoreError]:
        """
        Compare-and-set COMPLETED → FAILED while the stored response still
        equals response_body (None matches a missing response).

        Ok(False) if the record has moved on or is gone.
        """
        ...

    async def delete_expired(self, now: datetime) -> Result[int, StoreError]:
        """Delete records with expires_at < now. Returns count deleted."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryStore:
    """
    In-memory idempotency store.

    Note: single process only; records do not survive a restart.
    The lock makes every method one atomic step.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        self._records: dict[str, IdempotencyRecord] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def try_create(
        self, key: str, fingerprint: str, expires_at: datetime
    ) -> Result[bool, StoreError]:
        async with self._lock:
            if key in self._records:
                return Ok(False)
            self._records[key] = IdempotencyRecord(
                key=key,
                status=RecordStatus.PROCESSING,
                request_fingerprint=fingerprint,
                cached_response=None,
                cached_status_code=None,
                created_at=self._clock(),
                expires_at=expires_at,
            )
            return Ok(True)

    async def find(self, key: str) -> Result[IdempotencyRecord | None, StoreError]:
        async with self._lock:
            return Ok(self._records.get(key))

    async def reclaim(
        self, key: str, fingerprint: str, expires_at: datetime
    ) -> Result[bool, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if (
                record is None
                or record.status != RecordStatus.FAILED
                or record.request_fingerprint != fingerprint
            ):
                return Ok(False)
            self._records[key] = replace(
                record,
                status=RecordStatus.PROCESSING,
                cached_response=None,
                cached_status_code=None,
                expires_at=expires_at,
            )
            return Ok(True)

    async def mark_completed(
        self, key: str, response_body: str, status_code: int
    ) -> Result[None, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return Error(StoreError(f"Idempotency key not found: {key}"))
            self._records[key] = replace(
                record,
                status=RecordStatus.COMPLETED,
                cached_response=response_body,
                cached_status_code=status_code,
            )
            return Ok(None)

    async def mark_failed(self, key: str) -> Result[None, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return Error(StoreError(f"Idempotency key not found: {key}"))
            self._records[key] = replace(
                record,
                status=RecordStatus.FAILED,
                cached_response=None,
                cached_status_code=None,
            )
            return Ok(None)

    async def invalidate(
        self, key: str, response_body: str | None
    ) -> Result[bool, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if (
                record is None
                or record.status != RecordStatus.COMPLETED
                or record.cached_response != response_body
            ):
                return Ok(False)
            self._records[key] = replace(
                record,
                status=RecordStatus.FAILED,
                cached_response=None,
                cached_status_code=None,
            )
            return Ok(True)

    async def delete_expired(self, now: datetime) -> Result[int, StoreError]:
        async with self._lock:
            expired = [k for k, r in self._records.items() if r.is_expired(now)]
            for k in expired:
                del self._records[k]
            return Ok(len(expired))

    def __len__(self) -> int:
        return len(self._records)


__all__ = (
    "StoreError",
    "Store",
    "MemoryStore",
)
