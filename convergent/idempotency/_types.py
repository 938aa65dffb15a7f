"""
Idempotency types — records and caller-visible outcomes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


# ═══════════════════════════════════════════════════════════════════════════════
# Record Status — Claim Lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


class RecordStatus(Enum):
    """
    Status of an idempotency record.

    Lifecycle:
        (claim) → PROCESSING → COMPLETED
                             → FAILED → PROCESSING (reclaim)
        any status → (swept after expires_at)

    Values are the persisted column values.
    """

    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotency Record — Stored State
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IdempotencyRecord:
    """
    A stored idempotency record.

    cached_response holds the serialized response body, not a reference to the
    produced entity. It is non-null only while status is COMPLETED; a COMPLETED
    record without it is corrupt and gets re-executed.
    """

    key: str
    status: RecordStatus
    request_fingerprint: str
    cached_response: str | None
    cached_status_code: int | None
    created_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at < now

    @property
    def is_processing(self) -> bool:
        return self.status == RecordStatus.PROCESSING

    @property
    def is_completed(self) -> bool:
        return self.status == RecordStatus.COMPLETED

    @property
    def is_failed(self) -> bool:
        return self.status == RecordStatus.FAILED


# ═══════════════════════════════════════════════════════════════════════════════
# Outcome — what the caller sees
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Fresh[T]:
    """This call executed the operation."""

    value: T


@dataclass(frozen=True, slots=True)
class Cached[T]:
    """A previous call completed the operation; its response is replayed."""

    value: T
    status_code: int


@dataclass(frozen=True, slots=True)
class Conflict:
    """Another execution for the key is in flight. Retryable after retry_after seconds."""

    key: str
    retry_after: float


@dataclass(frozen=True, slots=True)
class FingerprintMismatch:
    """The key was already used for a different payload. Not retryable."""

    key: str


type Outcome[T] = Fresh[T] | Cached[T] | Conflict | FingerprintMismatch


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "RecordStatus",
    "IdempotencyRecord",
    "Fresh",
    "Cached",
    "Conflict",
    "FingerprintMismatch",
    "Outcome",
)
