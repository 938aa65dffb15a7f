"""
Idempotency — at-most-once execution per key, via nodnod graphs.

    from convergent import idempotency as I

    coordinator = (
        I.idempotent(saga.execute)
        .fingerprint(order_fingerprint)
        .codec(encode_order, decode_order)
        .store(I.SQLAlchemyStore(session_factory, model=IdempotencyKeyTable))
        .policy(I.Policy().with_ttl(hours=24))
        .build()
    )

    match await coordinator.handle(request, key):
        case Ok(I.Fresh(order)) | Ok(I.Cached(order, _)): ...
        case Ok(I.Conflict(retry_after=delay)): ...
        case Ok(I.FingerprintMismatch()): ...
        case Error(err): ...

Per key (claim → inspect):

    try_create ──ok──▶ execute + record ─────────────▶ Fresh
        │
        └─taken─▶ find ─ none ─────▶ try_create once ─▶ Fresh | Conflict
                    ├─ other payload ────────────────▶ FingerprintMismatch
                    ├─ COMPLETED ────────────────────▶ Cached
                    ├─ COMPLETED, no response ─▶ mark_failed ─▶ reclaim ─▶ Fresh | Conflict
                    ├─ PROCESSING ───────────────────▶ Conflict
                    └─ FAILED ─────────▶ reclaim ───▶ Fresh | Conflict

Expired records are removed by CleanupSweeper.
"""

from convergent.idempotency._types import (
    RecordStatus,
    IdempotencyRecord,
    Fresh,
    Cached,
    Conflict,
    FingerprintMismatch,
    Outcome,
)
from convergent.idempotency._fingerprint import (
    FingerprintFn,
    canonical_json,
    fingerprint,
)
from convergent.idempotency._store import (
    Store,
    StoreError,
    MemoryStore,
)
from convergent.idempotency._policy import Policy
from convergent.idempotency._graph import (
    CoordinationSpec,
    CoordinationOutcome,
    FinalOutcomeNode,
    run_coordinated,
)
from convergent.idempotency._builder import (
    idempotent,
    Idempotent,
    IdempotencyCoordinator,
)
from convergent.idempotency._sqlalchemy import (
    IdempotencyMixin,
    SQLAlchemyStore,
)
from convergent.idempotency._sweeper import CleanupSweeper

__all__ = (
    # Types
    "RecordStatus",
    "IdempotencyRecord",
    "Fresh",
    "Cached",
    "Conflict",
    "FingerprintMismatch",
    "Outcome",
    # Fingerprint
    "FingerprintFn",
    "canonical_json",
    "fingerprint",
    # Store
    "Store",
    "StoreError",
    "MemoryStore",
    # Policy
    "Policy",
    # Graph
    "CoordinationSpec",
    "CoordinationOutcome",
    "FinalOutcomeNode",
    "run_coordinated",
    # Builder
    "idempotent",
    "Idempotent",
    "IdempotencyCoordinator",
    # SQLAlchemy
    "IdempotencyMixin",
    "SQLAlchemyStore",
    # Sweeper
    "CleanupSweeper",
)
