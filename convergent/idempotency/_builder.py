"""
Idempotency builder — fluent API over the coordinator graph.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from typing import Any

from kungfu import Error, Ok, Result

from convergent._types import Clock, utcnow
from convergent.idempotency._fingerprint import FingerprintFn
from convergent.idempotency._graph import CoordinationSpec, run_coordinated, shield_task
from convergent.idempotency._policy import Policy
from convergent.idempotency._store import MemoryStore, Store, StoreError
from convergent.idempotency._types import Fresh, Outcome
from convergent.log import get_logger

log = get_logger(__name__)

type OperationFn[P, T, E] = Callable[[P], Awaitable[Result[T, E]]]


# ═══════════════════════════════════════════════════════════════════════════════
# Idempotent Builder
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class Idempotent[P, T, E]:
    """
    Fluent coordinator builder.
    """
    _operation: OperationFn[P, T, E]
    _fingerprint: FingerprintFn[P] | None = None
    _encode: Callable[[T], str] | None = None
    _decode: Callable[[str], T] | None = None
    _store: Store | None = None
    _policy: Policy = Policy()
    _clock: Clock = utcnow

    def fingerprint(self, fn: FingerprintFn[P]) -> Idempotent[P, T, E]:
        """Set payload → digest function."""
        return replace(self, _fingerprint=fn)

    def codec(
        self, encode: Callable[[T], str], decode: Callable[[str], T]
    ) -> Idempotent[P, T, E]:
        """Set how results are cached and replayed."""
        return replace(self, _encode=encode, _decode=decode)

    def store(self, s: Store) -> Idempotent[P, T, E]:
        """Set storage backend."""
        return replace(self, _store=s)

    def policy(self, p: Policy) -> Idempotent[P, T, E]:
        """Set idempotency policy."""
        return replace(self, _policy=p)

    def clock(self, c: Clock) -> Idempotent[P, T, E]:
        """Set the time source used for expiry."""
        return replace(self, _clock=c)

    def build(self) -> IdempotencyCoordinator[P, T, E]:
        """Build coordinator."""
        if self._fingerprint is None:
            raise ValueError("fingerprint() is required")
        if self._encode is None or self._decode is None:
            raise ValueError("codec() is required")

        return IdempotencyCoordinator(
            operation=self._operation,
            fingerprint=self._fingerprint,
            encode=self._encode,
            decode=self._decode,
            store=self._store if self._store is not None else MemoryStore(self._clock),
            policy=self._policy,
            clock=self._clock,
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Coordinator
# ═══════════════════════════════════════════════════════════════════════════════

class IdempotencyCoordinator[P, T, E]:
    """
    Runs an operation at most once per idempotency key.

    handle() returns one of Fresh | Cached | Conflict | FingerprintMismatch, or
    an Error carrying either the operation's own error or a StoreError.
    Exceptions raised by the operation propagate after the key is marked FAILED.

    Note: the only per-instance state is the set of shielded executions still
    running; it is used by drain() and never consulted for decisions.
    """

    def __init__(
        self,
        operation: OperationFn[P, T, E],
        fingerprint: FingerprintFn[P],
        encode: Callable[[T], str],
        decode: Callable[[str], T],
        store: Store,
        policy: Policy,
        clock: Clock = utcnow,
    ) -> None:
        self._operation = operation
        self._fingerprint = fingerprint
        self._encode = encode
        self._decode = decode
        self._store = store
        self._policy = policy
        self._clock = clock
        self._in_flight: set[asyncio.Task[Any]] = set()

    @property
    def store(self) -> Store:
        return self._store

    @property
    def policy(self) -> Policy:
        return self._policy

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def handle(
        self, payload: P, key: str | None = None
    ) -> Result[Outcome[T], E | StoreError]:
        if key is None:
            return await self._bypass(payload)

        spec = CoordinationSpec(
            key=key,
            fingerprint=self._fingerprint(payload),
            payload=payload,
            operation=self._operation,
            encode=self._encode,
            decode=self._decode,
            store=self._store,
            policy=self._policy,
            expires_at=self._clock() + self._policy.ttl,
            shield=shield_task(self._in_flight),
        )
        return await run_coordinated(spec)

    async def drain(self) -> None:
        """Wait for shielded executions whose callers went away."""
        if self._in_flight:
            log.info("idempotency.draining", in_flight=len(self._in_flight))
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def _bypass(self, payload: P) -> Result[Outcome[T], E | StoreError]:
        """No key: execute directly, no store interaction."""
        match await self._operation(payload):
            case Ok(value):
                return Ok(Fresh(value))
            case Error(err):
                return Error(err)


# ═══════════════════════════════════════════════════════════════════════════════
# idempotent() — Entry Point
# ═══════════════════════════════════════════════════════════════════════════════

def idempotent[P, T, E](operation: OperationFn[P, T, E]) -> Idempotent[P, T, E]:
    """
    Create a coordinator builder for an operation.

    Example:
        coordinator = (
            I.idempotent(saga.execute)
            .fingerprint(order_fingerprint)
            .codec(encode_order, decode_order)
            .store(I.SQLAlchemyStore(session_factory, model=IdempotencyKeyTable))
            .policy(I.Policy().with_ttl(hours=24))
            .build()
        )

        result = await coordinator.handle(request, key="order-123")
    """
    return Idempotent(_operation=operation)


__all__ = (
    "Idempotent",
    "IdempotencyCoordinator",
    "idempotent",
)
