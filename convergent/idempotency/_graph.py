"""
Coordinator graph — the per-key state machine as nodnod nodes.

Every decision is read from the store, never from process memory, so several
coordinator instances (or processes) sharing one store agree on who executes.

Architecture:
    CoordinationSpec (injected)
         │
         ▼
    SpecNode → ClaimNode (try_create)
                   │
         ┌─────────┼──────────────────┐
         ▼         ▼                  ▼
    ClaimedNode  ClaimFaultNode   LookupNode (find)
                                      │
                  ┌───────────────────┼────────────────────┐
                  ▼                   ▼                    ▼
           LookupFaultNode     VanishedRecordNode   ExistingRecordNode
                                                           │
                                        ┌──────────────────┴───────┐
                                        ▼                          ▼
                                 MismatchedRecordNode      MatchingRecordNode
                                                                   │
                                  ┌──────────────┬─────────────────┼──────────────┐
                                  ▼              ▼                 ▼              ▼
                         CompletedRecordNode  ProcessingRecordNode  FailedRecordNode
                           ├─ ReplayableRecordNode
                           └─ CorruptRecordNode
                                                 │
                                                 ▼
                                 CoordinationOutcome (@polymorphic)
                                                 │
                                                 ▼
                                         FinalOutcomeNode

Note: no 'from __future__ import annotations' here, nodnod reads the type
hints at runtime to resolve dependencies.
"""

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from combinators import flow
from combinators import TimeoutError as StepTimeout
from kungfu import Error, LazyCoroResult, Ok, Result
from nodnod import NodeError, case, polymorphic

from convergent import graph as G
from convergent.idempotency._policy import Policy
from convergent.idempotency._store import Store, StoreError
from convergent.idempotency._types import (
    Cached,
    Conflict,
    FingerprintMismatch,
    Fresh,
    IdempotencyRecord,
    Outcome,
    RecordStatus,
)
from convergent.log import get_logger

log = get_logger(__name__)

type Operation = Callable[[Any], Awaitable[Result[Any, Any]]]
type Shield = Callable[
    [Coroutine[Any, Any, Result[Outcome[Any], Any]]],
    Awaitable[Result[Outcome[Any], Any]],
]


# ═══════════════════════════════════════════════════════════════════════════════
# Input — Spec (injected)
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class CoordinationSpec:
    """
    Everything one keyed request needs.

    shield runs the execute-and-record step so that it finishes even when the
    caller is cancelled. expires_at is fixed once per request so a claim and a
    retry of that claim write the same value.
    """

    key: str
    fingerprint: str
    payload: Any
    operation: Operation
    encode: Callable[[Any], str]
    decode: Callable[[str], Any]
    store: Store
    policy: Policy
    expires_at: datetime
    shield: Shield


# ═══════════════════════════════════════════════════════════════════════════════
# Store calls — bounded, timeouts become StoreError
# ═══════════════════════════════════════════════════════════════════════════════


def _as_store_error(err: StoreError | StepTimeout) -> StoreError:
    if isinstance(err, StoreError):
        return err
    return StoreError(f"Store call timed out after {err.seconds}s", err)


async def _bounded[T](
    spec: CoordinationSpec,
    call: Callable[[], Coroutine[Any, Any, Result[T, StoreError]]],
) -> Result[T, StoreError]:
    return await (
        flow(LazyCoroResult(call))
        .timeout(seconds=spec.policy.store_timeout.total_seconds())
        .compile()
        .map_err(_as_store_error)
    )


async def _mark_failed(spec: CoordinationSpec) -> None:
    """Best-effort: a key stuck in PROCESSING only frees up at expiry."""
    match await _bounded(spec, lambda: spec.store.mark_failed(spec.key)):
        case Error(err):
            log.error("idempotency.mark_failed_error", key=spec.key, error=err.message)
        case Ok(_):
            pass


def _conflict(spec: CoordinationSpec) -> Result[Outcome[Any], Any]:
    return Ok(Conflict(key=spec.key, retry_after=spec.policy.retry_after.total_seconds()))


# ═══════════════════════════════════════════════════════════════════════════════
# Execute and record — runs only for the caller that owns the claim
# ═══════════════════════════════════════════════════════════════════════════════


async def _execute_and_record(spec: CoordinationSpec) -> Result[Outcome[Any], Any]:
    try:
        result = await spec.operation(spec.payload)
        body = spec.encode(result.value) if isinstance(result, Ok) else ""
    except Exception:
        log.exception("idempotency.execution_raised", key=spec.key)
        await _mark_failed(spec)
        raise

    match result:
        case Error(err):
            log.warning("idempotency.execution_failed", key=spec.key, error=repr(err))
            await _mark_failed(spec)
            return Error(err)
        case Ok(value):
            completed = await _bounded(
                spec,
                lambda: spec.store.mark_completed(spec.key, body, spec.policy.status_code),
            )
            match completed:
                case Error(err):
                    log.error("idempotency.mark_completed_error", key=spec.key, error=err.message)
                    await _mark_failed(spec)
                    return Error(err)
                case Ok(_):
                    log.info("idempotency.completed", key=spec.key)
                    return Ok(Fresh(value))


async def _execute(spec: CoordinationSpec) -> Result[Outcome[Any], Any]:
    return await spec.shield(_execute_and_record(spec))


async def _reclaim_and_execute(spec: CoordinationSpec) -> Result[Outcome[Any], Any]:
    reclaimed = await _bounded(
        spec, lambda: spec.store.reclaim(spec.key, spec.fingerprint, spec.expires_at)
    )
    match reclaimed:
        case Error(err):
            return Error(err)
        case Ok(True):
            return await _execute(spec)
        case Ok(_):
            log.info("idempotency.reclaim_lost", key=spec.key)
            return _conflict(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Entry + Claim
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class SpecNode:
    """Wraps CoordinationSpec for graph."""

    def __init__(self, spec: CoordinationSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, spec: CoordinationSpec) -> "SpecNode":
        return cls(spec)


@G.node
class ClaimNode:
    """Attempts the atomic claim. Runs once per request."""

    def __init__(self, result: Result[bool, StoreError], spec: CoordinationSpec) -> None:
        self.result = result
        self.spec = spec

    @classmethod
    async def __compose__(cls, spec_node: SpecNode) -> "ClaimNode":
        spec = spec_node.spec
        result = await _bounded(
            spec, lambda: spec.store.try_create(spec.key, spec.fingerprint, spec.expires_at)
        )
        return cls(result, spec)


@G.node
class ClaimedNode:
    """Validates: this request owns the key."""

    def __init__(self, spec: CoordinationSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, claim: ClaimNode) -> "ClaimedNode":
        match claim.result:
            case Ok(True):
                return cls(claim.spec)
            case _:
                raise NodeError("Not claimed")


@G.node
class ClaimFaultNode:
    """Validates: the claim itself failed in the store."""

    def __init__(self, error: StoreError) -> None:
        self.error = error

    @classmethod
    def __compose__(cls, claim: ClaimNode) -> "ClaimFaultNode":
        match claim.result:
            case Error(err):
                return cls(err)
            case _:
                raise NodeError("Claim did not fail")


# ═══════════════════════════════════════════════════════════════════════════════
# Lookup — only after a lost claim
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class LookupNode:
    """Reads the record that beat us to the claim."""

    def __init__(
        self, result: Result[IdempotencyRecord | None, StoreError], spec: CoordinationSpec
    ) -> None:
        self.result = result
        self.spec = spec

    @classmethod
    async def __compose__(cls, claim: ClaimNode) -> "LookupNode":
        match claim.result:
            case Ok(False):
                pass
            case _:
                raise NodeError("Claim not lost")
        spec = claim.spec
        return cls(await _bounded(spec, lambda: spec.store.find(spec.key)), spec)


@G.node
class LookupFaultNode:
    """Validates: find failed."""

    def __init__(self, error: StoreError) -> None:
        self.error = error

    @classmethod
    def __compose__(cls, lookup: LookupNode) -> "LookupFaultNode":
        match lookup.result:
            case Error(err):
                return cls(err)
            case _:
                raise NodeError("Lookup did not fail")


@G.node
class VanishedRecordNode:
    """Validates: the record was deleted between claim and find (sweeper race)."""

    def __init__(self, spec: CoordinationSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, lookup: LookupNode) -> "VanishedRecordNode":
        match lookup.result:
            case Ok(None):
                return cls(lookup.spec)
            case _:
                raise NodeError("Record present")


@G.node
class ExistingRecordNode:
    """Validates: a record exists."""

    def __init__(self, record: IdempotencyRecord, spec: CoordinationSpec) -> None:
        self.record = record
        self.spec = spec

    @classmethod
    def __compose__(cls, lookup: LookupNode) -> "ExistingRecordNode":
        match lookup.result:
            case Ok(record) if record is not None:
                return cls(record, lookup.spec)
            case _:
                raise NodeError("No record")


# ═══════════════════════════════════════════════════════════════════════════════
# State Nodes — fingerprint first, then status
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class MismatchedRecordNode:
    """Validates: key reused with a different payload."""

    def __init__(self, record: IdempotencyRecord, spec: CoordinationSpec) -> None:
        self.record = record
        self.spec = spec

    @classmethod
    def __compose__(cls, existing: ExistingRecordNode) -> "MismatchedRecordNode":
        if existing.record.request_fingerprint == existing.spec.fingerprint:
            raise NodeError("Fingerprint matches")
        return cls(existing.record, existing.spec)


@G.node
class MatchingRecordNode:
    """Validates: same payload as the claimant."""

    def __init__(self, record: IdempotencyRecord, spec: CoordinationSpec) -> None:
        self.record = record
        self.spec = spec

    @classmethod
    def __compose__(cls, existing: ExistingRecordNode) -> "MatchingRecordNode":
        if existing.record.request_fingerprint != existing.spec.fingerprint:
            raise NodeError("Fingerprint differs")
        return cls(existing.record, existing.spec)


@G.node
class CompletedRecordNode:
    """
    Validates: COMPLETED. Decodes the cached response once.

    corrupt is set when the response is missing or does not decode.
    """

    def __init__(
        self,
        record: IdempotencyRecord,
        spec: CoordinationSpec,
        value: Any,
        corrupt: str | None,
    ) -> None:
        self.record = record
        self.spec = spec
        self.value = value
        self.corrupt = corrupt

    @classmethod
    def __compose__(cls, matching: MatchingRecordNode) -> "CompletedRecordNode":
        record, spec = matching.record, matching.spec
        if record.status != RecordStatus.COMPLETED:
            raise NodeError("Not completed")
        if record.cached_response is None:
            return cls(record, spec, None, "missing cached response")
        try:
            value = spec.decode(record.cached_response)
        except Exception as e:
            return cls(record, spec, None, f"undecodable cached response: {e}")
        return cls(record, spec, value, None)


@G.node
class ReplayableRecordNode:
    """Validates: completed record with a usable response."""

    def __init__(self, completed: CompletedRecordNode) -> None:
        self.completed = completed

    @classmethod
    def __compose__(cls, completed: CompletedRecordNode) -> "ReplayableRecordNode":
        if completed.corrupt is not None:
            raise NodeError("Corrupt")
        return cls(completed)


@G.node
class CorruptRecordNode:
    """Validates: completed record without a usable response."""

    def __init__(self, completed: CompletedRecordNode) -> None:
        self.completed = completed

    @classmethod
    def __compose__(cls, completed: CompletedRecordNode) -> "CorruptRecordNode":
        if completed.corrupt is None:
            raise NodeError("Not corrupt")
        return cls(completed)


@G.node
class ProcessingRecordNode:
    """Validates: PROCESSING, execution in flight elsewhere."""

    def __init__(self, spec: CoordinationSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, matching: MatchingRecordNode) -> "ProcessingRecordNode":
        if matching.record.status != RecordStatus.PROCESSING:
            raise NodeError("Not processing")
        return cls(matching.spec)


@G.node
class FailedRecordNode:
    """Validates: FAILED, eligible for re-execution."""

    def __init__(self, spec: CoordinationSpec) -> None:
        self.spec = spec

    @classmethod
    def __compose__(cls, matching: MatchingRecordNode) -> "FailedRecordNode":
        if matching.record.status != RecordStatus.FAILED:
            raise NodeError("Not failed")
        return cls(matching.spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Polymorphic Outcome — tried in definition order
# ═══════════════════════════════════════════════════════════════════════════════


@polymorphic[Result[Outcome[Any], Any]]
class CoordinationOutcome:
    """
    Router over the validated state nodes.

    Note: a case only runs after every case above it failed, so side-effecting
    cases (execute, reclaim) can never both fire for one request.
    """

    @case
    async def execute_claimed(cls, node: ClaimedNode) -> Result[Outcome[Any], Any]:
        """Claim won: execute and record."""
        return await _execute(node.spec)

    @case
    def claim_fault(cls, node: ClaimFaultNode) -> Result[Outcome[Any], Any]:
        return Error(node.error)

    @case
    def lookup_fault(cls, node: LookupFaultNode) -> Result[Outcome[Any], Any]:
        return Error(node.error)

    @case
    def fingerprint_mismatch(cls, node: MismatchedRecordNode) -> Result[Outcome[Any], Any]:
        """Key reused for a different payload."""
        log.warning("idempotency.fingerprint_mismatch", key=node.spec.key)
        return Ok(FingerprintMismatch(key=node.spec.key))

    @case
    def replay(cls, node: ReplayableRecordNode) -> Result[Outcome[Any], Any]:
        """Return the cached response."""
        completed = node.completed
        status_code = completed.record.cached_status_code or 200
        log.info("idempotency.replayed", key=completed.spec.key, status_code=status_code)
        return Ok(Cached(value=completed.value, status_code=status_code))

    @case
    async def heal_corrupt(cls, node: CorruptRecordNode) -> Result[Outcome[Any], Any]:
        """COMPLETED without a usable response: mark FAILED, then re-execute."""
        completed = node.completed
        spec = completed.spec
        log.warning("idempotency.corrupt_record", key=spec.key, reason=completed.corrupt)
        invalidated = await _bounded(
            spec, lambda: spec.store.invalidate(spec.key, completed.record.cached_response)
        )
        match invalidated:
            case Error(err):
                return Error(err)
            case Ok(_):
                # Another healer may have invalidated first; reclaim picks one winner
                return await _reclaim_and_execute(spec)

    @case
    def in_flight(cls, node: ProcessingRecordNode) -> Result[Outcome[Any], Any]:
        """Another execution holds the key."""
        log.info("idempotency.in_flight", key=node.spec.key)
        return _conflict(node.spec)

    @case
    async def retry_failed(cls, node: FailedRecordNode) -> Result[Outcome[Any], Any]:
        """Recovery path for a previously failed attempt."""
        log.info("idempotency.retrying_failed", key=node.spec.key)
        return await _reclaim_and_execute(node.spec)

    @case
    async def reclaim_vanished(cls, node: VanishedRecordNode) -> Result[Outcome[Any], Any]:
        """Record swept between claim and lookup: claim once more, then give up."""
        spec = node.spec
        log.info("idempotency.record_vanished", key=spec.key)
        claimed = await _bounded(
            spec, lambda: spec.store.try_create(spec.key, spec.fingerprint, spec.expires_at)
        )
        match claimed:
            case Error(err):
                return Error(err)
            case Ok(True):
                return await _execute(spec)
            case Ok(_):
                return _conflict(spec)


# ═══════════════════════════════════════════════════════════════════════════════
# Final Node
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class FinalOutcomeNode:
    """Holds the routed result."""

    def __init__(self, result: Result[Outcome[Any], Any]) -> None:
        self.result = result

    @classmethod
    def __compose__(cls, outcome: CoordinationOutcome) -> "FinalOutcomeNode":
        return cls(outcome.value)


# ═══════════════════════════════════════════════════════════════════════════════
# Public API
# ═══════════════════════════════════════════════════════════════════════════════


async def run_coordinated(spec: CoordinationSpec) -> Result[Outcome[Any], Any]:
    """Run the keyed state machine for one request."""
    node = await G.run(FinalOutcomeNode).inject(spec)
    return node.result


def shield_task(
    in_flight: set[asyncio.Task[Any]],
) -> Shield:
    """
    Build a Shield that runs the coroutine as a task tracked in in_flight.

    The caller awaits a shielded view of the task, so cancelling the caller
    leaves the task running to its terminal store write.
    """

    def shield(
        coro: Coroutine[Any, Any, Result[Outcome[Any], Any]],
    ) -> Awaitable[Result[Outcome[Any], Any]]:
        task = asyncio.ensure_future(coro)
        in_flight.add(task)
        task.add_done_callback(in_flight.discard)
        return asyncio.shield(task)

    return shield


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CoordinationSpec",
    "SpecNode",
    "ClaimNode",
    "ClaimedNode",
    "ClaimFaultNode",
    "LookupNode",
    "LookupFaultNode",
    "VanishedRecordNode",
    "ExistingRecordNode",
    "MismatchedRecordNode",
    "MatchingRecordNode",
    "CompletedRecordNode",
    "ReplayableRecordNode",
    "CorruptRecordNode",
    "ProcessingRecordNode",
    "FailedRecordNode",
    "CoordinationOutcome",
    "FinalOutcomeNode",
    "run_coordinated",
    "shield_task",
)
