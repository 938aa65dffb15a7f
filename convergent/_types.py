"""
Core types for convergent.

Re-exports from kungfu + custom type aliases.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

# Re-export from kungfu
from kungfu import Result, Ok, Error, LazyCoroResult

# ═══════════════════════════════════════════════════════════════════════════════
# Lazy Computation Aliases
# ═══════════════════════════════════════════════════════════════════════════════

type Lazy[T, E] = LazyCoroResult[T, E]
"""Lazy async computation that may fail."""

# ═══════════════════════════════════════════════════════════════════════════════
# Clock
# ═══════════════════════════════════════════════════════════════════════════════

type Clock = Callable[[], datetime]
"""Source of "now". Injected wherever expiry is computed or compared."""


def utcnow() -> datetime:
    """
    Naive UTC timestamp.

    Note: naive on purpose. SQLite DateTime columns drop tzinfo on the way back,
    so every timestamp written or compared by the stores stays naive UTC.
    """
    return datetime.now(UTC).replace(tzinfo=None)


# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    # Re-exports from kungfu
    "Result",
    "Ok",
    "Error",
    "LazyCoroResult",
    # Aliases
    "Lazy",
    "Clock",
    "utcnow",
)
