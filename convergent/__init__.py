"""
convergent — idempotent order processing for Python backends.

    from convergent import idempotency as I   # At-most-once execution per key
    from convergent import orders as O        # Order saga and collaborators
    from convergent import graph as G         # nodnod graph runner
"""

from convergent import graph
from convergent import idempotency
from convergent import orders
from convergent._types import (
    Lazy,
    Clock,
    utcnow,
)

__version__ = "0.1.0"

__all__ = (
    "graph",
    "idempotency",
    "orders",
    "Lazy",
    "Clock",
    "utcnow",
)
