"""
Fluent runner — sugar over nodnod.

Builds an agent from the target node (nodnod discovers the dependencies),
pushes injected values into a fresh scope and reads the target back.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast
from collections.abc import Callable, Coroutine

from nodnod import Scope, Value, EventLoopAgent, Node


# ═══════════════════════════════════════════════════════════════════════════════
# Run — Fluent awaitable builder
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(slots=True, frozen=True)
class Run[T]:
    """
    Awaitable run of one target node.

    Example:
        node = await run(FinalOutcomeNode).inject(spec)
    """
    _target: type[T]
    _injections: tuple[tuple[type[Any], Any], ...] = ()

    def inject(self, value: object) -> Run[T]:
        """Inject a value under its runtime type."""
        return self.inject_as(cast(type[Any], type(value)), value)

    def inject_as[V](self, typ: type[V], value: V) -> Run[T]:
        """Inject a value under an explicit type (protocols, base classes)."""
        return Run(self._target, (*self._injections, (typ, value)))

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        agent = EventLoopAgent.build({cast(type[Node[Any, Any]], self._target)})

        async with Scope(detail="run") as scope:
            for typ, value in self._injections:
                scope.push(Value(typ, value))

            run_agent = cast(
                Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
                getattr(agent, "run"),
            )
            await run_agent(scope, {})

            found = scope.get(self._target)
            if found is None:
                raise LookupError(f"{self._target.__name__} was not produced")
            return cast(T, found.value)


def run[T](target: type[T]) -> Run[T]:
    """Start a fluent run of target."""
    return Run(target)


__all__ = ("Run", "run")
