"""
Graph — nodnod nodes with a fluent runner.

    from convergent import graph as G

    @G.node
    class LoadRecord:
        @classmethod
        async def __compose__(cls, spec: Spec) -> "LoadRecord":
            return cls(await spec.store.find(spec.key))

    node = await G.run(LoadRecord).inject(spec)
"""

from nodnod import scalar_node as node

from convergent.graph._run import Run, run

__all__ = (
    "node",
    "Run",
    "run",
)
