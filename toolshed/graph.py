"""
Graph — run nodnod node classes against injected values.

    from toolshed import graph as G

    @G.node
    class Priced:
        def __init__(self, breakdown: PriceBreakdown) -> None:
            self.breakdown = breakdown

        @classmethod
        def __compose__(cls, snapshot: CartSnapshot) -> "Priced":
            return cls(PriceBreakdown.of(snapshot.subtotal))

    priced = await G.run(Priced).inject(snapshot)

Modules that declare nodes must not use `from __future__ import annotations`:
nodnod resolves dependencies from the runtime annotations of `__compose__`.
"""

from __future__ import annotations

from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from typing import Any, cast

from nodnod import EventLoopAgent, Node, Scope, Value, scalar_node as node


# ═══════════════════════════════════════════════════════════════════════════════
# Run — awaitable builder
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Run[T]:
    """
    Resolve `target` and everything it depends on.

    Injected values are keyed by their runtime type unless `inject_as` names
    the type explicitly (protocols, base classes).
    """

    target: type[T]
    injections: tuple[tuple[type[Any], Any], ...] = ()

    def inject(self, value: object) -> Run[T]:
        return self.inject_as(cast(type[Any], type(value)), value)

    def inject_as[V](self, typ: type[V], value: V) -> Run[T]:
        return Run(target=self.target, injections=(*self.injections, (typ, value)))

    def __await__(self) -> Any:
        return self._execute().__await__()

    async def _execute(self) -> T:
        agent = EventLoopAgent.build({cast(type[Node[Any, Any]], self.target)})

        async with Scope(detail=f"run:{self.target.__name__}") as scope:
            for typ, value in self.injections:
                scope.push(Value(typ, value))

            run_agent = cast(
                Callable[[Scope, dict[type[Any], Scope]], Coroutine[Any, Any, None]],
                getattr(agent, "run"),
            )
            await run_agent(scope, {})

            resolved = scope.get(self.target)
            if resolved is None:
                raise LookupError(f"{self.target.__name__} was not produced")
            return cast(T, resolved.value)


def run[T](target: type[T]) -> Run[T]:
    return Run(target=target)


__all__ = ("node", "Run", "run")
