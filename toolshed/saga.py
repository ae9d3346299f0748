"""
Saga — compensated steps for work that spans the database and the gateway.

    from toolshed import saga as S

    flow = S.from_async(
        lambda: gateway.create_intent(request),
        on_error=to_checkout_error,
        compensate=lambda intent: gateway.cancel_intent(intent.id),
    ).then(lambda intent: S.from_async(
        lambda: carts.attach_intent(cart_id, intent.id),
        on_error=to_checkout_error,
    ))

    result = await S.run_chain(flow)

When a later step fails, compensators of the earlier steps run newest first.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

logger = logging.getLogger(__name__)

type Compensator[T] = Callable[[T], Awaitable[None]]


# ═══════════════════════════════════════════════════════════════════════════════
# Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SagaStep[T, E]:
    action: LazyCoroResult[T, E]
    compensate: Compensator[T] | None = None

    def then[U](self, f: Callable[[T], SagaStep[U, E]]) -> Then[T, U, E]:
        return Then(self, f)


@dataclass(frozen=True, slots=True)
class Then[T, U, E]:
    inner: SagaStep[T, E]
    f: Callable[[T], SagaStep[U, E]]


@dataclass(frozen=True, slots=True)
class SagaResult[T]:
    value: T
    steps_executed: int


@dataclass(frozen=True, slots=True)
class SagaError[E]:
    error: E
    step_failed: int
    compensators_run: int
    compensators_failed: int

    @property
    def rollback_complete(self) -> bool:
        return self.compensators_failed == 0


type _Recorded = list[tuple[Any, Compensator[Any]]]


# ═══════════════════════════════════════════════════════════════════════════════
# Constructors
# ═══════════════════════════════════════════════════════════════════════════════


def from_async[T, E](
    action: Callable[[], Awaitable[T]],
    on_error: Callable[[Exception], E],
    compensate: Compensator[T] | None = None,
) -> SagaStep[T, E]:
    """Step from a plain coroutine function; exceptions become `Error(on_error(exc))`."""
    return SagaStep(action=L.catching_async(action, on_error=on_error), compensate=compensate)


# ═══════════════════════════════════════════════════════════════════════════════
# Execution
# ═══════════════════════════════════════════════════════════════════════════════


async def _run_step[T, E](s: SagaStep[T, E], recorded: _Recorded) -> Result[T, E]:
    result = await s.action
    match result:
        case Ok(value):
            if s.compensate is not None:
                recorded.append((value, s.compensate))
            return Ok(value)
        case Error(e):
            return Error(e)


async def _rollback(recorded: _Recorded) -> tuple[int, int]:
    ran = failed = 0
    for value, compensate in reversed(recorded):
        try:
            await compensate(value)
            ran += 1
        except Exception:
            failed += 1
            logger.exception("Compensation %r failed", compensate)
    return ran, failed


async def run[T, E](saga: SagaStep[T, E]) -> Result[SagaResult[T], SagaError[E]]:
    recorded: _Recorded = []
    match await _run_step(saga, recorded):
        case Ok(value):
            return Ok(SagaResult(value=value, steps_executed=1))
        case Error(e):
            return Error(SagaError(error=e, step_failed=1, compensators_run=0, compensators_failed=0))


async def run_chain[T, U, E](chain: Then[T, U, E]) -> Result[SagaResult[U], SagaError[E]]:
    recorded: _Recorded = []

    match await _run_step(chain.inner, recorded):
        case Error(e):
            ran, failed = await _rollback(recorded)
            return Error(SagaError(error=e, step_failed=1, compensators_run=ran, compensators_failed=failed))
        case Ok(value):
            next_step = chain.f(value)

    match await _run_step(next_step, recorded):
        case Ok(final):
            return Ok(SagaResult(value=final, steps_executed=2))
        case Error(e):
            ran, failed = await _rollback(recorded)
            return Error(SagaError(error=e, step_failed=2, compensators_run=ran, compensators_failed=failed))


__all__ = (
    "Compensator",
    "SagaStep",
    "Then",
    "SagaResult",
    "SagaError",
    "from_async",
    "run",
    "run_chain",
)
