"""
Confirmation graph — exactly-once order creation per gateway intent id.

    ConfirmationCall (injected)
         │
         ▼
    CallNode ──▶ LedgerLookup
                      │
       ┌──────────────┼────────────────┬──────────────┬──────────────────┐
       ▼              ▼                ▼              ▼                  ▼
    ConfirmedEntry  InFlightEntry  AbandonedEntry  FreshPayment  LedgerUnavailable
       │
       ▼
    SameCartEntry
                      │
                      ▼
             ConfirmationVerdict (@polymorphic) ──▶ ConfirmationResult

No `from __future__ import annotations` here: nodnod reads the runtime
annotations of `__compose__` to wire the nodes.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from combinators import flow
from kungfu import Error, LazyCoroResult, Ok, Result
from nodnod import NodeError, case, polymorphic

from toolshed import graph as G
from toolshed._types import OrderId
from toolshed.errors import CheckoutError, ConflictError, NetworkError
from toolshed.orders._ledger import (
    ConfirmationRecord,
    ConfirmationStore,
    Confirmed,
    OnPending,
    Policy,
    RecordState,
    StoreError,
)
from toolshed.orders._types import Order

logger = logging.getLogger(__name__)

IN_PROGRESS = "Order confirmation for this payment is still in progress"
VANISHED = "Order confirmation for this payment did not complete. Please try again."


@dataclass(frozen=True)
class ConfirmationCall:
    """
    One confirmation call.

    `draft` builds the order (re-deriving totals, checking ownership) and is
    only invoked when no record exists. `finalize` runs the side effects that
    belong to a new order, e.g. completing the cart row.
    """

    intent_id: str
    fingerprint: str
    draft: Callable[[], Awaitable[Result[Order, CheckoutError]]]
    finalize: Callable[[OrderId], Awaitable[Result[None, CheckoutError]]]
    store: ConfirmationStore
    policy: Policy


def _ledger_down(err: StoreError) -> CheckoutError:
    logger.error("Order ledger failure: %s", err.message)
    return NetworkError("record order", err.message)


def _failed(record: ConfirmationRecord) -> CheckoutError:
    return CheckoutError("CONFIRMATION_FAILED", record.error or "Order confirmation failed")


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger lookup
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class CallNode:
    def __init__(self, call: ConfirmationCall) -> None:
        self.call = call

    @classmethod
    def __compose__(cls, call: ConfirmationCall) -> "CallNode":
        return cls(call)


@G.node
class LedgerLookup:
    """What the ledger holds for this intent id, or why it could not tell."""

    def __init__(
        self,
        call: ConfirmationCall,
        record: ConfirmationRecord | None = None,
        failure: StoreError | None = None,
    ) -> None:
        self.call = call
        self.record = record
        self.failure = failure

    @classmethod
    async def __compose__(cls, node: CallNode) -> "LedgerLookup":
        call = node.call
        match await call.store.get(call.intent_id):
            case Ok(record):
                return cls(call, record=record)
            case Error(err):
                return cls(call, failure=err)

    def in_state(self, state: RecordState) -> ConfirmationRecord:
        if self.record is None or self.record.state is not state:
            raise NodeError(f"No {state.value} record")
        return self.record


# ═══════════════════════════════════════════════════════════════════════════════
# Ledger entries
# ═══════════════════════════════════════════════════════════════════════════════


@G.node
class ConfirmedEntry:
    def __init__(self, record: ConfirmationRecord, call: ConfirmationCall) -> None:
        self.record = record
        self.call = call

    @classmethod
    def __compose__(cls, lookup: LedgerLookup) -> "ConfirmedEntry":
        return cls(lookup.in_state(RecordState.COMPLETED), lookup.call)


@G.node
class SameCartEntry:
    """Confirmed entry whose cart snapshot matches this call."""

    def __init__(self, record: ConfirmationRecord) -> None:
        self.record = record

    @classmethod
    def __compose__(cls, entry: ConfirmedEntry) -> "SameCartEntry":
        if not entry.record.matches(entry.call.fingerprint):
            raise NodeError("Different cart")
        return cls(entry.record)


@G.node
class AbandonedEntry:
    def __init__(self, record: ConfirmationRecord) -> None:
        self.record = record

    @classmethod
    def __compose__(cls, lookup: LedgerLookup) -> "AbandonedEntry":
        return cls(lookup.in_state(RecordState.FAILED))


@G.node
class InFlightEntry:
    def __init__(self, record: ConfirmationRecord, call: ConfirmationCall) -> None:
        self.record = record
        self.call = call

    @classmethod
    def __compose__(cls, lookup: LedgerLookup) -> "InFlightEntry":
        return cls(lookup.in_state(RecordState.PENDING), lookup.call)

    @property
    def same_cart(self) -> bool:
        return self.record.matches(self.call.fingerprint)

    @property
    def orphaned(self) -> bool:
        """Left PENDING by a caller that never came back to mark it."""
        return self.same_cart and self.record.older_than(self.call.policy.wait_timeout)


@G.node
class FreshPayment:
    def __init__(self, call: ConfirmationCall) -> None:
        self.call = call

    @classmethod
    def __compose__(cls, lookup: LedgerLookup) -> "FreshPayment":
        if lookup.failure is not None or lookup.record is not None:
            raise NodeError("Ledger already answered")
        return cls(lookup.call)


@G.node
class LedgerUnavailable:
    def __init__(self, failure: StoreError) -> None:
        self.failure = failure

    @classmethod
    def __compose__(cls, lookup: LedgerLookup) -> "LedgerUnavailable":
        if lookup.failure is None:
            raise NodeError("Ledger reachable")
        return cls(lookup.failure)


# ═══════════════════════════════════════════════════════════════════════════════
# Verdicts
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Settled:
    confirmed: Confirmed


@dataclass(frozen=True)
class Refused:
    error: CheckoutError


type Verdict = Settled | Refused


def _other_cart(call: ConfirmationCall) -> Verdict:
    logger.warning("Payment %s confirmed again with a different cart", call.intent_id)
    return Refused(ConflictError(call.intent_id))


async def _await_owner(call: ConfirmationCall) -> Verdict:
    """Wait for the confirmation another caller owns. Finish it if they never do."""
    deadline = call.policy.wait_timeout.total_seconds()
    waited = 0.0
    last: ConfirmationRecord | None = None

    while waited < deadline:
        await asyncio.sleep(call.policy.poll_interval)
        waited += call.policy.poll_interval

        match await call.store.get(call.intent_id):
            case Error(err):
                return Refused(_ledger_down(err))
            case Ok(None):
                return Refused(ConflictError(call.intent_id, VANISHED))
            case Ok(record) if record.state is RecordState.COMPLETED:
                if not record.matches(call.fingerprint):
                    return _other_cart(call)
                return Settled(Confirmed(order_id=record.order_id, replayed=True))
            case Ok(record) if record.state is RecordState.FAILED:
                return Refused(_failed(record))
            case Ok(record):
                last = record

    if last is not None and last.matches(call.fingerprint) and last.older_than(call.policy.wait_timeout):
        return await _take_over(call, last)
    return Refused(ConflictError(call.intent_id, IN_PROGRESS))


async def _give_up(call: ConfirmationCall, error: CheckoutError) -> Verdict:
    if call.policy.persist_failed:
        await call.store.set_failed(call.intent_id, error.message)
    else:
        await call.store.delete(call.intent_id)
    return Refused(error)


def _mark_completed(call: ConfirmationCall) -> LazyCoroResult[None, StoreError]:
    return (
        flow(LazyCoroResult(lambda: call.store.set_completed(call.intent_id)))
        .retry(times=call.policy.complete_attempts, delay_seconds=call.policy.poll_interval)
        .compile()
    )


async def _complete(call: ConfirmationCall, order_id: OrderId) -> Verdict:
    """Run the side effects of a written draft, then mark it COMPLETED."""
    try:
        finalized = await call.finalize(order_id)
    except Exception as exc:
        logger.exception("Finalizing order %s failed", order_id)
        return await _give_up(call, NetworkError("complete order", f"{type(exc).__name__}: {exc}"))

    if isinstance(finalized, Error):
        return await _give_up(call, finalized.error)

    match await _mark_completed(call):
        case Error(err):
            return Refused(_ledger_down(err))
        case Ok(_):
            return Settled(Confirmed(order_id=order_id, replayed=False))


async def _take_over(call: ConfirmationCall, record: ConfirmationRecord) -> Verdict:
    # finalize and set_completed are idempotent, a late original caller is harmless
    logger.warning(
        "Payment %s left pending since %s, finishing order %s",
        call.intent_id,
        record.created_at.isoformat(),
        record.order_id,
    )
    return await _complete(call, record.order_id)


async def _place_order(call: ConfirmationCall) -> Verdict:
    match await call.draft():
        case Error(e):
            return Refused(e)
        case Ok(order):
            draft = order

    match await call.store.set_pending(call.intent_id, call.fingerprint, draft):
        case Error(err):
            return Refused(_ledger_down(err))
        case Ok(False):
            # another call wrote the record first
            return await _await_owner(call)
        case Ok(True):
            return await _complete(call, draft.id)


@polymorphic[Verdict]
class ConfirmationVerdict:
    @case
    def ledger_down(cls, node: LedgerUnavailable) -> Verdict:
        return Refused(_ledger_down(node.failure))

    @case
    def replay(cls, entry: SameCartEntry) -> Verdict:
        logger.info("Payment %s already confirmed as order %s", entry.record.key, entry.record.order_id)
        return Settled(Confirmed(order_id=entry.record.order_id, replayed=True))

    @case
    def confirmed_for_other_cart(cls, entry: ConfirmedEntry) -> Verdict:
        if entry.record.matches(entry.call.fingerprint):
            raise NodeError("Same cart")
        return _other_cart(entry.call)

    @case
    def abandoned(cls, entry: AbandonedEntry) -> Verdict:
        return Refused(_failed(entry.record))

    @case
    def in_flight_for_other_cart(cls, entry: InFlightEntry) -> Verdict:
        if entry.same_cart:
            raise NodeError("Same cart")
        return _other_cart(entry.call)

    @case
    async def orphaned(cls, entry: InFlightEntry) -> Verdict:
        if not entry.orphaned:
            raise NodeError("Owner may still finish")
        return await _take_over(entry.call, entry.record)

    @case
    def in_flight_refused(cls, entry: InFlightEntry) -> Verdict:
        if not entry.same_cart or entry.orphaned or entry.call.policy.on_pending is not OnPending.FAIL:
            raise NodeError("Not refused")
        return Refused(ConflictError(entry.call.intent_id, IN_PROGRESS))

    @case
    async def in_flight_wait(cls, entry: InFlightEntry) -> Verdict:
        if not entry.same_cart or entry.orphaned or entry.call.policy.on_pending is not OnPending.WAIT:
            raise NodeError("Not waiting")
        return await _await_owner(entry.call)

    @case
    async def place_order(cls, node: FreshPayment) -> Verdict:
        return await _place_order(node.call)


@G.node
class ConfirmationResult:
    def __init__(self, verdict: Verdict) -> None:
        self.verdict = verdict

    @classmethod
    def __compose__(cls, verdict: ConfirmationVerdict) -> "ConfirmationResult":
        return cls(verdict.value)

    def to_result(self) -> Result[Confirmed, CheckoutError]:
        match self.verdict:
            case Settled(confirmed=confirmed):
                return Ok(confirmed)
            case Refused(error=error):
                return Error(error)


async def run_confirmation(call: ConfirmationCall) -> Result[Confirmed, CheckoutError]:
    node = await G.run(ConfirmationResult).inject(call)
    return node.to_result()


__all__ = (
    "ConfirmationCall",
    "Verdict",
    "Settled",
    "Refused",
    "ConfirmationVerdict",
    "run_confirmation",
)
