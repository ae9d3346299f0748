"""
Confirmation ledger — one record per gateway intent id.

A record is PENDING while an order for the intent is being written,
COMPLETED once it exists, FAILED only when the policy keeps failures.
All store methods return Result; the graph in `_graph` decides what a
given record state means for a confirmation call.

    store = MemoryOrderStore()
    acquired = await store.set_pending("pi_123", fingerprint, draft)
    match acquired:
        case Ok(True):  ...   # this call owns the confirmation
        case Ok(False): ...   # someone else does, wait for them
        case Error(e):  ...   # storage failed
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol

from kungfu import Error, Ok, Result

from toolshed._types import IntentId, OrderId, OwnerId
from toolshed.orders._types import Order, OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Records
# ═══════════════════════════════════════════════════════════════════════════════


class RecordState(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ConfirmationRecord:
    key: IntentId
    state: RecordState
    order_id: OrderId
    fingerprint: str
    error: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def matches(self, fingerprint: str) -> bool:
        return self.fingerprint == fingerprint

    def older_than(self, age: timedelta) -> bool:
        return datetime.now(UTC) - self.created_at >= age


@dataclass(frozen=True, slots=True)
class Confirmed:
    order_id: OrderId
    replayed: bool
    """True when the order already existed and nothing new was written."""


@dataclass(frozen=True, slots=True)
class StoreError:
    message: str
    cause: Exception | None = None


# ═══════════════════════════════════════════════════════════════════════════════
# Policy
# ═══════════════════════════════════════════════════════════════════════════════


class OnPending(Enum):
    WAIT = "wait"
    """Poll until the in-flight confirmation settles."""
    FAIL = "fail"
    """Answer with a conflict right away."""


@dataclass(frozen=True, slots=True)
class Policy:
    on_pending: OnPending = OnPending.WAIT
    wait_timeout: timedelta = timedelta(seconds=30)
    poll_interval: float = 0.1
    persist_failed: bool = False
    """Keep FAILED records. Off: a failure deletes the record so the client may retry."""
    complete_attempts: int = 3
    """Tries at marking a finalized order COMPLETED."""

    @classmethod
    def waiting(cls, seconds: float) -> Policy:
        return cls(wait_timeout=timedelta(seconds=seconds))


# ═══════════════════════════════════════════════════════════════════════════════
# Protocols
# ═══════════════════════════════════════════════════════════════════════════════


class ConfirmationStore(Protocol):
    """
    Ledger storage. `set_pending` writes the draft order together with the
    record and must be atomic on the key: exactly one caller gets `Ok(True)`.
    """

    async def get(self, key: IntentId) -> Result[ConfirmationRecord | None, StoreError]: ...

    async def set_pending(self, key: IntentId, fingerprint: str, draft: Order) -> Result[bool, StoreError]: ...

    async def set_completed(self, key: IntentId) -> Result[None, StoreError]: ...

    async def set_failed(self, key: IntentId, error: str) -> Result[None, StoreError]: ...

    async def delete(self, key: IntentId) -> Result[bool, StoreError]: ...


class OrderRepository(Protocol):
    """Reads over completed orders. Pending drafts are never returned."""

    async def get_order(self, order_id: OrderId) -> Order | None: ...

    async def list_orders(self, owner_id: OwnerId) -> list[Order]: ...

    async def set_status(self, order_id: OrderId, status: OrderStatus) -> Order: ...


# ═══════════════════════════════════════════════════════════════════════════════
# In-memory implementation
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryOrderStore:
    """Ledger and order repository in one dict pair. For tests and local runs."""

    def __init__(self) -> None:
        self._records: dict[IntentId, ConfirmationRecord] = {}
        self._orders: dict[OrderId, Order] = {}
        self._lock = asyncio.Lock()

    @property
    def records(self) -> dict[IntentId, ConfirmationRecord]:
        return dict(self._records)

    async def get(self, key: IntentId) -> Result[ConfirmationRecord | None, StoreError]:
        return Ok(self._records.get(key))

    async def set_pending(self, key: IntentId, fingerprint: str, draft: Order) -> Result[bool, StoreError]:
        async with self._lock:
            if key in self._records:
                return Ok(False)
            self._records[key] = ConfirmationRecord(
                key=key,
                state=RecordState.PENDING,
                order_id=draft.id,
                fingerprint=fingerprint,
            )
            self._orders[draft.id] = draft
            return Ok(True)

    async def set_completed(self, key: IntentId) -> Result[None, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return Error(StoreError(f"Record not found: {key}"))
            self._records[key] = replace(record, state=RecordState.COMPLETED)
            return Ok(None)

    async def set_failed(self, key: IntentId, error: str) -> Result[None, StoreError]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return Error(StoreError(f"Record not found: {key}"))
            self._records[key] = replace(record, state=RecordState.FAILED, error=error)
            self._orders.pop(record.order_id, None)
            return Ok(None)

    async def delete(self, key: IntentId) -> Result[bool, StoreError]:
        async with self._lock:
            record = self._records.pop(key, None)
            if record is None:
                return Ok(False)
            self._orders.pop(record.order_id, None)
            return Ok(True)

    def _completed(self) -> set[OrderId]:
        return {r.order_id for r in self._records.values() if r.state is RecordState.COMPLETED}

    async def get_order(self, order_id: OrderId) -> Order | None:
        if order_id not in self._completed():
            return None
        return self._orders.get(order_id)

    async def list_orders(self, owner_id: OwnerId) -> list[Order]:
        completed = self._completed()
        owned = [o for oid, o in self._orders.items() if oid in completed and o.owner_id == owner_id]
        return sorted(owned, key=lambda o: o.created_at, reverse=True)

    async def set_status(self, order_id: OrderId, status: OrderStatus) -> Order:
        async with self._lock:
            order = self._orders[order_id].with_status(status)
            self._orders[order_id] = order
            return order


__all__ = (
    "RecordState",
    "ConfirmationRecord",
    "Confirmed",
    "StoreError",
    "OnPending",
    "Policy",
    "ConfirmationStore",
    "OrderRepository",
    "MemoryOrderStore",
)
