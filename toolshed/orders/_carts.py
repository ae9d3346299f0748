"""
Server-side cart rows as the checkout endpoints see them.

A row is `active` until its order is confirmed, then `completed` with the
order id. A completed row reads back as an empty cart.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Protocol

from toolshed._types import CartId, IntentId, OrderId, OwnerId
from toolshed.cart import Cart
from toolshed.errors import NotFound


class CartStatus(StrEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class CartRecord:
    cart: Cart
    status: CartStatus = CartStatus.ACTIVE
    intent_id: IntentId | None = None
    order_id: OrderId | None = None

    @property
    def completed(self) -> bool:
        return self.status is CartStatus.COMPLETED


def new_cart_id() -> CartId:
    return f"cart_{uuid.uuid4().hex[:12]}"


class CartRecords(Protocol):
    async def find(self, cart_id: CartId) -> CartRecord | None: ...

    async def attach_intent(self, cart_id: CartId, intent_id: IntentId) -> None: ...

    async def complete(self, cart_id: CartId, order_id: OrderId) -> None: ...


class MemoryCartRecords:
    """
    In-memory rows. Also serves as the client-side `CartRepository`
    (`get_cart` / `save_cart`) so one instance backs both ends in tests.
    """

    def __init__(self, records: dict[CartId, CartRecord] | None = None) -> None:
        self.records: dict[CartId, CartRecord] = dict(records or {})
        self._lock = asyncio.Lock()

    async def find(self, cart_id: CartId) -> CartRecord | None:
        record = self.records.get(cart_id)
        if record is not None and record.completed:
            return replace(record, cart=record.cart.emptied())
        return record

    async def attach_intent(self, cart_id: CartId, intent_id: IntentId) -> None:
        async with self._lock:
            record = self._require(cart_id)
            self.records[cart_id] = replace(record, intent_id=intent_id)

    async def complete(self, cart_id: CartId, order_id: OrderId) -> None:
        async with self._lock:
            record = self._require(cart_id)
            self.records[cart_id] = replace(
                record,
                cart=record.cart.emptied(),
                status=CartStatus.COMPLETED,
                order_id=order_id,
            )

    async def get_cart(self, owner_id: OwnerId) -> Cart:
        async with self._lock:
            for record in self.records.values():
                if record.cart.owner_id == owner_id and not record.completed:
                    return record.cart
            cart = Cart.of(new_cart_id(), owner_id)
            self.records[cart.id] = CartRecord(cart=cart)
            return cart

    async def save_cart(self, cart: Cart) -> None:
        async with self._lock:
            record = self.records.get(cart.id)
            if record is None or record.completed:
                self.records[cart.id] = CartRecord(cart=cart)
            else:
                self.records[cart.id] = replace(record, cart=cart)

    def _require(self, cart_id: CartId) -> CartRecord:
        record = self.records.get(cart_id)
        if record is None:
            raise NotFound("cart", cart_id)
        return record


__all__ = (
    "CartStatus",
    "CartRecord",
    "new_cart_id",
    "CartRecords",
    "MemoryCartRecords",
)
