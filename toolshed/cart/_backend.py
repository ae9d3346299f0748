"""
Cart backends — where a cart lives between mutations.

GuestCartBackend keeps the cart in client-local storage under a fixed key.
RemoteCartBackend delegates to the persistence service for signed-in owners.
"""

from __future__ import annotations

import json
import logging
from typing import Protocol

from toolshed._types import GUEST_CART_ID, OwnerId
from toolshed.cart._storage import GUEST_CART_KEY, LocalStorage
from toolshed.cart._types import Cart

logger = logging.getLogger(__name__)


class CartBackend(Protocol):
    async def load(self) -> Cart: ...

    async def persist(self, cart: Cart) -> None: ...


class CartRepository(Protocol):
    """Persistence service contract for owner-scoped carts."""

    async def get_cart(self, owner_id: OwnerId) -> Cart:
        """Return the owner's active cart, creating an empty one if needed."""
        ...

    async def save_cart(self, cart: Cart) -> None: ...


# ═══════════════════════════════════════════════════════════════════════════════
# Guest
# ═══════════════════════════════════════════════════════════════════════════════


class GuestCartBackend:
    def __init__(self, storage: LocalStorage, key: str = GUEST_CART_KEY) -> None:
        self._storage = storage
        self._key = key

    async def load(self) -> Cart:
        raw = self._storage.get_item(self._key)
        if raw is None:
            return Cart.of(GUEST_CART_ID, None)
        try:
            stored = Cart.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable guest cart under %s", self._key)
            self._storage.remove_item(self._key)
            return Cart.of(GUEST_CART_ID, None)
        return Cart.of(GUEST_CART_ID, None, stored.items)

    async def persist(self, cart: Cart) -> None:
        self._storage.set_item(self._key, json.dumps(cart.to_dict()))


# ═══════════════════════════════════════════════════════════════════════════════
# Remote
# ═══════════════════════════════════════════════════════════════════════════════


class RemoteCartBackend:
    def __init__(self, owner_id: OwnerId, repository: CartRepository) -> None:
        self._owner_id = owner_id
        self._repository = repository

    async def load(self) -> Cart:
        return await self._repository.get_cart(self._owner_id)

    async def persist(self, cart: Cart) -> None:
        await self._repository.save_cart(cart)


__all__ = (
    "CartBackend",
    "CartRepository",
    "GuestCartBackend",
    "RemoteCartBackend",
)
