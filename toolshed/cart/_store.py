"""
CartStore — the only writer of cart state.

Every mutation builds the next `Cart` (totals included) before touching the
backend, and only replaces the in-memory cart after the backend accepted it.
A failed save therefore leaves the previous, still consistent, cart in place.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from combinators import flow, lift as L
from kungfu import Error, Ok

from toolshed._types import ListingId
from toolshed.cart._backend import CartBackend
from toolshed.cart._types import Cart, CartItem, CartSnapshot, Listing
from toolshed.errors import NetworkError, NotFound, as_checkout_error
from toolshed.events import CartChanged, EventBus

logger = logging.getLogger(__name__)

SAVE_ATTEMPTS = 2


class CartStore:
    def __init__(self, backend: CartBackend, bus: EventBus | None = None) -> None:
        self._backend = backend
        self._bus = bus
        self._cart: Cart | None = None
        self._lock = asyncio.Lock()
        self.revision = 0

    @property
    def cart(self) -> Cart:
        if self._cart is None:
            raise RuntimeError("CartStore.load() has not been awaited")
        return self._cart

    @property
    def loaded(self) -> bool:
        return self._cart is not None

    async def load(self) -> Cart:
        async with self._lock:
            self._cart = await self._backend.load()
            return self._cart

    def snapshot(self) -> CartSnapshot:
        return self.cart.snapshot()

    def is_item_in_cart(self, listing_id: ListingId) -> bool:
        return self._cart is not None and self._cart.find_listing(listing_id) is not None

    # ═══════════════════════════════════════════════════════════════════════════
    # Mutations
    # ═══════════════════════════════════════════════════════════════════════════

    async def add_item(self, listing: Listing, quantity: int = 1) -> Cart:
        """Add a listing, or raise the quantity of the line already holding it."""
        quantity = max(1, quantity)
        async with self._lock:
            cart = self.cart
            existing = cart.find_listing(listing.id)
            if existing is not None:
                items = tuple(
                    item.with_quantity(item.quantity + quantity) if item.id == existing.id else item
                    for item in cart.items
                )
            else:
                item = CartItem(
                    id=f"item_{uuid.uuid4().hex[:12]}",
                    listing_id=listing.id,
                    name=listing.name,
                    unit_price=listing.price,
                    quantity=quantity,
                    image_url=listing.image_url,
                )
                items = (*cart.items, item)
            return await self._commit(cart.with_items(items))

    async def update_quantity(self, item_id: str, quantity: int) -> Cart:
        """Set a line's quantity. Anything below 1 is clamped to 1."""
        async with self._lock:
            cart = self.cart
            if cart.find(item_id) is None:
                raise NotFound("cart item", item_id)
            quantity = max(1, quantity)
            items = tuple(
                item.with_quantity(quantity) if item.id == item_id else item for item in cart.items
            )
            return await self._commit(cart.with_items(items))

    async def remove_item(self, item_id: str) -> Cart:
        async with self._lock:
            cart = self.cart
            if cart.find(item_id) is None:
                raise NotFound("cart item", item_id)
            return await self._commit(cart.with_items(tuple(i for i in cart.items if i.id != item_id)))

    async def empty_cart(self) -> bool:
        """
        Clear every line. Best effort: runs after a successful payment, so a
        backend failure is logged and the local cart is emptied anyway.

        Returns True when the backend accepted the empty cart.
        """
        async with self._lock:
            emptied = self.cart.emptied()
            result = await self._save(emptied)
            self._replace(emptied)
            match result:
                case Ok(_):
                    logger.info("Cart %s emptied", emptied.id)
                    return True
                case Error(e):
                    logger.error("Could not clear cart %s on the backend: %s", emptied.id, e)
                    return False

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    async def _save(self, cart: Cart):
        return await (
            flow(L.catching_async(lambda: self._backend.persist(cart), on_error=as_checkout_error("save cart")))
            .retry(times=SAVE_ATTEMPTS, retry_on=lambda e: isinstance(e, NetworkError))
            .compile()
        )

    async def _commit(self, cart: Cart) -> Cart:
        match await self._save(cart):
            case Ok(_):
                self._replace(cart)
                return cart
            case Error(e):
                raise e

    def _replace(self, cart: Cart) -> None:
        self._cart = cart
        self.revision += 1
        if self._bus is not None:
            self._bus.publish(CartChanged(item_count=cart.item_count, total_amount=str(cart.total_amount)))


__all__ = ("CartStore",)
