"""
Cart — shopping cart state with totals recomputed on every mutation.

    from toolshed import cart as K

    store = K.CartStore(K.GuestCartBackend(K.MemoryLocalStorage()))
    await store.load()
    await store.add_item(K.Listing("tool-1", "Cordless Drill", Decimal("149.99")))
    store.cart.total_amount   # Decimal("149.99")
"""

from toolshed.cart._types import (
    Listing,
    CartItem,
    CartSnapshot,
    Cart,
)
from toolshed.cart._storage import (
    GUEST_CART_KEY,
    RECENTLY_VIEWED_KEY,
    LocalStorage,
    MemoryLocalStorage,
)
from toolshed.cart._backend import (
    CartBackend,
    CartRepository,
    GuestCartBackend,
    RemoteCartBackend,
)
from toolshed.cart._store import CartStore
from toolshed.cart._recent import MAX_RECENTLY_VIEWED, RecentlyViewed

__all__ = (
    "Listing",
    "CartItem",
    "CartSnapshot",
    "Cart",
    "GUEST_CART_KEY",
    "RECENTLY_VIEWED_KEY",
    "LocalStorage",
    "MemoryLocalStorage",
    "CartBackend",
    "CartRepository",
    "GuestCartBackend",
    "RemoteCartBackend",
    "CartStore",
    "MAX_RECENTLY_VIEWED",
    "RecentlyViewed",
)
