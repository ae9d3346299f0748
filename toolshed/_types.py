"""
Core types for toolshed.

Identifier aliases and well-known ids shared by every package.
"""

from __future__ import annotations

# ═══════════════════════════════════════════════════════════════════════════════
# Identifiers
# ═══════════════════════════════════════════════════════════════════════════════

type CartId = str
type ListingId = str
type OwnerId = str
type OrderId = str
type IntentId = str

GUEST_CART_ID: CartId = "guest-cart"
"""Cart id sent to the backend for carts that only exist client-side."""

DEMO_ORDER_PREFIX = "order-"
"""Order ids with this prefix are demo records, never persisted."""

# ═══════════════════════════════════════════════════════════════════════════════
# Exports
# ═══════════════════════════════════════════════════════════════════════════════

__all__ = (
    "CartId",
    "ListingId",
    "OwnerId",
    "OrderId",
    "IntentId",
    "GUEST_CART_ID",
    "DEMO_ORDER_PREFIX",
)
