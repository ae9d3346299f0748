"""
Cart types.

`Cart` is immutable: every mutation builds a new value through `Cart.of`,
which is the only place totals are computed.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any

from toolshed._types import CartId, ListingId, OwnerId
from toolshed.money import PriceBreakdown, quantize, to_decimal


# ═══════════════════════════════════════════════════════════════════════════════
# Listing / Item
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Listing:
    """The bits of a marketplace listing the cart needs."""

    id: ListingId
    name: str
    price: Decimal
    image_url: str | None = None


@dataclass(frozen=True, slots=True)
class CartItem:
    id: str
    listing_id: ListingId
    name: str
    unit_price: Decimal
    quantity: int
    image_url: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> CartItem:
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "listingId": self.listing_id,
            "name": self.name,
            "unitPrice": str(self.unit_price),
            "quantity": self.quantity,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CartItem:
        return cls(
            id=str(raw["id"]),
            listing_id=str(raw["listingId"]),
            name=str(raw["name"]),
            unit_price=to_decimal(raw["unitPrice"]),
            quantity=int(raw["quantity"]),
            image_url=raw.get("imageUrl"),
        )


# ═══════════════════════════════════════════════════════════════════════════════
# Snapshot — what payment sees
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CartSnapshot:
    """
    Frozen view of a cart handed from checkout to payment.

    Note: the fingerprint changes whenever an item, price or quantity does,
    so a payment intent can tell that the cart moved under it.
    """

    cart_id: CartId
    owner_id: OwnerId | None
    items: tuple[CartItem, ...]

    @property
    def is_guest(self) -> bool:
        return self.owner_id is None

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def subtotal(self) -> Decimal:
        return quantize(sum((item.line_total for item in self.items), Decimal("0")))

    @property
    def breakdown(self) -> PriceBreakdown:
        return PriceBreakdown.of(self.subtotal)

    @property
    def fingerprint(self) -> str:
        canonical = sorted(
            (item.listing_id, str(quantize(item.unit_price)), item.quantity)
            for item in self.items
        )
        payload = json.dumps([self.cart_id, canonical], separators=(",", ":"))
        return hashlib.sha256(payload.encode()).hexdigest()

    def items_payload(self) -> list[dict[str, Any]]:
        return [item.to_dict() for item in self.items]


# ═══════════════════════════════════════════════════════════════════════════════
# Cart
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Cart:
    id: CartId
    owner_id: OwnerId | None
    items: tuple[CartItem, ...]
    item_count: int
    total_amount: Decimal

    @classmethod
    def of(cls, id: CartId, owner_id: OwnerId | None, items: tuple[CartItem, ...] = ()) -> Cart:
        return cls(
            id=id,
            owner_id=owner_id,
            items=items,
            item_count=sum(item.quantity for item in items),
            total_amount=sum((item.line_total for item in items), Decimal("0")),
        )

    @property
    def is_guest(self) -> bool:
        return self.owner_id is None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, item_id: str) -> CartItem | None:
        return next((item for item in self.items if item.id == item_id), None)

    def find_listing(self, listing_id: ListingId) -> CartItem | None:
        return next((item for item in self.items if item.listing_id == listing_id), None)

    def with_items(self, items: tuple[CartItem, ...]) -> Cart:
        return Cart.of(self.id, self.owner_id, items)

    def emptied(self) -> Cart:
        return Cart.of(self.id, self.owner_id, ())

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(cart_id=self.id, owner_id=self.owner_id, items=self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "items": [item.to_dict() for item in self.items],
            "itemCount": self.item_count,
            "totalAmount": str(self.total_amount),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Cart:
        """Stored `itemCount`/`totalAmount` are ignored and recomputed."""
        items = tuple(CartItem.from_dict(item) for item in raw.get("items", ()))
        return cls.of(str(raw["id"]), raw.get("ownerId"), items)


__all__ = (
    "Listing",
    "CartItem",
    "CartSnapshot",
    "Cart",
)
