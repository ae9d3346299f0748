"""
Order types.

An `Order` is an immutable snapshot of the cart and both addresses taken
when the charge was confirmed. Only `status` moves afterwards, along
`OrderStatus.can_become`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from toolshed._types import IntentId, ListingId, OrderId, OwnerId
from toolshed.address import Address
from toolshed.cart import CartItem
from toolshed.money import PriceBreakdown, quantize, to_decimal


# ═══════════════════════════════════════════════════════════════════════════════
# Status
# ═══════════════════════════════════════════════════════════════════════════════


class OrderStatus(StrEnum):
    PAID = "paid"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    CANCELLED = "cancelled"

    def can_become(self, target: OrderStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}


# ═══════════════════════════════════════════════════════════════════════════════
# Lines / Payment summary
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class OrderLine:
    listing_id: ListingId
    name: str
    unit_price: Decimal
    quantity: int
    image_url: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_item(cls, item: CartItem) -> OrderLine:
        return cls(
            listing_id=item.listing_id,
            name=item.name,
            unit_price=quantize(item.unit_price),
            quantity=item.quantity,
            image_url=item.image_url,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "listingId": self.listing_id,
            "name": self.name,
            "unitPrice": str(self.unit_price),
            "quantity": self.quantity,
            "imageUrl": self.image_url,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> OrderLine:
        return cls(
            listing_id=str(raw["listingId"]),
            name=str(raw["name"]),
            unit_price=to_decimal(raw["unitPrice"]),
            quantity=int(raw["quantity"]),
            image_url=raw.get("imageUrl"),
        )


@dataclass(frozen=True, slots=True)
class PaymentMethodSummary:
    """What the receipt says about how the order was paid. No card data."""

    intent_id: IntentId
    method: str = "card"
    currency: str = "usd"

    def to_dict(self) -> dict[str, Any]:
        return {"paymentIntentId": self.intent_id, "method": self.method, "currency": self.currency}


# ═══════════════════════════════════════════════════════════════════════════════
# Order
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Order:
    id: OrderId
    owner_id: OwnerId | None
    guest_email: str | None
    items: tuple[OrderLine, ...]
    breakdown: PriceBreakdown
    payment: PaymentMethodSummary
    shipping_address: Address | None = None
    billing_address: Address | None = None
    status: OrderStatus = OrderStatus.PAID
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    synthetic: bool = False

    @property
    def total_amount(self) -> Decimal:
        return self.breakdown.total

    @property
    def is_guest(self) -> bool:
        return self.owner_id is None

    def viewable_by(self, principal: str | None) -> bool:
        """Owner id for account orders, the checkout email for guest orders."""
        if principal is None:
            return False
        if self.owner_id is not None:
            return self.owner_id == principal
        return self.guest_email is not None and self.guest_email.lower() == principal.lower()

    def with_status(self, status: OrderStatus) -> Order:
        return replace(self, status=status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "guestEmail": self.guest_email,
            "items": [line.to_dict() for line in self.items],
            "subtotal": str(self.breakdown.subtotal),
            "tax": str(self.breakdown.tax),
            "totalAmount": str(self.breakdown.total),
            "shippingAddress": self.shipping_address.to_dict() if self.shipping_address else None,
            "billingAddress": self.billing_address.to_dict() if self.billing_address else None,
            "paymentMethodSummary": self.payment.to_dict(),
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "synthetic": self.synthetic,
        }


__all__ = (
    "OrderStatus",
    "OrderLine",
    "PaymentMethodSummary",
    "Order",
)
