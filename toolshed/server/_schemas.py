"""
Wire schemas. Field names travel camelCase; each request knows how to become
its domain request, each response how to be built from a domain value.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from toolshed.orders import Confirmed, IntentCreated, OrderStatus
from toolshed.payment import ConfirmationRequest, IntentRequest


class _Wire(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Requests
# ═══════════════════════════════════════════════════════════════════════════════


class CreateIntentBody(_Wire):
    cart_id: str | None = None
    user_id: str | None = None
    is_guest_checkout: bool = False
    guest_email: str | None = None
    guest_cart_items: list[dict[str, Any]] = Field(default_factory=list)
    guest_total: Decimal | None = None

    def to_domain(self) -> IntentRequest:
        return IntentRequest(
            cart_id=self.cart_id or "",
            owner_id=self.user_id,
            is_guest=self.is_guest_checkout,
            guest_email=self.guest_email,
            guest_items=tuple(self.guest_cart_items),
            guest_total=self.guest_total,
        )


class ConfirmPaymentBody(_Wire):
    payment_intent_id: str | None = None
    cart_id: str | None = None
    is_guest_checkout: bool = False
    guest_email: str | None = None
    user_id: str | None = None
    cart_items: list[dict[str, Any]] = Field(default_factory=list)
    cart_total: Decimal | None = None
    shipping_address: dict[str, Any] | None = None
    billing_address: dict[str, Any] | None = None

    def to_domain(self) -> ConfirmationRequest:
        return ConfirmationRequest(
            intent_id=self.payment_intent_id or "",
            cart_id=self.cart_id or "",
            is_guest=self.is_guest_checkout,
            owner_id=self.user_id,
            guest_email=self.guest_email,
            cart_items=tuple(self.cart_items),
            cart_total=self.cart_total,
            shipping_address=self.shipping_address,
            billing_address=self.billing_address,
        )


class StatusChangeBody(_Wire):
    status: OrderStatus


# ═══════════════════════════════════════════════════════════════════════════════
# Responses
# ═══════════════════════════════════════════════════════════════════════════════


class IntentResponse(_Wire):
    client_secret: str
    payment_intent_id: str
    amount: int

    @classmethod
    def from_domain(cls, created: IntentCreated) -> IntentResponse:
        return cls(client_secret=created.client_secret, payment_intent_id=created.intent_id, amount=created.amount)


class ConfirmResponse(_Wire):
    success: bool = True
    order_id: str

    @classmethod
    def from_domain(cls, confirmed: Confirmed) -> ConfirmResponse:
        return cls(order_id=confirmed.order_id)


class StatusResponse(_Wire):
    status: str = "ok"
    timestamp: datetime
    version: str


__all__ = (
    "CreateIntentBody",
    "ConfirmPaymentBody",
    "StatusChangeBody",
    "IntentResponse",
    "ConfirmResponse",
    "StatusResponse",
)
