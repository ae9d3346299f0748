"""
Payment types — gateway intents, payment methods and the wire requests
exchanged with the checkout backend.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from enum import StrEnum
from typing import Any

from toolshed._types import CartId, IntentId, OrderId, OwnerId
from toolshed.money import to_decimal


# ═══════════════════════════════════════════════════════════════════════════════
# Gateway Intent
# ═══════════════════════════════════════════════════════════════════════════════


class IntentStatus(StrEnum):
    REQUIRES_PAYMENT_METHOD = "requires_payment_method"
    REQUIRES_ACTION = "requires_action"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @classmethod
    def parse(cls, raw: str) -> IntentStatus:
        """Fold the gateway's wider status vocabulary into ours."""
        match raw:
            case "succeeded":
                return cls.SUCCEEDED
            case "requires_payment_method":
                return cls.REQUIRES_PAYMENT_METHOD
            case "requires_action" | "requires_confirmation" | "processing" | "requires_capture":
                return cls.REQUIRES_ACTION
            case _:
                return cls.FAILED

    @property
    def terminal(self) -> bool:
        return self in (IntentStatus.SUCCEEDED, IntentStatus.FAILED)


@dataclass(frozen=True, slots=True)
class PaymentIntent:
    id: IntentId
    client_secret: str
    amount: int
    """Minor units (cents)."""
    currency: str
    status: IntentStatus
    metadata: Mapping[str, str] = field(default_factory=dict)
    synthetic: bool = False


def intent_id_from_secret(client_secret: str) -> IntentId:
    """`pi_123_secret_abc` → `pi_123`."""
    return client_secret.split("_secret_", 1)[0]


# ═══════════════════════════════════════════════════════════════════════════════
# Payment Methods
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CardPayment:
    payment_method: str
    """Tokenized card (`pm_...`) produced by the card entry field."""
    billing_name: str | None = None
    billing_email: str | None = None


@dataclass(frozen=True, slots=True)
class WalletPayment:
    payment_method: str
    wallet: str = "apple_pay"
    payer_name: str | None = None
    payer_email: str | None = None


type PaymentMethod = CardPayment | WalletPayment


# ═══════════════════════════════════════════════════════════════════════════════
# Attempt State
# ═══════════════════════════════════════════════════════════════════════════════


class AttemptState(StrEnum):
    UNINITIALIZED = "uninitialized"
    CREATING = "creating"
    READY = "ready"
    CONFIRMING = "confirming"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# ═══════════════════════════════════════════════════════════════════════════════
# Backend Requests
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class IntentRequest:
    """Body of `POST /create-payment-intent`."""

    cart_id: CartId
    owner_id: OwnerId | None
    is_guest: bool
    guest_email: str | None = None
    guest_items: tuple[dict[str, Any], ...] = ()
    guest_total: Decimal | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "cartId": self.cart_id,
            "isGuestCheckout": self.is_guest,
            "guestEmail": self.guest_email,
        }
        if self.is_guest:
            payload["guestCartItems"] = list(self.guest_items)
            payload["guestTotal"] = str(self.guest_total) if self.guest_total is not None else None
        else:
            payload["userId"] = self.owner_id
        return payload


@dataclass(frozen=True, slots=True)
class IntentTicket:
    """What the client keeps after the backend created an intent."""

    client_secret: str
    intent_id: IntentId
    amount: int
    synthetic: bool = False

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> IntentTicket:
        secret = str(raw["clientSecret"])
        return cls(
            client_secret=secret,
            intent_id=str(raw.get("paymentIntentId") or intent_id_from_secret(secret)),
            amount=int(raw.get("amount") or 0),
        )


@dataclass(frozen=True, slots=True)
class ConfirmationRequest:
    """
    Body of `POST /confirm-payment`.

    Guest checkouts carry the cart snapshot and both addresses because the
    backend has no cart row to look them up from.
    """

    intent_id: IntentId
    cart_id: CartId
    is_guest: bool
    owner_id: OwnerId | None = None
    guest_email: str | None = None
    cart_items: tuple[dict[str, Any], ...] = ()
    cart_total: Decimal | None = None
    shipping_address: dict[str, Any] | None = None
    billing_address: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "paymentIntentId": self.intent_id,
            "cartId": self.cart_id,
            "isGuestCheckout": self.is_guest,
            "guestEmail": self.guest_email,
            "userId": self.owner_id,
        }
        if self.is_guest:
            payload["cartItems"] = list(self.cart_items)
            payload["cartTotal"] = str(self.cart_total) if self.cart_total is not None else None
        if self.shipping_address is not None:
            payload["shippingAddress"] = self.shipping_address
        if self.billing_address is not None:
            payload["billingAddress"] = self.billing_address
        return payload

    @property
    def declared_total(self) -> Decimal | None:
        return to_decimal(self.cart_total) if self.cart_total is not None else None


@dataclass(frozen=True, slots=True)
class Confirmation:
    order_id: OrderId
    synthetic: bool = False


__all__ = (
    "IntentStatus",
    "PaymentIntent",
    "intent_id_from_secret",
    "CardPayment",
    "WalletPayment",
    "PaymentMethod",
    "AttemptState",
    "IntentRequest",
    "IntentTicket",
    "ConfirmationRequest",
    "Confirmation",
)
