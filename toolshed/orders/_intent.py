"""
Server-side intent creation (`POST /create-payment-intent`).

The amount is always re-derived: from the cart row for signed-in shoppers,
from the submitted guest items for guests. A client-sent total is only
compared and logged.

For signed-in carts the intent id is written onto the cart row as a saga
step; when that write fails the gateway intent is cancelled again.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from kungfu import Error, Ok, Result

from toolshed import saga as S
from toolshed._types import IntentId
from toolshed.cart import CartSnapshot
from toolshed.errors import AccessDenied, CheckoutError, NotFound, ValidationError, as_checkout_error
from toolshed.money import CURRENCY, quantize
from toolshed.orders._carts import CartRecords
from toolshed.orders._confirm import guest_snapshot
from toolshed.payment import IntentRequest, PaymentGateway, PaymentIntent

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IntentCreated:
    client_secret: str
    intent_id: IntentId
    amount: int

    def to_payload(self) -> dict[str, Any]:
        return {"clientSecret": self.client_secret, "paymentIntentId": self.intent_id, "amount": self.amount}


def intent_metadata(request: IntentRequest) -> dict[str, str]:
    metadata = {"cartId": request.cart_id, "isGuestCheckout": str(request.is_guest).lower()}
    if request.is_guest:
        if request.guest_email:
            metadata["guestEmail"] = request.guest_email
    elif request.owner_id:
        metadata["userId"] = request.owner_id
    return metadata


class IntentService:
    def __init__(self, gateway: PaymentGateway, carts: CartRecords, *, currency: str = CURRENCY) -> None:
        self._gateway = gateway
        self._carts = carts
        self._currency = currency

    async def create(self, request: IntentRequest) -> Result[IntentCreated, CheckoutError]:
        try:
            snapshot = await self._snapshot(request)
        except CheckoutError as e:
            return Error(e)

        amount = snapshot.breakdown.total_minor
        metadata = intent_metadata(request)

        create = S.from_async(
            lambda: self._gateway.create_intent(amount, self._currency, metadata),
            on_error=as_checkout_error("create payment intent"),
            compensate=self._cancel,
        )
        if request.is_guest:
            result = await S.run(create)
        else:
            result = await S.run_chain(create.then(lambda intent: S.from_async(
                lambda: self._attach(snapshot, intent),
                on_error=as_checkout_error("record payment intent"),
            )))

        match result:
            case Ok(done):
                intent = done.value
                logger.info("Created payment intent %s for cart %s (%s minor units)", intent.id, request.cart_id, amount)
                return Ok(IntentCreated(client_secret=intent.client_secret, intent_id=intent.id, amount=intent.amount))
            case Error(failed):
                if not failed.rollback_complete:
                    logger.error("Intent for cart %s could not be rolled back", request.cart_id)
                return Error(failed.error)

    async def _snapshot(self, request: IntentRequest) -> CartSnapshot:
        if not request.cart_id or (not request.is_guest and not request.owner_id):
            raise ValidationError({"cartId": "required", "userId": "required"}, "Missing cartId or userId")

        if request.is_guest:
            snapshot = guest_snapshot(request.cart_id, request.guest_items)
            if request.guest_total is not None and quantize(request.guest_total) != snapshot.subtotal:
                logger.warning(
                    "Guest cart total %s is stale, using re-derived %s", request.guest_total, snapshot.subtotal
                )
        else:
            record = await self._carts.find(request.cart_id)
            if record is None:
                raise NotFound("cart", request.cart_id)
            if record.cart.owner_id != request.owner_id:
                logger.warning("User %s asked for an intent on cart %s", request.owner_id, request.cart_id)
                raise AccessDenied("cart", request.cart_id)
            snapshot = record.cart.snapshot()

        if snapshot.is_empty:
            raise ValidationError({"cart": "empty"}, "Cart is empty")
        return snapshot

    async def _attach(self, snapshot: CartSnapshot, intent: PaymentIntent) -> PaymentIntent:
        await self._carts.attach_intent(snapshot.cart_id, intent.id)
        return intent

    async def _cancel(self, intent: PaymentIntent) -> None:
        logger.warning("Cancelling payment intent %s", intent.id)
        await self._gateway.cancel_intent(intent.id)


__all__ = ("IntentCreated", "intent_metadata", "IntentService")
