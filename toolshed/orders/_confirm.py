"""
Server-side order confirmation (`POST /confirm-payment`).

    service = ConfirmationService(gateway, orders, carts, policy=Policy.waiting(settings.confirm_wait))
    match await service.confirm(request):
        case Ok(confirmed):
            return {"success": True, "orderId": confirmed.order_id}
        case Error(e):
            ...

The gateway intent is the source of truth for whether money moved. Totals
are re-derived from the cart, never taken from the request.
"""

from __future__ import annotations

import hashlib
import json
import logging
import uuid

from combinators import lift as L
from kungfu import Error, Ok, Result

from toolshed._types import GUEST_CART_ID, OrderId
from toolshed.address import Address
from toolshed.cart import CartItem, CartSnapshot
from toolshed.errors import (
    AccessDenied,
    CheckoutError,
    ConflictError,
    GatewayError,
    NotFound,
    ValidationError,
    as_checkout_error,
)
from toolshed.money import quantize
from toolshed.orders._carts import CartRecords
from toolshed.orders._graph import ConfirmationCall, run_confirmation
from toolshed.orders._ledger import ConfirmationStore, Confirmed, Policy
from toolshed.orders._types import Order, OrderLine, PaymentMethodSummary
from toolshed.payment import (
    ConfirmationRequest,
    DeclineReason,
    IntentStatus,
    PaymentGateway,
    PaymentIntent,
)

logger = logging.getLogger(__name__)


def new_order_id() -> OrderId:
    return f"ord_{uuid.uuid4().hex[:16]}"


def confirmation_fingerprint(request: ConfirmationRequest) -> str:
    """
    What a repeated confirmation must agree on. Signed-in carts are identified
    by id alone: after the first confirmation their row is already empty.
    """
    parts: list[object] = [request.cart_id, request.is_guest]
    if request.is_guest:
        parts.append(sorted(
            (str(item.get("listingId")), str(item.get("unitPrice")), int(item.get("quantity", 0)))
            for item in request.cart_items
        ))
    payload = json.dumps(parts, separators=(",", ":"))
    return hashlib.sha256(payload.encode()).hexdigest()


def guest_snapshot(cart_id: str, raw_items: tuple[dict[str, object], ...]) -> CartSnapshot:
    try:
        items = tuple(CartItem.from_dict(dict(raw)) for raw in raw_items)
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        raise ValidationError({"cartItems": "invalid"}, "Invalid cart items") from exc
    return CartSnapshot(cart_id=cart_id or GUEST_CART_ID, owner_id=None, items=items)


class ConfirmationService:
    def __init__(
        self,
        gateway: PaymentGateway,
        orders: ConfirmationStore,
        carts: CartRecords,
        *,
        policy: Policy = Policy(),
    ) -> None:
        self._gateway = gateway
        self._orders = orders
        self._carts = carts
        self._policy = policy

    async def confirm(self, request: ConfirmationRequest) -> Result[Confirmed, CheckoutError]:
        if not request.intent_id or not request.cart_id:
            return Error(ValidationError({"paymentIntentId": "required", "cartId": "required"},
                                         "Missing paymentIntentId or cartId"))
        if request.is_guest and not request.guest_email:
            return Error(ValidationError({"guestEmail": "required"}, "Missing guestEmail"))
        if not request.is_guest and not request.owner_id:
            return Error(ValidationError({"userId": "required"}, "Missing cartId or userId"))

        retrieved = await L.catching_async(
            lambda: self._gateway.retrieve_intent(request.intent_id),
            on_error=as_checkout_error("retrieve payment"),
        )
        match retrieved:
            case Error(e):
                return Error(e)
            case Ok(intent):
                pass

        if intent.status is not IntentStatus.SUCCEEDED:
            logger.warning("Confirmation for %s refused: intent is %s", intent.id, intent.status)
            return Error(GatewayError(DeclineReason.GENERIC.value, "Payment has not succeeded", detail=intent.status))

        call = ConfirmationCall(
            intent_id=intent.id,
            fingerprint=confirmation_fingerprint(request),
            draft=lambda: L.catching_async(
                lambda: self._draft(request, intent),
                on_error=as_checkout_error("prepare order"),
            ),
            finalize=lambda order_id: L.catching_async(
                lambda: self._finalize(request, order_id),
                on_error=as_checkout_error("complete cart"),
            ),
            store=self._orders,
            policy=self._policy,
        )

        result = await run_confirmation(call)
        match result:
            case Ok(Confirmed(order_id=order_id, replayed=False)):
                logger.info("Order %s created for payment %s", order_id, intent.id)
            case Ok(_):
                pass
            case Error(e):
                logger.error("Order confirmation for payment %s failed: %s", intent.id, e)
        return result

    # ═══════════════════════════════════════════════════════════════════════════
    # Steps
    # ═══════════════════════════════════════════════════════════════════════════

    async def _snapshot(self, request: ConfirmationRequest) -> CartSnapshot:
        if request.is_guest:
            snapshot = guest_snapshot(request.cart_id, request.cart_items)
            declared = request.declared_total
            if declared is not None and quantize(declared) != snapshot.subtotal:
                logger.warning(
                    "Guest cart total %s is stale, using re-derived %s", declared, snapshot.subtotal
                )
            return snapshot

        record = await self._carts.find(request.cart_id)
        if record is None:
            raise NotFound("cart", request.cart_id)
        if record.cart.owner_id != request.owner_id:
            raise AccessDenied("cart", request.cart_id)
        return record.cart.snapshot()

    async def _draft(self, request: ConfirmationRequest, intent: PaymentIntent) -> Order:
        declared_cart = intent.metadata.get("cartId")
        if declared_cart and declared_cart != request.cart_id:
            raise ConflictError(intent.id, "Payment does not belong to this cart")

        snapshot = await self._snapshot(request)
        if snapshot.is_empty:
            raise ValidationError({"cart": "empty"}, "Cart is empty")

        breakdown = snapshot.breakdown
        if breakdown.total_minor != intent.amount:
            logger.warning(
                "Payment %s charged %s but the cart totals %s", intent.id, intent.amount, breakdown.total_minor
            )
            raise ConflictError(intent.id, "Payment amount does not match the order total")

        try:
            shipping = Address.from_dict(request.shipping_address) if request.shipping_address else None
            billing = Address.from_dict(request.billing_address) if request.billing_address else shipping
        except (KeyError, TypeError, ValueError) as exc:
            raise ValidationError({"shippingAddress": "invalid"}, "Invalid address") from exc

        return Order(
            id=new_order_id(),
            owner_id=None if request.is_guest else request.owner_id,
            guest_email=request.guest_email,
            items=tuple(OrderLine.from_item(item) for item in snapshot.items),
            breakdown=breakdown,
            payment=PaymentMethodSummary(intent_id=intent.id, currency=intent.currency),
            shipping_address=shipping,
            billing_address=billing,
        )

    async def _finalize(self, request: ConfirmationRequest, order_id: OrderId) -> None:
        if request.is_guest:
            return
        await self._carts.complete(request.cart_id, order_id)


__all__ = (
    "new_order_id",
    "confirmation_fingerprint",
    "guest_snapshot",
    "ConfirmationService",
)
