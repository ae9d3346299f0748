"""
SyntheticCheckout — development-only stand-in when the backend is unreachable.

Stands in for the CheckoutBackend and for the confirming half of the
PaymentGateway so the UI flow can be exercised end to end without a backend. Everything it produces is
flagged `synthetic=True` and its order ids use the `order-` demo prefix, which
the order reader renders as a read-only demo record.

Only `build_fallback` creates one, and never for production settings.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Mapping

from toolshed._types import DEMO_ORDER_PREFIX, IntentId
from toolshed.errors import NotFound
from toolshed.payment._types import (
    CardPayment,
    Confirmation,
    ConfirmationRequest,
    IntentRequest,
    IntentStatus,
    IntentTicket,
    PaymentIntent,
    WalletPayment,
    intent_id_from_secret,
)

logger = logging.getLogger(__name__)


class SyntheticCheckout:
    def __init__(self) -> None:
        self.intents: dict[IntentId, PaymentIntent] = {}

    def _issue(self, amount: int, metadata: Mapping[str, str]) -> PaymentIntent:
        intent_id = f"pi_synthetic_{uuid.uuid4().hex[:16]}"
        intent = PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_synthetic",
            amount=amount,
            currency="usd",
            status=IntentStatus.REQUIRES_PAYMENT_METHOD,
            metadata=dict(metadata),
            synthetic=True,
        )
        self.intents[intent_id] = intent
        return intent

    def _succeed(self, client_secret: str) -> PaymentIntent:
        intent_id = intent_id_from_secret(client_secret)
        intent = self.intents.get(intent_id) or self._issue(0, {})
        succeeded = PaymentIntent(
            id=intent.id,
            client_secret=intent.client_secret,
            amount=intent.amount,
            currency=intent.currency,
            status=IntentStatus.SUCCEEDED,
            metadata=intent.metadata,
            synthetic=True,
        )
        self.intents[intent.id] = succeeded
        return succeeded

    # ═══════════════════════════════════════════════════════════════════════════
    # CheckoutBackend
    # ═══════════════════════════════════════════════════════════════════════════

    def ticket(self, request: IntentRequest, amount: int) -> IntentTicket:
        intent = self._issue(amount, {"cartId": request.cart_id})
        logger.warning("Using synthetic payment intent %s for cart %s", intent.id, request.cart_id)
        return IntentTicket(client_secret=intent.client_secret, intent_id=intent.id, amount=amount, synthetic=True)

    async def create_intent(self, request: IntentRequest) -> IntentTicket:
        return self.ticket(request, 0)

    async def confirm_payment(self, request: ConfirmationRequest) -> Confirmation:
        order_id = f"{DEMO_ORDER_PREFIX}{uuid.uuid4().hex[:12]}"
        logger.warning("Synthetic confirmation of %s produced demo order %s", request.intent_id, order_id)
        return Confirmation(order_id=order_id, synthetic=True)

    # ═══════════════════════════════════════════════════════════════════════════
    # PaymentGateway
    # ═══════════════════════════════════════════════════════════════════════════

    async def confirm_card_payment(self, client_secret: str, method: CardPayment) -> PaymentIntent:
        return self._succeed(client_secret)

    async def confirm_wallet_payment(self, client_secret: str, method: WalletPayment) -> PaymentIntent:
        return self._succeed(client_secret)

    async def cancel_intent(self, intent_id: IntentId) -> PaymentIntent:
        intent = self.intents.pop(intent_id, None)
        if intent is None:
            raise NotFound("payment intent", intent_id)
        logger.info("Dropped synthetic intent %s", intent_id)
        return intent

    async def probe_wallet(self) -> bool:
        return True


__all__ = ("SyntheticCheckout",)
