"""
FakeGateway — in-memory PaymentGateway for development and tests.

Understands Stripe's test payment-method tokens, so the same fixtures drive
both implementations:

    gateway = FakeGateway()
    intent = await gateway.create_intent(16236, "usd", {})
    await gateway.confirm_card_payment(intent.client_secret, CardPayment("pm_card_visa"))
    await gateway.confirm_card_payment(..., CardPayment("pm_card_chargeDeclinedInsufficientFunds"))
    # GatewayError: Your card has insufficient funds...
"""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import replace

from toolshed._types import IntentId
from toolshed.errors import NotFound, StateError
from toolshed.payment._decline import decline
from toolshed.payment._types import (
    CardPayment,
    IntentStatus,
    PaymentIntent,
    WalletPayment,
    intent_id_from_secret,
)

TEST_DECLINES: dict[str, str] = {
    "pm_card_visa_chargeDeclined": "card_declined",
    "pm_card_chargeDeclined": "card_declined",
    "pm_card_chargeDeclinedExpiredCard": "expired_card",
    "pm_card_chargeDeclinedInsufficientFunds": "insufficient_funds",
    "pm_card_chargeDeclinedIncorrectCvc": "incorrect_cvc",
    "pm_card_chargeDeclinedProcessingError": "processing_error",
}


class FakeGateway:
    def __init__(
        self,
        *,
        declines: Mapping[str, str] | None = None,
        wallet_capable: bool = True,
    ) -> None:
        self.intents: dict[IntentId, PaymentIntent] = {}
        self.calls: list[str] = []
        self._declines = {**TEST_DECLINES, **(declines or {})}
        self._wallet_capable = wallet_capable
        self._by_key: dict[str, IntentId] = {}
        self._failures: dict[str, list[Exception]] = {}

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise `error`."""
        self._failures.setdefault(operation, []).extend([error] * times)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _get(self, intent_id: IntentId) -> PaymentIntent:
        intent = self.intents.get(intent_id)
        if intent is None:
            raise NotFound("payment intent", intent_id)
        return intent

    def _store(self, intent: PaymentIntent) -> PaymentIntent:
        self.intents[intent.id] = intent
        return intent

    # ═══════════════════════════════════════════════════════════════════════════
    # PaymentGateway
    # ═══════════════════════════════════════════════════════════════════════════

    async def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str | None = None,
    ) -> PaymentIntent:
        self._enter("create_intent")
        if idempotency_key is not None and idempotency_key in self._by_key:
            return self._get(self._by_key[idempotency_key])
        intent_id = f"pi_fake_{uuid.uuid4().hex[:16]}"
        intent = PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid.uuid4().hex[:16]}",
            amount=amount,
            currency=currency,
            status=IntentStatus.REQUIRES_PAYMENT_METHOD,
            metadata=dict(metadata),
        )
        if idempotency_key is not None:
            self._by_key[idempotency_key] = intent_id
        return self._store(intent)

    async def retrieve_intent(self, intent_id: IntentId) -> PaymentIntent:
        self._enter("retrieve_intent")
        return self._get(intent_id)

    async def _confirm(self, client_secret: str, payment_method: str) -> PaymentIntent:
        intent = self._get(intent_id_from_secret(client_secret))
        if intent.client_secret != client_secret:
            raise decline(detail="client secret does not match intent")
        if intent.status.terminal:
            raise StateError(f"payment is {intent.status}", "confirm payment")
        code = self._declines.get(payment_method)
        if code is not None:
            self._store(replace(intent, status=IntentStatus.REQUIRES_PAYMENT_METHOD))
            raise decline(code, detail=f"test card {payment_method} declined with {code}")
        return self._store(replace(intent, status=IntentStatus.SUCCEEDED))

    async def confirm_card_payment(self, client_secret: str, method: CardPayment) -> PaymentIntent:
        self._enter("confirm_card_payment")
        return await self._confirm(client_secret, method.payment_method)

    async def confirm_wallet_payment(self, client_secret: str, method: WalletPayment) -> PaymentIntent:
        self._enter("confirm_wallet_payment")
        return await self._confirm(client_secret, method.payment_method)

    async def cancel_intent(self, intent_id: IntentId) -> PaymentIntent:
        self._enter("cancel_intent")
        intent = self._get(intent_id)
        if intent.status is IntentStatus.SUCCEEDED:
            raise StateError("payment succeeded", "cancel intent")
        return self._store(replace(intent, status=IntentStatus.FAILED))

    async def probe_wallet(self) -> bool:
        return self._wallet_capable


__all__ = ("TEST_DECLINES", "FakeGateway")
