"""
PaymentGateway — the narrow contract over the payment provider.

Implementations are chosen once at startup (`build_gateway`). Checkout logic
only ever talks to this protocol.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from toolshed._types import IntentId
from toolshed.payment._types import CardPayment, PaymentIntent, WalletPayment


class PaymentGateway(Protocol):
    async def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Mapping[str, str],
        idempotency_key: str | None = None,
    ) -> PaymentIntent:
        """Create an intent for `amount` minor units."""
        ...

    async def retrieve_intent(self, intent_id: IntentId) -> PaymentIntent: ...

    async def confirm_card_payment(self, client_secret: str, method: CardPayment) -> PaymentIntent:
        """Raises `GatewayError` with a mapped message when the card is refused."""
        ...

    async def confirm_wallet_payment(self, client_secret: str, method: WalletPayment) -> PaymentIntent: ...

    async def cancel_intent(self, intent_id: IntentId) -> PaymentIntent: ...

    async def probe_wallet(self) -> bool:
        """Whether the current device can complete a wallet payment request."""
        ...


__all__ = ("PaymentGateway",)
