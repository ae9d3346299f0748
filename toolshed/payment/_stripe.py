"""
StripeGateway — Stripe's REST API over httpx.

    gateway = StripeGateway(settings.stripe_secret_key, timeout=settings.http_timeout)
    intent = await gateway.create_intent(16236, "usd", {"cartId": "c1"})

Card refusals become `GatewayError` with one of the fixed messages; transport
failures and 5xx responses become `NetworkError`.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import httpx

from toolshed._types import IntentId
from toolshed.errors import NetworkError
from toolshed.payment._decline import decline
from toolshed.payment._types import (
    CardPayment,
    IntentStatus,
    PaymentIntent,
    WalletPayment,
    intent_id_from_secret,
)

logger = logging.getLogger(__name__)

STRIPE_API = "https://api.stripe.com/v1"

type WalletProbe = Callable[[], Awaitable[bool]]


def _form(metadata: Mapping[str, str]) -> dict[str, str]:
    return {f"metadata[{key}]": str(value) for key, value in metadata.items()}


def _intent(raw: Mapping[str, Any]) -> PaymentIntent:
    return PaymentIntent(
        id=str(raw["id"]),
        client_secret=str(raw.get("client_secret") or ""),
        amount=int(raw["amount"]),
        currency=str(raw["currency"]),
        status=IntentStatus.parse(str(raw["status"])),
        metadata=dict(raw.get("metadata") or {}),
    )


class StripeGateway:
    def __init__(
        self,
        secret_key: str,
        *,
        timeout: float = 10.0,
        base_url: str = STRIPE_API,
        transport: httpx.AsyncBaseTransport | None = None,
        wallet_probe: WalletProbe | None = None,
    ) -> None:
        self._secret_key = secret_key
        self._timeout = timeout
        self._base_url = base_url.rstrip("/")
        self._transport = transport
        self._wallet_probe = wallet_probe

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        data: Mapping[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> dict[str, Any]:
        headers = {"Authorization": f"Bearer {self._secret_key}"}
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, data=data, headers=headers)
        except httpx.HTTPError as e:
            raise NetworkError(operation, str(e)) from e

        if response.status_code >= 500:
            raise NetworkError(operation, f"stripe returned {response.status_code}")
        try:
            body = response.json()
        except ValueError as e:
            raise NetworkError(operation, "unreadable stripe response") from e
        if response.status_code >= 400:
            error = body.get("error") or {}
            raise decline(error.get("decline_code"), error.get("code"), detail=error.get("message"))
        return body

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
        data = {
            "amount": str(amount),
            "currency": currency,
            "automatic_payment_methods[enabled]": "true",
            **_form(metadata),
        }
        intent = _intent(await self._request("POST", "/payment_intents", "create intent", data, idempotency_key))
        logger.info("Created Stripe intent %s for %d %s", intent.id, amount, currency)
        return intent

    async def retrieve_intent(self, intent_id: IntentId) -> PaymentIntent:
        return _intent(await self._request("GET", f"/payment_intents/{intent_id}", "retrieve intent"))

    async def _confirm(self, client_secret: str, payment_method: str) -> PaymentIntent:
        intent_id = intent_id_from_secret(client_secret)
        raw = await self._request(
            "POST",
            f"/payment_intents/{intent_id}/confirm",
            "confirm payment",
            {"payment_method": payment_method},
        )
        intent = _intent(raw)
        if intent.status is not IntentStatus.SUCCEEDED:
            last = raw.get("last_payment_error") or {}
            raise decline(
                last.get("decline_code"),
                last.get("code"),
                detail=last.get("message") or f"intent {intent.id} is {raw.get('status')}",
            )
        return intent

    async def confirm_card_payment(self, client_secret: str, method: CardPayment) -> PaymentIntent:
        return await self._confirm(client_secret, method.payment_method)

    async def confirm_wallet_payment(self, client_secret: str, method: WalletPayment) -> PaymentIntent:
        return await self._confirm(client_secret, method.payment_method)

    async def cancel_intent(self, intent_id: IntentId) -> PaymentIntent:
        return _intent(await self._request("POST", f"/payment_intents/{intent_id}/cancel", "cancel intent"))

    async def probe_wallet(self) -> bool:
        if self._wallet_probe is None:
            return False
        return await self._wallet_probe()


__all__ = ("STRIPE_API", "WalletProbe", "StripeGateway")
