"""
CheckoutBackend — client for the two checkout endpoints.

    backend = HttpCheckoutBackend(settings.api_url, timeout=settings.http_timeout)
    ticket = await backend.create_intent(request)        # POST /create-payment-intent
    confirmation = await backend.confirm_payment(req)    # POST /confirm-payment

Error responses are turned back into the exception taxonomy using the same
status mapping the server applies.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from toolshed.errors import AccessDenied, CheckoutError, ConflictError, NetworkError, NotFound
from toolshed.payment._decline import decline
from toolshed.payment._types import Confirmation, ConfirmationRequest, IntentRequest, IntentTicket

logger = logging.getLogger(__name__)


class CheckoutBackend(Protocol):
    async def create_intent(self, request: IntentRequest) -> IntentTicket: ...

    async def confirm_payment(self, request: ConfirmationRequest) -> Confirmation: ...


def _error_for(response: httpx.Response, operation: str, key: str) -> CheckoutError:
    try:
        message = str(response.json().get("error") or response.reason_phrase)
    except ValueError:
        message = response.text or response.reason_phrase

    match response.status_code:
        case 402:
            return decline(detail=message)
        case 403:
            return AccessDenied("cart", key)
        case 404:
            return NotFound("cart", key)
        case 409:
            return ConflictError(key, message)
        case status if status >= 500:
            return NetworkError(operation, f"{status}: {message}")
        case _:
            return CheckoutError("BAD_REQUEST", message)


class HttpCheckoutBackend:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def _post(self, path: str, payload: dict[str, Any], operation: str, key: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(path, json=payload)
        except httpx.HTTPError as e:
            raise NetworkError(operation, str(e)) from e

        if response.is_error:
            error = _error_for(response, operation, key)
            logger.warning("%s failed with %d: %s", operation, response.status_code, error)
            raise error
        try:
            return response.json()
        except ValueError as e:
            raise NetworkError(operation, "unreadable response") from e

    async def create_intent(self, request: IntentRequest) -> IntentTicket:
        body = await self._post("/create-payment-intent", request.to_payload(), "create payment intent", request.cart_id)
        return IntentTicket.from_payload(body)

    async def confirm_payment(self, request: ConfirmationRequest) -> Confirmation:
        body = await self._post("/confirm-payment", request.to_payload(), "confirm payment", request.intent_id)
        return Confirmation(order_id=str(body["orderId"]))


__all__ = ("CheckoutBackend", "HttpCheckoutBackend")
