"""
Payment — gateway intents and the per-attempt orchestrator.

    from toolshed import payment as P

    gateway = P.build_gateway(settings)
    attempt = P.PaymentAttempt(P.build_backend(settings), gateway, cart_store,
                               fallback=P.build_fallback(settings))
    await attempt.create(cart_store.snapshot())
    await attempt.confirm(P.CardPayment("pm_card_visa"), cart_store.snapshot())
"""

from toolshed.payment._types import (
    IntentStatus,
    PaymentIntent,
    intent_id_from_secret,
    CardPayment,
    WalletPayment,
    PaymentMethod,
    AttemptState,
    IntentRequest,
    IntentTicket,
    ConfirmationRequest,
    Confirmation,
)
from toolshed.payment._decline import DeclineReason, DECLINE_MESSAGES, reason_for, decline
from toolshed.payment._gateway import PaymentGateway
from toolshed.payment._stripe import STRIPE_API, WalletProbe, StripeGateway
from toolshed.payment._fake import TEST_DECLINES, FakeGateway
from toolshed.payment._backend import CheckoutBackend, HttpCheckoutBackend
from toolshed.payment._synthetic import SyntheticCheckout
from toolshed.payment._attempt import PaymentAttempt
from toolshed.payment._factory import build_gateway, build_fallback, build_backend

__all__ = (
    # Types
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
    # Declines
    "DeclineReason",
    "DECLINE_MESSAGES",
    "reason_for",
    "decline",
    # Gateways
    "PaymentGateway",
    "STRIPE_API",
    "WalletProbe",
    "StripeGateway",
    "TEST_DECLINES",
    "FakeGateway",
    # Backend
    "CheckoutBackend",
    "HttpCheckoutBackend",
    "SyntheticCheckout",
    # Orchestration
    "PaymentAttempt",
    # Factories
    "build_gateway",
    "build_fallback",
    "build_backend",
)
