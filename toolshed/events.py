"""
Events — observer bus owned by the application shell.

    bus = EventBus()
    unsubscribe = bus.subscribe(SignInRequested, open_sign_in_dialog)
    bus.publish(SignInRequested(redirect="/checkout"))

Checkout components receive the bus through their constructor instead of
importing a module-level listener list.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

type Handler[T] = Callable[[T], None]


# ═══════════════════════════════════════════════════════════════════════════════
# Event Types
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class SignInRequested:
    redirect: str


@dataclass(frozen=True, slots=True)
class RedirectRequested:
    path: str
    reason: str


@dataclass(frozen=True, slots=True)
class StepChanged:
    previous: str
    current: str


@dataclass(frozen=True, slots=True)
class CartChanged:
    item_count: int
    total_amount: str


@dataclass(frozen=True, slots=True)
class PaymentSucceeded:
    intent_id: str
    order_id: str


@dataclass(frozen=True, slots=True)
class PaymentFailed:
    intent_id: str | None
    message: str


@dataclass(frozen=True, slots=True)
class OrderConfirmationFailed:
    intent_id: str
    message: str


# ═══════════════════════════════════════════════════════════════════════════════
# Bus
# ═══════════════════════════════════════════════════════════════════════════════


class EventBus:
    """Synchronous publish/subscribe keyed by event type."""

    def __init__(self) -> None:
        self._handlers: dict[type[Any], list[Handler[Any]]] = {}

    def subscribe[T](self, event_type: type[T], handler: Handler[T]) -> Callable[[], None]:
        handlers = self._handlers.setdefault(event_type, [])
        handlers.append(handler)

        def unsubscribe() -> None:
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def publish(self, event: object) -> int:
        """Deliver to every handler of the event's type. Returns the delivery count."""
        delivered = 0
        for handler in list(self._handlers.get(type(event), ())):
            try:
                handler(event)
                delivered += 1
            except Exception:
                # one broken subscriber must not stop checkout
                logger.exception("Event handler %r failed for %s", handler, type(event).__name__)
        return delivered


__all__ = (
    "EventBus",
    "SignInRequested",
    "RedirectRequested",
    "StepChanged",
    "CartChanged",
    "PaymentSucceeded",
    "PaymentFailed",
    "OrderConfirmationFailed",
)
