"""
PaymentAttempt — one checkout attempt against the gateway and the backend.

    Uninitialized → Creating → Ready → Confirming → Succeeded
                                                  ↘ Failed

    attempt = PaymentAttempt(backend, gateway, cart_store, bus=bus)

    match await attempt.create(cart_store.snapshot(), guest_email="a@b.co"):
        case Ok(ticket): ...            # ticket.client_secret goes to the card form
        case Error(e): ...

    match await attempt.confirm(CardPayment("pm_..."), cart_store.snapshot(), shipping, billing):
        case Ok(confirmation): navigate(confirmation.order_id)
        case Error(OrderPendingError() as e): ...   # money moved, no order yet
        case Error(e): show(e.message)

Rules the attempt enforces:
- The charged amount is re-derived from the snapshot handed to `create`,
  never from a total held elsewhere.
- The intent is tied to that snapshot. If the cart changes before
  `confirm`, the intent is released and a new one must be created.
- Only one confirmation may be in flight.
- The cart is emptied only after the backend confirmed the order. A failed
  confirmation leaves it untouched.
- After `cancel()` late results are dropped without touching state.
- Any failure, raised or returned, is a transition to Failed.

Network failures while creating are retried. When a synthetic fallback is
configured (never in production) and the backend stays unreachable, the
attempt continues against the fallback and is flagged `synthetic`.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from combinators import fallback_with, flow, lift as L
from kungfu import Error, LazyCoroResult, Ok, Result

from toolshed.address import Address
from toolshed.cart import CartSnapshot, CartStore
from toolshed.errors import (
    CheckoutError,
    NetworkError,
    NotFound,
    OrderPendingError,
    StateError,
    as_checkout_error,
)
from toolshed.events import EventBus, OrderConfirmationFailed, PaymentFailed, PaymentSucceeded
from toolshed.money import PriceBreakdown, from_minor_units
from toolshed.payment._backend import CheckoutBackend
from toolshed.payment._decline import decline
from toolshed.payment._gateway import PaymentGateway
from toolshed.payment._synthetic import SyntheticCheckout
from toolshed.payment._types import (
    AttemptState,
    CardPayment,
    Confirmation,
    ConfirmationRequest,
    IntentRequest,
    IntentStatus,
    IntentTicket,
    PaymentIntent,
    PaymentMethod,
    WalletPayment,
)

logger = logging.getLogger(__name__)

DEFAULT_ATTEMPTS = 2
DEFAULT_RETRY_DELAY = 0.25

_CAN_CREATE = (AttemptState.UNINITIALIZED, AttemptState.READY, AttemptState.FAILED)


def _is_network(error: CheckoutError) -> bool:
    return isinstance(error, NetworkError)


class PaymentAttempt:
    def __init__(
        self,
        backend: CheckoutBackend,
        gateway: PaymentGateway,
        cart: CartStore,
        *,
        bus: EventBus | None = None,
        fallback: SyntheticCheckout | None = None,
        attempts: int = DEFAULT_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self._backend = backend
        self._gateway = gateway
        self._cart = cart
        self._bus = bus
        self._fallback = fallback
        self._attempts = attempts
        self._retry_delay = retry_delay

        self._route: tuple[CheckoutBackend, PaymentGateway] = (backend, gateway)
        self._active = True
        self._guest_email: str | None = None
        self._pending: ConfirmationRequest | None = None

        self.state = AttemptState.UNINITIALIZED
        self.ticket: IntentTicket | None = None
        self.snapshot: CartSnapshot | None = None
        self.breakdown: PriceBreakdown | None = None
        self.confirmation: Confirmation | None = None
        self.error: CheckoutError | None = None

    # ═══════════════════════════════════════════════════════════════════════════
    # Read side
    # ═══════════════════════════════════════════════════════════════════════════

    @property
    def client_secret(self) -> str | None:
        if self.state is AttemptState.READY and self.ticket is not None:
            return self.ticket.client_secret
        return None

    @property
    def can_submit(self) -> bool:
        """Payment submit control is enabled only while Ready."""
        return self._active and self.state is AttemptState.READY

    @property
    def synthetic(self) -> bool:
        return self.ticket is not None and self.ticket.synthetic

    @property
    def amount(self) -> Decimal | None:
        return from_minor_units(self.ticket.amount) if self.ticket is not None else None

    @property
    def active(self) -> bool:
        return self._active

    def needs_new_intent(self, snapshot: CartSnapshot, guest_email: str | None = None) -> bool:
        """True unless a Ready intent already covers exactly this cart and guest contact."""
        return (
            self.state is not AttemptState.READY
            or self.snapshot is None
            or self.snapshot.fingerprint != snapshot.fingerprint
            or (snapshot.is_guest and guest_email != self._guest_email)
        )

    async def wallet_available(self) -> bool:
        """Ask the gateway whether this device can complete a wallet payment."""
        _, gateway = self._route
        probe = L.catching_async(gateway.probe_wallet, on_error=as_checkout_error("probe wallet"))
        match await probe:
            case Ok(capable):
                return bool(capable)
            case Error(e):
                logger.warning("Wallet capability probe failed: %s", e)
                return False

    def cancel(self) -> None:
        """The owning view went away. Later results are ignored."""
        if self._active:
            logger.info("Payment attempt cancelled in state %s", self.state)
        self._active = False

    # ═══════════════════════════════════════════════════════════════════════════
    # Creating
    # ═══════════════════════════════════════════════════════════════════════════

    async def create(
        self,
        snapshot: CartSnapshot,
        guest_email: str | None = None,
    ) -> Result[IntentTicket, CheckoutError]:
        if not self._active:
            return Error(StateError("checkout was closed", "create payment"))
        if self.state not in _CAN_CREATE:
            return Error(StateError(f"payment is {self.state}", "create payment"))
        if isinstance(self.error, OrderPendingError):
            return Error(StateError("the order for a completed payment is pending", "create payment"))
        if snapshot.is_empty:
            return Error(StateError("the cart is empty", "create payment"))

        if not self.needs_new_intent(snapshot, guest_email) and self.ticket is not None:
            return Ok(self.ticket)
        if self.state is AttemptState.READY:
            await self._release("checkout changed")
        else:
            self.ticket = None
            self._route = (self._backend, self._gateway)

        breakdown = snapshot.breakdown
        request = IntentRequest(
            cart_id=snapshot.cart_id,
            owner_id=snapshot.owner_id,
            is_guest=snapshot.is_guest,
            guest_email=guest_email,
            guest_items=tuple(snapshot.items_payload()) if snapshot.is_guest else (),
            guest_total=breakdown.subtotal if snapshot.is_guest else None,
        )

        self._transition(AttemptState.CREATING)
        result = await self._create(request, breakdown)

        if not self._active:
            logger.warning("Ignoring intent result for cart %s after cancellation", snapshot.cart_id)
            return Error(StateError("checkout was closed", "create payment"))

        match result:
            case Ok(ticket):
                if ticket.synthetic and self._fallback is not None:
                    self._route = (self._fallback, self._fallback)
                elif ticket.amount != breakdown.total_minor:
                    logger.warning(
                        "Backend priced cart %s at %d, client expected %d",
                        snapshot.cart_id,
                        ticket.amount,
                        breakdown.total_minor,
                    )
                self.ticket = ticket
                self.snapshot = snapshot
                self.breakdown = breakdown
                self.error = None
                self._guest_email = guest_email
                self._transition(AttemptState.READY)
                logger.info("Payment intent %s ready for cart %s", ticket.intent_id, snapshot.cart_id)
                return Ok(ticket)
            case Error(e):
                self._fail(e)
                return Error(e)

    def _create(self, request: IntentRequest, breakdown: PriceBreakdown) -> LazyCoroResult[IntentTicket, CheckoutError]:
        backend, _ = self._route
        primary = (
            flow(
                L.catching_async(
                    lambda: backend.create_intent(request),
                    on_error=as_checkout_error("create payment intent"),
                )
            )
            .retry(times=self._attempts, delay_seconds=self._retry_delay, retry_on=_is_network)
            .compile()
        )
        fallback = self._fallback
        if fallback is None:
            return primary

        def synthetic(error: CheckoutError) -> LazyCoroResult[IntentTicket, CheckoutError]:
            if not _is_network(error):
                return L.fail(error)
            logger.warning("Backend unreachable (%s); continuing with a synthetic intent", error)
            return L.catching(
                lambda: fallback.ticket(request, breakdown.total_minor),
                on_error=as_checkout_error("create synthetic intent"),
            )

        return fallback_with(primary, secondary=synthetic)

    async def _release(self, reason: str) -> None:
        """Drop the current intent so a new one can be created."""
        ticket = self.ticket
        self.ticket = None
        self.snapshot = None
        self.breakdown = None
        self._transition(AttemptState.UNINITIALIZED)
        if ticket is None:
            return
        _, gateway = self._route
        cancelled = await L.catching_async(
            lambda: gateway.cancel_intent(ticket.intent_id),
            on_error=as_checkout_error("cancel intent"),
        )
        match cancelled:
            case Ok(_):
                logger.info("Released intent %s (%s)", ticket.intent_id, reason)
            case Error(NotFound()):
                logger.info("Superseded intent %s was already gone", ticket.intent_id)
            case Error(e):
                logger.warning("Could not cancel superseded intent %s: %s", ticket.intent_id, e)
        self._route = (self._backend, self._gateway)

    # ═══════════════════════════════════════════════════════════════════════════
    # Confirming
    # ═══════════════════════════════════════════════════════════════════════════

    async def confirm(
        self,
        method: PaymentMethod,
        current: CartSnapshot,
        shipping: Address | None = None,
        billing: Address | None = None,
    ) -> Result[Confirmation, CheckoutError]:
        if self.state is AttemptState.CONFIRMING:
            return Error(StateError("a payment is already being processed", "submit payment"))
        if not self.can_submit or self.ticket is None or self.snapshot is None:
            return Error(StateError(f"payment is {self.state}", "confirm payment"))
        if current.fingerprint != self.snapshot.fingerprint:
            await self._release("cart changed")
            return Error(StateError("the cart has changed", "confirm payment"))
        if isinstance(method, WalletPayment) and not await self.wallet_available():
            return Error(StateError("wallet payments are unavailable on this device", "pay with wallet"))

        ticket, snapshot = self.ticket, self.snapshot
        backend, gateway = self._route
        self._transition(AttemptState.CONFIRMING)

        charged = await self._charge(gateway, ticket, method)
        if not self._active:
            logger.warning("Ignoring charge result for %s after cancellation", ticket.intent_id)
            return Error(StateError("checkout was closed", "confirm payment"))

        match charged:
            case Error(e):
                self._fail(e)
                return Error(e)
            case Ok(intent):
                logger.info("Gateway charged intent %s", intent.id)

        request = ConfirmationRequest(
            intent_id=ticket.intent_id,
            cart_id=snapshot.cart_id,
            is_guest=snapshot.is_guest,
            owner_id=snapshot.owner_id,
            guest_email=self._guest_email,
            cart_items=tuple(snapshot.items_payload()) if snapshot.is_guest else (),
            cart_total=snapshot.subtotal if snapshot.is_guest else None,
            shipping_address=shipping.to_dict() if shipping is not None else None,
            billing_address=billing.to_dict() if billing is not None else None,
        )
        return await self._finish(backend, request)

    async def retry_confirmation(self) -> Result[Confirmation, CheckoutError]:
        """Re-send the order confirmation after a charge whose order creation failed."""
        request = self._pending
        if request is None or not isinstance(self.error, OrderPendingError):
            return Error(StateError(f"payment is {self.state}", "retry order confirmation"))
        backend, _ = self._route
        self._transition(AttemptState.CONFIRMING)
        return await self._finish(backend, request)

    def _charge(
        self,
        gateway: PaymentGateway,
        ticket: IntentTicket,
        method: PaymentMethod,
    ) -> LazyCoroResult[PaymentIntent, CheckoutError]:
        match method:
            case WalletPayment():
                pay = gateway.confirm_wallet_payment
            case CardPayment():
                pay = gateway.confirm_card_payment
            case _:
                raise TypeError(f"unsupported payment method: {method!r}")

        return (
            flow(L.catching_async(lambda: pay(ticket.client_secret, method), on_error=as_checkout_error("confirm payment")))
            .ensure(
                lambda intent: intent.status is IntentStatus.SUCCEEDED,
                lambda intent: decline(detail=f"intent {intent.id} is {intent.status}"),
            )
            .compile()
        )

    async def _finish(
        self,
        backend: CheckoutBackend,
        request: ConfirmationRequest,
    ) -> Result[Confirmation, CheckoutError]:
        confirmed = await (
            flow(
                L.catching_async(
                    lambda: backend.confirm_payment(request),
                    on_error=as_checkout_error("confirm order"),
                )
            )
            .retry(times=self._attempts, delay_seconds=self._retry_delay, retry_on=_is_network)
            .compile()
        )
        if not self._active:
            logger.warning("Ignoring order confirmation for %s after cancellation", request.intent_id)
            return Error(StateError("checkout was closed", "confirm order"))

        match confirmed:
            case Error(e):
                pending = OrderPendingError(request.intent_id, str(e))
                logger.error("Payment %s succeeded but order confirmation failed: %s", request.intent_id, e)
                self._pending = request
                self._fail(pending)
                return Error(pending)
            case Ok(confirmation):
                self._pending = None
                self.confirmation = confirmation
                self.error = None
                self._transition(AttemptState.SUCCEEDED)
                logger.info("Order %s confirmed for intent %s", confirmation.order_id, request.intent_id)
                await self._cart.empty_cart()
                self._publish(PaymentSucceeded(intent_id=request.intent_id, order_id=confirmation.order_id))
                return Ok(confirmation)

    # ═══════════════════════════════════════════════════════════════════════════
    # Internals
    # ═══════════════════════════════════════════════════════════════════════════

    def _transition(self, state: AttemptState) -> None:
        if state is not self.state:
            logger.debug("Payment attempt %s → %s", self.state, state)
        self.state = state

    def _fail(self, error: CheckoutError) -> None:
        self.error = error
        self._transition(AttemptState.FAILED)
        intent_id = self.ticket.intent_id if self.ticket is not None else None
        if isinstance(error, OrderPendingError):
            self._publish(OrderConfirmationFailed(intent_id=error.intent_id, message=error.message))
        else:
            self._publish(PaymentFailed(intent_id=intent_id, message=error.message))

    def _publish(self, event: object) -> None:
        if self._bus is not None:
            self._bus.publish(event)


__all__ = ("PaymentAttempt",)
