"""
CheckoutFlow — the two-step Shipping → Payment controller.

    flow = CheckoutFlow(cart_store, new_attempt, bus=bus, addresses=repo)
    if not await flow.mount():
        return                        # empty cart, RedirectRequested was published
    flow.shipping_form.update(form)
    if await flow.continue_to_payment():
        await flow.pay(P.CardPayment("pm_card_visa"))

Guards:
- mount: an empty cart redirects out of checkout.
- Shipping → Payment: the shipping form is valid, and the billing form too
  when billing differs from shipping. Errors stay here, keyed per form and
  per field.
- Payment → Shipping (`back`) only reopens address editing. The payment
  attempt and its intent are kept.

The optional account sub-flow runs before the transition, is awaited, and
reports its failure in `account_error` without blocking checkout.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from combinators import lift as L
from kungfu import Error, Ok, Result

from toolshed import address as A
from toolshed.cart import CartStore
from toolshed.checkout._types import AccountCreator, AccountRequest, Step
from toolshed.errors import CheckoutError, OrderPendingError, StateError, as_checkout_error
from toolshed.events import EventBus, RedirectRequested, SignInRequested, StepChanged
from toolshed.payment import AttemptState, Confirmation, PaymentAttempt, PaymentMethod

logger = logging.getLogger(__name__)

CART_PATH = "/cart"
CHECKOUT_PATH = "/checkout"

_FORM_FIELDS = ("firstName", "lastName", "line1", "line2", "city", "state", "postalCode", "country", "phone", "email")


def _form_from(address: A.Address) -> dict[str, str]:
    return {
        "firstName": address.first_name,
        "lastName": address.last_name,
        "line1": address.street,
        "line2": address.apt_or_suite or "",
        "city": address.city,
        "state": address.state,
        "postalCode": address.postal_code,
        "country": address.country,
        "phone": address.phone or "",
        "email": address.email or "",
    }


class CheckoutFlow:
    def __init__(
        self,
        cart: CartStore,
        new_attempt: Callable[[], PaymentAttempt],
        *,
        bus: EventBus,
        addresses: A.AddressBookRepository | None = None,
        accounts: AccountCreator | None = None,
    ) -> None:
        self._cart = cart
        self._new_attempt = new_attempt
        self._bus = bus
        self._addresses = addresses
        self._accounts = accounts

        self.step = Step.SHIPPING
        self.mounted = False
        self.shipping_form: dict[str, Any] = dict.fromkeys(_FORM_FIELDS, "")
        self.billing_form: dict[str, Any] = dict.fromkeys(_FORM_FIELDS, "")
        self.billing_same_as_shipping = True
        self.save_address = False
        self.account_request: AccountRequest | None = None

        self.errors: dict[str, dict[str, str]] = {}
        self.account_error: CheckoutError | None = None
        self.account_id: str | None = None
        self.shipping: A.Address | None = None
        self.billing: A.Address | None = None
        self.attempt: PaymentAttempt | None = None

    @property
    def owner_id(self) -> str | None:
        return self._cart.cart.owner_id if self._cart.loaded else None

    @property
    def contact_email(self) -> str | None:
        return str(self.shipping_form.get("email") or "").strip() or None

    # ═══════════════════════════════════════════════════════════════════════════
    # Lifecycle
    # ═══════════════════════════════════════════════════════════════════════════

    async def mount(self) -> bool:
        """Enter checkout. Returns False (and requests a redirect) for an empty cart."""
        cart = self._cart.cart if self._cart.loaded else await self._cart.load()
        if cart.is_empty:
            logger.info("Checkout opened with an empty cart; redirecting")
            self._bus.publish(RedirectRequested(path=CART_PATH, reason="Your cart is empty"))
            return False

        if cart.owner_id is not None and self._addresses is not None:
            await self._prefill(cart.owner_id)
        self.mounted = True
        return True

    def unmount(self) -> None:
        self.mounted = False
        if self.attempt is not None:
            self.attempt.cancel()

    def request_sign_in(self) -> None:
        self._bus.publish(SignInRequested(redirect=CHECKOUT_PATH))

    async def _prefill(self, owner_id: str) -> None:
        book = await self._addresses.get_address_book(owner_id)
        defaults = A.resolve_defaults(book)
        if defaults.shipping is not None:
            self.shipping_form.update(_form_from(defaults.shipping))
        if defaults.billing is not None and (
            defaults.shipping is None or not A.same_place(defaults.billing, defaults.shipping)
        ):
            self.billing_form.update(_form_from(defaults.billing))
            self.billing_same_as_shipping = False

    # ═══════════════════════════════════════════════════════════════════════════
    # Shipping step
    # ═══════════════════════════════════════════════════════════════════════════

    def validate(self) -> dict[str, dict[str, str]]:
        errors: dict[str, dict[str, str]] = {}
        if shipping := A.validate_address(self.shipping_form):
            errors["shipping"] = shipping
        if not self.billing_same_as_shipping:
            if billing := A.validate_address(self.billing_form):
                errors["billing"] = billing
        return errors

    def request_account(self, password: str) -> None:
        """Guest opted in to account creation. Uses the shipping contact details."""
        self.account_request = AccountRequest(
            email=self.contact_email or "",
            password=password,
            first_name=str(self.shipping_form.get("firstName") or ""),
            last_name=str(self.shipping_form.get("lastName") or ""),
        )

    async def continue_to_payment(self) -> bool:
        if self.step is Step.PAYMENT:
            return True
        if not self.mounted:
            raise StateError("checkout is not open", "continue to payment")
        if self._cart.cart.is_empty:
            self._bus.publish(RedirectRequested(path=CART_PATH, reason="Your cart is empty"))
            return False

        self.errors = self.validate()
        if self.errors:
            logger.info("Shipping step blocked by invalid fields: %s", sorted(self.errors))
            return False

        self.shipping = A.Address.from_form(self.shipping_form, A.AddressType.SHIPPING)
        self.billing = (
            self.shipping
            if self.billing_same_as_shipping
            else A.Address.from_form(self.billing_form, A.AddressType.BILLING)
        )

        if self.account_request is not None and self._cart.cart.is_guest:
            await self._create_account()

        self._transition(Step.PAYMENT)
        await self._prepare_payment()
        return True

    async def _create_account(self) -> None:
        accounts, request = self._accounts, self.account_request
        if accounts is None or request is None:
            return
        self.account_error = None
        created = await L.catching_async(
            lambda: accounts.create_account(request),
            on_error=as_checkout_error("create account"),
        )
        match created:
            case Ok(owner_id):
                self.account_id = owner_id
                self.account_request = None
                logger.info("Created account %s during guest checkout", owner_id)
            case Error(e):
                self.account_error = e
                logger.warning("Account creation during checkout failed: %s", e)

    # ═══════════════════════════════════════════════════════════════════════════
    # Payment step
    # ═══════════════════════════════════════════════════════════════════════════

    async def _prepare_payment(self) -> None:
        if self.attempt is None:
            self.attempt = self._new_attempt()
        snapshot = self._cart.snapshot()
        if self.attempt.needs_new_intent(snapshot, self.contact_email):
            await self.attempt.create(snapshot, guest_email=self.contact_email)

    def back(self) -> None:
        """Payment → Shipping. The payment attempt is kept."""
        if self.step is Step.PAYMENT:
            self._transition(Step.SHIPPING)

    async def pay(self, method: PaymentMethod) -> Result[Confirmation, CheckoutError]:
        if self.step is not Step.PAYMENT or self.attempt is None:
            return Error(StateError(f"checkout is on the {self.step} step", "submit payment"))

        attempt = self.attempt
        if isinstance(attempt.error, OrderPendingError):
            # already charged: only the order confirmation is repeated
            result = await attempt.retry_confirmation()
        else:
            snapshot = self._cart.snapshot()
            if attempt.state in (AttemptState.FAILED, AttemptState.UNINITIALIZED):
                # a failed intent is abandoned, the retry gets a fresh one
                match await attempt.create(snapshot, guest_email=self.contact_email):
                    case Error(e):
                        return Error(e)
                    case Ok(_):
                        pass
            result = await attempt.confirm(method, snapshot, self.shipping, self.billing)

        match result:
            case Ok(confirmation):
                if self.save_address and not confirmation.synthetic:
                    await self._save_addresses()
            case Error(StateError()) if attempt.state is AttemptState.UNINITIALIZED:
                # cart changed under the intent: prepare a new one at the new total
                await self._prepare_payment()
        return result

    async def _save_addresses(self) -> None:
        owner_id = self.owner_id
        if owner_id is None or self._addresses is None or self.shipping is None:
            return
        repo = self._addresses
        shipping, billing = self.shipping, self.billing or self.shipping

        async def save() -> None:
            book = await repo.get_address_book(owner_id)
            book = A.dedupe_and_save(shipping, book, A.AddressType.SHIPPING)
            book = A.dedupe_and_save(billing, book, A.AddressType.BILLING)
            await repo.save_address_book(owner_id, book)

        match await L.catching_async(save, on_error=as_checkout_error("save address")):
            case Ok(_):
                logger.info("Saved checkout addresses for %s", owner_id)
            case Error(e):
                logger.error("Could not save checkout addresses for %s: %s", owner_id, e)

    def _transition(self, step: Step) -> None:
        previous, self.step = self.step, step
        logger.info("Checkout step %s → %s", previous, step)
        self._bus.publish(StepChanged(previous=previous.value, current=step.value))


__all__ = ("CART_PATH", "CHECKOUT_PATH", "CheckoutFlow")
