"""Tests for decline mapping, the gateways, the HTTP backend and PaymentAttempt."""

import asyncio
import json
import logging
from urllib.parse import parse_qs

import httpx
import pytest
from kungfu import Error, Ok

from toolshed import payment as P
from toolshed.config import Environment, GatewayKind, Settings
from toolshed.errors import AccessDenied, GatewayError, NetworkError, NotFound, OrderPendingError, StateError
from toolshed.events import OrderConfirmationFailed, PaymentFailed, PaymentSucceeded

from tests.conftest import DRILL, OWNER, SAW

EMAIL = "dana@example.com"


def intent_body(**overrides):
    body = {
        "id": "pi_1",
        "client_secret": "pi_1_secret_abc",
        "amount": 16236,
        "currency": "usd",
        "status": "requires_payment_method",
        "metadata": {"cartId": "cart-1"},
    }
    body.update(overrides)
    return body


class TestDeclines:
    def test_decline_code_wins_over_code(self):
        assert P.reason_for("insufficient_funds", "card_declined") is P.DeclineReason.INSUFFICIENT_FUNDS

    def test_unknown_codes_are_generic(self):
        assert P.reason_for("processing_error", None) is P.DeclineReason.GENERIC

    def test_raw_text_stays_out_of_message(self):
        error = P.decline("expired_card", detail="card_expired: exp 01/20 for cus_123")
        assert error.message == P.DECLINE_MESSAGES[P.DeclineReason.EXPIRED]
        assert "cus_123" not in error.message
        assert error.detail == "card_expired: exp 01/20 for cus_123"

    def test_status_parse_folds_unknown_states(self):
        assert P.IntentStatus.parse("processing") is P.IntentStatus.REQUIRES_ACTION
        assert P.IntentStatus.parse("canceled") is P.IntentStatus.FAILED
        assert P.IntentStatus.parse("succeeded") is P.IntentStatus.SUCCEEDED

    def test_intent_id_from_secret(self):
        assert P.intent_id_from_secret("pi_123_secret_abc") == "pi_123"


class TestStripeGateway:
    async def test_create_intent_sends_form_and_metadata(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=intent_body())

        gateway = P.StripeGateway("sk_test_1", transport=httpx.MockTransport(handler))
        intent = await gateway.create_intent(16236, "usd", {"cartId": "cart-1"}, idempotency_key="k-1")

        assert intent.id == "pi_1"
        assert intent.status is P.IntentStatus.REQUIRES_PAYMENT_METHOD
        request = seen[0]
        assert request.url.path == "/v1/payment_intents"
        assert request.headers["Authorization"] == "Bearer sk_test_1"
        assert request.headers["Idempotency-Key"] == "k-1"
        form = parse_qs(request.content.decode())
        assert form["amount"] == ["16236"]
        assert form["metadata[cartId]"] == ["cart-1"]

    async def test_card_error_becomes_fixed_message(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(402, json={"error": {
                "code": "card_declined",
                "decline_code": "insufficient_funds",
                "message": "Your card has insufficient funds.",
            }})

        gateway = P.StripeGateway("sk_test_1", transport=httpx.MockTransport(handler))
        with pytest.raises(GatewayError) as info:
            await gateway.confirm_card_payment("pi_1_secret_abc", P.CardPayment("pm_x"))

        assert info.value.reason == "insufficient_funds"
        assert info.value.message == P.DECLINE_MESSAGES[P.DeclineReason.INSUFFICIENT_FUNDS]

    async def test_server_error_is_network_error(self):
        gateway = P.StripeGateway("sk_test_1", transport=httpx.MockTransport(lambda r: httpx.Response(503)))
        with pytest.raises(NetworkError):
            await gateway.retrieve_intent("pi_1")

    async def test_transport_failure_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = P.StripeGateway("sk_test_1", transport=httpx.MockTransport(handler))
        with pytest.raises(NetworkError):
            await gateway.create_intent(100, "usd", {})

    async def test_unsucceeded_confirmation_is_a_decline(self):
        body = intent_body(status="requires_payment_method", last_payment_error={"code": "card_declined"})
        gateway = P.StripeGateway("sk_test_1", transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body)))

        with pytest.raises(GatewayError) as info:
            await gateway.confirm_card_payment("pi_1_secret_abc", P.CardPayment("pm_x"))
        assert info.value.reason == "declined"

    async def test_wallet_needs_a_probe(self):
        assert await P.StripeGateway("sk_test_1").probe_wallet() is False

        async def capable() -> bool:
            return True

        assert await P.StripeGateway("sk_test_1", wallet_probe=capable).probe_wallet() is True


class TestHttpBackend:
    REQUEST = P.IntentRequest(cart_id="cart-1", owner_id=OWNER, is_guest=False)

    def backend(self, status: int, body: dict) -> P.HttpCheckoutBackend:
        transport = httpx.MockTransport(lambda r: httpx.Response(status, json=body))
        return P.HttpCheckoutBackend("http://backend.test", transport=transport)

    async def test_success(self):
        backend = self.backend(200, {"clientSecret": "pi_9_secret_x", "paymentIntentId": "pi_9", "amount": 16236})
        ticket = await backend.create_intent(self.REQUEST)
        assert ticket == P.IntentTicket("pi_9_secret_x", "pi_9", 16236)

    async def test_intent_id_falls_back_to_secret(self):
        ticket = await self.backend(200, {"clientSecret": "pi_9_secret_x"}).create_intent(self.REQUEST)
        assert ticket.intent_id == "pi_9"

    async def test_payment_required_is_a_decline(self):
        with pytest.raises(GatewayError):
            await self.backend(402, {"error": "Payment has not succeeded"}).create_intent(self.REQUEST)

    async def test_forbidden(self):
        with pytest.raises(AccessDenied):
            await self.backend(403, {"error": "nope"}).create_intent(self.REQUEST)

    async def test_server_error(self):
        with pytest.raises(NetworkError):
            await self.backend(500, {"error": "boom"}).create_intent(self.REQUEST)

    async def test_posts_json_payload(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"clientSecret": "pi_9_secret_x"})

        backend = P.HttpCheckoutBackend("http://backend.test/", transport=httpx.MockTransport(handler))
        await backend.create_intent(self.REQUEST)
        assert seen[0] == {"cartId": "cart-1", "isGuestCheckout": False, "guestEmail": None, "userId": OWNER}


class TestFakeGateway:
    async def test_test_card_declines(self, gateway):
        intent = await gateway.create_intent(100, "usd", {})
        with pytest.raises(GatewayError) as info:
            await gateway.confirm_card_payment(intent.client_secret, P.CardPayment("pm_card_chargeDeclinedExpiredCard"))
        assert info.value.reason == "expired"
        assert gateway.intents[intent.id].status is P.IntentStatus.REQUIRES_PAYMENT_METHOD

    async def test_cannot_cancel_a_succeeded_intent(self, gateway):
        intent = await gateway.create_intent(100, "usd", {})
        await gateway.confirm_card_payment(intent.client_secret, P.CardPayment("pm_card_visa"))
        with pytest.raises(StateError):
            await gateway.cancel_intent(intent.id)

    async def test_idempotency_key_returns_same_intent(self, gateway):
        first = await gateway.create_intent(100, "usd", {}, idempotency_key="k")
        second = await gateway.create_intent(100, "usd", {}, idempotency_key="k")
        assert first.id == second.id


class TestAttemptHappyPath:
    async def test_guest_checkout(self, guest_store, make_attempt, order_store, events):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)

        created = await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        assert isinstance(created, Ok)
        assert attempt.state is P.AttemptState.READY
        assert attempt.ticket.amount == 16236
        assert attempt.client_secret is not None

        result = await attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot())
        match result:
            case Ok(confirmation):
                order = await order_store.get_order(confirmation.order_id)
                assert order.guest_email == EMAIL
                assert order.total_amount == attempt.amount
            case Error(e):
                pytest.fail(f"unexpected error: {e}")

        assert attempt.state is P.AttemptState.SUCCEEDED
        assert guest_store.cart.is_empty
        assert events.of(PaymentSucceeded)[0].order_id == attempt.confirmation.order_id

    async def test_owner_checkout_completes_cart_row(self, owner_store, make_attempt, cart_records, order_store):
        await owner_store.add_item(DRILL)
        attempt = make_attempt(owner_store)
        await attempt.create(owner_store.snapshot())

        match await attempt.confirm(P.CardPayment("pm_card_visa"), owner_store.snapshot()):
            case Ok(confirmation):
                orders = await order_store.list_orders(OWNER)
                assert [o.id for o in orders] == [confirmation.order_id]
            case Error(e):
                pytest.fail(f"unexpected error: {e}")
        assert owner_store.cart.is_empty

    async def test_existing_ready_intent_is_reused(self, guest_store, make_attempt, backend):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        assert backend.calls.count("create_intent") == 1

    async def test_changed_guest_email_replaces_intent(self, guest_store, make_attempt, backend, gateway):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)
        first = (await attempt.create(guest_store.snapshot(), guest_email=EMAIL)).unwrap()

        assert attempt.needs_new_intent(guest_store.snapshot(), "new@example.com")
        second = (await attempt.create(guest_store.snapshot(), guest_email="new@example.com")).unwrap()

        assert second.intent_id != first.intent_id
        assert backend.calls.count("create_intent") == 2
        assert gateway.intents[second.intent_id].metadata["guestEmail"] == "new@example.com"


class TestAttemptGuards:
    async def test_confirm_before_create(self, guest_store, make_attempt):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)
        result = await attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot())
        assert isinstance(result, Error)
        assert isinstance(result.error, StateError)

    async def test_empty_cart_cannot_create(self, guest_store, make_attempt):
        result = await make_attempt(guest_store).create(guest_store.snapshot())
        assert isinstance(result.error, StateError)

    async def test_cart_change_releases_intent(self, guest_store, make_attempt, gateway):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        intent_id = attempt.ticket.intent_id

        await guest_store.add_item(SAW)
        result = await attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot())

        assert isinstance(result.error, StateError)
        assert attempt.state is P.AttemptState.UNINITIALIZED
        assert attempt.ticket is None
        assert gateway.intents[intent_id].status is P.IntentStatus.FAILED
        assert "confirm_card_payment" not in gateway.calls

    async def test_double_submit_confirms_once(self, owner_store, make_attempt, order_store):
        await owner_store.add_item(DRILL)
        attempt = make_attempt(owner_store)
        await attempt.create(owner_store.snapshot())
        snapshot = owner_store.snapshot()
        method = P.CardPayment("pm_card_visa")

        results = await asyncio.gather(attempt.confirm(method, snapshot), attempt.confirm(method, snapshot))

        assert sum(isinstance(r, Ok) for r in results) == 1
        assert len(await order_store.list_orders(OWNER)) == 1

    async def test_unavailable_wallet_keeps_attempt_ready(self, guest_store, backend, bus):
        await guest_store.add_item(DRILL)
        attempt = P.PaymentAttempt(backend, P.FakeGateway(wallet_capable=False), guest_store, bus=bus, retry_delay=0)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)

        result = await attempt.confirm(P.WalletPayment("pm_card_visa"), guest_store.snapshot())
        assert isinstance(result.error, StateError)
        assert attempt.state is P.AttemptState.READY
        assert not await attempt.wallet_available()


class TestAttemptFailures:
    async def test_decline_keeps_cart(self, guest_store, make_attempt, events, order_store):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)

        result = await attempt.confirm(P.CardPayment("pm_card_chargeDeclinedInsufficientFunds"), guest_store.snapshot())

        assert isinstance(result.error, GatewayError)
        assert result.error.message == P.DECLINE_MESSAGES[P.DeclineReason.INSUFFICIENT_FUNDS]
        assert attempt.state is P.AttemptState.FAILED
        assert not attempt.can_submit
        assert not guest_store.cart.is_empty
        assert events.of(PaymentFailed)[0].message == result.error.message
        assert order_store.records == {}

    async def test_retry_after_decline_uses_new_intent(self, guest_store, make_attempt):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        first = attempt.ticket.intent_id
        await attempt.confirm(P.CardPayment("pm_card_chargeDeclined"), guest_store.snapshot())

        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        assert attempt.ticket.intent_id != first
        result = await attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot())
        assert isinstance(result, Ok)

    async def test_order_failure_after_charge(self, guest_store, make_attempt, backend, events, order_store):
        await guest_store.add_item(DRILL)
        attempt = make_attempt(guest_store)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        backend.fail_next("confirm_payment", NetworkError("confirm payment"), times=2)

        result = await attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot())

        assert isinstance(result.error, OrderPendingError)
        assert result.error.message == "Payment succeeded, but order creation failed. Please contact support."
        assert not guest_store.cart.is_empty
        assert events.of(OrderConfirmationFailed)[0].intent_id == attempt.ticket.intent_id
        assert backend.calls.count("confirm_payment") == 2

        retried = await attempt.retry_confirmation()
        assert isinstance(retried, Ok)
        assert guest_store.cart.is_empty
        assert len(order_store.records) == 1

    async def test_create_retries_network_errors(self, guest_store, make_attempt, backend):
        await guest_store.add_item(DRILL)
        backend.fail_next("create_intent", NetworkError("create payment intent"))
        attempt = make_attempt(guest_store)

        assert isinstance(await attempt.create(guest_store.snapshot(), guest_email=EMAIL), Ok)
        assert backend.calls.count("create_intent") == 2

    async def test_unreachable_backend_without_fallback(self, guest_store, make_attempt, backend):
        await guest_store.add_item(DRILL)
        backend.fail_next("create_intent", NetworkError("create payment intent"), times=2)
        attempt = make_attempt(guest_store)

        result = await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        assert isinstance(result.error, NetworkError)
        assert attempt.state is P.AttemptState.FAILED


class TestCancellation:
    async def test_late_result_is_ignored(self, guest_store, services, gateway, bus, events):
        entered, release = asyncio.Event(), asyncio.Event()

        class SlowBackend:
            async def create_intent(self, request):
                ticket = await services.intents.create(request)
                return P.IntentTicket(ticket.value.client_secret, ticket.value.intent_id, ticket.value.amount)

            async def confirm_payment(self, request):
                entered.set()
                await release.wait()
                return P.Confirmation(order_id="ord_late")

        await guest_store.add_item(DRILL)
        attempt = P.PaymentAttempt(SlowBackend(), gateway, guest_store, bus=bus, retry_delay=0)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)

        task = asyncio.create_task(attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot()))
        await entered.wait()
        attempt.cancel()
        release.set()
        result = await task

        assert isinstance(result.error, StateError)
        assert attempt.state is P.AttemptState.CONFIRMING
        assert attempt.confirmation is None
        assert not guest_store.cart.is_empty
        assert events.of(PaymentSucceeded) == []


class TestSyntheticFallback:
    async def test_unreachable_backend_continues_synthetically(self, guest_store, make_attempt, backend):
        await guest_store.add_item(DRILL)
        backend.fail_next("create_intent", NetworkError("create payment intent"), times=2)
        attempt = make_attempt(guest_store, fallback=P.SyntheticCheckout())

        created = await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        assert isinstance(created, Ok)
        assert attempt.synthetic
        assert attempt.ticket.amount == 16236

        result = await attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot())
        match result:
            case Ok(confirmation):
                assert confirmation.synthetic
                assert confirmation.order_id.startswith("order-")
            case Error(e):
                pytest.fail(f"unexpected error: {e}")
        assert "confirm_payment" not in backend.calls

    async def test_declines_are_not_masked(self, guest_store, make_attempt, backend):
        await guest_store.add_item(DRILL)
        backend.fail_next("create_intent", P.decline("card_declined"))
        attempt = make_attempt(guest_store, fallback=P.SyntheticCheckout())

        result = await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        assert isinstance(result.error, GatewayError)
        assert not attempt.synthetic

    def test_never_in_production(self):
        production = Settings(environment=Environment.PRODUCTION, gateway=GatewayKind.STRIPE, stripe_secret_key="sk")
        assert P.build_fallback(production) is None
        assert isinstance(P.build_fallback(Settings()), P.SyntheticCheckout)

    async def test_cancelling_unknown_synthetic_intent(self):
        fallback = P.SyntheticCheckout()
        ticket = fallback.ticket(P.IntentRequest("cart-1", OWNER, False), 16236)

        assert (await fallback.cancel_intent(ticket.intent_id)).id == ticket.intent_id
        with pytest.raises(NotFound):
            await fallback.cancel_intent(ticket.intent_id)

    async def test_dropped_synthetic_intent_is_not_a_network_failure(self, guest_store, make_attempt, backend, caplog):
        await guest_store.add_item(DRILL)
        backend.fail_next("create_intent", NetworkError("create payment intent"), times=2)
        fallback = P.SyntheticCheckout()
        attempt = make_attempt(guest_store, fallback=fallback)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        fallback.intents.clear()

        await guest_store.add_item(SAW)
        with caplog.at_level(logging.INFO, logger="toolshed.payment._attempt"):
            created = await attempt.create(guest_store.snapshot(), guest_email=EMAIL)

        assert isinstance(created, Ok)
        assert not attempt.synthetic
        assert "already gone" in caplog.text
        assert "Could not cancel" not in caplog.text
