"""Tests for the FastAPI checkout backend."""

from dataclasses import replace

import httpx
import pytest
from fastapi.testclient import TestClient
from kungfu import Ok

from toolshed import cart as K
from toolshed import orders as O
from toolshed import payment as P
from toolshed._types import GUEST_CART_ID
from toolshed.config import Settings
from toolshed.errors import AccessDenied, ConflictError, NetworkError, OrderPendingError, ValidationError
from toolshed.server import create_app, status_for

from tests.conftest import DRILL, OWNER

EMAIL = "dana@example.com"
DRILL_ITEM = K.CartItem("item_1", DRILL.id, DRILL.name, DRILL.price, 1)

GUEST_INTENT = {
    "cartId": GUEST_CART_ID,
    "isGuestCheckout": True,
    "guestEmail": EMAIL,
    "guestCartItems": [DRILL_ITEM.to_dict()],
    "guestTotal": "149.99",
}


@pytest.fixture
def client(services):
    return TestClient(create_app(services))


@pytest.fixture
def owner_cart(cart_records):
    cart = K.Cart.of("cart-owner", OWNER, (DRILL_ITEM,))
    cart_records.records[cart.id] = O.CartRecord(cart=cart)
    return cart


def succeed(gateway: P.FakeGateway, intent_id: str) -> None:
    gateway.intents[intent_id] = replace(gateway.intents[intent_id], status=P.IntentStatus.SUCCEEDED)


class TestStatus:
    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "timestamp" in data

    def test_status_codes_follow_exception_type(self):
        assert status_for(ValidationError({})) == 400
        assert status_for(AccessDenied("order", "o")) == 403
        assert status_for(ConflictError("pi")) == 409
        assert status_for(NetworkError("x")) == 502
        assert status_for(OrderPendingError("pi")) == 500


class TestCreatePaymentIntent:
    def test_guest(self, client, gateway):
        response = client.post("/create-payment-intent", json=GUEST_INTENT)

        assert response.status_code == 200
        data = response.json()
        assert data["amount"] == 16236
        assert data["clientSecret"].startswith(data["paymentIntentId"])
        assert gateway.intents[data["paymentIntentId"]].metadata["isGuestCheckout"] == "true"

    def test_owner(self, client, owner_cart, cart_records):
        response = client.post("/create-payment-intent", json={"cartId": owner_cart.id, "userId": OWNER})
        assert response.status_code == 200
        assert cart_records.records[owner_cart.id].intent_id == response.json()["paymentIntentId"]

    def test_missing_ids(self, client):
        response = client.post("/create-payment-intent", json={"isGuestCheckout": False})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing cartId or userId"}

    def test_unknown_cart(self, client):
        response = client.post("/create-payment-intent", json={"cartId": "cart-x", "userId": OWNER})
        assert response.status_code == 404
        assert response.json() == {"error": "Cart not found"}

    def test_foreign_cart(self, client, owner_cart):
        response = client.post("/create-payment-intent", json={"cartId": owner_cart.id, "userId": "user-2"})
        assert response.status_code == 403

    def test_malformed_body(self, client):
        response = client.post("/create-payment-intent", json={"guestTotal": "lots"})
        assert response.status_code == 400
        assert response.json()["error"].startswith("Invalid request")


class TestConfirmPayment:
    def create(self, client) -> str:
        return client.post("/create-payment-intent", json=GUEST_INTENT).json()["paymentIntentId"]

    def confirm(self, client, intent_id: str):
        return client.post("/confirm-payment", json={
            "paymentIntentId": intent_id,
            "cartId": GUEST_CART_ID,
            "isGuestCheckout": True,
            "guestEmail": EMAIL,
            "cartItems": [DRILL_ITEM.to_dict()],
            "cartTotal": "149.99",
        })

    def test_success_is_idempotent(self, client, gateway):
        intent_id = self.create(client)
        succeed(gateway, intent_id)

        first = self.confirm(client, intent_id)
        second = self.confirm(client, intent_id)

        assert first.status_code == 200
        assert first.json() == {"success": True, "orderId": first.json()["orderId"]}
        assert second.json()["orderId"] == first.json()["orderId"]

    def test_unpaid_intent(self, client):
        response = self.confirm(client, self.create(client))
        assert response.status_code == 402
        assert response.json() == {"error": "Payment has not succeeded"}

    def test_missing_fields(self, client):
        response = client.post("/confirm-payment", json={"cartId": GUEST_CART_ID})
        assert response.status_code == 400
        assert response.json() == {"error": "Missing paymentIntentId or cartId"}


class TestOrders:
    def confirmed_order(self, client, gateway, owner_cart) -> str:
        intent_id = client.post(
            "/create-payment-intent", json={"cartId": owner_cart.id, "userId": OWNER}
        ).json()["paymentIntentId"]
        succeed(gateway, intent_id)
        response = client.post("/confirm-payment", json={
            "paymentIntentId": intent_id,
            "cartId": owner_cart.id,
            "userId": OWNER,
        })
        return response.json()["orderId"]

    def test_owner_reads_order(self, client, gateway, owner_cart):
        order_id = self.confirmed_order(client, gateway, owner_cart)

        response = client.get(f"/orders/{order_id}", headers={"X-User-Id": OWNER})
        assert response.status_code == 200
        data = response.json()
        assert data["totalAmount"] == "162.36"
        assert data["status"] == "paid"
        assert data["items"][0]["name"] == DRILL.name

    def test_other_user_is_forbidden(self, client, gateway, owner_cart):
        order_id = self.confirmed_order(client, gateway, owner_cart)
        response = client.get(f"/orders/{order_id}", headers={"X-User-Id": "user-2"})
        assert response.status_code == 403
        assert response.json() == {"error": "You do not have permission to view this order"}

    def test_unknown_order(self, client):
        assert client.get("/orders/ord_missing", headers={"X-User-Id": OWNER}).status_code == 404

    def test_demo_order(self, client):
        response = client.get("/orders/order-42", headers={"X-User-Id": OWNER})
        assert response.status_code == 200
        assert response.json()["synthetic"] is True

    def test_history(self, client, gateway, owner_cart):
        order_id = self.confirmed_order(client, gateway, owner_cart)
        data = client.get("/orders", headers={"X-User-Id": OWNER}).json()
        assert data["count"] == 1
        assert data["orders"][0]["id"] == order_id

    def test_history_needs_user(self, client):
        assert client.get("/orders").status_code == 400

    def test_status_change(self, client, gateway, owner_cart):
        order_id = self.confirmed_order(client, gateway, owner_cart)

        response = client.post(f"/orders/{order_id}/status", json={"status": "processing"})
        assert response.status_code == 200
        assert response.json()["status"] == "processing"

        response = client.post(f"/orders/{order_id}/status", json={"status": "paid"})
        assert response.status_code == 409


class TestLifespan:
    def test_builds_services_from_settings(self):
        with TestClient(create_app(settings=Settings())) as client:
            assert client.get("/").status_code == 200
            response = client.post("/create-payment-intent", json={"cartId": "cart-x", "userId": OWNER})
            assert response.status_code == 404


class TestOverHttp:
    async def test_attempt_against_asgi_app(self, services, gateway, guest_store, order_store, bus):
        app = create_app(services)
        backend = P.HttpCheckoutBackend("http://checkout.test", transport=httpx.ASGITransport(app=app))
        await guest_store.add_item(DRILL)
        attempt = P.PaymentAttempt(backend, gateway, guest_store, bus=bus, retry_delay=0)

        created = await attempt.create(guest_store.snapshot(), guest_email=EMAIL)
        assert isinstance(created, Ok)
        assert attempt.ticket.amount == 16236

        result = await attempt.confirm(P.CardPayment("pm_card_visa"), guest_store.snapshot())
        assert isinstance(result, Ok)
        order = await order_store.get_order(result.value.order_id)
        assert order.guest_email == EMAIL
        assert guest_store.cart.is_empty

    async def test_declined_card_over_http(self, services, gateway, guest_store, bus):
        app = create_app(services)
        backend = P.HttpCheckoutBackend("http://checkout.test", transport=httpx.ASGITransport(app=app))
        await guest_store.add_item(DRILL)
        attempt = P.PaymentAttempt(backend, gateway, guest_store, bus=bus, retry_delay=0)
        await attempt.create(guest_store.snapshot(), guest_email=EMAIL)

        result = await attempt.confirm(P.CardPayment("pm_card_chargeDeclinedIncorrectCvc"), guest_store.snapshot())
        assert result.error.reason == "bad_cvc"
        assert not guest_store.cart.is_empty
