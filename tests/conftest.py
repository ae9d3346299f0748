"""Pytest fixtures for toolshed tests."""

from datetime import timedelta
from decimal import Decimal

import pytest
from kungfu import Error, Ok

from toolshed import cart as K
from toolshed import orders as O
from toolshed import payment as P
from toolshed.events import (
    CartChanged,
    EventBus,
    OrderConfirmationFailed,
    PaymentFailed,
    PaymentSucceeded,
    RedirectRequested,
    SignInRequested,
    StepChanged,
)
from toolshed.server import Services

OWNER = "user-1"

DRILL = K.Listing("tool-1", "Cordless Drill", Decimal("149.99"))
SAW = K.Listing("tool-2", "Circular Saw", Decimal("89.50"))


class InProcessBackend:
    """CheckoutBackend that calls the server services directly."""

    def __init__(self, services: Services) -> None:
        self._services = services
        self._failures: dict[str, list[Exception]] = {}
        self.calls: list[str] = []

    def fail_next(self, operation: str, error: Exception, times: int = 1) -> None:
        self._failures.setdefault(operation, []).extend([error] * times)

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    async def create_intent(self, request: P.IntentRequest) -> P.IntentTicket:
        self._enter("create_intent")
        match await self._services.intents.create(request):
            case Ok(created):
                return P.IntentTicket(
                    client_secret=created.client_secret,
                    intent_id=created.intent_id,
                    amount=created.amount,
                )
            case Error(e):
                raise e

    async def confirm_payment(self, request: P.ConfirmationRequest) -> P.Confirmation:
        self._enter("confirm_payment")
        match await self._services.confirmations.confirm(request):
            case Ok(confirmed):
                return P.Confirmation(order_id=confirmed.order_id)
            case Error(e):
                raise e


class EventRecorder:
    TYPES = (
        CartChanged,
        SignInRequested,
        RedirectRequested,
        StepChanged,
        PaymentSucceeded,
        PaymentFailed,
        OrderConfirmationFailed,
    )

    def __init__(self, bus: EventBus) -> None:
        self.events: list[object] = []
        for typ in self.TYPES:
            bus.subscribe(typ, self.events.append)

    def of(self, typ: type) -> list:
        return [e for e in self.events if isinstance(e, typ)]


@pytest.fixture
def storage():
    return K.MemoryLocalStorage()


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def events(bus):
    return EventRecorder(bus)


@pytest.fixture
def gateway():
    return P.FakeGateway()


@pytest.fixture
def order_store():
    return O.MemoryOrderStore()


@pytest.fixture
def cart_records():
    return O.MemoryCartRecords()


@pytest.fixture
def policy():
    return O.Policy(wait_timeout=timedelta(seconds=1), poll_interval=0.01)


@pytest.fixture
def services(gateway, order_store, cart_records, policy):
    return Services.in_memory(gateway, order_store, cart_records, policy=policy)


@pytest.fixture
def backend(services):
    return InProcessBackend(services)


@pytest.fixture
async def guest_store(storage, bus):
    store = K.CartStore(K.GuestCartBackend(storage), bus)
    await store.load()
    return store


@pytest.fixture
async def owner_store(cart_records, bus):
    store = K.CartStore(K.RemoteCartBackend(OWNER, cart_records), bus)
    await store.load()
    return store


@pytest.fixture
def make_attempt(backend, gateway, bus):
    def make(store: K.CartStore, **kwargs) -> P.PaymentAttempt:
        kwargs.setdefault("retry_delay", 0)
        return P.PaymentAttempt(backend, gateway, store, bus=bus, **kwargs)

    return make


@pytest.fixture
def shipping_form():
    return {
        "firstName": "Dana",
        "lastName": "Reyes",
        "line1": "12 Harbor St",
        "line2": "",
        "city": "Austin",
        "state": "TX",
        "postalCode": "78701",
        "country": "US",
        "phone": "512-555-0143",
        "email": "dana@example.com",
    }
