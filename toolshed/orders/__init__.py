"""
Orders — intent creation, exactly-once confirmation and order reads.

    from toolshed import orders as O

    session_factory, engine = await O.create_database(settings.database_url)
    store = O.SQLAlchemyOrderStore(session_factory)
    carts = O.SQLAlchemyCartRecords(session_factory)

    intents = O.IntentService(gateway, carts)
    confirmations = O.ConfirmationService(gateway, store, carts, policy=O.Policy.waiting(30))
    reader = O.OrderConfirmationReader(store)
"""

from toolshed.orders._types import OrderStatus, OrderLine, PaymentMethodSummary, Order
from toolshed.orders._demo import DEMO_LINES, is_demo_order, demo_order
from toolshed.orders._ledger import (
    RecordState,
    ConfirmationRecord,
    Confirmed,
    StoreError,
    OnPending,
    Policy,
    ConfirmationStore,
    OrderRepository,
    MemoryOrderStore,
)
from toolshed.orders._carts import CartStatus, CartRecord, new_cart_id, CartRecords, MemoryCartRecords
from toolshed.orders._graph import ConfirmationCall, run_confirmation
from toolshed.orders._db import (
    Base,
    ConfirmationMixin,
    CartTable,
    OrderTable,
    create_database,
    SQLAlchemyOrderStore,
    SQLAlchemyCartRecords,
)
from toolshed.orders._confirm import new_order_id, confirmation_fingerprint, guest_snapshot, ConfirmationService
from toolshed.orders._intent import IntentCreated, intent_metadata, IntentService
from toolshed.orders._reader import OrderConfirmationReader

__all__ = (
    # Types
    "OrderStatus",
    "OrderLine",
    "PaymentMethodSummary",
    "Order",
    # Demo
    "DEMO_LINES",
    "is_demo_order",
    "demo_order",
    # Ledger
    "RecordState",
    "ConfirmationRecord",
    "Confirmed",
    "StoreError",
    "OnPending",
    "Policy",
    "ConfirmationStore",
    "OrderRepository",
    "MemoryOrderStore",
    "ConfirmationCall",
    "run_confirmation",
    # Carts
    "CartStatus",
    "CartRecord",
    "new_cart_id",
    "CartRecords",
    "MemoryCartRecords",
    # Database
    "Base",
    "ConfirmationMixin",
    "CartTable",
    "OrderTable",
    "create_database",
    "SQLAlchemyOrderStore",
    "SQLAlchemyCartRecords",
    # Services
    "new_order_id",
    "confirmation_fingerprint",
    "guest_snapshot",
    "ConfirmationService",
    "IntentCreated",
    "intent_metadata",
    "IntentService",
    "OrderConfirmationReader",
)
