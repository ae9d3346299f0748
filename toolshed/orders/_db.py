"""
Database layer — SQLAlchemy tables for carts and orders.

The orders table carries the confirmation ledger columns itself
(`ConfirmationMixin`): the pending record *is* the draft order row, so the
unique index on `confirmation_key` is what makes confirmation exactly-once.

    session_factory, engine = await create_database(settings.database_url)
    orders = SQLAlchemyOrderStore(session_factory)
    carts = SQLAlchemyCartRecords(session_factory)
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, cast

from kungfu import Error, Ok, Result
from sqlalchemy import DateTime, Integer, String, Text, delete, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.pool import StaticPool

from toolshed._types import CartId, IntentId, OrderId, OwnerId
from toolshed.address import Address
from toolshed.cart import Cart, CartItem
from toolshed.errors import NotFound
from toolshed.money import PriceBreakdown, from_minor_units, to_minor_units
from toolshed.orders._carts import CartRecord, CartStatus, new_cart_id
from toolshed.orders._ledger import ConfirmationRecord, RecordState, StoreError
from toolshed.orders._types import Order, OrderLine, OrderStatus, PaymentMethodSummary

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(UTC)


def _aware(value: datetime) -> datetime:
    # sqlite drops tzinfo on the way back
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


# ═══════════════════════════════════════════════════════════════════════════════
# Base / Mixin
# ═══════════════════════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


class ConfirmationMixin:
    """
    Ledger columns for a table whose rows are created exactly once per key.

    - confirmation_key: gateway intent id, unique
    - confirmation_status: "pending" | "completed" | "failed"
    - confirmation_fingerprint: which cart the key was confirmed for
    - confirmation_error: message kept for failed rows
    """

    confirmation_key: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    confirmation_status: Mapped[str] = mapped_column(String(20), nullable=False, default=RecordState.PENDING.value)
    confirmation_fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    confirmation_error: Mapped[str | None] = mapped_column(Text, nullable=True)


# ═══════════════════════════════════════════════════════════════════════════════
# Tables
# ═══════════════════════════════════════════════════════════════════════════════


class CartTable(Base):
    __tablename__ = "carts"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    items: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=CartStatus.ACTIVE.value)
    intent_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


class OrderTable(Base, ConfirmationMixin):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(50), primary_key=True)
    owner_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
    guest_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    items: Mapped[str] = mapped_column(Text, nullable=False)

    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False, default="card")

    shipping_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    billing_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=OrderStatus.PAID.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Database Setup
# ═══════════════════════════════════════════════════════════════════════════════


async def create_database(
    url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    if ":memory:" in url:
        # every session must see the same in-memory database
        engine = create_async_engine(url, echo=False, poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


# ═══════════════════════════════════════════════════════════════════════════════
# Row mapping
# ═══════════════════════════════════════════════════════════════════════════════


def _dump_address(address: Address | None) -> str | None:
    return json.dumps(address.to_dict()) if address is not None else None


def _load_address(raw: str | None) -> Address | None:
    return Address.from_dict(json.loads(raw)) if raw else None


def _order_row(key: IntentId, fingerprint: str, order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "confirmation_key": key,
        "confirmation_status": RecordState.PENDING.value,
        "confirmation_fingerprint": fingerprint,
        "owner_id": order.owner_id,
        "guest_email": order.guest_email,
        "items": json.dumps([line.to_dict() for line in order.items]),
        "subtotal_cents": to_minor_units(order.breakdown.subtotal),
        "tax_cents": to_minor_units(order.breakdown.tax),
        "total_cents": to_minor_units(order.breakdown.total),
        "currency": order.payment.currency,
        "payment_method": order.payment.method,
        "shipping_address": _dump_address(order.shipping_address),
        "billing_address": _dump_address(order.billing_address),
        "status": order.status.value,
        "created_at": order.created_at,
    }


def _to_order(row: OrderTable) -> Order:
    return Order(
        id=row.id,
        owner_id=row.owner_id,
        guest_email=row.guest_email,
        items=tuple(OrderLine.from_dict(line) for line in json.loads(row.items)),
        breakdown=PriceBreakdown(
            subtotal=from_minor_units(row.subtotal_cents),
            tax=from_minor_units(row.tax_cents),
            total=from_minor_units(row.total_cents),
        ),
        payment=PaymentMethodSummary(
            intent_id=row.confirmation_key,
            method=row.payment_method,
            currency=row.currency,
        ),
        shipping_address=_load_address(row.shipping_address),
        billing_address=_load_address(row.billing_address),
        status=OrderStatus(row.status),
        created_at=_aware(row.created_at),
    )


def _to_record(row: OrderTable) -> ConfirmationRecord:
    return ConfirmationRecord(
        key=row.confirmation_key,
        state=RecordState(row.confirmation_status),
        order_id=row.id,
        fingerprint=row.confirmation_fingerprint,
        error=row.confirmation_error,
        created_at=_aware(row.created_at),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# Order store — ledger + repository
# ═══════════════════════════════════════════════════════════════════════════════


class SQLAlchemyOrderStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, key: IntentId) -> Result[ConfirmationRecord | None, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(OrderTable).where(OrderTable.confirmation_key == key))
                row = result.scalar_one_or_none()
                return Ok(_to_record(row) if row is not None else None)
        except Exception as e:
            return Error(StoreError(f"Failed to get: {e}", e))

    async def set_pending(self, key: IntentId, fingerprint: str, draft: Order) -> Result[bool, StoreError]:
        """INSERT ... ON CONFLICT DO NOTHING on the confirmation key."""
        try:
            async with self._session_factory() as session:
                stmt = (
                    sqlite_insert(OrderTable)
                    .values(**_order_row(key, fingerprint, draft))
                    .on_conflict_do_nothing(index_elements=["confirmation_key"])
                )
                cursor = cast(CursorResult[Any], await session.execute(stmt))
                await session.commit()
                return Ok(cursor.rowcount > 0)
        except Exception as e:
            return Error(StoreError(f"Failed to set pending: {e}", e))

    async def set_completed(self, key: IntentId) -> Result[None, StoreError]:
        return await self._mark(key, RecordState.COMPLETED, None)

    async def set_failed(self, key: IntentId, error: str) -> Result[None, StoreError]:
        return await self._mark(key, RecordState.FAILED, error)

    async def _mark(self, key: IntentId, state: RecordState, error: str | None) -> Result[None, StoreError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(OrderTable).where(OrderTable.confirmation_key == key))
                row = result.scalar_one_or_none()
                if row is None:
                    return Error(StoreError(f"Record not found: {key}"))
                row.confirmation_status = state.value
                row.confirmation_error = error
                await session.commit()
                return Ok(None)
        except Exception as e:
            return Error(StoreError(f"Failed to mark {state.value}: {e}", e))

    async def delete(self, key: IntentId) -> Result[bool, StoreError]:
        try:
            async with self._session_factory() as session:
                cursor = cast(
                    CursorResult[Any],
                    await session.execute(delete(OrderTable).where(OrderTable.confirmation_key == key)),
                )
                await session.commit()
                return Ok(cursor.rowcount > 0)
        except Exception as e:
            return Error(StoreError(f"Failed to delete: {e}", e))

    async def get_order(self, order_id: OrderId) -> Order | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderTable).where(
                    OrderTable.id == order_id,
                    OrderTable.confirmation_status == RecordState.COMPLETED.value,
                )
            )
            row = result.scalar_one_or_none()
            return _to_order(row) if row is not None else None

    async def list_orders(self, owner_id: OwnerId) -> list[Order]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(OrderTable)
                .where(
                    OrderTable.owner_id == owner_id,
                    OrderTable.confirmation_status == RecordState.COMPLETED.value,
                )
                .order_by(OrderTable.created_at.desc())
            )
            return [_to_order(row) for row in result.scalars()]

    async def set_status(self, order_id: OrderId, status: OrderStatus) -> Order:
        async with self._session_factory() as session:
            row = await session.get(OrderTable, order_id)
            if row is None:
                raise NotFound("order", order_id)
            row.status = status.value
            await session.commit()
            return _to_order(row)


# ═══════════════════════════════════════════════════════════════════════════════
# Cart rows
# ═══════════════════════════════════════════════════════════════════════════════


def _to_cart_record(row: CartTable) -> CartRecord:
    status = CartStatus(row.status)
    items = () if status is CartStatus.COMPLETED else tuple(CartItem.from_dict(i) for i in json.loads(row.items))
    return CartRecord(
        cart=Cart.of(row.id, row.owner_id, items),
        status=status,
        intent_id=row.intent_id,
        order_id=row.order_id,
    )


class SQLAlchemyCartRecords:
    """Cart rows for the checkout endpoints, and `CartRepository` for a signed-in `CartStore`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def find(self, cart_id: CartId) -> CartRecord | None:
        async with self._session_factory() as session:
            row = await session.get(CartTable, cart_id)
            return _to_cart_record(row) if row is not None else None

    async def attach_intent(self, cart_id: CartId, intent_id: IntentId) -> None:
        await self._update(cart_id, intent_id=intent_id, updated_at=_now())

    async def complete(self, cart_id: CartId, order_id: OrderId) -> None:
        await self._update(
            cart_id,
            items="[]",
            status=CartStatus.COMPLETED.value,
            order_id=order_id,
            updated_at=_now(),
        )
        logger.info("Cart %s completed by order %s", cart_id, order_id)

    async def _update(self, cart_id: CartId, **values: Any) -> None:
        async with self._session_factory() as session:
            cursor = cast(
                CursorResult[Any],
                await session.execute(update(CartTable).where(CartTable.id == cart_id).values(**values)),
            )
            await session.commit()
            if cursor.rowcount == 0:
                raise NotFound("cart", cart_id)

    async def get_cart(self, owner_id: OwnerId) -> Cart:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CartTable)
                .where(CartTable.owner_id == owner_id, CartTable.status == CartStatus.ACTIVE.value)
                .order_by(CartTable.updated_at.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            if row is not None:
                return _to_cart_record(row).cart

            row = CartTable(id=new_cart_id(), owner_id=owner_id, items="[]", updated_at=_now())
            session.add(row)
            await session.commit()
            return Cart.of(row.id, owner_id)

    async def save_cart(self, cart: Cart) -> None:
        if cart.owner_id is None:
            raise ValueError("guest carts are not stored server-side")
        items = json.dumps([item.to_dict() for item in cart.items])
        async with self._session_factory() as session:
            row = await session.get(CartTable, cart.id)
            if row is None:
                session.add(CartTable(id=cart.id, owner_id=cart.owner_id, items=items, updated_at=_now()))
            else:
                row.items = items
                row.status = CartStatus.ACTIVE.value
                row.updated_at = _now()
            await session.commit()


__all__ = (
    "Base",
    "ConfirmationMixin",
    "CartTable",
    "OrderTable",
    "create_database",
    "SQLAlchemyOrderStore",
    "SQLAlchemyCartRecords",
)
