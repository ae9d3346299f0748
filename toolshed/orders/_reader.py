"""
OrderConfirmationReader — what the confirmation page and order history read.

    reader = OrderConfirmationReader(orders)
    order = await reader.load_order("ord_3f2a...", principal=user_id)
    order = await reader.load_order("order-1712", principal=user_id)   # demo, never queried

Guest orders are viewable with the checkout email as principal.
"""

from __future__ import annotations

import logging

from combinators import lift as L
from kungfu import Error, LazyCoroResult, Ok

from toolshed import cache as C
from toolshed._types import OrderId, OwnerId
from toolshed.errors import AccessDenied, CheckoutError, NotFound, StateError, as_checkout_error
from toolshed.orders._demo import demo_order, is_demo_order
from toolshed.orders._ledger import OrderRepository
from toolshed.orders._types import Order, OrderStatus

logger = logging.getLogger(__name__)


class OrderConfirmationReader:
    def __init__(self, orders: OrderRepository, *, cache_size: int = 256) -> None:
        self._orders = orders
        self._cache = (
            C.cache(lambda order_id: f"order:{order_id}", self._fetch)
            .tier(C.LocalTier(max_size=cache_size))
            .build()
        )

    def _fetch(self, order_id: OrderId) -> LazyCoroResult[Order, CheckoutError]:
        async def fetch() -> Order:
            order = await self._orders.get_order(order_id)
            if order is None:
                raise NotFound("order", order_id)
            return order

        return L.catching_async(fetch, on_error=as_checkout_error("load order"))

    async def load_order(self, order_id: OrderId, principal: str | None) -> Order:
        """Raises `AccessDenied` (a `PermissionError`) when `principal` does not own the order."""
        if is_demo_order(order_id):
            logger.info("Serving demo order %s", order_id)
            return demo_order(order_id, principal)

        match await self._cache.get(order_id):
            case Ok(cached):
                order = cached.value
            case Error(e):
                raise e

        if not order.viewable_by(principal):
            logger.warning("Principal %s denied order %s", principal, order_id)
            raise AccessDenied("order", order_id)
        return order

    async def list_orders(self, owner_id: OwnerId) -> list[Order]:
        orders = await self._orders.list_orders(owner_id)
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def update_status(self, order_id: OrderId, status: OrderStatus) -> Order:
        order = await self._orders.get_order(order_id)
        if order is None:
            raise NotFound("order", order_id)
        if not order.status.can_become(status):
            raise StateError(f"order is {order.status}", f"mark order {status}")

        updated = await self._orders.set_status(order_id, status)
        await self._cache.invalidate(order_id)
        logger.info("Order %s moved %s → %s", order_id, order.status, status)
        return updated


__all__ = ("OrderConfirmationReader",)
