"""Read-only demo orders for ids carrying the demo prefix. Never persisted."""

from __future__ import annotations

from decimal import Decimal

from toolshed._types import DEMO_ORDER_PREFIX, OrderId
from toolshed.money import PriceBreakdown
from toolshed.orders._types import Order, OrderLine, OrderStatus, PaymentMethodSummary

DEMO_LINES = (
    OrderLine(listing_id="mock-tool-1", name="Milwaukee Drill", unit_price=Decimal("149.99"), quantity=1),
    OrderLine(listing_id="mock-tool-2", name="Tool Bit Set", unit_price=Decimal("49.99"), quantity=1),
)


def is_demo_order(order_id: OrderId) -> bool:
    return order_id.startswith(DEMO_ORDER_PREFIX)


def demo_order(order_id: OrderId, principal: str | None) -> Order:
    """Sample order owned by whoever is looking at it."""
    subtotal = sum((line.line_total for line in DEMO_LINES), Decimal("0"))
    return Order(
        id=order_id,
        owner_id=principal,
        guest_email=None,
        items=DEMO_LINES,
        breakdown=PriceBreakdown.of(subtotal),
        payment=PaymentMethodSummary(intent_id=f"pi_demo_{order_id.removeprefix(DEMO_ORDER_PREFIX)}"),
        status=OrderStatus.PAID,
        synthetic=True,
    )


__all__ = ("DEMO_LINES", "is_demo_order", "demo_order")
