"""
Checkout — the Shipping → Payment flow controller.

    from toolshed import checkout as C

    flow = C.CheckoutFlow(cart_store, new_attempt, bus=bus)
    await flow.mount()
"""

from toolshed.checkout._types import Step, AccountRequest, AccountCreator
from toolshed.checkout._flow import CART_PATH, CHECKOUT_PATH, CheckoutFlow

__all__ = (
    "Step",
    "AccountRequest",
    "AccountCreator",
    "CART_PATH",
    "CHECKOUT_PATH",
    "CheckoutFlow",
)
