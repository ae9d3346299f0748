"""
toolshed — checkout and payment orchestration for a used-tools marketplace.

    from toolshed import cart as K       # Cart store, guest/remote backends
    from toolshed import address as A    # Address book defaults and validation
    from toolshed import payment as P    # Gateways and the payment attempt
    from toolshed import checkout as C   # Shipping → Payment flow
    from toolshed import orders as O     # Intents, confirmation ledger, order reads
    from toolshed import server          # FastAPI backend
"""

from toolshed import money
from toolshed import errors
from toolshed import saga
from toolshed import cache
from toolshed import graph
from toolshed._types import (
    GUEST_CART_ID,
    DEMO_ORDER_PREFIX,
)

__version__ = "0.1.0"

__all__ = (
    "money",
    "errors",
    "saga",
    "cache",
    "graph",
    "GUEST_CART_ID",
    "DEMO_ORDER_PREFIX",
)
