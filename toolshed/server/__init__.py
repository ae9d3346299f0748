"""
Server — the checkout backend over HTTP.

    from toolshed import server

    app = server.create_app(await server.Services.from_settings(settings))
"""

from toolshed.server._schemas import (
    CreateIntentBody,
    ConfirmPaymentBody,
    StatusChangeBody,
    IntentResponse,
    ConfirmResponse,
    StatusResponse,
)
from toolshed.server._services import Services
from toolshed.server._app import ERROR_STATUS_CODES, status_for, create_app

__all__ = (
    # Schemas
    "CreateIntentBody",
    "ConfirmPaymentBody",
    "StatusChangeBody",
    "IntentResponse",
    "ConfirmResponse",
    "StatusResponse",
    # App
    "Services",
    "ERROR_STATUS_CODES",
    "status_for",
    "create_app",
)
