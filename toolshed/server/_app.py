"""
FastAPI application for the checkout backend.

    services = await Services.from_settings(Settings.from_env())
    app = create_app(services)

Without `services` the app builds them from the environment on startup.
Every failure leaves as `{"error": message}` with a status chosen by
exception type.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from kungfu import Error, Ok

from toolshed import __version__
from toolshed.config import Settings
from toolshed.errors import (
    AccessDenied,
    CheckoutError,
    ConfigError,
    ConflictError,
    GatewayError,
    NetworkError,
    NotFound,
    OrderPendingError,
    StateError,
    ValidationError,
)
from toolshed.server._schemas import (
    ConfirmPaymentBody,
    ConfirmResponse,
    CreateIntentBody,
    IntentResponse,
    StatusChangeBody,
    StatusResponse,
)
from toolshed.server._services import Services

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[CheckoutError], int] = {
    ValidationError: 400,
    NotFound: 404,
    AccessDenied: 403,
    ConflictError: 409,
    StateError: 409,
    GatewayError: 402,
    NetworkError: 502,
    OrderPendingError: 500,
    ConfigError: 500,
}


def status_for(exc: CheckoutError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[cls]
    return 500


def _services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Services | None = None, *, settings: Settings | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = services is None
        if owned:
            app.state.services = await Services.from_settings(settings or Settings.from_env())
        try:
            yield
        finally:
            if owned:
                await app.state.services.close()

    app = FastAPI(title="toolshed checkout", version=__version__, lifespan=lifespan)
    if services is not None:
        app.state.services = services

    # ═══════════════════════════════════════════════════════════════════════════
    # Errors
    # ═══════════════════════════════════════════════════════════════════════════

    @app.exception_handler(CheckoutError)
    async def checkout_error_handler(request: Request, exc: CheckoutError) -> JSONResponse:
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc, exc.code)
        return JSONResponse(status_code=status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        fields = sorted({".".join(str(p) for p in err["loc"][1:]) for err in exc.errors()})
        return JSONResponse(status_code=400, content={"error": f"Invalid request: {', '.join(fields)}"})

    # ═══════════════════════════════════════════════════════════════════════════
    # Routes
    # ═══════════════════════════════════════════════════════════════════════════

    @app.get("/", response_model=StatusResponse)
    async def status() -> StatusResponse:
        return StatusResponse(timestamp=datetime.now(UTC), version=__version__)

    @app.post("/create-payment-intent", response_model=IntentResponse)
    async def create_payment_intent(body: CreateIntentBody, request: Request) -> IntentResponse:
        match await _services(request).intents.create(body.to_domain()):
            case Ok(created):
                return IntentResponse.from_domain(created)
            case Error(e):
                raise e

    @app.post("/confirm-payment", response_model=ConfirmResponse)
    async def confirm_payment(body: ConfirmPaymentBody, request: Request) -> ConfirmResponse:
        match await _services(request).confirmations.confirm(body.to_domain()):
            case Ok(confirmed):
                return ConfirmResponse.from_domain(confirmed)
            case Error(e):
                raise e

    @app.get("/orders")
    async def list_orders(
        request: Request,
        user_id: Annotated[str, Header(alias="X-User-Id")],
    ) -> dict[str, Any]:
        orders = await _services(request).reader.list_orders(user_id)
        return {"orders": [order.to_dict() for order in orders], "count": len(orders)}

    @app.get("/orders/{order_id}")
    async def get_order(
        order_id: str,
        request: Request,
        user_id: Annotated[str | None, Header(alias="X-User-Id")] = None,
    ) -> dict[str, Any]:
        order = await _services(request).reader.load_order(order_id, user_id)
        return order.to_dict()

    @app.post("/orders/{order_id}/status")
    async def change_order_status(order_id: str, body: StatusChangeBody, request: Request) -> dict[str, Any]:
        order = await _services(request).reader.update_status(order_id, body.status)
        return order.to_dict()

    return app


__all__ = ("ERROR_STATUS_CODES", "status_for", "create_app")
