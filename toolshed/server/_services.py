"""Composition root for the checkout backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine

from toolshed import orders as O
from toolshed import payment as P
from toolshed.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Services:
    intents: O.IntentService
    confirmations: O.ConfirmationService
    reader: O.OrderConfirmationReader
    engine: AsyncEngine | None = None

    @classmethod
    async def from_settings(cls, settings: Settings, gateway: P.PaymentGateway | None = None) -> Services:
        gateway = gateway or P.build_gateway(settings)
        session_factory, engine = await O.create_database(settings.database_url)
        store = O.SQLAlchemyOrderStore(session_factory)
        carts = O.SQLAlchemyCartRecords(session_factory)
        logger.info("Checkout backend ready (%s, gateway=%s)", settings.environment.value, settings.gateway.value)
        return cls(
            intents=O.IntentService(gateway, carts),
            confirmations=O.ConfirmationService(gateway, store, carts, policy=O.Policy.waiting(settings.confirm_wait)),
            reader=O.OrderConfirmationReader(store),
            engine=engine,
        )

    @classmethod
    def in_memory(
        cls,
        gateway: P.PaymentGateway,
        store: O.MemoryOrderStore | None = None,
        carts: O.MemoryCartRecords | None = None,
        *,
        policy: O.Policy = O.Policy(),
    ) -> Services:
        store = store or O.MemoryOrderStore()
        carts = carts or O.MemoryCartRecords()
        return cls(
            intents=O.IntentService(gateway, carts),
            confirmations=O.ConfirmationService(gateway, store, carts, policy=policy),
            reader=O.OrderConfirmationReader(store),
        )

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()


__all__ = ("Services",)
