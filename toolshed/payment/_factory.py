"""
Composition-root factories. Settings are read here once; nothing they build
looks at the environment again.
"""

from __future__ import annotations

import logging

from toolshed.config import GatewayKind, Settings
from toolshed.errors import ConfigError
from toolshed.payment._backend import HttpCheckoutBackend
from toolshed.payment._fake import FakeGateway
from toolshed.payment._gateway import PaymentGateway
from toolshed.payment._stripe import StripeGateway, WalletProbe
from toolshed.payment._synthetic import SyntheticCheckout

logger = logging.getLogger(__name__)


def build_gateway(settings: Settings, wallet_probe: WalletProbe | None = None) -> PaymentGateway:
    match settings.gateway:
        case GatewayKind.STRIPE:
            if not settings.stripe_secret_key:
                raise ConfigError("STRIPE_SECRET_KEY", "required when the stripe gateway is selected")
            return StripeGateway(
                settings.stripe_secret_key,
                timeout=settings.http_timeout,
                wallet_probe=wallet_probe,
            )
        case GatewayKind.FAKE:
            if settings.is_production:
                raise ConfigError("TOOLSHED_GATEWAY", "the fake gateway cannot run in production")
            logger.info("Using the in-memory fake payment gateway")
            return FakeGateway()


def build_fallback(settings: Settings) -> SyntheticCheckout | None:
    """Synthetic checkout for development environments, None in production."""
    if not settings.allows_synthetic_fallback:
        return None
    return SyntheticCheckout()


def build_backend(settings: Settings) -> HttpCheckoutBackend:
    return HttpCheckoutBackend(settings.api_url, timeout=settings.http_timeout)


__all__ = ("build_gateway", "build_fallback", "build_backend")
