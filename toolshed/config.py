"""
Settings — read once from the environment at startup.

    settings = Settings.from_env()
    gateway = P.build_gateway(settings)

Nothing below the composition root reads `os.environ`.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from toolshed.errors import ConfigError

DEFAULT_API_URL = "http://localhost:8000"
DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
DEFAULT_HTTP_TIMEOUT = 10.0
DEFAULT_CONFIRM_WAIT = 30.0


class Environment(Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class GatewayKind(Enum):
    STRIPE = "stripe"
    FAKE = "fake"


@dataclass(frozen=True, slots=True)
class Settings:
    environment: Environment = Environment.DEVELOPMENT
    api_url: str = DEFAULT_API_URL
    database_url: str = DEFAULT_DATABASE_URL
    gateway: GatewayKind = GatewayKind.FAKE
    stripe_secret_key: str | None = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    confirm_wait: float = DEFAULT_CONFIRM_WAIT

    @property
    def is_production(self) -> bool:
        return self.environment is Environment.PRODUCTION

    @property
    def allows_synthetic_fallback(self) -> bool:
        return not self.is_production

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if env is None else env

        environment = _parse_enum(Environment, "TOOLSHED_ENV", env.get("TOOLSHED_ENV", "development"))
        default_gateway = "stripe" if environment is Environment.PRODUCTION else "fake"
        gateway = _parse_enum(GatewayKind, "TOOLSHED_GATEWAY", env.get("TOOLSHED_GATEWAY", default_gateway))

        secret = env.get("STRIPE_SECRET_KEY") or None
        if gateway is GatewayKind.STRIPE and secret is None:
            raise ConfigError("STRIPE_SECRET_KEY", "required when the stripe gateway is selected")
        if environment is Environment.PRODUCTION and gateway is GatewayKind.FAKE:
            raise ConfigError("TOOLSHED_GATEWAY", "the fake gateway cannot run in production")

        return cls(
            environment=environment,
            api_url=env.get("TOOLSHED_API_URL", DEFAULT_API_URL).rstrip("/"),
            database_url=env.get("TOOLSHED_DATABASE_URL", DEFAULT_DATABASE_URL),
            gateway=gateway,
            stripe_secret_key=secret,
            http_timeout=_parse_float("TOOLSHED_HTTP_TIMEOUT", env.get("TOOLSHED_HTTP_TIMEOUT"), DEFAULT_HTTP_TIMEOUT),
            confirm_wait=_parse_float("TOOLSHED_CONFIRM_WAIT", env.get("TOOLSHED_CONFIRM_WAIT"), DEFAULT_CONFIRM_WAIT),
        )


def _parse_enum[E: Enum](enum: type[E], name: str, raw: str) -> E:
    try:
        return enum(raw.strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum)
        raise ConfigError(name, f"expected one of {allowed}, got {raw!r}") from None


def _parse_float(name: str, raw: str | None, default: float) -> float:
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(name, f"expected a number, got {raw!r}") from None
    if value <= 0:
        raise ConfigError(name, "must be positive")
    return value


__all__ = (
    "Environment",
    "GatewayKind",
    "Settings",
)
