"""Exceptions raised across the checkout subsystem."""

from __future__ import annotations

from collections.abc import Callable


class CheckoutError(Exception):
    """Base exception. `message` is always safe to show to the shopper."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(CheckoutError):
    """Raised when one or more form fields are invalid."""

    def __init__(self, errors: dict[str, str], message: str | None = None) -> None:
        self.errors = dict(errors)
        fields = ", ".join(sorted(self.errors))
        super().__init__("VALIDATION", message or f"Please correct: {fields}")


class GatewayError(CheckoutError):
    """Raised when the payment gateway refuses a charge.

    `reason` is one of the fixed decline reasons; `detail` keeps the raw
    gateway text for logs only.
    """

    def __init__(self, reason: str, message: str, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        super().__init__("GATEWAY", message)


class NetworkError(CheckoutError):
    """Raised when the backend or gateway cannot be reached."""

    def __init__(self, operation: str, cause: str | None = None) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(
            "NETWORK",
            f"We couldn't reach the payment service ({operation}). Please try again.",
        )


class AccessDenied(CheckoutError, PermissionError):
    """Raised when a principal touches an order or cart it does not own."""

    def __init__(self, resource: str, key: str) -> None:
        self.resource = resource
        self.key = key
        super().__init__("FORBIDDEN", f"You do not have permission to view this {resource}")


class StateError(CheckoutError):
    """Raised on an illegal state transition."""

    def __init__(self, current: str, attempted: str) -> None:
        self.current = current
        self.attempted = attempted
        super().__init__("STATE", f"Cannot {attempted} while {current}")


class OrderPendingError(CheckoutError):
    """Raised when the charge succeeded but no order could be created."""

    def __init__(self, intent_id: str, cause: str | None = None) -> None:
        self.intent_id = intent_id
        self.cause = cause
        super().__init__(
            "ORDER_PENDING",
            "Payment succeeded, but order creation failed. Please contact support.",
        )


class NotFound(CheckoutError):
    """Raised when a cart or order does not exist."""

    def __init__(self, entity: str, key: str) -> None:
        self.entity = entity
        self.key = key
        super().__init__("NOT_FOUND", f"{entity.capitalize()} not found")


class ConflictError(CheckoutError):
    """Raised when a confirmation reuses an intent id with a different cart."""

    def __init__(self, key: str, message: str | None = None) -> None:
        self.key = key
        super().__init__("CONFLICT", message or f"Payment {key} was already used for a different cart")


class ConfigError(CheckoutError):
    """Raised when settings are missing or inconsistent."""

    def __init__(self, setting: str, reason: str) -> None:
        self.setting = setting
        super().__init__("CONFIG", f"{setting}: {reason}")


def as_checkout_error(operation: str) -> Callable[[Exception], CheckoutError]:
    """`on_error` for `catching_async`: taxonomy errors pass through, anything else is a NetworkError."""

    def convert(exc: Exception) -> CheckoutError:
        if isinstance(exc, CheckoutError):
            return exc
        return NetworkError(operation, f"{type(exc).__name__}: {exc}")

    return convert


__all__ = (
    "CheckoutError",
    "ValidationError",
    "GatewayError",
    "NetworkError",
    "AccessDenied",
    "StateError",
    "OrderPendingError",
    "NotFound",
    "ConflictError",
    "ConfigError",
    "as_checkout_error",
)
