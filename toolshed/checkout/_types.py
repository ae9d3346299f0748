"""Checkout flow types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from toolshed._types import OwnerId


class Step(StrEnum):
    SHIPPING = "shipping"
    PAYMENT = "payment"


@dataclass(frozen=True, slots=True)
class AccountRequest:
    """Guest asked to turn this checkout into an account."""

    email: str
    password: str
    first_name: str = ""
    last_name: str = ""


class AccountCreator(Protocol):
    """Auth provider call that registers a new account."""

    async def create_account(self, request: AccountRequest) -> OwnerId: ...


__all__ = ("Step", "AccountRequest", "AccountCreator")
