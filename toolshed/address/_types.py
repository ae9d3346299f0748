"""Address types."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class AddressType(StrEnum):
    SHIPPING = "shipping"
    BILLING = "billing"
    BOTH = "both"

    def covers(self, other: AddressType) -> bool:
        """True when an address of this type can serve `other`."""
        return self is AddressType.BOTH or self is other


def new_address_id() -> str:
    return f"addr_{uuid.uuid4().hex[:12]}"


@dataclass(frozen=True, slots=True)
class Address:
    first_name: str
    last_name: str
    street: str
    city: str
    state: str
    postal_code: str
    type: AddressType = AddressType.SHIPPING
    is_default: bool = False
    apt_or_suite: str | None = None
    country: str = "US"
    phone: str | None = None
    email: str | None = None
    id: str = field(default_factory=new_address_id)
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def with_type(self, type: AddressType) -> Address:
        return replace(self, type=type)

    def with_default(self, is_default: bool) -> Address:
        return replace(self, is_default=is_default)

    @classmethod
    def from_form(cls, form: Mapping[str, Any], type: AddressType = AddressType.SHIPPING) -> Address:
        """Build from checkout form fields (`line1`/`line2` naming)."""
        return cls(
            first_name=str(form.get("firstName") or "").strip(),
            last_name=str(form.get("lastName") or "").strip(),
            street=str(form.get("line1") or "").strip(),
            apt_or_suite=(str(form["line2"]).strip() or None) if form.get("line2") else None,
            city=str(form.get("city") or "").strip(),
            state=str(form.get("state") or "").strip(),
            postal_code=str(form.get("postalCode") or "").strip(),
            country=str(form.get("country") or "US").strip(),
            phone=(str(form["phone"]).strip() or None) if form.get("phone") else None,
            email=(str(form["email"]).strip() or None) if form.get("email") else None,
            type=type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "isDefault": self.is_default,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "street": self.street,
            "aptOrSuite": self.apt_or_suite,
            "city": self.city,
            "state": self.state,
            "postalCode": self.postal_code,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
            "createdAt": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> Address:
        created = raw.get("createdAt")
        return cls(
            id=str(raw.get("id") or new_address_id()),
            type=AddressType(raw.get("type", AddressType.SHIPPING)),
            is_default=bool(raw.get("isDefault", False)),
            first_name=str(raw.get("firstName", "")),
            last_name=str(raw.get("lastName", "")),
            street=str(raw.get("street", "")),
            apt_or_suite=raw.get("aptOrSuite"),
            city=str(raw.get("city", "")),
            state=str(raw.get("state", "")),
            postal_code=str(raw.get("postalCode", "")),
            country=str(raw.get("country", "US")),
            phone=raw.get("phone"),
            email=raw.get("email"),
            created_at=datetime.fromisoformat(created) if created else datetime.now(UTC),
        )


type AddressBook = tuple[Address, ...]


@dataclass(frozen=True, slots=True)
class DefaultAddresses:
    shipping: Address | None
    billing: Address | None


__all__ = (
    "AddressType",
    "Address",
    "AddressBook",
    "DefaultAddresses",
    "new_address_id",
)
