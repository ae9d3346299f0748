"""
Address form validation.

Returns a field-keyed error map (empty when valid) so each offending input
can be highlighted on its own.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

REQUIRED_FIELDS: dict[str, str] = {
    "firstName": "First name",
    "lastName": "Last name",
    "line1": "Street address",
    "city": "City",
    "state": "State",
    "postalCode": "ZIP code",
    "email": "Email",
}

POSTAL_CODE = re.compile(r"^\d{5}(-\d{4})?$")
PHONE = re.compile(r"^(\+?1[\s.-]?)?\(?\d{3}\)?[\s.-]?\d{3}[\s.-]?\d{4}$")
EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _text(form: Mapping[str, Any], key: str) -> str:
    value = form.get(key)
    return "" if value is None else str(value).strip()


def validate_address(form: Mapping[str, Any]) -> dict[str, str]:
    errors: dict[str, str] = {}

    for key, label in REQUIRED_FIELDS.items():
        if not _text(form, key):
            errors[key] = f"{label} is required"

    postal = _text(form, "postalCode")
    if postal and not POSTAL_CODE.match(postal):
        errors["postalCode"] = "Please enter a valid ZIP code"

    phone = _text(form, "phone")
    if phone and not PHONE.match(phone):
        errors["phone"] = "Please enter a valid phone number"

    email = _text(form, "email")
    if email and not EMAIL.match(email):
        errors["email"] = "Please enter a valid email address"

    return errors


__all__ = ("REQUIRED_FIELDS", "validate_address")
