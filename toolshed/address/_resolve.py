"""
Address resolution — defaults per type and duplicate-free saving.

Two addresses are the same place when street, city, state and postal code
match after lower-casing and collapsing whitespace. Names, unit numbers and
phone numbers do not take part in the comparison.

Several addresses marked default for one type is a data integrity violation.
When it happens the most recently created one wins, and on equal timestamps
the one later in the book wins.
"""

from __future__ import annotations

import logging
import re

from toolshed.address._types import Address, AddressBook, AddressType, DefaultAddresses

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

type PlaceKey = tuple[str, str, str, str]


def _collapse(value: str | None) -> str:
    return _WHITESPACE.sub(" ", (value or "").strip()).lower()


def normalize(address: Address) -> PlaceKey:
    return (
        _collapse(address.street),
        _collapse(address.city),
        _collapse(address.state),
        _collapse(address.postal_code),
    )


def same_place(a: Address, b: Address) -> bool:
    return normalize(a) == normalize(b)


# ═══════════════════════════════════════════════════════════════════════════════
# Defaults
# ═══════════════════════════════════════════════════════════════════════════════


def _latest(candidates: list[tuple[int, Address]]) -> Address | None:
    if not candidates:
        return None
    return max(candidates, key=lambda pair: (pair[1].created_at, pair[0]))[1]


def default_for(book: AddressBook, type: AddressType) -> Address | None:
    """Explicit default for `type`, else any address that can serve it."""
    serving = [(i, a) for i, a in enumerate(book) if a.type.covers(type)]
    defaults = [(i, a) for i, a in serving if a.is_default]
    if len(defaults) > 1:
        logger.warning("%d addresses are default for %s; using the newest", len(defaults), type)
    return _latest(defaults) or _latest(serving)


def resolve_defaults(book: AddressBook) -> DefaultAddresses:
    return DefaultAddresses(
        shipping=default_for(book, AddressType.SHIPPING),
        billing=default_for(book, AddressType.BILLING),
    )


def _has_default(book: AddressBook, type: AddressType) -> bool:
    if type is AddressType.BOTH:
        return _has_default(book, AddressType.SHIPPING) or _has_default(book, AddressType.BILLING)
    return any(a.is_default and a.type.covers(type) for a in book)


# ═══════════════════════════════════════════════════════════════════════════════
# Saving
# ═══════════════════════════════════════════════════════════════════════════════


def dedupe_and_save(new: Address, book: AddressBook, requested_type: AddressType) -> AddressBook:
    """
    Save `new` for `requested_type` without creating a duplicate.

    - Same place already saved: nothing is inserted. If the saved entry's
      type is narrower than the request it is widened to `both`.
    - Otherwise `new` is appended, and marked default only when no address
      is default for that type yet.

    Saving the same address twice is a no-op the second time.
    """
    for index, existing in enumerate(book):
        if not same_place(existing, new):
            continue
        if existing.type is requested_type or existing.type is AddressType.BOTH:
            return book
        widened = existing.with_type(AddressType.BOTH)
        logger.info("Address %s now used for both shipping and billing", existing.id)
        updated = list(book)
        updated[index] = widened
        if widened.is_default:
            # the widened default now also covers the other type
            added = AddressType.BILLING if existing.type is AddressType.SHIPPING else AddressType.SHIPPING
            updated = [
                a.with_default(False) if i != index and a.is_default and a.type.covers(added) else a
                for i, a in enumerate(updated)
            ]
        return tuple(updated)

    entry = new.with_type(requested_type).with_default(not _has_default(book, requested_type))
    return (*book, entry)


__all__ = (
    "PlaceKey",
    "normalize",
    "same_place",
    "default_for",
    "resolve_defaults",
    "dedupe_and_save",
)
