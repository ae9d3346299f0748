"""
Address — defaults, deduplication and validation for shipping/billing addresses.

    from toolshed import address as A

    book = A.dedupe_and_save(new, book, A.AddressType.BILLING)
    defaults = A.resolve_defaults(book)
    errors = A.validate_address(form)   # {} when valid
"""

from toolshed.address._types import (
    AddressType,
    Address,
    AddressBook,
    DefaultAddresses,
    new_address_id,
)
from toolshed.address._resolve import (
    PlaceKey,
    normalize,
    same_place,
    default_for,
    resolve_defaults,
    dedupe_and_save,
)
from toolshed.address._validate import REQUIRED_FIELDS, validate_address
from toolshed.address._book import AddressBookRepository, MemoryAddressBookRepository

__all__ = (
    "AddressType",
    "Address",
    "AddressBook",
    "DefaultAddresses",
    "new_address_id",
    "PlaceKey",
    "normalize",
    "same_place",
    "default_for",
    "resolve_defaults",
    "dedupe_and_save",
    "REQUIRED_FIELDS",
    "validate_address",
    "AddressBookRepository",
    "MemoryAddressBookRepository",
)
