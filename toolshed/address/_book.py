"""Address book persistence contract."""

from __future__ import annotations

from typing import Protocol

from toolshed._types import OwnerId
from toolshed.address._types import AddressBook


class AddressBookRepository(Protocol):
    async def get_address_book(self, owner_id: OwnerId) -> AddressBook: ...

    async def save_address_book(self, owner_id: OwnerId, addresses: AddressBook) -> None: ...


class MemoryAddressBookRepository:
    def __init__(self, books: dict[OwnerId, AddressBook] | None = None) -> None:
        self.books: dict[OwnerId, AddressBook] = dict(books or {})

    async def get_address_book(self, owner_id: OwnerId) -> AddressBook:
        return self.books.get(owner_id, ())

    async def save_address_book(self, owner_id: OwnerId, addresses: AddressBook) -> None:
        self.books[owner_id] = tuple(addresses)


__all__ = ("AddressBookRepository", "MemoryAddressBookRepository")
