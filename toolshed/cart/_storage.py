"""
Client-local key/value storage (the browser's localStorage contract).
"""

from __future__ import annotations

from typing import Protocol

GUEST_CART_KEY = "toolshed_guest_cart"
RECENTLY_VIEWED_KEY = "toolshed_recently_viewed"


class LocalStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryLocalStorage:
    """Dict-backed storage for tests and headless clients."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


__all__ = (
    "GUEST_CART_KEY",
    "RECENTLY_VIEWED_KEY",
    "LocalStorage",
    "MemoryLocalStorage",
)
