"""
Recently viewed listings, most recent first, capped at 20.
"""

from __future__ import annotations

import json
import logging

from toolshed._types import ListingId
from toolshed.cart._storage import RECENTLY_VIEWED_KEY, LocalStorage

logger = logging.getLogger(__name__)

MAX_RECENTLY_VIEWED = 20


class RecentlyViewed:
    def __init__(
        self,
        storage: LocalStorage,
        key: str = RECENTLY_VIEWED_KEY,
        limit: int = MAX_RECENTLY_VIEWED,
    ) -> None:
        self._storage = storage
        self._key = key
        self._limit = limit

    def record(self, listing_id: ListingId) -> list[ListingId]:
        ids = [listing_id, *(i for i in self._read() if i != listing_id)][: self._limit]
        self._storage.set_item(self._key, json.dumps(ids))
        return ids

    def list(self, exclude: ListingId | None = None) -> list[ListingId]:
        """Stored ids with the listing currently on screen left out."""
        return [i for i in self._read() if i != exclude]

    def clear(self) -> None:
        self._storage.remove_item(self._key)

    def _read(self) -> list[ListingId]:
        raw = self._storage.get_item(self._key)
        if raw is None:
            return []
        try:
            ids = json.loads(raw)
        except ValueError:
            logger.warning("Resetting unreadable recently-viewed list")
            return []
        if not isinstance(ids, list):
            return []
        return [str(i) for i in ids][: self._limit]


__all__ = ("MAX_RECENTLY_VIEWED", "RecentlyViewed")
