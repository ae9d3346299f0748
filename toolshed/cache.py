"""
Cache — in-process LRU tier with a read-through executor.

    from toolshed import cache as C

    orders = C.cache(lambda oid: f"order:{oid}", fetch_order).tier(C.LocalTier(max_size=256)).build()
    result = await orders.get(order_id)   # Result[CacheResult[Order], E]

Only successful fetches are stored; errors always reach the caller.
"""

from __future__ import annotations

import fnmatch
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from kungfu import Error, LazyCoroResult, Ok, Result

logger = logging.getLogger(__name__)

type KeyFn[K] = Callable[[K], str]


# ═══════════════════════════════════════════════════════════════════════════════
# Tiers
# ═══════════════════════════════════════════════════════════════════════════════


class Tier[T](Protocol):
    @property
    def name(self) -> str: ...

    async def get(self, key: str) -> T | None: ...

    async def set(self, key: str, value: T) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def delete_pattern(self, pattern: str) -> int: ...


class LocalTier[T]:
    """In-memory LRU. Evicts the least recently read entry past `max_size`."""

    def __init__(self, max_size: int = 1000) -> None:
        self._max_size = max_size
        self._entries: OrderedDict[str, T] = OrderedDict()

    @property
    def name(self) -> str:
        return "local"

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> T | None:
        if key not in self._entries:
            return None
        self._entries.move_to_end(key)
        return self._entries[key]

    async def set(self, key: str, value: T) -> None:
        self._entries[key] = value
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_size:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        doomed = [k for k in self._entries if fnmatch.fnmatch(k, pattern)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)


# ═══════════════════════════════════════════════════════════════════════════════
# Results
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class CacheResult[T]:
    value: T
    hit: bool
    tier: str | None


# ═══════════════════════════════════════════════════════════════════════════════
# Builder / Executor
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class Cache[K, T, E]:
    key_fn: KeyFn[K]
    fetch: Callable[[K], LazyCoroResult[T, E]]
    tiers: tuple[Tier[T], ...] = ()

    def tier(self, t: Tier[T]) -> Cache[K, T, E]:
        return Cache(key_fn=self.key_fn, fetch=self.fetch, tiers=(*self.tiers, t))

    def build(self) -> CacheExecutor[K, T, E]:
        return CacheExecutor(key_fn=self.key_fn, fetch=self.fetch, tiers=self.tiers)


@dataclass(frozen=True, slots=True)
class CacheExecutor[K, T, E]:
    key_fn: KeyFn[K]
    fetch: Callable[[K], LazyCoroResult[T, E]]
    tiers: tuple[Tier[T], ...]

    def get(self, key: K) -> LazyCoroResult[CacheResult[T], E]:
        cache_key = self.key_fn(key)

        async def execute() -> Result[CacheResult[T], E]:
            for t in self.tiers:
                value = await t.get(cache_key)
                if value is not None:
                    return Ok(CacheResult(value=value, hit=True, tier=t.name))

            match await self.fetch(key):
                case Ok(value):
                    for t in self.tiers:
                        await t.set(cache_key, value)
                    return Ok(CacheResult(value=value, hit=False, tier=None))
                case Error(e):
                    return Error(e)

        return LazyCoroResult(execute)

    async def invalidate(self, key: K) -> bool:
        cache_key = self.key_fn(key)
        deleted = False
        for t in self.tiers:
            deleted = await t.delete(cache_key) or deleted
        if deleted:
            logger.debug("Invalidated %s", cache_key)
        return deleted


def cache[K, T, E](
    key: KeyFn[K],
    fetch: Callable[[K], LazyCoroResult[T, E]],
) -> Cache[K, T, E]:
    return Cache(key_fn=key, fetch=fetch)


__all__ = (
    "Tier",
    "LocalTier",
    "CacheResult",
    "Cache",
    "CacheExecutor",
    "cache",
)
