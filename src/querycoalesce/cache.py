from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog

from querycoalesce.keys import default_resolver
from querycoalesce.resolver import Resolver, invoke_resolver
from querycoalesce.utils.time import is_expired, monotonic_s

log = structlog.get_logger("querycoalesce.cache")


@dataclass(slots=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    expired: int = 0
    evictions: int = 0
    failures: int = 0


@dataclass(slots=True)
class CacheEntry:
    key: str
    future: asyncio.Future
    inserted_at: float


class CacheStore:
    """
    TTL cache of in-flight-or-settled results with max size.

    - A live entry is shared by every caller with the same key, whether its
      future is still pending (in-flight dedup) or already settled.
    - Entries are inserted before the invocation is awaited.
    - A failed invocation drops its entry at once, so the next call retries.
    - Over max_size, the oldest *inserted* entry goes first. Reads never
      reorder entries.
    - Expiry is checked on lookup only; nothing sweeps in the background.
    """

    def __init__(
        self,
        fn: Callable[..., Awaitable[Any]],
        ttl_s: float,
        resolver: Resolver = default_resolver,
        max_size: Optional[int] = None,
        clock: Callable[[], float] = monotonic_s,
    ):
        if ttl_s < 0:
            raise ValueError("ttl_s must be >= 0")
        if max_size is not None and max_size < 1:
            raise ValueError("max_size must be >= 1 (or None for unbounded)")
        self._fn = fn
        self.ttl_s = float(ttl_s)
        self.max_size = max_size
        self._resolver = resolver
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}  # insertion order == eviction order
        self.stats = CacheStats()

    # ---------------------------- public API ---------------------------- #

    async def call(self, *args: Any, **kwargs: Any) -> Any:
        key = invoke_resolver(self._resolver, args, kwargs)
        fut = self._lookup_or_invoke(key, args, kwargs)
        # one caller giving up must not cancel the shared invocation
        return await asyncio.shield(fut)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def keys(self) -> list[str]:
        """Stored keys, oldest insertion first (expired entries included)."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    # --------------------------- core internals ------------------------- #

    def _live_entry(self, key: str) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if is_expired(entry.inserted_at, self.ttl_s, self._clock()):
            return None
        return entry

    def _lookup_or_invoke(self, key: str, args: tuple, kwargs: dict) -> asyncio.Future:
        entry = self._entries.get(key)
        if entry is not None:
            if not is_expired(entry.inserted_at, self.ttl_s, self._clock()):
                self.stats.hits += 1
                log.debug("cache_hit", key=key, pending=not entry.future.done())
                return entry.future
            self.stats.expired += 1
            log.debug("cache_expired", key=key)

        self.stats.misses += 1
        # fn raising synchronously propagates without touching the map
        fut = asyncio.ensure_future(self._fn(*args, **kwargs))
        entry = CacheEntry(key=key, future=fut, inserted_at=self._clock())
        self._insert(entry)
        fut.add_done_callback(lambda f: self._on_settled(entry, f))
        log.debug("cache_miss", key=key, size=len(self._entries))
        return fut

    def _insert(self, entry: CacheEntry) -> None:
        # re-inserting moves a replaced (expired) key to the newest position
        self._entries.pop(entry.key, None)
        self._entries[entry.key] = entry
        if self.max_size is None:
            return
        while len(self._entries) > self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            self.stats.evictions += 1
            log.debug("cache_evict", key=oldest, max_size=self.max_size)

    def _on_settled(self, entry: CacheEntry, fut: asyncio.Future) -> None:
        if not fut.cancelled() and fut.exception() is None:
            return
        self.stats.failures += 1
        err = "cancelled" if fut.cancelled() else str(fut.exception())
        # only drop the entry this future belongs to; a newer one may have replaced it
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]
        log.warning("cache_invocation_failed", key=entry.key, err=err)
