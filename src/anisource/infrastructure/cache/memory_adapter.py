"""In-memory cache adapter - process-local, non-durable, passive expiry."""

from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import structlog

log = structlog.get_logger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Any
    expires_at: float | None  # clock() seconds; None = never


class InMemoryCacheAdapter:
    """Async CachePort implementation backed by a plain dict.

    - Expiry is checked on read; expired entries are deleted lazily.
    - All operations complete without awaiting, so per-key get/set are
      atomic under a single asyncio event loop.
    - ``max_entries`` bounds memory: the oldest insertion is evicted first.

    Args:
        ttl_seconds: Default TTL for `set()` without explicit value.
        max_entries: Maximum number of live entries (0 = unbounded).
        clock: Monotonic time source (injectable for tests).
    """

    def __init__(
        self,
        ttl_seconds: int = 900,
        max_entries: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()

        log.debug(
            "memory_cache_init",
            default_ttl=ttl_seconds,
            max_entries=max_entries,
        )

    # --- Context Manager ---
    async def __aenter__(self) -> InMemoryCacheAdapter:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        self._entries.clear()

    # --- helpers ---
    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and self._clock() > entry.expires_at:
            del self._entries[key]
            log.debug("cache_expired", key=key)
            return None
        return entry

    def __len__(self) -> int:
        return len(self._entries)

    # --- CachePort implementation ---
    async def get(self, key: str) -> Optional[Any]:
        entry = self._live_entry(key)
        log.debug("cache_get", key=key, hit=entry is not None)
        return entry.value if entry is not None else None

    async def set(self, key: str, value: Any, *, ttl: int | None = None) -> None:
        """Write with TTL (default: self.default_ttl; 0 = no expiry)."""
        expire_time = ttl if ttl is not None else self.default_ttl
        expires_at = self._clock() + expire_time if expire_time > 0 else None

        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(key=key, value=value, expires_at=expires_at)

        if self.max_entries and len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            log.debug("cache_evicted", key=evicted)

        log.debug("cache_set", key=key, ttl=expire_time)

    async def delete(self, key: str) -> bool:
        deleted = self._entries.pop(key, None) is not None
        log.debug("cache_delete", key=key, deleted=deleted)
        return deleted

    async def exists(self, key: str) -> bool:
        return self._live_entry(key) is not None

    async def clear(self) -> None:
        """Delete ALL keys."""
        self._entries.clear()
        log.warning("cache_cleared")

    def purge_expired(self) -> int:
        """Drop every expired entry now. Returns the number removed."""
        now = self._clock()
        expired = [
            k
            for k, e in self._entries.items()
            if e.expires_at is not None and now > e.expires_at
        ]
        for k in expired:
            del self._entries[k]
        return len(expired)
