"""Short-TTL memoization of successful resolutions.

Wraps any ``CachePort``.  The cache is an optimisation only: every
backend failure is logged and treated as a miss (reads) or ignored
(writes), never raised.
"""

from __future__ import annotations

import structlog

from anisource.domain.entities import ResolutionResult
from anisource.domain.ports.cache import CachePort
from anisource.infrastructure.matching.titles import normalize_title

log = structlog.get_logger(__name__)

_KEY_PREFIX = "resolution"


def resolution_cache_key(source_id: str | None, title: str, episode: int) -> str:
    """Key for ``(source_id or "", normalized title, requested episode)``."""
    return f"{_KEY_PREFIX}:{source_id or ''}|{normalize_title(title)}|{episode}"


class ResultCache:
    """Typed facade over a ``CachePort`` for ``ResolutionResult`` values."""

    def __init__(self, cache: CachePort | None, *, default_ttl: int = 900) -> None:
        self._cache = cache
        self._default_ttl = default_ttl

    async def get(self, key: str) -> ResolutionResult | None:
        if self._cache is None:
            return None
        try:
            value = await self._cache.get(key)
        except Exception:  # noqa: BLE001
            log.warning("result_cache_unavailable", op="get", key=key, exc_info=True)
            return None
        if isinstance(value, ResolutionResult):
            return value
        return None

    async def set(
        self,
        key: str,
        value: ResolutionResult,
        ttl: int | None = None,
    ) -> None:
        if self._cache is None:
            return
        effective = self._default_ttl if ttl is None else ttl
        if effective <= 0:
            return
        try:
            await self._cache.set(key, value, ttl=effective)
        except Exception:  # noqa: BLE001
            log.warning("result_cache_unavailable", op="set", key=key, exc_info=True)

    async def clear(self, key: str | None = None) -> None:
        """Drop one key, or every entry when *key* is None."""
        if self._cache is None:
            return
        try:
            if key is None:
                await self._cache.clear()
            else:
                await self._cache.delete(key)
        except Exception:  # noqa: BLE001
            log.warning("result_cache_unavailable", op="clear", key=key, exc_info=True)
