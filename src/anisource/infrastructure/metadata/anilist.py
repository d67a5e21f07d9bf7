"""AniList metadata client: async httpx GraphQL implementation with caching."""

from __future__ import annotations

import unicodedata
from typing import Any

import httpx
import structlog

from anisource.domain.entities import ShowType, TitleQuery
from anisource.domain.errors import NotFoundError, UpstreamError
from anisource.domain.ports.cache import CachePort
from anisource.domain.ports.metrics import MetricsRecorderPort

log = structlog.get_logger(__name__)

DEFAULT_ANILIST_URL = "https://graphql.anilist.co"

_TTL_MEDIA = 86_400  # 24 hours

MEDIA_QUERY = """
query ($id: Int) {
  Media(id: $id, type: ANIME) {
    id
    format
    episodes
    synonyms
    title { romaji english native userPreferred }
  }
}
"""


def _is_latin(text: str) -> bool:
    """True when every letter of *text* belongs to the Latin script."""
    return all(
        unicodedata.name(ch, "").startswith("LATIN") for ch in text if ch.isalpha()
    )


def _ordered_titles(media: dict[str, Any]) -> tuple[str, ...]:
    """english, romaji, userPreferred, Latin synonyms, native; de-duplicated."""
    title = media.get("title") or {}
    synonyms = [s for s in media.get("synonyms") or [] if isinstance(s, str)]
    ordered = [
        title.get("english"),
        title.get("romaji"),
        title.get("userPreferred"),
        *(s for s in synonyms if _is_latin(s)),
        title.get("native"),
    ]

    seen: set[str] = set()
    out: list[str] = []
    for candidate in ordered:
        if not isinstance(candidate, str):
            continue
        text = " ".join(candidate.split())
        key = text.casefold()
        if not text or key in seen:
            continue
        seen.add(key)
        out.append(text)
    return tuple(out)


class AniListMetadataResolver:
    """Resolves a numeric AniList id to its titles.

    Implements ``MetadataResolverPort`` from domain.ports.metadata.
    One outbound request per uncached id; no retries.
    """

    def __init__(
        self,
        *,
        http_client: httpx.AsyncClient,
        cache: CachePort | None = None,
        metrics: MetricsRecorderPort | None = None,
        url: str = DEFAULT_ANILIST_URL,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._http = http_client
        self._cache = cache
        self._metrics = metrics
        self._url = url
        self._timeout = timeout_seconds

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _cached(self, key: str) -> TitleQuery | None:
        if self._cache is None:
            return None
        try:
            value = await self._cache.get(key)
        except Exception:  # noqa: BLE001
            log.warning("anilist_cache_unavailable", key=key, exc_info=True)
            return None
        return value if isinstance(value, TitleQuery) else None

    async def _store(self, key: str, query: TitleQuery) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, query, ttl=_TTL_MEDIA)
        except Exception:  # noqa: BLE001
            log.warning("anilist_cache_unavailable", key=key, exc_info=True)

    async def _post(self, media_id: int) -> dict[str, Any]:
        """POST the media query. Returns the ``Media`` object."""
        payload = {"query": MEDIA_QUERY, "variables": {"id": media_id}}
        try:
            resp = await self._http.post(
                self._url,
                json=payload,
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            log.warning("anilist_network_error", media_id=media_id, exc_info=True)
            raise UpstreamError(
                f"AniList request failed: {exc}", source="anilist"
            ) from exc

        if resp.status_code == 404:
            log.debug("anilist_media_not_found", media_id=media_id)
            raise NotFoundError(f"AniList has no anime with id {media_id}")
        try:
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as exc:
            log.warning("anilist_http_error", media_id=media_id, status=resp.status_code)
            raise UpstreamError(
                f"AniList returned HTTP {resp.status_code}",
                source="anilist",
                status=resp.status_code,
            ) from exc
        except ValueError as exc:
            log.warning("anilist_invalid_json", media_id=media_id)
            raise UpstreamError("AniList returned invalid JSON", source="anilist") from exc

        media = (data.get("data") or {}).get("Media") if isinstance(data, dict) else None
        if not media:
            raise NotFoundError(f"AniList has no anime with id {media_id}")
        return media

    # ------------------------------------------------------------------
    # Public API (MetadataResolverPort)
    # ------------------------------------------------------------------

    async def resolve(self, identifier: str) -> TitleQuery:
        """Fetch the titles for an AniList id.

        Raises:
            NotFoundError: non-numeric id, unknown id, or an entry without titles.
            UpstreamError: network failure, timeout, non-2xx, invalid JSON.
        """
        identifier = identifier.strip()
        if not identifier.isdigit():
            raise NotFoundError(f"{identifier!r} is not an AniList id")

        cache_key = f"anilist:media:{identifier}"
        cached = await self._cached(cache_key)
        if cached is not None:
            return cached

        try:
            media = await self._post(int(identifier))
            titles = _ordered_titles(media)
            if not titles:
                raise NotFoundError(f"AniList entry {identifier} has no title")
        except (NotFoundError, UpstreamError):
            if self._metrics is not None:
                self._metrics.record_metadata_lookup(success=False)
            raise

        episodes = media.get("episodes")
        query = TitleQuery(
            raw_identifier=identifier,
            titles=titles,
            total_episodes=episodes if isinstance(episodes, int) else None,
            show_type=ShowType.parse(media.get("format")),
        )
        if self._metrics is not None:
            self._metrics.record_metadata_lookup(success=True)
        log.info(
            "anilist_resolved",
            media_id=identifier,
            title=query.primary,
            alternates=len(titles) - 1,
            show_type=query.show_type.value if query.show_type else None,
        )
        await self._store(cache_key, query)
        return query
