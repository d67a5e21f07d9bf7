"""Shared base class for httpx-based streaming-site adapters.

Holds the boilerplate every adapter needs: a fresh client per
invocation, fetch helpers that turn httpx failures into domain errors,
URL template rendering, title-variant searching and server extraction.

This base class lives in the *infrastructure* layer because it depends
on ``httpx`` and ``structlog``.  The *domain* layer only knows
``SourceAdapterPort``; adapters that inherit from ``HttpxSourceBase``
structurally satisfy that Protocol.
"""

from __future__ import annotations

from typing import Any, ClassVar
from urllib.parse import quote_plus, urljoin

import httpx
import structlog

from anisource.domain.entities import (
    EpisodeMapping,
    ResolutionResult,
    SearchCandidate,
    ShowType,
    SkipRange,
    SourceDescriptor,
    StreamServer,
    TitleQuery,
)
from anisource.domain.errors import NotFoundError, UpstreamError
from anisource.domain.ports.source_adapter import EpisodeMapperPort
from anisource.infrastructure.extraction import extract_stream_servers
from anisource.infrastructure.matching.candidate_scorer import merge_candidates
from anisource.infrastructure.matching.titles import clean_search_title, title_variants

from .constants import BROWSER_HEADERS


class HttpxSourceBase:
    """Shared base for streaming-site adapters.

    Subclasses **must** set:
    - ``DEFAULT_DESCRIPTOR`` (id, base URL, priority, URL templates)

    Subclasses **must** override:
    - ``search()``

    Subclasses **may** override:
    - ``resolve()`` (season-aware sources run the episode mapper there)
    - ``_search_page()`` (used by ``_search_variants``)
    - ``_selectors``
    """

    DEFAULT_DESCRIPTOR: ClassVar[SourceDescriptor]
    _selectors: ClassVar[dict[str, str]] = {}

    def __init__(
        self,
        descriptor: SourceDescriptor | None = None,
        *,
        user_agent: str | None = None,
    ) -> None:
        self.descriptor: SourceDescriptor = descriptor or self.DEFAULT_DESCRIPTOR
        self._headers = dict(BROWSER_HEADERS)
        if user_agent:
            self._headers["User-Agent"] = user_agent
        self._log = structlog.get_logger(self.name)

    @property
    def name(self) -> str:
        return self.descriptor.id

    # ------------------------------------------------------------------
    # Client lifecycle
    # ------------------------------------------------------------------

    def _new_client(self) -> httpx.AsyncClient:
        """Fresh client for one invocation (no cookies shared between requests)."""
        return httpx.AsyncClient(
            timeout=self.descriptor.timeout_seconds,
            follow_redirects=True,
            headers=self._headers,
        )

    # ------------------------------------------------------------------
    # Fetch helpers
    # ------------------------------------------------------------------

    async def _fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        *,
        method: str = "GET",
        context: str = "",
        **kwargs: Any,
    ) -> httpx.Response:
        """Fetch *url*; raise instead of returning a failed response.

        Raises:
            NotFoundError: HTTP 404 (the page does not exist on this site).
            UpstreamError: timeout, transport error or any other non-2xx.
        """
        try:
            resp = await client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp
        except httpx.TimeoutException as exc:
            self._log.warning(f"{self.name}_timeout", url=url, context=context)
            raise UpstreamError(
                f"timeout fetching {url}", source=self.name
            ) from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            self._log.warning(
                f"{self.name}_http_error", url=url, status=status, context=context
            )
            if status == 404:
                raise NotFoundError(f"{url} not found (HTTP 404)") from exc
            raise UpstreamError(
                f"HTTP {status} from {url}", source=self.name, status=status
            ) from exc
        except httpx.HTTPError as exc:
            self._log.warning(
                f"{self.name}_fetch_error", url=url, error=str(exc), context=context
            )
            raise UpstreamError(
                f"request to {url} failed: {exc}", source=self.name
            ) from exc

    async def _fetch_text(
        self,
        client: httpx.AsyncClient,
        url: str,
        **kwargs: Any,
    ) -> str:
        resp = await self._fetch(client, url, **kwargs)
        return resp.text

    async def _fetch_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        **kwargs: Any,
    ) -> Any:
        """Fetch and decode a JSON body; invalid JSON is an ``UpstreamError``."""
        resp = await self._fetch(client, url, **kwargs)
        try:
            return resp.json()
        except ValueError as exc:
            self._log.warning(f"{self.name}_invalid_json", url=url)
            raise UpstreamError(
                f"invalid JSON from {url}", source=self.name
            ) from exc

    def _build_url(self, pattern_name: str, **values: object) -> str:
        """Render a URL template from the descriptor (``{query}`` is URL-encoded)."""
        pattern = self.descriptor.url_patterns[pattern_name]
        rendered = {
            key: quote_plus(str(val)) if key == "query" else str(val)
            for key, val in values.items()
        }
        return urljoin(self.descriptor.base_url + "/", pattern.format(**rendered))

    # ------------------------------------------------------------------
    # Search helpers
    # ------------------------------------------------------------------

    async def _search_page(
        self, client: httpx.AsyncClient, keyword: str
    ) -> list[SearchCandidate]:
        """Fetch and parse one search-results page."""
        raise NotImplementedError(
            f"{type(self).__name__}._search_page() not implemented"
        )

    async def _search_variants(
        self, client: httpx.AsyncClient, title: str
    ) -> list[SearchCandidate]:
        """Search every title variant and merge the rows (first-seen per identifier).

        A failing variant only matters when no variant produced a row.
        """
        batches: list[list[SearchCandidate]] = []
        last_error: UpstreamError | None = None
        for variant in title_variants(clean_search_title(title)):
            try:
                batch = await self._search_page(client, variant)
            except UpstreamError as exc:
                last_error = exc
                continue
            self._log.debug(
                f"{self.name}_variant_searched", variant=variant, rows=len(batch)
            )
            batches.append(batch)

        candidates = merge_candidates(batches)
        if not candidates and last_error is not None:
            raise last_error
        return candidates

    # ------------------------------------------------------------------
    # Extraction helpers
    # ------------------------------------------------------------------

    def _extract_servers(self, html: str, page_url: str) -> list[StreamServer]:
        servers = extract_stream_servers(
            html,
            page_url=page_url,
            base_url=self.descriptor.base_url,
            provider_label=self.descriptor.display_name,
        )
        if not servers:
            raise NotFoundError(f"No playable server found on {page_url}")
        return servers

    def _result(
        self,
        title_used: str,
        mapping: EpisodeMapping,
        servers: list[StreamServer],
        *,
        intro: SkipRange | None = None,
        outro: SkipRange | None = None,
    ) -> ResolutionResult:
        if not servers:
            raise NotFoundError(f"{self.name} returned no servers")
        return ResolutionResult(
            source_id=self.name,
            title_used=title_used,
            episode_mapping=mapping,
            servers=tuple(servers),
            intro=intro,
            outro=outro,
        )

    # ------------------------------------------------------------------
    # SourceAdapterPort
    # ------------------------------------------------------------------

    async def search(
        self,
        title: str,
        episode: int,
        season: int | None = None,
        *,
        expected_type: ShowType | None = None,
    ) -> ResolutionResult:
        """Find *title* on the site and return the servers of *episode*.

        Subclasses **must** override this method.
        """
        raise NotImplementedError(f"{type(self).__name__}.search() not implemented")

    async def resolve(
        self,
        query: TitleQuery,
        episode: int,
        *,
        mapper: EpisodeMapperPort | None = None,
    ) -> ResolutionResult:
        """Flat-numbering default: the requested number is used as-is."""
        return await self.search(
            query.primary, episode, expected_type=query.show_type
        )
