"""Satoru adapter (httpx + JSON AJAX API).

Two-step flow:
1. ``/filter?keyword=`` HTML search for every title variant, rows scored
   by the candidate scorer (declared show type is a hard filter).
2. AJAX chain: episode list -> servers of the episode (with intro/outro
   markers) -> iframe link of every server.

Numbering is flat: the requested episode number is looked up as-is.
"""

from __future__ import annotations

from typing import Any

import httpx

from anisource.domain.entities import (
    EpisodeMapping,
    ResolutionResult,
    SearchCandidate,
    ServerKind,
    ShowType,
    SkipRange,
    SourceDescriptor,
)
from anisource.domain.errors import NotFoundError, UpstreamError
from anisource.infrastructure.extraction import ServerCollector
from anisource.infrastructure.extraction.html_selectors import (
    extract_attr,
    extract_text,
    parse_html,
    select_items,
)
from anisource.infrastructure.matching.candidate_scorer import select_best
from anisource.infrastructure.matching.titles import clean_search_title

from .base import HttpxSourceBase
from .constants import AJAX_HEADERS


class SatoruSource(HttpxSourceBase):
    """Satoru: keyword search, then the site's episode/server AJAX endpoints."""

    DEFAULT_DESCRIPTOR = SourceDescriptor(
        id="satoru",
        display_name="Satoru",
        base_url="https://satoru.one",
        priority=10,
        url_patterns={
            "search": "/filter?keyword={query}",
            "episode_list": "/ajax/episode/list/{id}",
            "servers": "/ajax/episode/servers?episodeId={id}",
            "sources": "/ajax/episode/sources?id={id}",
        },
    )

    _selectors = {
        "row": ".flw-item",
        "row_name": ".film-name a",
        "row_id": ".film-poster-ahref",
        "row_type": ".fd-infor .fdi-item",
        "episode": ".ep-item",
        "server": ".server-item",
    }

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    async def _search_page(
        self, client: httpx.AsyncClient, keyword: str
    ) -> list[SearchCandidate]:
        url = self._build_url("search", query=keyword)
        html = await self._fetch_text(client, url, context="search")
        soup = parse_html(html)

        rows: list[SearchCandidate] = []
        for item in select_items(soup, self._selectors["row"]):
            name = extract_text(item, self._selectors["row_name"])
            data_id = extract_attr(item, self._selectors["row_id"], "data-id")
            if not name or not data_id:
                continue
            rows.append(
                SearchCandidate(
                    name=name,
                    identifier=data_id,
                    declared_type=ShowType.parse(
                        extract_text(item, self._selectors["row_type"])
                    ),
                )
            )
        return rows

    # ------------------------------------------------------------------
    # AJAX chain
    # ------------------------------------------------------------------

    async def _ajax_html(
        self, client: httpx.AsyncClient, url: str, context: str
    ) -> tuple[str, dict[str, Any]]:
        payload = await self._fetch_json(
            client, url, context=context, headers=AJAX_HEADERS
        )
        if not isinstance(payload, dict) or not isinstance(payload.get("html"), str):
            raise UpstreamError(
                f"unexpected {context} payload from {url}", source=self.name
            )
        return payload["html"], payload

    async def _episode_id(
        self, client: httpx.AsyncClient, anime_id: str, episode: int
    ) -> str:
        url = self._build_url("episode_list", id=anime_id)
        html, _ = await self._ajax_html(client, url, "episode_list")

        available: list[str] = []
        for item in select_items(parse_html(html), self._selectors["episode"]):
            number = extract_attr(item, "", "data-number")
            available.append(number)
            if number == str(episode):
                episode_id = extract_attr(item, "", "data-id")
                if episode_id:
                    return episode_id

        self._log.info(
            "satoru_episode_missing",
            anime_id=anime_id,
            requested=episode,
            available=len(available),
        )
        raise NotFoundError(
            f"Episode {episode} not listed for {anime_id} "
            f"({len(available)} episodes available)"
        )

    @staticmethod
    def _skip_range(entry: Any) -> SkipRange | None:
        try:
            return SkipRange(
                start=float(entry["start_time"]), end=float(entry["end_time"])
            )
        except (KeyError, TypeError, ValueError):
            return None

    def _skip_markers(
        self, payload: dict[str, Any]
    ) -> tuple[SkipRange | None, SkipRange | None]:
        intro = outro = None
        for entry in payload.get("skip") or []:
            if not isinstance(entry, dict):
                continue
            if entry.get("skip_type") == "op":
                intro = self._skip_range(entry)
            elif entry.get("skip_type") == "ed":
                outro = self._skip_range(entry)
        return intro, outro

    async def _collect_servers(
        self,
        client: httpx.AsyncClient,
        servers_html: str,
    ) -> ServerCollector:
        collector = ServerCollector(
            base_url=self.descriptor.base_url,
            page_url=None,
            provider_label=self.descriptor.display_name,
        )
        last_error: UpstreamError | None = None

        for item in select_items(parse_html(servers_html), self._selectors["server"]):
            server_id = extract_attr(item, "", "data-id")
            if not server_id:
                continue
            url = self._build_url("sources", id=server_id)
            try:
                data = await self._fetch_json(
                    client, url, context="sources", headers=AJAX_HEADERS
                )
            except UpstreamError as exc:
                last_error = exc
                continue
            if not isinstance(data, dict) or data.get("type") != "iframe":
                self._log.debug("satoru_source_skipped", server_id=server_id)
                continue
            link = data.get("link")
            if isinstance(link, str):
                label = extract_text(item, "") or None
                collector.add(link, ServerKind.IFRAME, label=label)

        if not len(collector) and last_error is not None:
            raise last_error
        return collector

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
        wanted = clean_search_title(title)
        async with self._new_client() as client:
            candidates = await self._search_variants(client, title)
            match = select_best(wanted, candidates, expected_type)
            self._log.info(
                "satoru_match",
                title=wanted,
                matched=match.source_title,
                anime_id=match.source_identifier,
                score=match.score,
            )

            episode_id = await self._episode_id(
                client, match.source_identifier, episode
            )
            servers_html, payload = await self._ajax_html(
                client, self._build_url("servers", id=episode_id), "servers"
            )
            intro, outro = self._skip_markers(payload)
            collector = await self._collect_servers(client, servers_html)

        if not len(collector):
            raise NotFoundError(
                f"No iframe server for episode {episode} of {match.source_title!r}"
            )
        return self._result(
            title,
            EpisodeMapping.exact(episode),
            collector.servers,
            intro=intro,
            outro=outro,
        )
