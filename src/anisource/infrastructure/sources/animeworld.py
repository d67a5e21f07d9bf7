"""AnimeWorld adapter (httpx + BeautifulSoup), season-aware.

Deterministic URL flow: the title is slugified into ``/series/{slug}``
(or ``/movies/{slug}``), the season menu of the series page is read, and
per-season episode listings come from the site's ``ajax.php`` endpoint.
Listings are memoised for one ``resolve()`` call, so the episode mapper
can probe many (season, episode) pairs for at most one request per season.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx

from anisource.domain.entities import (
    EpisodeMapping,
    MappingKind,
    ResolutionResult,
    ShowType,
    SourceDescriptor,
    TitleQuery,
)
from anisource.domain.errors import NotFoundError, ResolutionError, UpstreamError
from anisource.domain.ports.source_adapter import EpisodeMapperPort
from anisource.infrastructure.extraction.html_selectors import (
    extract_attr,
    extract_text,
    parse_html,
    select_items,
)
from anisource.infrastructure.matching.titles import slugify

from .base import HttpxSourceBase
from .constants import FORM_CONTENT_TYPE

# "1x05" -> episode 5
_NUM_EPI_RE = re.compile(r"x\s*(\d+)", re.IGNORECASE)


@dataclass(frozen=True)
class _SeasonRef:
    number: int
    post: str
    aslug: str


class _SeriesSession:
    """Per-resolve view of one series: season menu plus memoised listings."""

    def __init__(
        self,
        source: AnimeWorldSource,
        client: httpx.AsyncClient,
        series_url: str,
        seasons: dict[int, _SeasonRef],
    ) -> None:
        self._source = source
        self._client = client
        self.series_url = series_url
        self.seasons = seasons
        self._listings: dict[int, dict[int, str]] = {}
        self._failures: dict[int, ResolutionError] = {}
        self._lock = asyncio.Lock()
        self.requests = 0

    async def listing(self, season: int) -> dict[int, str]:
        """Episode number -> episode page URL for *season* (empty if unknown).

        A failed listing is remembered and re-raised on later calls
        without another request.
        """
        ref = self.seasons.get(season)
        if ref is None:
            return {}
        async with self._lock:
            if season in self._failures:
                raise self._failures[season]
            if season not in self._listings:
                self.requests += 1
                try:
                    self._listings[season] = await self._source._fetch_season(
                        self._client, self.series_url, ref
                    )
                except ResolutionError as exc:
                    self._failures[season] = exc
                    raise
        return self._listings[season]

    @property
    def upstream_failure(self) -> UpstreamError | None:
        """First season listing that failed upstream, if any."""
        for season in sorted(self._failures):
            exc = self._failures[season]
            if isinstance(exc, UpstreamError):
                return exc
        return None

    async def probe(self, season: int, episode: int) -> str | None:
        return (await self.listing(season)).get(episode)


class AnimeWorldSource(HttpxSourceBase):
    """AnimeWorld: slug URLs, season menu, AJAX season listings."""

    DEFAULT_DESCRIPTOR = SourceDescriptor(
        id="animeworld",
        display_name="AnimeWorld",
        base_url="https://animeworld-india.me",
        priority=30,
        season_aware=True,
        url_patterns={
            "movie": "/movies/{slug}",
            "series": "/series/{slug}",
            "season_listing": "/ajax/ajax.php",
        },
    )

    _selectors = {
        "season_link": "ul.aa-cnt.sub-menu li a",
        "episode_row": "li article.post",
        "episode_number": ".num-epi",
        "episode_link": "a.lnk-blk",
    }

    # ------------------------------------------------------------------
    # Page helpers
    # ------------------------------------------------------------------

    def _parse_seasons(self, html: str) -> dict[int, _SeasonRef]:
        seasons: dict[int, _SeasonRef] = {}
        for link in select_items(parse_html(html), self._selectors["season_link"]):
            raw_number = extract_attr(link, "", "data-season")
            post = extract_attr(link, "", "data-post")
            aslug = extract_attr(link, "", "data-aslug")
            if not raw_number.isdigit() or not post or not aslug:
                continue
            number = int(raw_number)
            seasons.setdefault(number, _SeasonRef(number, post, aslug))
        return seasons

    async def _fetch_season(
        self,
        client: httpx.AsyncClient,
        series_url: str,
        ref: _SeasonRef,
    ) -> dict[int, str]:
        html = await self._fetch_text(
            client,
            self._build_url("season_listing"),
            method="POST",
            context=f"season_{ref.number}",
            data={
                "action": "action_select_season",
                "season": str(ref.number),
                "post": ref.post,
                "aslug": ref.aslug,
            },
            headers={
                "Content-Type": FORM_CONTENT_TYPE,
                "Referer": series_url,
                "Origin": self.descriptor.base_url,
            },
        )

        listing: dict[int, str] = {}
        rows = select_items(parse_html(html), self._selectors["episode_row"])
        for index, row in enumerate(rows, start=1):
            m = _NUM_EPI_RE.search(extract_text(row, self._selectors["episode_number"]))
            number = int(m.group(1)) if m else index
            href = extract_attr(row, self._selectors["episode_link"], "href")
            if href:
                listing.setdefault(number, urljoin(series_url, href))

        self._log.debug(
            "animeworld_season_listed", season=ref.number, episodes=len(listing)
        )
        return listing

    async def _open_series(
        self, client: httpx.AsyncClient, title: str
    ) -> _SeriesSession:
        series_url = self._build_url("series", slug=slugify(title))
        html = await self._fetch_text(client, series_url, context="series")
        seasons = self._parse_seasons(html)
        if not seasons:
            raise NotFoundError(f"No seasons listed on {series_url}")
        self._log.info(
            "animeworld_series_opened", url=series_url, seasons=sorted(seasons)
        )
        return _SeriesSession(self, client, series_url, seasons)

    async def _serve_episode(
        self,
        client: httpx.AsyncClient,
        title: str,
        mapping: EpisodeMapping,
        episode_url: str,
        referer: str,
    ) -> ResolutionResult:
        html = await self._fetch_text(
            client, episode_url, context="episode", headers={"Referer": referer}
        )
        servers = self._extract_servers(html, episode_url)
        return self._result(title, mapping, servers)

    async def _movie(
        self, client: httpx.AsyncClient, title: str, episode: int
    ) -> ResolutionResult:
        movie_url = self._build_url("movie", slug=slugify(title))
        html = await self._fetch_text(client, movie_url, context="movie")
        servers = self._extract_servers(html, movie_url)
        mapping = EpisodeMapping(
            requested_episode=episode,
            resolved_season=1,
            resolved_episode=episode,
            kind=MappingKind.EXACT,
            explanation="movie page served as a single episode",
        )
        return self._result(title, mapping, servers)

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
        """Serve S{season}E{episode} directly (season defaults to 1)."""
        async with self._new_client() as client:
            if expected_type == ShowType.MOVIE:
                return await self._movie(client, title, episode)

            session = await self._open_series(client, title)
            wanted_season = season or 1
            episode_url = await session.probe(wanted_season, episode)
            if episode_url is None:
                raise NotFoundError(
                    f"S{wanted_season}E{episode} not listed for {title!r}"
                )
            return await self._serve_episode(
                client,
                title,
                EpisodeMapping.exact(episode, wanted_season),
                episode_url,
                session.series_url,
            )

    async def resolve(
        self,
        query: TitleQuery,
        episode: int,
        *,
        mapper: EpisodeMapperPort | None = None,
    ) -> ResolutionResult:
        """Map the flat *episode* number onto the site's seasons, then serve it."""
        title = query.primary
        async with self._new_client() as client:
            if query.show_type == ShowType.MOVIE:
                return await self._movie(client, title, episode)

            session = await self._open_series(client, title)
            if mapper is not None:
                try:
                    mapping, episode_url = await mapper.map_episode(
                        episode, session.probe
                    )
                except NotFoundError as exc:
                    failure = session.upstream_failure
                    if failure is None:
                        raise
                    raise failure
            else:
                mapping, episode_url = await self._exact_in_any_season(
                    session, episode
                )
            self._log.info(
                "animeworld_episode_mapped",
                requested=episode,
                season=mapping.resolved_season,
                episode=mapping.resolved_episode,
                kind=mapping.kind.value,
                season_requests=session.requests,
            )
            return await self._serve_episode(
                client, title, mapping, episode_url, session.series_url
            )

    @staticmethod
    async def _exact_in_any_season(
        session: _SeriesSession, episode: int
    ) -> tuple[EpisodeMapping, str]:
        for season in sorted(session.seasons):
            episode_url = await session.probe(season, episode)
            if episode_url is not None:
                return EpisodeMapping.exact(episode, season), episode_url
        raise NotFoundError(
            f"Episode {episode} not listed in any of {len(session.seasons)} seasons"
        )
