"""Tests for the season-aware AnimeWorld source adapter."""

from __future__ import annotations

from urllib.parse import parse_qs

import httpx
import pytest
import respx

from anisource.application.episode_mapper import EpisodeMapper
from anisource.domain.entities import MappingKind, ShowType, TitleQuery
from anisource.domain.errors import NotFoundError, UpstreamError
from anisource.infrastructure.config import MappingConfig
from anisource.infrastructure.sources import AnimeWorldSource

_BASE = "https://animeworld-india.me"
_SERIES = f"{_BASE}/series/one-piece"
_AJAX = f"{_BASE}/ajax/ajax.php"

_SERIES_HTML = """
<div class="choose-season">
  <ul class="aa-cnt sub-menu">
    <li><a data-post="77" data-season="1" data-aslug="one-piece">Season 1</a></li>
    <li><a data-post="77" data-season="2" data-aslug="one-piece">Season 2</a></li>
    <li><a data-post="77" data-season="3" data-aslug="one-piece">Season 3</a></li>
    <li><a data-post="77" data-season="x" data-aslug="one-piece">Specials</a></li>
  </ul>
</div>
"""

_PLAYER_HTML = '<iframe src="https://play.test/embed/{tag}"></iframe>'


def _season_html(season: int, count: int) -> str:
    rows = "".join(
        f'<li><article class="post"><span class="num-epi">{season}x{n}</span>'
        f'<a class="lnk-blk" href="/episode/one-piece-{season}x{n}/"></a></article></li>'
        for n in range(1, count + 1)
    )
    return f"<ul>{rows}</ul>"


def _season_listing(counts: dict[int, int]):
    def _handler(request: httpx.Request) -> httpx.Response:
        form = parse_qs(request.content.decode())
        season = int(form["season"][0])
        return httpx.Response(200, text=_season_html(season, counts.get(season, 0)))

    return _handler


def _season_listing_with_outage(counts: dict[int, int], down: int, calls: list[int]):
    def _handler(request: httpx.Request) -> httpx.Response:
        season = int(parse_qs(request.content.decode())["season"][0])
        calls.append(season)
        if season == down:
            return httpx.Response(503)
        return httpx.Response(200, text=_season_html(season, counts.get(season, 0)))

    return _handler


def _episode_route(router: respx.MockRouter, season: int, episode: int) -> respx.Route:
    return router.get(f"{_BASE}/episode/one-piece-{season}x{episode}/").respond(
        200, text=_PLAYER_HTML.format(tag=f"{season}x{episode}")
    )


@pytest.fixture()
def mapper() -> EpisodeMapper:
    return EpisodeMapper(MappingConfig())


# ---------------------------------------------------------------------------
# resolve() with the mapper
# ---------------------------------------------------------------------------


class TestAnimeWorldResolve:
    async def test_flat_number_mapped_by_pattern(self, mapper: EpisodeMapper) -> None:
        query = TitleQuery("21", ("One Piece",), show_type=ShowType.TV)
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            listing = router.post(_AJAX).mock(
                side_effect=_season_listing({1: 24, 2: 24, 3: 24})
            )
            _episode_route(router, 3, 4)
            result = await AnimeWorldSource().resolve(query, 52, mapper=mapper)

            # One listing request per season, however many probes ran.
            assert listing.call_count == 3
            form = parse_qs(listing.calls[0].request.content.decode())
            assert form["action"] == ["action_select_season"]
            assert form["post"] == ["77"]
            assert listing.calls[0].request.headers["Referer"] == _SERIES

        mapping = result.episode_mapping
        assert mapping.kind is MappingKind.PATTERN_CALCULATED
        assert (mapping.resolved_season, mapping.resolved_episode) == (3, 4)
        assert "24 episodes per season" in mapping.explanation
        assert result.primary.url == "https://play.test/embed/3x4"
        assert result.source_id == "animeworld"

    async def test_exact_in_later_season(self, mapper: EpisodeMapper) -> None:
        query = TitleQuery("21", ("One Piece",))
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            router.post(_AJAX).mock(side_effect=_season_listing({1: 3, 2: 10}))
            _episode_route(router, 2, 7)
            result = await AnimeWorldSource().resolve(query, 7, mapper=mapper)
        assert result.episode_mapping.kind is MappingKind.EXACT
        assert result.episode_mapping.resolved_season == 2

    async def test_without_mapper_only_exact(self) -> None:
        query = TitleQuery("21", ("One Piece",))
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            router.post(_AJAX).mock(side_effect=_season_listing({1: 24, 2: 24, 3: 24}))
            _episode_route(router, 3, 4)
            with pytest.raises(NotFoundError, match="any of 3 seasons"):
                await AnimeWorldSource().resolve(query, 52)

    async def test_mapper_exhausted(self) -> None:
        mapper = EpisodeMapper(
            MappingConfig(enabled_kinds=[MappingKind.EXACT], season_ceiling=3)
        )
        query = TitleQuery("21", ("One Piece",))
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            router.post(_AJAX).mock(side_effect=_season_listing({1: 2}))
            with pytest.raises(NotFoundError, match="not found after 3 probes"):
                await AnimeWorldSource().resolve(query, 52, mapper=mapper)

    async def test_series_without_seasons(self, mapper: EpisodeMapper) -> None:
        query = TitleQuery("21", ("One Piece",))
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text="<html><body>Not here</body></html>")
            with pytest.raises(NotFoundError, match="No seasons"):
                await AnimeWorldSource().resolve(query, 1, mapper=mapper)

    async def test_movie_page(self, mapper: EpisodeMapper) -> None:
        query = TitleQuery("21519", ("Your Name.",), show_type=ShowType.MOVIE)
        with respx.mock(assert_all_called=False) as router:
            router.get(f"{_BASE}/movies/your-name").respond(
                200, text=_PLAYER_HTML.format(tag="your-name")
            )
            result = await AnimeWorldSource().resolve(query, 1, mapper=mapper)
        assert result.episode_mapping.kind is MappingKind.EXACT
        assert result.episode_mapping.explanation == "movie page served as a single episode"
        assert result.primary.url == "https://play.test/embed/your-name"


# ---------------------------------------------------------------------------
# search() with an explicit season
# ---------------------------------------------------------------------------


class TestAnimeWorldSearch:
    async def test_explicit_season(self) -> None:
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            router.post(_AJAX).mock(side_effect=_season_listing({1: 24, 2: 24}))
            _episode_route(router, 2, 5)
            result = await AnimeWorldSource().search("One Piece", 5, season=2)
        assert result.episode_mapping.resolved_season == 2
        assert result.primary.url == "https://play.test/embed/2x5"

    async def test_unknown_season(self) -> None:
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            with pytest.raises(NotFoundError, match="S9E1"):
                await AnimeWorldSource().search("One Piece", 1, season=9)


# ---------------------------------------------------------------------------
# Failing season listings
# ---------------------------------------------------------------------------


class TestSeasonListingFailures:
    async def test_failed_listing_fetched_once_and_surfaced(
        self, mapper: EpisodeMapper
    ) -> None:
        query = TitleQuery("21", ("One Piece",))
        calls: list[int] = []
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            router.post(_AJAX).mock(
                side_effect=_season_listing_with_outage({}, 2, calls)
            )
            with pytest.raises(UpstreamError) as exc_info:
                await AnimeWorldSource().resolve(query, 52, mapper=mapper)

        assert sorted(calls) == [1, 2, 3]
        assert exc_info.value.status == 503

    async def test_failed_listing_ignored_when_episode_found_elsewhere(
        self, mapper: EpisodeMapper
    ) -> None:
        query = TitleQuery("21", ("One Piece",))
        calls: list[int] = []
        with respx.mock(assert_all_called=False) as router:
            router.get(_SERIES).respond(200, text=_SERIES_HTML)
            router.post(_AJAX).mock(
                side_effect=_season_listing_with_outage({2: 10}, 1, calls)
            )
            _episode_route(router, 2, 7)
            result = await AnimeWorldSource().resolve(query, 7, mapper=mapper)

        assert calls == [1, 2]
        assert result.episode_mapping.kind is MappingKind.EXACT
        assert result.episode_mapping.resolved_season == 2
