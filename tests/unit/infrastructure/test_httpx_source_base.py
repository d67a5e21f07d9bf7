"""Tests for HttpxSourceBase shared base class."""

from __future__ import annotations

import httpx
import pytest
import respx

from anisource.domain.entities import (
    EpisodeMapping,
    SearchCandidate,
    ShowType,
    SourceDescriptor,
    TitleQuery,
)
from anisource.domain.errors import NotFoundError, UpstreamError
from anisource.infrastructure.sources.base import HttpxSourceBase

# ---------------------------------------------------------------------------
# Concrete test subclass
# ---------------------------------------------------------------------------

_BASE = "https://example.test"


class _TestSource(HttpxSourceBase):
    DEFAULT_DESCRIPTOR = SourceDescriptor(
        id="example",
        display_name="Example",
        base_url=_BASE,
        priority=1,
        timeout_seconds=2.0,
        url_patterns={"search": "/search?q={query}", "show": "/show/{slug}"},
    )

    def __init__(self, pages: dict[str, object] | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.pages = pages or {}
        self.searched: list[str] = []

    async def _search_page(self, client, keyword):
        self.searched.append(keyword)
        outcome = self.pages.get(keyword, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def search(self, title, episode, season=None, *, expected_type=None):
        self.last_call = (title, episode, season, expected_type)
        return self._result(
            title,
            EpisodeMapping.exact(episode),
            self._extract_servers('<iframe src="//p.test/e/1"></iframe>', _BASE),
        )


# ---------------------------------------------------------------------------
# Init / URL templates
# ---------------------------------------------------------------------------


class TestInit:
    def test_default_descriptor(self) -> None:
        source = _TestSource()
        assert source.name == "example"
        assert source.descriptor.base_url == _BASE

    def test_descriptor_override(self) -> None:
        custom = SourceDescriptor(id="other", display_name="O", base_url=_BASE, priority=9)
        assert _TestSource(descriptor=custom).name == "other"

    def test_user_agent_override(self) -> None:
        assert _TestSource(user_agent="UA/1")._headers["User-Agent"] == "UA/1"

    async def test_new_client_uses_descriptor_timeout(self) -> None:
        async with _TestSource()._new_client() as client:
            assert client.timeout.read == 2.0
            assert client.follow_redirects is True


class TestBuildUrl:
    def test_query_is_encoded(self) -> None:
        url = _TestSource()._build_url("search", query="Re:Zero & more")
        assert url == "https://example.test/search?q=Re%3AZero+%26+more"

    def test_other_values_verbatim(self) -> None:
        assert _TestSource()._build_url("show", slug="one-piece") == (
            "https://example.test/show/one-piece"
        )


# ---------------------------------------------------------------------------
# Fetch error mapping
# ---------------------------------------------------------------------------


class TestFetch:
    @respx.mock
    async def test_success(self) -> None:
        respx.get(f"{_BASE}/ok").respond(200, text="hello")
        source = _TestSource()
        async with source._new_client() as client:
            assert await source._fetch_text(client, f"{_BASE}/ok") == "hello"

    @respx.mock
    async def test_404_is_not_found(self) -> None:
        respx.get(f"{_BASE}/gone").respond(404)
        source = _TestSource()
        async with source._new_client() as client:
            with pytest.raises(NotFoundError):
                await source._fetch(client, f"{_BASE}/gone")

    @respx.mock
    async def test_5xx_is_upstream(self) -> None:
        respx.get(f"{_BASE}/err").respond(503)
        source = _TestSource()
        async with source._new_client() as client:
            with pytest.raises(UpstreamError) as exc_info:
                await source._fetch(client, f"{_BASE}/err")
        assert exc_info.value.status == 503
        assert exc_info.value.source == "example"

    @respx.mock
    async def test_timeout_is_upstream(self) -> None:
        respx.get(f"{_BASE}/slow").mock(side_effect=httpx.ReadTimeout("slow"))
        source = _TestSource()
        async with source._new_client() as client:
            with pytest.raises(UpstreamError, match="timeout"):
                await source._fetch(client, f"{_BASE}/slow")

    @respx.mock
    async def test_transport_error_is_upstream(self) -> None:
        respx.get(f"{_BASE}/down").mock(side_effect=httpx.ConnectError("refused"))
        source = _TestSource()
        async with source._new_client() as client:
            with pytest.raises(UpstreamError):
                await source._fetch(client, f"{_BASE}/down")

    @respx.mock
    async def test_invalid_json(self) -> None:
        respx.get(f"{_BASE}/api").respond(200, text="<html>")
        source = _TestSource()
        async with source._new_client() as client:
            with pytest.raises(UpstreamError, match="invalid JSON"):
                await source._fetch_json(client, f"{_BASE}/api")


# ---------------------------------------------------------------------------
# Title-variant search
# ---------------------------------------------------------------------------


class TestSearchVariants:
    async def test_variants_merged(self) -> None:
        source = _TestSource(
            pages={
                "Attack on Titan Final": [SearchCandidate("AoT Final", "1")],
                "Attack on Titan": [
                    SearchCandidate("AoT Final (dup)", "1"),
                    SearchCandidate("Attack on Titan", "2"),
                ],
            }
        )
        rows = await source._search_variants(None, "Attack on Titan: Final")
        assert source.searched == ["Attack on Titan Final", "Attack on Titan", "Attack on"]
        assert [r.identifier for r in rows] == ["1", "2"]

    async def test_failed_variant_tolerated(self) -> None:
        source = _TestSource(
            pages={
                "Naruto Shippuden Movie": UpstreamError("boom"),
                "Naruto Shippuden": [SearchCandidate("Naruto Shippuden", "9")],
            }
        )
        rows = await source._search_variants(None, "Naruto Shippuden Movie")
        assert source.searched == ["Naruto Shippuden Movie", "Naruto Shippuden"]
        assert [r.identifier for r in rows] == ["9"]

    async def test_all_failed_reraises(self) -> None:
        source = _TestSource(pages={"Naruto Shippuden": UpstreamError("boom")})
        with pytest.raises(UpstreamError, match="boom"):
            await source._search_variants(None, "Naruto Shippuden")


# ---------------------------------------------------------------------------
# Default resolve / extraction
# ---------------------------------------------------------------------------


class TestResolveDefault:
    async def test_flat_resolve_uses_primary_and_type(self) -> None:
        source = _TestSource()
        query = TitleQuery("21", ("One Piece", "ONE PIECE"), show_type=ShowType.TV)
        result = await source.resolve(query, 5, mapper=object())
        assert source.last_call == ("One Piece", 5, None, ShowType.TV)
        assert result.source_id == "example"
        assert result.primary.url == "https://p.test/e/1"

    def test_extract_servers_empty_raises(self) -> None:
        with pytest.raises(NotFoundError):
            _TestSource()._extract_servers("<p>nothing</p>", _BASE)
