"""Tests for URL normalisation and stream-server extraction."""

from __future__ import annotations

import pytest

from anisource.domain.entities import ServerKind
from anisource.infrastructure.extraction import (
    ServerCollector,
    dedup_key,
    extract_stream_servers,
    is_blocked,
    normalize_url,
)

_BASE = "https://site.test"
_PAGE = "https://site.test/episode/one-piece-5/"


def _extract(html: str) -> list:
    return extract_stream_servers(
        html, page_url=_PAGE, base_url=_BASE, provider_label="Site"
    )


# ---------------------------------------------------------------------------
# normalize_url
# ---------------------------------------------------------------------------


class TestNormalizeUrl:
    def test_protocol_relative(self) -> None:
        assert normalize_url("//example.com/x", base_url=_BASE) == "https://example.com/x"

    def test_root_relative(self) -> None:
        assert normalize_url("/x", base_url=_BASE) == "https://site.test/x"

    def test_page_relative(self) -> None:
        assert (
            normalize_url("embed/1", base_url=_BASE, page_url=_PAGE)
            == "https://site.test/episode/one-piece-5/embed/1"
        )

    def test_absolute_unchanged(self) -> None:
        url = "http://cdn.test/v.m3u8?token=abc"
        assert normalize_url(url, base_url=_BASE) == url

    @pytest.mark.parametrize(
        "raw", ["", "   ", "javascript:void(0)", "data:text/html,hi", "about:blank"]
    )
    def test_rejected(self, raw: str) -> None:
        assert normalize_url(raw, base_url=_BASE) is None

    @pytest.mark.parametrize(
        "raw", ["//example.com/x", "/x", "embed/1", "https://a.test/b?c=d"]
    )
    def test_idempotent(self, raw: str) -> None:
        once = normalize_url(raw, base_url=_BASE, page_url=_PAGE)
        assert once is not None
        assert normalize_url(once, base_url=_BASE, page_url=_PAGE) == once


class TestBlocklistAndDedup:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/embed/abc",
            "https://youtu.be/abc",
            "https://ad.doubleclick.net/x",
            "https://www.FACEBOOK.com/plugins/video",
        ],
    )
    def test_blocked(self, url: str) -> None:
        assert is_blocked(url)

    def test_not_blocked(self) -> None:
        assert not is_blocked("https://megacloud.test/embed-2/e-1/abc")

    def test_dedup_ignores_query_and_host_case(self) -> None:
        a = dedup_key("https://CDN.test/e/1?t=1", ServerKind.IFRAME)
        b = dedup_key("https://cdn.test/e/1?t=2#frag", ServerKind.IFRAME)
        assert a == b

    def test_dedup_distinguishes_kind(self) -> None:
        assert dedup_key("https://cdn.test/v.mp4", ServerKind.IFRAME) != dedup_key(
            "https://cdn.test/v.mp4", ServerKind.DIRECT_MEDIA
        )


# ---------------------------------------------------------------------------
# ServerCollector
# ---------------------------------------------------------------------------


class TestServerCollector:
    def test_default_names_and_order(self) -> None:
        c = ServerCollector(base_url=_BASE, page_url=None, provider_label="Site")
        assert c.add("https://a.test/1", ServerKind.IFRAME)
        assert c.add("https://b.test/1", ServerKind.IFRAME, label="HD-2")
        assert [s.display_name for s in c.servers] == ["Site #1", "HD-2"]
        assert len(c) == 2

    def test_rejects_duplicates_and_blocked(self) -> None:
        c = ServerCollector(base_url=_BASE, page_url=None, provider_label="Site")
        assert c.add("https://a.test/1?x=1", ServerKind.IFRAME)
        assert not c.add("https://a.test/1?x=2", ServerKind.IFRAME)
        assert not c.add("https://youtube.com/embed/1", ServerKind.IFRAME)
        assert not c.add("javascript:void(0)", ServerKind.IFRAME)
        assert len(c) == 1


# ---------------------------------------------------------------------------
# extract_stream_servers
# ---------------------------------------------------------------------------


class TestIframeStrategy:
    def test_iframe_attributes(self) -> None:
        html = """
        <iframe src="//player.test/e/1"></iframe>
        <iframe data-src="/embed/2"></iframe>
        <iframe data-lazy-src="https://lazy.test/e/3"></iframe>
        """
        servers = _extract(html)
        assert [s.url for s in servers] == [
            "https://player.test/e/1",
            "https://site.test/embed/2",
            "https://lazy.test/e/3",
        ]
        assert all(s.kind is ServerKind.IFRAME for s in servers)
        assert servers[0].provider_label == "Site"

    def test_blocked_iframe_skipped(self) -> None:
        html = """
        <iframe src="https://www.youtube.com/embed/trailer"></iframe>
        <iframe src="https://player.test/e/1"></iframe>
        """
        assert [s.url for s in _extract(html)] == ["https://player.test/e/1"]

    def test_iframe_wins_over_video(self) -> None:
        html = """
        <video src="https://cdn.test/v.mp4"></video>
        <iframe src="https://player.test/e/1"></iframe>
        """
        servers = _extract(html)
        assert len(servers) == 1
        assert servers[0].kind is ServerKind.IFRAME


class TestVideoStrategy:
    def test_video_and_source_tags(self) -> None:
        html = """
        <video src="https://cdn.test/a.mp4"></video>
        <video><source src="/media/b.m3u8" type="application/x-mpegURL"></video>
        """
        servers = _extract(html)
        assert [s.url for s in servers] == [
            "https://cdn.test/a.mp4",
            "https://site.test/media/b.m3u8",
        ]
        assert all(s.kind is ServerKind.DIRECT_MEDIA for s in servers)

    def test_blocked_video_falls_through(self) -> None:
        html = """
        <video src="https://googlesyndication.com/ad.mp4"></video>
        <div data-embed="https://player.test/e/9"></div>
        """
        servers = _extract(html)
        assert [s.url for s in servers] == ["https://player.test/e/9"]


class TestScriptStrategy:
    def test_media_url_in_script(self) -> None:
        html = r"""
        <script>var cfg = {"hls": "https:\/\/cdn.test\/master.m3u8?t=1"};</script>
        """
        servers = _extract(html)
        assert servers[0].url == "https://cdn.test/master.m3u8?t=1"
        assert servers[0].kind is ServerKind.DIRECT_MEDIA

    def test_player_config_file_key(self) -> None:
        html = """
        <script>jwplayer("p").setup({ file: "https://player.test/embed/77" });</script>
        """
        servers = _extract(html)
        assert [s.url for s in servers] == ["https://player.test/embed/77"]
        assert servers[0].kind is ServerKind.IFRAME

    def test_blocked_script_url_skipped(self) -> None:
        html = """
        <script>player.load({ source: "https://youtube.com/embed/ad" });</script>
        <script>player.load({ source: "https://player.test/e/5" });</script>
        """
        assert [s.url for s in _extract(html)] == ["https://player.test/e/5"]

    def test_duplicate_media_url_counted_once(self) -> None:
        html = """
        <script>var a = "https://cdn.test/v.mp4"; setup({ file: "https://cdn.test/v.mp4" });</script>
        """
        servers = _extract(html)
        assert len(servers) == 1

    def test_relative_script_src_falls_through_to_data_attribute(self) -> None:
        html = """
        <script>var s = document.createElement("script"); s.src = "/js/analytics.js";</script>
        <div class="player" data-video="https://cdn.good.test/embed/1"></div>
        """
        servers = _extract(html)
        assert [(s.url, s.kind) for s in servers] == [
            ("https://cdn.good.test/embed/1", ServerKind.IFRAME)
        ]

    @pytest.mark.parametrize(
        "value",
        [
            "https://cdn.test/jquery.min.js",
            "//cdn.test/theme.css?v=3",
            "https://site.test/img/poster.jpg",
        ],
    )
    def test_absolute_asset_urls_ignored(self, value: str) -> None:
        html = f'<script>el.src = "{value}";</script>'
        assert _extract(html) == []

    def test_relative_player_config_ignored(self) -> None:
        html = '<script>setup({ file: "embed/77" });</script>'
        assert _extract(html) == []


class TestDataAttributeStrategy:
    def test_data_attributes(self) -> None:
        html = """
        <li class="server" data-video="https://player.test/e/1">One</li>
        <li class="server" data-link="//player2.test/e/2">Two</li>
        <li class="server" data-url="not-a-url">Three</li>
        """
        assert [s.url for s in _extract(html)] == [
            "https://player.test/e/1",
            "https://player2.test/e/2",
        ]

    def test_blocked_data_attribute_skipped(self) -> None:
        html = '<div data-embed="https://twitter.com/widget"></div>'
        assert _extract(html) == []


class TestNothingFound:
    def test_empty_page(self) -> None:
        assert _extract("<html><body><p>Coming soon</p></body></html>") == []
