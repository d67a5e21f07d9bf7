"""Locate playable stream URLs in an episode page.

Strategies run in precedence order and the first one that yields at
least one accepted URL wins:

a. ``<iframe>`` ``src`` / ``data-src`` / ``data-lazy-src``       -> IFRAME
b. ``<video src>`` and ``<video><source src>``                  -> DIRECT_MEDIA
c. inline ``<script>`` text: media file URLs                    -> DIRECT_MEDIA,
   player config (``file:``, ``source:``, ``src=``)             -> IFRAME
   unless the URL itself is a media file; only absolute or
   protocol-relative values count, and static assets are skipped
d. ``data-src`` / ``data-url`` / ``data-video`` / ``data-embed`` /
   ``data-link`` attributes on any element                      -> IFRAME

Every URL goes through the same gate: normalisation, blocklist, and
de-duplication by (scheme + host + path, kind).  First-seen order is
kept, so ``servers[0]`` is the primary server.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator

import structlog
from bs4 import BeautifulSoup

from anisource.domain.entities import ServerKind, StreamServer

from .html_selectors import iter_attr_values, parse_html
from .url_tools import (
    dedup_key,
    has_asset_extension,
    has_media_extension,
    is_blocked,
    normalize_url,
    unescape_script_url,
)

log = structlog.get_logger(__name__)

_IFRAME_ATTRS = ("src", "data-src", "data-lazy-src")
_DATA_ATTRS = ("data-src", "data-url", "data-video", "data-embed", "data-link")

# Quoted URL ending in a media extension (optionally followed by a query).
_SCRIPT_MEDIA_RE = re.compile(
    r"""["']((?:https?:)?(?:\\?/){2}[^"'\s]+?\.(?:mp4|m3u8|webm)(?:\?[^"'\s]*)?)["']""",
    re.IGNORECASE,
)

# Player configuration keys and embedded iframe markup.
_SCRIPT_CONFIG_RES = (
    re.compile(r"""\bfile\s*:\s*["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""\bsource\s*:\s*["']([^"']+)["']""", re.IGNORECASE),
    re.compile(r"""\bsrc\s*=\s*\\?["']([^"']+?)\\?["']""", re.IGNORECASE),
)

_ABSOLUTE_OR_PROTOCOL_RELATIVE = ("http://", "https://", "//")

Candidate = tuple[str, ServerKind]


class ServerCollector:
    """Accumulates accepted stream URLs for one page.

    Shared by the HTML strategies below and by adapters that receive
    stream URLs from JSON endpoints, so every server passes the same
    normalisation/blocklist/dedup gate.
    """

    def __init__(
        self,
        *,
        base_url: str,
        page_url: str | None,
        provider_label: str,
    ) -> None:
        self._base_url = base_url
        self._page_url = page_url
        self._provider_label = provider_label
        self._seen: set[tuple[str, ServerKind]] = set()
        self._servers: list[StreamServer] = []

    def __len__(self) -> int:
        return len(self._servers)

    def add(self, raw_url: str, kind: ServerKind, label: str | None = None) -> bool:
        """Offer one URL. Returns True when it was accepted."""
        url = normalize_url(raw_url, base_url=self._base_url, page_url=self._page_url)
        if url is None:
            return False
        if is_blocked(url):
            log.debug("stream_url_blocked", url=url)
            return False
        key = dedup_key(url, kind)
        if key in self._seen:
            return False
        self._seen.add(key)

        number = len(self._servers) + 1
        self._servers.append(
            StreamServer(
                display_name=label or f"{self._provider_label} #{number}",
                url=url,
                kind=kind,
                provider_label=self._provider_label,
            )
        )
        return True

    @property
    def servers(self) -> list[StreamServer]:
        return list(self._servers)


# ------------------------------------------------------------------
# Strategies
# ------------------------------------------------------------------


def _from_iframes(soup: BeautifulSoup) -> Iterator[Candidate]:
    for value in iter_attr_values(soup, "iframe", _IFRAME_ATTRS):
        yield value, ServerKind.IFRAME


def _from_video_tags(soup: BeautifulSoup) -> Iterator[Candidate]:
    for value in iter_attr_values(soup, "video[src], video source[src]", ("src",)):
        yield value, ServerKind.DIRECT_MEDIA


def _from_scripts(soup: BeautifulSoup) -> Iterator[Candidate]:
    for script in soup.find_all("script"):
        text = script.string or script.get_text()
        if not text:
            continue
        for m in _SCRIPT_MEDIA_RE.finditer(text):
            yield unescape_script_url(m.group(1)), ServerKind.DIRECT_MEDIA
        for pattern in _SCRIPT_CONFIG_RES:
            for m in pattern.finditer(text):
                url = unescape_script_url(m.group(1)).strip()
                # Relative values are script and asset paths, not players.
                if not url.startswith(_ABSOLUTE_OR_PROTOCOL_RELATIVE):
                    continue
                if has_asset_extension(url):
                    continue
                kind = (
                    ServerKind.DIRECT_MEDIA
                    if has_media_extension(url)
                    else ServerKind.IFRAME
                )
                yield url, kind


def _from_data_attributes(soup: BeautifulSoup) -> Iterator[Candidate]:
    for tag in soup.find_all(True):
        for attr in _DATA_ATTRS:
            val = tag.get(attr)
            if val and str(val).strip().startswith(_ABSOLUTE_OR_PROTOCOL_RELATIVE):
                yield str(val), ServerKind.IFRAME


STRATEGIES: tuple[tuple[str, Callable[[BeautifulSoup], Iterator[Candidate]]], ...] = (
    ("iframe", _from_iframes),
    ("video", _from_video_tags),
    ("script", _from_scripts),
    ("data_attribute", _from_data_attributes),
)


def extract_stream_servers(
    html: str,
    *,
    page_url: str,
    base_url: str,
    provider_label: str,
) -> list[StreamServer]:
    """Run the strategies in order; return servers from the first productive one.

    Returns an empty list when nothing acceptable was found (the caller
    decides whether that is an error).
    """
    soup = parse_html(html)
    collector = ServerCollector(
        base_url=base_url, page_url=page_url, provider_label=provider_label
    )
    for name, strategy in STRATEGIES:
        for raw_url, kind in strategy(soup):
            collector.add(raw_url, kind)
        if len(collector):
            log.debug(
                "stream_servers_extracted",
                strategy=name,
                count=len(collector),
                page_url=page_url,
            )
            return collector.servers
    return []
