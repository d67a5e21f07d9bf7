"""URL normalisation, blocklist and de-duplication for extracted stream URLs."""

from __future__ import annotations

import html
from urllib.parse import urljoin, urlsplit

from anisource.domain.entities import ServerKind

MEDIA_EXTENSIONS = (".mp4", ".m3u8", ".webm")

# Static assets a page loads from inline scripts; never a player.
ASSET_EXTENSIONS = (
    ".js",
    ".css",
    ".json",
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".webp",
    ".ico",
    ".woff",
    ".woff2",
)

# Substrings of hosts that never serve a playable anime stream:
# ad networks, trackers, social widgets and disallowed video platforms.
BLOCKLIST: tuple[str, ...] = (
    "doubleclick.net",
    "googlesyndication.com",
    "googleadservices.com",
    "google-analytics.com",
    "googletagmanager.com",
    "adservice.google",
    "amazon-adsystem.com",
    "popads.net",
    "popcash.net",
    "propellerads",
    "adsterra",
    "exoclick.com",
    "juicyads.com",
    "histats.com",
    "disqus.com",
    "facebook.com",
    "facebook.net",
    "twitter.com",
    "instagram.com",
    "tiktok.com",
    "discord.gg",
    "youtube.com",
    "youtube-nocookie.com",
    "youtu.be",
)

_ALLOWED_SCHEMES = ("http", "https")


def unescape_script_url(raw: str) -> str:
    """Undo the escaping found in inline JS/JSON (``\\/`` and HTML entities)."""
    return html.unescape(raw.replace("\\/", "/"))


def normalize_url(
    raw: str,
    *,
    base_url: str,
    page_url: str | None = None,
) -> str | None:
    """Turn a discovered URL into an absolute http(s) URL.

    - ``//host/x``  -> ``https://host/x``
    - ``/x``        -> joined against *base_url*
    - ``x``         -> joined against *page_url* (or *base_url*)
    - absolute http(s) URLs are returned unchanged

    Returns ``None`` for empty values and non-http schemes
    (``javascript:``, ``data:``, ``about:blank``, ...).  Idempotent.
    """
    url = raw.strip()
    if not url:
        return None

    if url.startswith("//"):
        url = "https:" + url
    elif url.startswith("/"):
        url = urljoin(base_url, url)
    else:
        scheme = urlsplit(url).scheme.lower()
        if scheme and scheme not in _ALLOWED_SCHEMES:
            return None
        if not scheme:
            url = urljoin(page_url or base_url, url)

    parts = urlsplit(url)
    if parts.scheme.lower() not in _ALLOWED_SCHEMES or not parts.netloc:
        return None
    return url


def is_blocked(url: str) -> bool:
    """True when *url* contains a blocklisted substring (case-insensitive)."""
    lowered = url.lower()
    return any(entry in lowered for entry in BLOCKLIST)


def has_media_extension(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return path.endswith(MEDIA_EXTENSIONS)


def has_asset_extension(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return path.endswith(ASSET_EXTENSIONS)


def dedup_key(url: str, kind: ServerKind) -> tuple[str, ServerKind]:
    """Identity of a stream URL: scheme + lowercase host + path, plus kind.

    Query string and fragment are ignored.
    """
    parts = urlsplit(url)
    return (f"{parts.scheme.lower()}://{parts.netloc.lower()}{parts.path}", kind)
