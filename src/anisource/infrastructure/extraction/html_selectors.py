"""CSS-selector helpers over BeautifulSoup with fallback chains.

Adapters describe site markup as selector strings; these helpers keep
the lookups tolerant of small layout changes: the first selector that
matches anything wins, and missing nodes yield a default instead of an
exception.
"""

from __future__ import annotations

from collections.abc import Iterator

from bs4 import BeautifulSoup, Tag


def parse_html(html: str) -> BeautifulSoup:
    """Parse *html* with the lxml parser."""
    return BeautifulSoup(html, "lxml")


def select_items(
    root: BeautifulSoup | Tag,
    selector: str,
    *fallback_selectors: str,
) -> list[Tag]:
    """Return the matches of the first selector that matches anything."""
    for sel in (selector, *fallback_selectors):
        items = root.select(sel)
        if items:
            return items
    return []


def extract_text(
    element: Tag,
    selector: str,
    *fallback_selectors: str,
    default: str = "",
) -> str:
    """Stripped text of the first matching descendant (``""`` = the element itself)."""
    if selector == "":
        return element.get_text(strip=True) or default

    for sel in (selector, *fallback_selectors):
        match = element.select_one(sel)
        if match is not None:
            text = match.get_text(strip=True)
            if text:
                return text
    return default


def extract_attr(
    element: Tag,
    selector: str,
    attr: str,
    *fallback_selectors: str,
    default: str = "",
) -> str:
    """Attribute of the first matching descendant (``""`` = the element itself)."""
    if selector == "":
        val = element.get(attr)
        return str(val) if val else default

    for sel in (selector, *fallback_selectors):
        match = element.select_one(sel)
        if match is not None:
            val = match.get(attr)
            if val:
                return str(val)
    return default


def iter_attr_values(
    root: BeautifulSoup | Tag,
    selector: str,
    attrs: tuple[str, ...],
) -> Iterator[str]:
    """Yield every non-empty value of *attrs* on elements matching *selector*.

    Document order first, then attribute order within one element.
    """
    for tag in root.select(selector):
        for attr in attrs:
            val = tag.get(attr)
            if val:
                yield str(val)
