"""
HTML parsing for the structured slide catalog.

The catalog is a two-level hierarchy: a navigation page links to chapter
pages, and each chapter page links to slide detail pages. Links are
recognised by a substring of their raw href attribute.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

ID_INVALID_RE = re.compile(r"[^a-zA-Z0-9-]")


@dataclass
class Link:
    """A hyperlink with its visible text and absolute URL."""
    text: str
    url: str


def _links(html: str, page_url: str, pattern: str) -> list[Link]:
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for anchor in soup.select("a[href]"):
        href = anchor.get("href", "")
        if pattern not in href:
            continue
        links.append(Link(text=anchor.get_text(" ", strip=True), url=urljoin(page_url, href)))
    return links


def parse_chapter_links(html: str, page_url: str, pattern: str) -> list[Link]:
    """Extract chapter links from the navigation page.

    The navigation root itself and links without text are dropped; a chapter
    linked twice is kept once, in first-seen order.
    """
    root = _strip_fragment(page_url)
    root_name = urlparse(root).path.rsplit("/", 1)[-1]
    seen: set[str] = set()
    chapters = []
    for link in _links(html, page_url, pattern):
        url = _strip_fragment(link.url)
        if not link.text or url == root:
            continue
        if root_name and urlparse(url).path.endswith("/" + root_name):
            continue
        if url in seen:
            continue
        seen.add(url)
        chapters.append(Link(text=link.text, url=url))
    return chapters


def parse_slide_links(html: str, page_url: str, pattern: str) -> list[Link]:
    """Extract slide detail links (with non-empty text) from a chapter page."""
    return [link for link in _links(html, page_url, pattern) if link.text]


def slide_id_from_url(url: str) -> str:
    """Derive a stable slide id from the second-to-last path segment.

    Example:
        >>> slide_id_from_url("https://example.org/slideview/MH-016-simple-epithelia/slideview.html")
        'MH-016-simple-epithelia'
    """
    segments = urlparse(url).path.split("/")
    segment = segments[-2] if len(segments) >= 2 else segments[-1]
    return ID_INVALID_RE.sub("", segment)


def slide_base_url(url: str) -> str:
    """Return the slide page URL without its last path segment."""
    return url[: url.rfind("/")]


def thumbnail_url(slide_url: str, thumbnail_path: str) -> str:
    """Per-slide thumbnail convention: {slideBaseURL}/{thumbnail_path}."""
    return f"{slide_base_url(slide_url)}/{thumbnail_path.lstrip('/')}"


def _strip_fragment(url: str) -> str:
    return url.split("#", 1)[0]
