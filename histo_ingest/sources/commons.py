"""
Client for the media repository's public query API (MediaWiki action API).

Two operations are used:
- category_members: one page of a category's membership listing
- search: full-text search restricted to a namespace

File bytes are fetched through a deterministic file-path URL built from the
file title.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

from ..config import DiscoveryConfig, FetchConfig
from ..core.types import AssetRecord
from ..fetch.fetcher import fetch_text

FILE_NAMESPACE = 6
CATEGORY_NAMESPACE = 14


class SourceError(RuntimeError):
    """The media repository returned an unusable response."""


@dataclass
class CategoryPage:
    """One page of category members.

    Attributes:
        members: Raw member dicts with at least "ns" and "title"
        continuation: Token for the next page, or None when exhausted
    """
    members: list[dict[str, Any]] = field(default_factory=list)
    continuation: str | None = None


def file_path_url(title: str, base: str) -> str:
    """Build the direct file URL for a file title (with or without the File: prefix)."""
    name = title[len("File:"):] if title.startswith("File:") else title
    return f"{base}{quote(name, safe='')}"


class CommonsClient:
    """Thin async wrapper over the query API.

    Args:
        client: Shared async client
        cfg: Discovery configuration (endpoint, page size, file URL base)
        fetch_cfg: Fetch configuration (retries)
    """

    def __init__(self, client: httpx.AsyncClient, cfg: DiscoveryConfig, fetch_cfg: FetchConfig):
        self.client = client
        self.cfg = cfg
        self.retries = fetch_cfg.retries

    async def _query(self, params: dict[str, Any]) -> dict[str, Any]:
        params = {"action": "query", "format": "json", **params}
        result = await fetch_text(self.client, self.cfg.api_url, self.retries, params=params)
        if not result.ok or result.text is None:
            raise SourceError(f"Query failed: {result.error}")
        try:
            data = json.loads(result.text)
        except json.JSONDecodeError as exc:
            raise SourceError(f"Invalid JSON from query API: {exc}") from exc
        if not isinstance(data, dict):
            raise SourceError("Unexpected query API response shape")
        if "error" in data:
            raise SourceError(f"Query API error: {data['error']}")
        return data

    async def category_members(self, title: str, continuation: str | None = None) -> CategoryPage:
        """Fetch one page of members of a category."""
        params: dict[str, Any] = {
            "list": "categorymembers",
            "cmtitle": title,
            "cmlimit": self.cfg.page_limit,
        }
        if continuation:
            params["cmcontinue"] = continuation
        data = await self._query(params)
        members = (data.get("query") or {}).get("categorymembers")
        if members is None:
            members = []
        if not isinstance(members, list):
            raise SourceError(f"Unexpected categorymembers payload for {title}")
        token = (data.get("continue") or {}).get("cmcontinue")
        return CategoryPage(members=members, continuation=token or None)

    async def search(self, query: str, namespace: int = FILE_NAMESPACE, limit: int = 1) -> list[str]:
        """Return titles of the top search hits."""
        data = await self._query(
            {
                "list": "search",
                "srsearch": query,
                "srnamespace": namespace,
                "srlimit": limit,
            }
        )
        hits = (data.get("query") or {}).get("search") or []
        return [hit["title"] for hit in hits if isinstance(hit, dict) and hit.get("title")]

    def file_url(self, title: str) -> str:
        return file_path_url(title, self.cfg.file_url_base)

    def asset_for(self, title: str, source: str) -> AssetRecord:
        return AssetRecord(source=source, title=title, url=self.file_url(title))
