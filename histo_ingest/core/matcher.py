"""
Tiered best-effort linking of catalog entries to corpus assets.

Tiers are tried in a fixed order and the first tier that yields a record wins:
0. override: curated slide id -> file title map
1. containment: the entry's clean name contains, or is contained by, an asset's clean key
2. keywords: an asset's clean key contains every significant word of the name
3. live: top hit of a live search on the media repository

Within a tier the first record in corpus order is taken; there is no scoring.
Later tiers are lower precision and only consulted when earlier ones fail.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable

from ..config import MatchConfig
from .corpus import AssetCorpus
from .normalize import clean_entry_name, keywords
from .types import AssetRecord, CatalogEntry

logger = logging.getLogger("histo_ingest.matcher")

SearchFn = Callable[[str], Awaitable["AssetRecord | None"]]

TIER_OVERRIDE = "override"
TIER_CONTAINMENT = "containment"
TIER_KEYWORDS = "keywords"
TIER_LIVE = "live"


@dataclass
class MatchResult:
    """Outcome of matching one catalog entry.

    Attributes:
        record: The chosen asset, or None when every tier came up empty
        tier: Name of the tier that produced the record, or None
        clean_name: The normalized entry name used for matching
    """
    record: AssetRecord | None
    tier: str | None
    clean_name: str

    @property
    def matched(self) -> bool:
        return self.record is not None


def find_containment(clean_name: str, corpus: AssetCorpus) -> AssetRecord | None:
    """Return the first asset whose clean key contains, or is contained by, the name."""
    if not clean_name:
        return None
    for record in corpus:
        if record.clean and (clean_name in record.clean or record.clean in clean_name):
            return record
    return None


def find_keywords(words: list[str], corpus: AssetCorpus) -> AssetRecord | None:
    """Return the first asset whose clean key contains every keyword."""
    if not words:
        return None
    for record in corpus:
        if record.clean and all(word in record.clean for word in words):
            return record
    return None


class Matcher:
    """Runs the matching tiers for catalog entries against one corpus.

    Args:
        corpus: Asset corpus searched by the offline tiers
        cfg: Matching configuration
        search: Coroutine returning the top live search hit for a query, or None
            to disable the live tier
        file_url: Builds a fetchable URL from a file title (used for overrides)
    """

    def __init__(
        self,
        corpus: AssetCorpus,
        cfg: MatchConfig,
        search: SearchFn | None = None,
        file_url: Callable[[str], str] | None = None,
    ):
        self.corpus = corpus
        self.cfg = cfg
        self._search = search
        self._file_url = file_url
        self._specimen_re = re.compile(cfg.specimen_pattern)
        self._stop_words = {word.lower() for word in cfg.stop_words}

    def clean_name(self, entry: CatalogEntry) -> str:
        return clean_entry_name(entry.name, self._specimen_re)

    def match_offline(self, entry: CatalogEntry) -> MatchResult:
        """Run the override, containment and keyword tiers."""
        clean_name = self.clean_name(entry)

        override_title = self.cfg.overrides.get(entry.id)
        if override_title and self._file_url is not None:
            record = AssetRecord(
                source=self.cfg.override_label,
                title=override_title,
                url=self._file_url(override_title),
            )
            return MatchResult(record, TIER_OVERRIDE, clean_name)

        record = find_containment(clean_name, self.corpus)
        if record:
            return MatchResult(record, TIER_CONTAINMENT, clean_name)

        words = keywords(clean_name, self._stop_words, self.cfg.min_keyword_length)
        record = find_keywords(words, self.corpus)
        if record:
            return MatchResult(record, TIER_KEYWORDS, clean_name)

        return MatchResult(None, None, clean_name)

    async def match(self, entry: CatalogEntry) -> MatchResult:
        """Run every tier, falling back to live search when the corpus has no match."""
        result = self.match_offline(entry)
        if result.matched or self._search is None or not result.clean_name:
            return result

        query = f"{result.clean_name}{self.cfg.search_suffix}"
        record = await self._search(query)
        if record is None:
            return result
        logger.debug("Live search hit for %s: %s", entry.id, record.title)
        return MatchResult(record, TIER_LIVE, result.clean_name)
