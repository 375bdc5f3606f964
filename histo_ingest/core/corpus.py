"""
The asset corpus: accumulated, persisted set of discovered assets.

The corpus is append-only across runs. Records are keyed by title; a title
already present is never replaced or evicted. It is written to disk only at
stage checkpoints by the caller, never from inside a crawl.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterator

from .types import AssetRecord

logger = logging.getLogger("histo_ingest.corpus")


class AssetCorpus:
    """Ordered collection of AssetRecord objects with a seen-set on title.

    Iteration order is insertion order, which the matcher relies on for
    deterministic first-found matching.
    """

    def __init__(self, records: list[AssetRecord] | None = None):
        self._records: list[AssetRecord] = []
        self._seen: set[str] = set()
        for record in records or []:
            self.add(record)

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[AssetRecord]:
        return iter(self._records)

    def __contains__(self, title: object) -> bool:
        return title in self._seen

    def add(self, record: AssetRecord) -> bool:
        """Append a record unless its title is already known.

        Returns:
            True if the record was added
        """
        if record.title in self._seen:
            return False
        self._seen.add(record.title)
        self._records.append(record)
        return True

    @classmethod
    def load(cls, path: Path) -> "AssetCorpus":
        """Load a persisted corpus, recomputing clean keys missing from old records.

        A missing or unreadable file yields an empty corpus.
        """
        if not path.exists():
            return cls()
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable corpus %s: %s", path, exc)
            return cls()
        if not isinstance(raw, list):
            logger.warning("Ignoring corpus %s: expected a JSON list", path)
            return cls()

        records = []
        for item in raw:
            try:
                records.append(AssetRecord.from_dict(item))
            except (KeyError, TypeError):
                logger.debug("Skipping malformed corpus record: %r", item)
        return cls(records)

    def to_list(self) -> list[dict]:
        return [record.to_dict() for record in self._records]
