"""
Core data types for the slide ingestion pipeline.

This module defines the fundamental data structures used throughout the pipeline:
- CatalogEntry: One slide as enumerated by the structured catalog
- AssetRecord: One candidate image discovered on the media repository
- MergedSlide: A catalog entry with its resolved local image and provenance

Persisted JSON uses camelCase keys (sourceUrl, imageUrl, sourceName) because
the datasets are consumed by the slide viewer as-is.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .normalize import normalize_title


@dataclass
class CatalogEntry:
    """Represents one slide as known to the structured catalog.

    Attributes:
        id: Stable slug derived from the slide URL path
        name: Display title of the slide
        source_url: URL of the slide detail page
        category: Title of the chapter the slide was first found under
    """
    id: str
    name: str
    source_url: str
    category: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "sourceUrl": self.source_url,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CatalogEntry":
        """Build an entry from persisted JSON.

        Older index files stored the slide page under ``url``; both keys are accepted.
        """
        return cls(
            id=data["id"],
            name=data["name"],
            source_url=data.get("sourceUrl") or data["url"],
            category=data.get("category", ""),
        )


@dataclass
class AssetRecord:
    """A candidate image discovered on the media repository.

    Attributes:
        source: Provenance label (bulk corpus, live search, override)
        title: Raw file title, unique within the corpus
        url: Direct fetchable URL of the file bytes
        clean: Normalized comparison key, derived from title when missing
    """
    source: str
    title: str
    url: str
    clean: str = ""

    def __post_init__(self) -> None:
        if not self.clean:
            self.clean = normalize_title(self.title)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "title": self.title,
            "clean": self.clean,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AssetRecord":
        return cls(
            source=data.get("source", ""),
            title=data["title"],
            url=data["url"],
            clean=data.get("clean") or "",
        )


@dataclass
class MergedSlide:
    """Final unit written to the output dataset.

    Attributes:
        entry: The catalog entry this slide was built from
        image_url: Site-relative path of the local image file
        source_name: Human-readable provenance of the image
        extra: Additional fields written alongside (batch variant: description, theory, markers)
    """
    entry: CatalogEntry
    image_url: str
    source_name: str
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = self.entry.to_dict()
        data.update(self.extra)
        data["imageUrl"] = self.image_url
        data["sourceName"] = self.source_name
        return data
