"""
Core domain models and matching logic.

This package contains data types and business logic that is
independent of any specific pipeline stage or remote source.
"""

from .types import AssetRecord, CatalogEntry, MergedSlide
from .normalize import clean_entry_name, keywords, normalize_title, slugify, unique_id
from .corpus import AssetCorpus
from .matcher import Matcher, MatchResult

__all__ = [
    "AssetRecord",
    "CatalogEntry",
    "MergedSlide",
    "AssetCorpus",
    "Matcher",
    "MatchResult",
    "clean_entry_name",
    "keywords",
    "normalize_title",
    "slugify",
    "unique_id",
]
