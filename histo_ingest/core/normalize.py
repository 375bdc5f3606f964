"""
Title normalization for matching catalog entries against media assets.

Both sides of a match are reduced to a "clean key": lowercase words separated
by single spaces, with file-title noise (namespace prefix, extension,
underscores) removed.
"""

from __future__ import annotations

import re

FILE_PREFIX = "File:"
EXTENSION_RE = re.compile(r"\.\w+$")
SEPARATOR_RE = re.compile(r"[_\s]+")
SLUG_RE = re.compile(r"[^a-z0-9]+")
DEFAULT_SPECIMEN_RE = re.compile(r"mh\s*\d+\w*")


def normalize_title(title: str) -> str:
    """Map a raw asset or catalog title to its clean comparison key.

    Examples:
        >>> normalize_title("File:Adrenal_gland.jpg")
        'adrenal gland'
    """
    value = title.replace(FILE_PREFIX, "", 1) if title.startswith(FILE_PREFIX) else title
    value = EXTENSION_RE.sub("", value)
    value = SEPARATOR_RE.sub(" ", value)
    return value.strip().lower()


def clean_entry_name(name: str, specimen_pattern: re.Pattern[str] | str | None = None) -> str:
    """Normalize a catalog entry's display name for matching.

    The first internal specimen code (e.g. ``MH 016``) is removed before
    separators are collapsed. Unlike asset titles, no extension is stripped:
    catalog names never carry one, and a trailing "." is meaningful text.
    """
    pattern = specimen_pattern or DEFAULT_SPECIMEN_RE
    if isinstance(pattern, str):
        pattern = re.compile(pattern)
    value = pattern.sub("", name.lower(), count=1)
    return SEPARATOR_RE.sub(" ", value).strip()


def keywords(clean_name: str, stop_words: set[str], min_length: int = 3) -> list[str]:
    """Split a clean name into significant words (longer than min_length, not stop words)."""
    return [
        word
        for word in clean_name.split(" ")
        if len(word) > min_length and word not in stop_words
    ]


def slugify(text: str) -> str:
    """Convert text to a lowercase, hyphenated slug.

    Returns "untitled" when nothing alphanumeric remains.
    """
    slug = SLUG_RE.sub("-", text.lower()).strip("-")
    return slug or "untitled"


def unique_id(base: str, used: set[str]) -> str:
    """Suffix -2, -3, ... onto colliding ids, deterministically in call order.

    The chosen id is added to used.
    """
    candidate = base or "slide"
    suffix = 2
    while candidate in used:
        candidate = f"{base or 'slide'}-{suffix}"
        suffix += 1
    used.add(candidate)
    return candidate
