"""
Stage A: index the structured slide catalog.

Walks navigation page -> chapter pages -> slide links sequentially and
produces a flat, ordered list of CatalogEntry objects with stable ids.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..config import AppConfig
from ..core.normalize import unique_id
from ..core.types import CatalogEntry
from ..fetch.fetcher import fetch_text
from ..logging_utils import log_event
from ..output.store import save_index
from ..sources.catalog import parse_chapter_links, parse_slide_links, slide_id_from_url


@dataclass
class IndexStats:
    """Statistics collected while indexing the catalog.

    Attributes:
        chapters: Chapter links found on the navigation page
        chapters_failed: Chapters skipped because their page could not be loaded or parsed
        slides: Unique slides recorded
        duplicates: Slide links already recorded from an earlier chapter
    """
    chapters: int = 0
    chapters_failed: int = 0
    slides: int = 0
    duplicates: int = 0


async def build_index(
    client: httpx.AsyncClient,
    cfg: AppConfig,
    logger: logging.Logger,
    stats: IndexStats | None = None,
    entries: list[CatalogEntry] | None = None,
) -> list[CatalogEntry]:
    """Crawl the catalog and return its slides in discovery order.

    A slide reachable from several chapters is recorded once, under the
    first chapter it was seen in. Per-chapter failures are logged and the
    chapter is skipped. A navigation page failure yields an empty list.

    Args:
        client: Shared async client
        cfg: Application configuration
        logger: Logger for events
        stats: Optional stats object to update
        entries: Optional list to append to; lets a caller keep partial
            results if the crawl is cancelled

    Returns:
        The list of CatalogEntry objects
    """
    stats = stats if stats is not None else IndexStats()
    entries = entries if entries is not None else []
    catalog = cfg.catalog

    nav = await fetch_text(client, catalog.start_url, cfg.fetch.retries)
    if not nav.ok or nav.text is None:
        log_event(
            logger,
            "Catalog navigation page failed",
            level=logging.ERROR,
            event="navigation_failed",
            url=catalog.start_url,
            error=nav.error,
        )
        return entries

    chapters = parse_chapter_links(nav.text, catalog.start_url, catalog.chapter_pattern)
    stats.chapters = len(chapters)
    logger.info("Found %d chapters", len(chapters))

    seen_urls: set[str] = set()
    used_ids: set[str] = set()

    for chapter in chapters:
        page = await fetch_text(client, chapter.url, cfg.fetch.retries)
        if not page.ok or page.text is None:
            stats.chapters_failed += 1
            log_event(
                logger,
                "Chapter failed",
                level=logging.WARNING,
                event="chapter_failed",
                chapter=chapter.text,
                url=chapter.url,
                error=page.error,
            )
            continue
        try:
            slides = parse_slide_links(page.text, chapter.url, catalog.slide_pattern)
        except Exception as exc:  # noqa: BLE001
            stats.chapters_failed += 1
            log_event(
                logger,
                "Chapter markup unreadable",
                level=logging.WARNING,
                event="chapter_failed",
                chapter=chapter.text,
                url=chapter.url,
                error=f"{type(exc).__name__}: {exc}",
            )
            continue

        for link in slides:
            if link.url in seen_urls:
                stats.duplicates += 1
                continue
            seen_urls.add(link.url)
            entry_id = unique_id(slide_id_from_url(link.url), used_ids)
            entries.append(
                CatalogEntry(id=entry_id, name=link.text, source_url=link.url, category=chapter.text)
            )
        logger.debug("Chapter %s: %d slide links", chapter.text, len(slides))

    stats.slides = len(entries)
    return entries


async def run_index_stage(
    client: httpx.AsyncClient,
    cfg: AppConfig,
    index_path: Path,
    logger: logging.Logger,
) -> IndexStats:
    """Run Stage A and persist the index.

    Whatever was collected is written even when the crawl is interrupted,
    provided at least one slide was found; an empty crawl never replaces an
    existing index.
    """
    stats = IndexStats()
    entries: list[CatalogEntry] = []
    try:
        await build_index(client, cfg, logger, stats, entries)
    finally:
        if entries:
            save_index(index_path, entries)
        stats.slides = len(entries)
        log_event(
            logger,
            "Catalog indexed",
            event="stage_complete",
            stage="index",
            chapters=stats.chapters,
            chapters_failed=stats.chapters_failed,
            slides=stats.slides,
            duplicates=stats.duplicates,
        )
    return stats
