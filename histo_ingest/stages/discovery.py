"""
Stage B: discover candidate assets by walking the media repository's category tree.

The walk is an explicit worklist of (category, depth) items consumed by a
bounded pool of worker tasks. Each item pages through its membership listing
until no continuation token is returned: files become AssetRecords, and
subcategories are queued one level deeper. Categories deeper than
max_depth are never listed, which bounds the walk even on cyclic category
graphs. A failed listing abandons that category only.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from ..config import AppConfig
from ..core.corpus import AssetCorpus
from ..logging_utils import log_event
from ..output.store import save_corpus
from ..sources.commons import CATEGORY_NAMESPACE, FILE_NAMESPACE, CommonsClient, SourceError


@dataclass
class DiscoveryStats:
    """Statistics collected during the category walk.

    Attributes:
        categories: Category listings walked
        categories_failed: Listings abandoned after a request or parse failure
        pages: Membership pages fetched
        added: New assets added to the corpus
        already_known: File members whose title was already in the corpus
        skipped: True when the bulk crawl did not run (corpus large enough)
    """
    categories: int = 0
    categories_failed: int = 0
    pages: int = 0
    added: int = 0
    already_known: int = 0
    skipped: bool = False


async def discover_assets(
    commons: CommonsClient,
    corpus: AssetCorpus,
    cfg: AppConfig,
    logger: logging.Logger,
    seed_category: str | None = None,
) -> DiscoveryStats:
    """Walk the category tree from seed_category, adding new file members to corpus.

    Args:
        commons: Query API client
        corpus: Corpus to extend in place
        cfg: Application configuration
        logger: Logger for events
        seed_category: Category to start from (defaults to the configured seed)

    Returns:
        DiscoveryStats for the walk
    """
    discovery = cfg.discovery
    stats = DiscoveryStats()
    queue: asyncio.Queue[tuple[str, int]] = asyncio.Queue()
    queued: set[str] = set()

    def enqueue(title: str, depth: int) -> None:
        if depth > discovery.max_depth:
            return
        if discovery.dedupe_categories:
            if title in queued:
                return
            queued.add(title)
        queue.put_nowait((title, depth))

    async def walk(title: str, depth: int) -> None:
        stats.categories += 1
        logger.info("Scanning %s (depth %d)", title, depth)
        continuation: str | None = None
        while True:
            try:
                page = await commons.category_members(title, continuation)
            except SourceError as exc:
                stats.categories_failed += 1
                log_event(
                    logger,
                    "Category listing failed",
                    level=logging.DEBUG,
                    event="category_failed",
                    category=title,
                    depth=depth,
                    error=str(exc),
                )
                return
            stats.pages += 1
            for member in page.members:
                namespace = member.get("ns")
                member_title = member.get("title")
                if not member_title:
                    continue
                if namespace == FILE_NAMESPACE:
                    if corpus.add(commons.asset_for(member_title, discovery.source_label)):
                        stats.added += 1
                    else:
                        stats.already_known += 1
                elif namespace == CATEGORY_NAMESPACE:
                    enqueue(member_title, depth + 1)
            continuation = page.continuation
            if not continuation:
                return

    async def worker() -> None:
        while True:
            title, depth = await queue.get()
            try:
                await walk(title, depth)
            except Exception:  # noqa: BLE001
                stats.categories_failed += 1
                logger.exception("Unexpected error walking %s", title)
            finally:
                queue.task_done()

    enqueue(seed_category or discovery.seed_category, 0)
    workers = [asyncio.create_task(worker()) for _ in range(max(1, discovery.workers))]
    try:
        await queue.join()
    finally:
        for task in workers:
            task.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
    return stats


async def run_discovery_stage(
    commons: CommonsClient,
    corpus: AssetCorpus,
    cfg: AppConfig,
    assets_path: Path,
    logger: logging.Logger,
    force: bool = False,
) -> DiscoveryStats:
    """Run Stage B when the corpus is below the configured size, then persist it.

    The corpus is saved at the end of the stage, also when the walk is
    interrupted, so assets found so far survive for the next run.
    """
    if not force and len(corpus) >= cfg.discovery.min_corpus_size:
        log_event(
            logger,
            "Asset discovery skipped",
            event="stage_skipped",
            stage="discovery",
            corpus_size=len(corpus),
        )
        return DiscoveryStats(skipped=True)

    stats = DiscoveryStats()
    try:
        stats = await discover_assets(commons, corpus, cfg, logger)
    finally:
        save_corpus(assets_path, corpus)
        log_event(
            logger,
            "Asset discovery complete",
            event="stage_complete",
            stage="discovery",
            corpus_size=len(corpus),
            added=stats.added,
            categories=stats.categories,
            categories_failed=stats.categories_failed,
        )
    return stats
