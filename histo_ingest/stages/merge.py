"""
Stage C: match every catalog entry to an asset, download its image, write the dataset.

Entries are processed sequentially in catalog order. Per entry:

    pending -> matched | unmatched -> downloading -> valid
                                                  -> fallback_downloading -> valid | failed

An image already on disk that passes size validation is reused without any
network traffic, which makes re-runs cheap and idempotent. A thumbnail left
by an earlier fallback is reused only while the previous dataset still
records that entry under the fallback label. A failed entry is still
emitted, pointing at its best-attempted path. The dataset is written once,
after the last entry.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field

import httpx
from rich.progress import Progress

from ..config import AppConfig
from ..core.corpus import AssetCorpus
from ..core.matcher import Matcher
from ..core.types import AssetRecord, CatalogEntry, MergedSlide
from ..fetch.fetcher import DownloadResult, download_file, is_valid_file, remove_file
from ..logging_utils import log_event
from ..output.store import DataLayout, load_previous_dataset, save_corpus, save_dataset
from ..sources.catalog import thumbnail_url
from ..sources.commons import CommonsClient, SourceError

MATCHED = "matched"
UNMATCHED = "unmatched"
DOWNLOADING = "downloading"
FALLBACK_DOWNLOADING = "fallback_downloading"
VALID = "valid"
FAILED = "failed"

VECTOR_EXTENSION = "svg"
DEFAULT_ASSET_EXTENSION = "jpg"
THUMBNAIL_EXTENSION = "png"


@dataclass
class MergeStats:
    """Statistics collected during merge and download.

    Attributes:
        total: Catalog entries processed
        downloaded: Primary downloads that produced a valid file
        skipped: Entries whose valid file was already on disk
        fallback: Entries rescued by the thumbnail fallback
        failed: Entries left without a valid file
        unmatched: Entries no tier could match
        tiers: Matches per tier name
    """
    total: int = 0
    downloaded: int = 0
    skipped: int = 0
    fallback: int = 0
    failed: int = 0
    unmatched: int = 0
    tiers: Counter = field(default_factory=Counter)


@dataclass
class EntryOutcome:
    """Terminal state of one entry plus the slide emitted for it."""
    slide: MergedSlide
    state: str
    tier: str | None = None
    network_downloads: int = 0
    used_fallback: bool = False


def asset_extension(title: str) -> str:
    """Vector files keep their format; everything else is stored as the default raster type."""
    if title.lower().endswith(f".{VECTOR_EXTENSION}"):
        return VECTOR_EXTENSION
    return DEFAULT_ASSET_EXTENSION


class MergeStage:
    """Drives the matcher and the fetcher over the catalog.

    Args:
        client: Shared async client
        matcher: Matcher over the run's corpus
        cfg: Application configuration
        layout: Data root layout
        logger: Logger for events
        previous: Records of the last written dataset keyed by slide id
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        matcher: Matcher,
        cfg: AppConfig,
        layout: DataLayout,
        logger: logging.Logger,
        previous: dict[str, dict] | None = None,
    ):
        self.client = client
        self.matcher = matcher
        self.cfg = cfg
        self.layout = layout
        self.logger = logger
        self.previous = previous or {}

    async def _download(self, url: str, filename: str) -> DownloadResult:
        fetch = self.cfg.fetch
        return await download_file(
            self.client,
            url,
            self.layout.image_path(filename),
            headers={"Referer": fetch.referer},
            min_bytes=fetch.min_image_bytes,
            max_redirects=fetch.max_redirects,
            chunk_size=fetch.chunk_size,
        )

    def _kept_fallback(self, entry: CatalogEntry, fallback_name: str) -> bool:
        """Whether the last dataset already settled this entry on its thumbnail fallback."""
        prev = self.previous.get(entry.id)
        if not prev:
            return False
        return (
            prev.get("sourceName") == self.cfg.catalog.fallback_label
            and prev.get("imageUrl") == self.layout.image_url(fallback_name)
        )

    async def process(self, entry: CatalogEntry, position: str = "") -> EntryOutcome:
        """Run one entry through match, skip-check, download and fallback."""
        min_bytes = self.cfg.fetch.min_image_bytes
        catalog = self.cfg.catalog

        match = await self.matcher.match(entry)
        thumb = thumbnail_url(entry.source_url, catalog.thumbnail_path)
        record: AssetRecord | None = match.record
        if record is not None:
            url, ext, source_name = record.url, asset_extension(record.title), record.source
        else:
            url, ext, source_name = thumb, THUMBNAIL_EXTENSION, catalog.thumb_label

        filename = f"{entry.id}.{ext}"
        dest = self.layout.image_path(filename)
        slide = MergedSlide(entry=entry, image_url=self.layout.image_url(filename), source_name=source_name)
        outcome = EntryOutcome(slide=slide, state=MATCHED if record else UNMATCHED, tier=match.tier)

        if is_valid_file(dest, min_bytes):
            outcome.state = VALID
            return outcome
        if dest.exists():
            self.logger.info("Deleting corrupt/small file: %s", filename)
            remove_file(dest)

        fallback_name = f"{entry.id}.{THUMBNAIL_EXTENSION}"
        if record is not None and fallback_name != filename and self._kept_fallback(entry, fallback_name):
            if is_valid_file(self.layout.image_path(fallback_name), min_bytes):
                slide.image_url = self.layout.image_url(fallback_name)
                slide.source_name = catalog.fallback_label
                outcome.state = VALID
                return outcome

        outcome.state = DOWNLOADING
        self.logger.info("%sDownloading: %s (Source: %s)", position, filename, source_name)
        result = await self._download(url, filename)
        outcome.network_downloads += 1
        if result.ok:
            outcome.state = VALID
            return outcome

        log_event(
            self.logger,
            f"Failed: {result.error}",
            level=logging.WARNING,
            event="download_failed",
            slide_id=entry.id,
            url=url,
            error_kind=result.error.kind if result.error else None,
            status_code=result.error.status_code if result.error else None,
        )
        if record is None:
            outcome.state = FAILED
            return outcome

        outcome.state = FALLBACK_DOWNLOADING
        self.logger.info("Fallback to thumbnail: %s", thumb)
        fallback = await self._download(thumb, fallback_name)
        outcome.network_downloads += 1
        if fallback.ok:
            slide.image_url = self.layout.image_url(fallback_name)
            slide.source_name = catalog.fallback_label
            outcome.state = VALID
            outcome.used_fallback = True
            return outcome

        log_event(
            self.logger,
            f"Fallback failed: {fallback.error}",
            level=logging.WARNING,
            event="fallback_failed",
            slide_id=entry.id,
            url=thumb,
            error_kind=fallback.error.kind if fallback.error else None,
        )
        outcome.state = FAILED
        return outcome

    async def run(
        self,
        entries: list[CatalogEntry],
        stats: MergeStats | None = None,
        progress: Progress | None = None,
        task_id: int | None = None,
    ) -> list[MergedSlide]:
        """Process all entries in catalog order and return the merged slides."""
        stats = stats if stats is not None else MergeStats()
        slides: list[MergedSlide] = []
        total = len(entries)
        for i, entry in enumerate(entries, start=1):
            outcome = await self.process(entry, position=f"[{i}/{total}] ")
            stats.total += 1
            if outcome.tier:
                stats.tiers[outcome.tier] += 1
            else:
                stats.unmatched += 1
            if outcome.state == FAILED:
                stats.failed += 1
            elif outcome.network_downloads == 0:
                stats.skipped += 1
            elif outcome.used_fallback:
                stats.fallback += 1
            else:
                stats.downloaded += 1
            slides.append(outcome.slide)
            if progress is not None and task_id is not None:
                progress.advance(task_id, 1)
        return slides


def build_matcher(commons: CommonsClient, corpus: AssetCorpus, cfg: AppConfig, logger: logging.Logger) -> Matcher:
    """Create the matcher with the live search tier bound to the query API."""
    match_cfg = cfg.match

    async def live_search(query: str) -> AssetRecord | None:
        try:
            titles = await commons.search(query, match_cfg.file_namespace, match_cfg.search_limit)
        except SourceError as exc:
            logger.debug("Live search failed for %r: %s", query, exc)
            return None
        if not titles:
            return None
        record = commons.asset_for(titles[0], match_cfg.live_label)
        if match_cfg.persist_live_hits:
            corpus.add(record)
        return record

    return Matcher(corpus, match_cfg, search=live_search, file_url=commons.file_url)


async def run_merge_stage(
    client: httpx.AsyncClient,
    commons: CommonsClient,
    corpus: AssetCorpus,
    entries: list[CatalogEntry],
    cfg: AppConfig,
    layout: DataLayout,
    logger: logging.Logger,
    progress: Progress | None = None,
    task_id: int | None = None,
) -> tuple[list[MergedSlide], MergeStats]:
    """Run Stage C and write the merged dataset in one write."""
    stats = MergeStats()
    matcher = build_matcher(commons, corpus, cfg, logger)
    previous = load_previous_dataset(layout.output_file)
    stage = MergeStage(client, matcher, cfg, layout, logger, previous)
    slides = await stage.run(entries, stats, progress, task_id)

    save_dataset(layout.output_file, slides)
    if cfg.match.persist_live_hits:
        save_corpus(layout.assets_file, corpus)

    log_event(
        logger,
        f"DONE. Final dataset saved to {layout.output_file}",
        event="stage_complete",
        stage="merge",
        total=stats.total,
        downloaded=stats.downloaded,
        skipped=stats.skipped,
        fallback=stats.fallback,
        failed=stats.failed,
        unmatched=stats.unmatched,
        tiers=dict(stats.tiers),
    )
    return slides, stats
