"""
Batch ingestion of the WikiLectures slide collection.

Slides are processed in fixed-size batches: every slide in a batch runs
concurrently and the next batch starts only after the whole batch has
settled, so at most batch_size slides hold connections at once. Order across
a batch is not preserved in the output. Slide ids are assigned in listing
order before any batch runs; colliding slugs get -2, -3 suffixes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import httpx
from rich.progress import Progress

from ..config import AppConfig
from ..core.normalize import slugify, unique_id
from ..core.types import CatalogEntry, MergedSlide
from ..fetch.fetcher import download_file, fetch_text, is_valid_file
from ..logging_utils import log_event
from ..output.store import DataLayout, save_dataset
from ..sources.catalog import Link
from ..sources.wikilectures import (
    Theory,
    categorize,
    clean_slide_name,
    image_extension,
    is_missing_article,
    parse_category_page,
    parse_slide_page,
    parse_topic_page,
)


@dataclass
class BatchStats:
    """Statistics collected during batch ingestion.

    Attributes:
        listed: Slide pages found on the category page
        ingested: Slides written to the dataset
        failed: Slides dropped after an error
        downloaded: Images downloaded in this run
        skipped: Images already valid on disk
    """
    listed: int = 0
    ingested: int = 0
    failed: int = 0
    downloaded: int = 0
    skipped: int = 0


def chunked(items: list, size: int) -> list[list]:
    """Split items into consecutive lists of at most size elements."""
    size = max(1, size)
    return [items[i : i + size] for i in range(0, len(items), size)]


class SlideProcessingError(RuntimeError):
    """A slide page could not be loaded."""


class BatchIngestor:
    """Ingests one WikiLectures slide page at a time; run() drives the batches.

    Args:
        client: Shared async client
        cfg: Application configuration
        layout: Data root layout
        logger: Logger for events
    """

    def __init__(self, client: httpx.AsyncClient, cfg: AppConfig, layout: DataLayout, logger: logging.Logger):
        self.client = client
        self.cfg = cfg
        self.layout = layout
        self.logger = logger

    async def _load_theory(self, topic_url: str | None, description: str) -> Theory:
        theory = Theory(features=[description] if description else [])
        if not topic_url:
            return theory
        page = await fetch_text(self.client, topic_url, self.cfg.fetch.retries)
        if not page.ok or page.text is None or is_missing_article(page.text):
            return theory
        found = parse_topic_page(page.text)
        if found.features:
            theory.features = found.features
        if found.function:
            theory.function = found.function
        if found.location:
            theory.location = found.location
        return theory

    async def process(self, link: Link, stats: BatchStats, slide_id: str | None = None) -> MergedSlide:
        """Load a slide page, its topic article and image; build the merged slide.

        slide_id defaults to the slug of the link text.

        Raises:
            SlideProcessingError: If the slide page cannot be loaded
        """
        batch = self.cfg.batch
        page = await fetch_text(self.client, link.url, self.cfg.fetch.retries)
        if not page.ok or page.text is None:
            raise SlideProcessingError(f"{link.url}: {page.error}")
        slide_page = parse_slide_page(page.text, link.url, batch.base_url)
        theory = await self._load_theory(slide_page.topic_url, slide_page.description)

        slide_id = slide_id or slugify(link.text)
        filename = f"{slide_id}.{image_extension(slide_page.image_url)}"
        dest = self.layout.image_path(filename)
        if is_valid_file(dest, batch.min_image_bytes):
            stats.skipped += 1
        elif slide_page.image_url:
            result = await download_file(
                self.client,
                slide_page.image_url,
                dest,
                min_bytes=batch.min_image_bytes,
                max_redirects=self.cfg.fetch.max_redirects,
                chunk_size=self.cfg.fetch.chunk_size,
            )
            if result.ok:
                stats.downloaded += 1
            else:
                log_event(
                    self.logger,
                    f"Image download failed for {link.text}: {result.error}",
                    level=logging.WARNING,
                    event="download_failed",
                    slide=link.text,
                    url=slide_page.image_url,
                    error_kind=result.error.kind if result.error else None,
                )

        entry = CatalogEntry(
            id=slide_id,
            name=clean_slide_name(link.text),
            source_url=link.url,
            category=categorize(link.text, " ".join(theory.features)),
        )
        return MergedSlide(
            entry=entry,
            image_url=self.layout.image_url(filename),
            source_name=batch.source_label,
            extra={
                "description": theory.features[0] if theory.features else link.text,
                "theory": theory.to_dict(),
                "markers": [],
            },
        )

    async def _process_safe(self, link: Link, stats: BatchStats, slide_id: str) -> MergedSlide | None:
        try:
            return await self.process(link, stats, slide_id)
        except Exception as exc:  # noqa: BLE001
            stats.failed += 1
            log_event(
                self.logger,
                f"Error processing {link.text}: {exc}",
                level=logging.ERROR,
                event="slide_failed",
                slide=link.text,
                url=link.url,
                error=f"{type(exc).__name__}: {exc}",
            )
            return None

    async def run(
        self,
        stats: BatchStats,
        slides: list[MergedSlide],
        progress: Progress | None = None,
        task_id: int | None = None,
    ) -> None:
        """List slide pages and process them batch by batch, appending to slides."""
        batch = self.cfg.batch
        listing = await fetch_text(self.client, batch.category_url, self.cfg.fetch.retries)
        if not listing.ok or listing.text is None:
            log_event(
                self.logger,
                "Slide listing failed",
                level=logging.ERROR,
                event="listing_failed",
                url=batch.category_url,
                error=listing.error,
            )
            return
        links = parse_category_page(listing.text, batch.category_url)
        stats.listed = len(links)
        self.logger.info("Found %d slides.", len(links))
        if progress is not None and task_id is not None:
            progress.update(task_id, total=len(links))

        used_ids: set[str] = set()
        assigned = [(link, unique_id(slugify(link.text), used_ids)) for link in links]

        processed = 0
        for group in chunked(assigned, batch.batch_size):
            results = await asyncio.gather(*(self._process_safe(link, stats, slide_id) for link, slide_id in group))
            slides.extend(slide for slide in results if slide is not None)
            processed += len(group)
            if progress is not None and task_id is not None:
                progress.advance(task_id, len(group))
            if processed % 10 == 0:
                self.logger.info("Progress: %d/%d", processed, len(links))


async def run_batch_ingest(
    client: httpx.AsyncClient,
    cfg: AppConfig,
    layout: DataLayout,
    output_path: Path,
    logger: logging.Logger,
    progress: Progress | None = None,
    task_id: int | None = None,
) -> tuple[list[MergedSlide], BatchStats]:
    """Run the batch variant; the dataset is written even if the run stops early."""
    stats = BatchStats()
    slides: list[MergedSlide] = []
    ingestor = BatchIngestor(client, cfg, layout, logger)
    try:
        await ingestor.run(stats, slides, progress, task_id)
    finally:
        save_dataset(output_path, slides)
        stats.ingested = len(slides)
        log_event(
            logger,
            f"DONE. Saved {len(slides)} slides.",
            event="stage_complete",
            stage="batch",
            listed=stats.listed,
            ingested=stats.ingested,
            failed=stats.failed,
            downloaded=stats.downloaded,
            skipped=stats.skipped,
        )
    return slides, stats
