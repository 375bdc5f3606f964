"""
Main pipeline orchestration for slide ingestion.

This module coordinates the entire workflow:
1. Stage A: index the slide catalog (skipped when a usable index exists)
2. Stage B: discover assets on the media repository (skipped when the corpus is large enough)
3. Stage C: match, download and write the merged dataset

Stages always run in this order against one data root. Runs against the same
data root are serialized with a lock file. Every network call shares a single
httpx.AsyncClient.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import httpx
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeRemainingColumn,
)

from .config import AppConfig
from .core.corpus import AssetCorpus
from .fetch.fetcher import build_client
from .logging_utils import log_event, setup_logging
from .output.store import DataLayout, RunLock, is_index_fresh, load_index
from .sources.commons import CommonsClient
from .stages.batch import BatchStats, run_batch_ingest
from .stages.discovery import DiscoveryStats, run_discovery_stage
from .stages.indexer import run_index_stage
from .stages.merge import MergeStats, run_merge_stage


def run_pipeline(
    cfg: AppConfig,
    show_progress: bool = True,
    console: Console | None = None,
    refresh_index: bool = False,
    refresh_assets: bool = False,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Path:
    """Run the complete ingestion pipeline.

    Args:
        cfg: Application configuration
        show_progress: Whether to display a progress bar for Stage C
        console: Rich console for output (creates default if None)
        refresh_index: Re-crawl the catalog even if a usable index exists
        refresh_assets: Run the category walk even if the corpus is large enough
        transport: Optional httpx transport (tests)

    Returns:
        Path to the merged dataset file

    Raises:
        PipelineError: If the data root cannot be created or no index is available
        RunLockError: If another run holds the data root lock
    """
    console = console or Console()
    layout = DataLayout(cfg.paths)
    layout.ensure()
    logger = setup_logging(cfg.logging, layout.root / cfg.logging.log_dir)

    with RunLock(layout.lock_file):
        return asyncio.run(
            _run_pipeline_async(
                cfg, layout, logger, console, show_progress, refresh_index, refresh_assets, transport
            )
        )


async def _run_pipeline_async(
    cfg: AppConfig,
    layout: DataLayout,
    logger: logging.Logger,
    console: Console,
    show_progress: bool,
    refresh_index: bool,
    refresh_assets: bool,
    transport: httpx.AsyncBaseTransport | None,
) -> Path:
    log_event(
        logger,
        "Pipeline start",
        event="pipeline_start",
        data_root=str(layout.root),
        refresh_index=refresh_index,
        refresh_assets=refresh_assets,
    )

    async with build_client(cfg.fetch, transport) as client:
        logger.info("--- STAGE A: Indexing slide catalog ---")
        if refresh_index or not is_index_fresh(
            layout.index_file, cfg.paths.min_index_bytes, cfg.paths.index_ttl_days
        ):
            await run_index_stage(client, cfg, layout.index_file, logger)
        else:
            log_event(
                logger,
                "Catalog index present, skipping crawl",
                event="stage_skipped",
                stage="index",
                index=str(layout.index_file),
            )
        entries = load_index(layout.index_file)

        logger.info("--- STAGE B: Asset discovery ---")
        corpus = AssetCorpus.load(layout.assets_file)
        commons = CommonsClient(client, cfg.discovery, cfg.fetch)
        discovery_stats = await run_discovery_stage(
            commons, corpus, cfg, layout.assets_file, logger, force=refresh_assets
        )
        _render_discovery_stats(discovery_stats, len(corpus), console)

        logger.info("--- STAGE C: Merge & Download ---")
        if show_progress:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TimeRemainingColumn(),
                console=console,
            )
            with progress:
                task_id = progress.add_task("Merge + Download", total=len(entries))
                _slides, merge_stats = await run_merge_stage(
                    client, commons, corpus, entries, cfg, layout, logger, progress, task_id
                )
        else:
            _slides, merge_stats = await run_merge_stage(
                client, commons, corpus, entries, cfg, layout, logger
            )
        _render_merge_stats(merge_stats, console)

    log_event(
        logger,
        "Pipeline complete",
        event="pipeline_complete",
        output=str(layout.output_file),
        total=merge_stats.total,
    )
    return layout.output_file


def run_wikilectures(
    cfg: AppConfig,
    show_progress: bool = True,
    console: Console | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Path:
    """Run the WikiLectures batch ingestion variant.

    Returns:
        Path to the written dataset file
    """
    console = console or Console()
    layout = DataLayout(cfg.paths)
    layout.ensure()
    logger = setup_logging(cfg.logging, layout.root / cfg.logging.log_dir)
    output_path = layout.root / cfg.batch.output_file

    with RunLock(layout.lock_file):
        stats = asyncio.run(
            _run_wikilectures_async(cfg, layout, output_path, logger, console, show_progress, transport)
        )
    _render_batch_stats(stats, console)
    return output_path


async def _run_wikilectures_async(
    cfg: AppConfig,
    layout: DataLayout,
    output_path: Path,
    logger: logging.Logger,
    console: Console,
    show_progress: bool,
    transport: httpx.AsyncBaseTransport | None,
) -> BatchStats:
    log_event(logger, "Batch ingestion start", event="pipeline_start", url=cfg.batch.category_url)
    async with build_client(cfg.fetch, transport) as client:
        if not show_progress:
            _slides, stats = await run_batch_ingest(client, cfg, layout, output_path, logger)
            return stats
        progress = Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        )
        with progress:
            task_id = progress.add_task("Slides", total=None)
            _slides, stats = await run_batch_ingest(
                client, cfg, layout, output_path, logger, progress, task_id
            )
        return stats


def _render_discovery_stats(stats: DiscoveryStats, corpus_size: int, console: Console) -> None:
    if stats.skipped:
        console.print(f"[bold]Asset discovery[/bold]: skipped, corpus={corpus_size}")
        return
    console.print(
        "[bold]Asset discovery[/bold]: "
        f"categories={stats.categories}, failed={stats.categories_failed}, "
        f"added={stats.added}, corpus={corpus_size}"
    )


def _render_merge_stats(stats: MergeStats, console: Console) -> None:
    tiers = ", ".join(f"{name}={count}" for name, count in sorted(stats.tiers.items())) or "none"
    console.print(
        "[bold]Merge summary[/bold]: "
        f"total={stats.total}, downloaded={stats.downloaded}, skipped={stats.skipped}, "
        f"fallback={stats.fallback}, failed={stats.failed}, unmatched={stats.unmatched} "
        f"(tiers: {tiers})"
    )


def _render_batch_stats(stats: BatchStats, console: Console) -> None:
    console.print(
        "[bold]Batch summary[/bold]: "
        f"listed={stats.listed}, ingested={stats.ingested}, failed={stats.failed}, "
        f"downloaded={stats.downloaded}, skipped={stats.skipped}"
    )
