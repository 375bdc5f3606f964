"""
Command-line interface for slide ingestion.

Uses Typer to provide `run` (catalog + media repository pipeline) and
`wikilectures` (batch ingestion variant) commands.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from .config import AppConfig, load_config
from .output.store import PipelineError
from .runner import run_pipeline, run_wikilectures

app = typer.Typer(add_completion=False)
console = Console()


def _apply_overrides(
    cfg: AppConfig,
    data_root: Path | None,
    log_level: str | None,
    log_format: str | None,
    log_file: bool | None,
) -> None:
    if data_root is not None:
        cfg.paths.data_root = str(data_root)
    if log_level:
        cfg.logging.level = log_level
    if log_format:
        cfg.logging.format = log_format
    if log_file is not None:
        cfg.logging.file = log_file


@app.command()
def run(
    data_root: Path | None = typer.Option(None, "--data-root", "-d", help="Data root directory."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, readable=True),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    refresh_index: bool = typer.Option(
        False, "--refresh-index", help="Re-crawl the catalog even if an index exists."
    ),
    refresh_assets: bool = typer.Option(
        False, "--refresh-assets", help="Walk the category tree even if the corpus is populated."
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    log_format: str | None = typer.Option(
        None, "--log-format", help="Log file format: jsonl or plain."
    ),
    log_file: bool | None = typer.Option(
        None, "--log-file/--no-log-file", help="Enable or disable file logging."
    ),
):
    """Run the ingestion pipeline.

    Indexes the slide catalog, discovers candidate images on the media
    repository, matches them to catalog entries, downloads images and
    writes the merged dataset.

    Args:
        data_root: Override the configured data root
        config: Optional path to YAML config file
        progress: Whether to show progress bar
        refresh_index: Force Stage A
        refresh_assets: Force the Stage B category walk
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log file format (jsonl, plain)
        log_file: Enable/disable file logging
    """
    cfg = load_config(str(config) if config else None)
    _apply_overrides(cfg, data_root, log_level, log_format, log_file)

    try:
        output_path = run_pipeline(
            cfg,
            show_progress=progress,
            console=console,
            refresh_index=refresh_index,
            refresh_assets=refresh_assets,
        )
    except PipelineError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"Dataset written: {output_path}")


@app.command()
def wikilectures(
    data_root: Path | None = typer.Option(None, "--data-root", "-d", help="Data root directory."),
    config: Path | None = typer.Option(None, "--config", "-c", exists=True, readable=True),
    progress: bool = typer.Option(True, "--progress/--no-progress"),
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level."),
    log_format: str | None = typer.Option(
        None, "--log-format", help="Log file format: jsonl or plain."
    ),
    log_file: bool | None = typer.Option(
        None, "--log-file/--no-log-file", help="Enable or disable file logging."
    ),
):
    """Ingest the WikiLectures slide collection in concurrent batches."""
    cfg = load_config(str(config) if config else None)
    _apply_overrides(cfg, data_root, log_level, log_format, log_file)

    try:
        output_path = run_wikilectures(cfg, show_progress=progress, console=console)
    except PipelineError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
    console.print(f"Dataset written: {output_path}")


if __name__ == "__main__":
    app()
