"""End-to-end tests for pipeline orchestration and the CLI."""

from __future__ import annotations

import io
import json
import logging

import httpx
import pytest
from rich.console import Console
from typer.testing import CliRunner

from histo_ingest import cli
from histo_ingest.config import AppConfig
from histo_ingest.core.types import AssetRecord, CatalogEntry
from histo_ingest.logging_utils import JsonlFormatter, log_event
from histo_ingest.output.store import PipelineError, RunLockError, save_index, write_json
from histo_ingest.runner import run_pipeline

ASSET_URL = "https://upload.example/thyroid.jpg"


def _cfg(tmp_path) -> AppConfig:
    cfg = AppConfig()
    cfg.fetch.retries = 0
    cfg.paths.data_root = str(tmp_path / "data")
    cfg.paths.min_index_bytes = 10
    cfg.discovery.min_corpus_size = 1
    cfg.logging.console = False
    return cfg


def _seed(root):
    root.mkdir(parents=True, exist_ok=True)
    save_index(
        root / "index.json",
        [
            CatalogEntry(
                id="sl-1",
                name="Thyroid Gland",
                source_url="https://histologyguide.com/slideview/sl-1/slideview.html",
                category="Endocrine",
            )
        ],
    )
    write_json(
        root / "assets.json",
        [AssetRecord(source="Commons", title="File:Thyroid_gland_histology.jpg", url=ASSET_URL).to_dict()],
    )


def _quiet_console() -> Console:
    return Console(file=io.StringIO())


def test_resume_skips_index_and_discovery(tmp_path):
    cfg = _cfg(tmp_path)
    root = tmp_path / "data"
    _seed(root)
    seen = []

    def handler(request):
        seen.append(str(request.url))
        if str(request.url) == ASSET_URL:
            return httpx.Response(200, content=b"x" * 7000)
        return httpx.Response(404)

    output = run_pipeline(
        cfg, show_progress=False, console=_quiet_console(), transport=httpx.MockTransport(handler)
    )

    assert seen == [ASSET_URL]
    assert output == root / "tissues.json"
    data = json.loads(output.read_text(encoding="utf-8"))
    assert data[0]["imageUrl"] == "/slides/sl-1.jpg"
    assert not (root / ".ingest.lock").exists()
    assert (root / "logs" / "run.jsonl").exists()


def test_refresh_index_recrawls_catalog(tmp_path):
    cfg = _cfg(tmp_path)
    _seed(tmp_path / "data")
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(503)

    run_pipeline(
        cfg,
        show_progress=False,
        console=_quiet_console(),
        refresh_index=True,
        transport=httpx.MockTransport(handler),
    )

    assert seen[0] == cfg.catalog.start_url


def test_missing_index_after_failed_crawl_is_fatal(tmp_path):
    cfg = _cfg(tmp_path)

    with pytest.raises(PipelineError):
        run_pipeline(
            cfg,
            show_progress=False,
            console=_quiet_console(),
            transport=httpx.MockTransport(lambda r: httpx.Response(503)),
        )

    assert not (tmp_path / "data" / ".ingest.lock").exists()


def test_concurrent_run_is_rejected(tmp_path):
    cfg = _cfg(tmp_path)
    root = tmp_path / "data"
    _seed(root)
    (root / ".ingest.lock").write_text("123", encoding="utf-8")

    with pytest.raises(RunLockError):
        run_pipeline(cfg, show_progress=False, console=_quiet_console())


def test_progress_mode_runs(tmp_path):
    cfg = _cfg(tmp_path)
    _seed(tmp_path / "data")

    def handler(request):
        return httpx.Response(200, content=b"x" * 7000)

    output = run_pipeline(
        cfg, show_progress=True, console=_quiet_console(), transport=httpx.MockTransport(handler)
    )

    assert output.exists()


def test_cli_reports_pipeline_error(monkeypatch, tmp_path):
    def fail(*args, **kwargs):
        raise PipelineError("Catalog index unavailable")

    monkeypatch.setattr(cli, "run_pipeline", fail)

    result = CliRunner().invoke(cli.app, ["run", "--data-root", str(tmp_path), "--no-progress"])

    assert result.exit_code == 1
    assert "Catalog index unavailable" in result.output


def test_cli_applies_overrides(monkeypatch, tmp_path):
    captured = {}

    def fake_run(cfg, **kwargs):
        captured["cfg"] = cfg
        captured.update(kwargs)
        return tmp_path / "tissues.json"

    monkeypatch.setattr(cli, "run_pipeline", fake_run)

    result = CliRunner().invoke(
        cli.app,
        [
            "run",
            "--data-root",
            str(tmp_path),
            "--no-progress",
            "--refresh-assets",
            "--log-level",
            "DEBUG",
            "--no-log-file",
        ],
    )

    assert result.exit_code == 0
    assert captured["cfg"].paths.data_root == str(tmp_path)
    assert captured["cfg"].logging.level == "DEBUG"
    assert captured["cfg"].logging.file is False
    assert captured["refresh_assets"] is True
    assert captured["refresh_index"] is False
    assert captured["show_progress"] is False


def test_jsonl_formatter_includes_event_fields():
    logger = logging.getLogger("test_jsonl")
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonlFormatter())
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    logger.propagate = False
    try:
        log_event(logger, "Chapter failed", level=logging.WARNING, event="chapter_failed", chapter="Cells")
    finally:
        logger.removeHandler(handler)

    payload = json.loads(stream.getvalue())
    assert payload["level"] == "WARNING"
    assert payload["event"] == "chapter_failed"
    assert payload["chapter"] == "Cells"
