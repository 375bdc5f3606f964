"""Tests for corpus persistence, data layout, index freshness and the run lock."""

from __future__ import annotations

import json
import os
import time

import pytest

from histo_ingest.config import PathsConfig
from histo_ingest.core.corpus import AssetCorpus
from histo_ingest.core.types import AssetRecord, CatalogEntry
from histo_ingest.output.store import (
    DataLayout,
    PipelineError,
    RunLock,
    RunLockError,
    is_index_fresh,
    load_index,
    save_corpus,
    save_index,
    write_json,
)


def test_corpus_load_missing_file_is_empty(tmp_path):
    assert len(AssetCorpus.load(tmp_path / "assets.json")) == 0


def test_corpus_load_recomputes_missing_clean_key(tmp_path):
    path = tmp_path / "assets.json"
    path.write_text(
        json.dumps(
            [
                {"source": "Commons", "title": "File:Adrenal_gland.jpg", "url": "https://x/a.jpg"},
                {"title": "no url"},
            ]
        ),
        encoding="utf-8",
    )

    corpus = AssetCorpus.load(path)

    assert len(corpus) == 1
    assert next(iter(corpus)).clean == "adrenal gland"


def test_corpus_load_ignores_unreadable_file(tmp_path):
    path = tmp_path / "assets.json"
    path.write_text("{not json", encoding="utf-8")

    assert len(AssetCorpus.load(path)) == 0


def test_corpus_is_append_only_on_title():
    corpus = AssetCorpus()
    first = AssetRecord(source="Commons", title="File:X.jpg", url="https://x/1")

    assert corpus.add(first)
    assert not corpus.add(AssetRecord(source="Live", title="File:X.jpg", url="https://x/2"))
    assert "File:X.jpg" in corpus
    assert next(iter(corpus)).url == "https://x/1"


def test_corpus_round_trip_through_disk(tmp_path):
    path = tmp_path / "assets.json"
    corpus = AssetCorpus([AssetRecord(source="Commons", title="File:Lung.png", url="https://x/l")])

    save_corpus(path, corpus)

    assert AssetCorpus.load(path).to_list() == corpus.to_list()


def test_load_index_accepts_legacy_url_key(tmp_path):
    path = tmp_path / "index.json"
    path.write_text(
        json.dumps([{"id": "a", "name": "A", "url": "https://catalog/a/x.html", "category": "C"}]),
        encoding="utf-8",
    )

    entries = load_index(path)

    assert entries == [CatalogEntry(id="a", name="A", source_url="https://catalog/a/x.html", category="C")]


def test_load_index_missing_raises(tmp_path):
    with pytest.raises(PipelineError):
        load_index(tmp_path / "index.json")


def test_is_index_fresh_uses_size_and_ttl(tmp_path):
    path = tmp_path / "index.json"
    assert not is_index_fresh(path, 10)

    save_index(path, [CatalogEntry(id="a", name="Alpha", source_url="https://c/a/x.html", category="C")])
    assert is_index_fresh(path, 10)
    assert not is_index_fresh(path, 10_000)

    old = time.time() - 3 * 86400
    os.utime(path, (old, old))
    assert is_index_fresh(path, 10, ttl_days=7)
    assert not is_index_fresh(path, 10, ttl_days=1)


def test_write_json_replaces_atomically(tmp_path):
    path = tmp_path / "out" / "tissues.json"

    write_json(path, [{"id": "a"}])
    write_json(path, [{"id": "b"}])

    assert json.loads(path.read_text(encoding="utf-8")) == [{"id": "b"}]
    assert [p.name for p in path.parent.iterdir()] == ["tissues.json"]


def test_data_layout_paths(tmp_path):
    layout = DataLayout(PathsConfig(data_root=str(tmp_path / "data")))
    layout.ensure()

    assert layout.images_dir.is_dir()
    assert layout.image_path("sl-1.jpg") == tmp_path / "data" / "slides" / "sl-1.jpg"
    assert layout.image_url("sl-1.jpg") == "/slides/sl-1.jpg"


def test_run_lock_is_exclusive(tmp_path):
    lock_path = tmp_path / ".ingest.lock"

    with RunLock(lock_path):
        assert lock_path.exists()
        with pytest.raises(RunLockError):
            RunLock(lock_path).acquire()

    assert not lock_path.exists()
