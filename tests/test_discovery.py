"""Tests for the media repository client and the Stage B category walk."""

from __future__ import annotations

import asyncio
import json
import logging

import httpx

from histo_ingest.config import AppConfig
from histo_ingest.core.corpus import AssetCorpus
from histo_ingest.core.types import AssetRecord
from histo_ingest.fetch.fetcher import build_client
from histo_ingest.sources.commons import (
    CategoryPage,
    CommonsClient,
    SourceError,
    file_path_url,
)
from histo_ingest.stages.discovery import discover_assets, run_discovery_stage

LOGGER = logging.getLogger("test_discovery")


def _cfg(**discovery) -> AppConfig:
    cfg = AppConfig()
    cfg.fetch.retries = 0
    cfg.discovery.workers = 2
    for key, value in discovery.items():
        setattr(cfg.discovery, key, value)
    return cfg


def _file(title: str) -> dict:
    return {"ns": 6, "title": title}


def _cat(title: str) -> dict:
    return {"ns": 14, "title": title}


class FakeCommons:
    """In-memory category graph standing in for the query API."""

    def __init__(self, graph: dict, failing: set[str] | None = None):
        self.graph = graph
        self.failing = failing or set()
        self.calls: list[tuple[str, str | None]] = []

    async def category_members(self, title, continuation=None):
        self.calls.append((title, continuation))
        if title in self.failing:
            raise SourceError(f"boom: {title}")
        return CategoryPage(members=self.graph.get(title, []), continuation=None)

    def asset_for(self, title, source):
        return AssetRecord(source=source, title=title, url=file_path_url(title, "https://files.example/"))


def test_file_path_url_encodes_title():
    url = file_path_url("File:Renal corpuscle (HE).jpg", "https://commons.wikimedia.org/wiki/Special:FilePath/")
    assert url == "https://commons.wikimedia.org/wiki/Special:FilePath/Renal%20corpuscle%20%28HE%29.jpg"


def test_category_members_follows_continuation_pages():
    requests = []

    def handler(request):
        params = request.url.params
        requests.append(params.get("cmcontinue"))
        if params.get("cmcontinue") == "page2":
            payload = {"query": {"categorymembers": [_file("File:Liver.jpg")]}}
        else:
            payload = {
                "continue": {"cmcontinue": "page2", "continue": "-||"},
                "query": {"categorymembers": [_file("File:Kidney.jpg"), _cat("Category:Renal")]},
            }
        return httpx.Response(200, json=payload)

    cfg = _cfg(max_depth=0)
    corpus = AssetCorpus()

    async def go():
        async with build_client(cfg.fetch, httpx.MockTransport(handler)) as client:
            commons = CommonsClient(client, cfg.discovery, cfg.fetch)
            return await discover_assets(commons, corpus, cfg, LOGGER)

    stats = asyncio.run(go())

    assert requests == [None, "page2"]
    assert [r.title for r in corpus] == ["File:Kidney.jpg", "File:Liver.jpg"]
    assert stats.pages == 2
    assert stats.categories == 1
    assert corpus.to_list()[0]["url"].endswith("/Special:FilePath/Kidney.jpg")


def test_query_api_error_raises_source_error():
    def handler(request):
        return httpx.Response(200, json={"error": {"code": "badvalue"}})

    cfg = _cfg()

    async def go():
        async with build_client(cfg.fetch, httpx.MockTransport(handler)) as client:
            commons = CommonsClient(client, cfg.discovery, cfg.fetch)
            try:
                await commons.category_members("Category:X")
            except SourceError as exc:
                return exc
        return None

    assert isinstance(asyncio.run(go()), SourceError)


def test_search_returns_titles():
    def handler(request):
        assert request.url.params["srsearch"] == "thyroid gland histology"
        assert request.url.params["srnamespace"] == "6"
        return httpx.Response(200, json={"query": {"search": [{"title": "File:Thyroid.jpg"}]}})

    cfg = _cfg()

    async def go():
        async with build_client(cfg.fetch, httpx.MockTransport(handler)) as client:
            commons = CommonsClient(client, cfg.discovery, cfg.fetch)
            return await commons.search("thyroid gland histology", 6, 1)

    assert asyncio.run(go()) == ["File:Thyroid.jpg"]


def test_depth_bound_stops_cyclic_graph_without_dedupe():
    graph = {
        "Category:A": [_cat("Category:B"), _file("File:A.jpg")],
        "Category:B": [_cat("Category:A"), _file("File:B.jpg")],
    }
    commons = FakeCommons(graph)
    cfg = _cfg(max_depth=2, dedupe_categories=False)
    corpus = AssetCorpus()

    stats = asyncio.run(discover_assets(commons, corpus, cfg, LOGGER, seed_category="Category:A"))

    assert [title for title, _ in commons.calls] == ["Category:A", "Category:B", "Category:A"]
    assert stats.categories == 3
    assert stats.added == 2
    assert stats.already_known == 1
    assert len(corpus) == 2


def test_visited_set_lists_each_category_once():
    graph = {
        "Category:A": [_cat("Category:B"), _cat("Category:C")],
        "Category:B": [_cat("Category:C"), _cat("Category:A")],
        "Category:C": [_file("File:C.jpg")],
    }
    commons = FakeCommons(graph)
    cfg = _cfg(max_depth=5)

    stats = asyncio.run(discover_assets(commons, AssetCorpus(), cfg, LOGGER, seed_category="Category:A"))

    assert sorted(title for title, _ in commons.calls) == ["Category:A", "Category:B", "Category:C"]
    assert stats.categories == 3


def test_failed_category_aborts_only_its_branch():
    graph = {
        "Category:Root": [_cat("Category:Bad"), _cat("Category:Good")],
        "Category:Bad": [_file("File:Never.jpg")],
        "Category:Good": [_file("File:Good.jpg")],
    }
    commons = FakeCommons(graph, failing={"Category:Bad"})
    corpus = AssetCorpus()

    stats = asyncio.run(discover_assets(commons, corpus, _cfg(), LOGGER, seed_category="Category:Root"))

    assert [r.title for r in corpus] == ["File:Good.jpg"]
    assert stats.categories_failed == 1


def test_existing_corpus_records_are_kept():
    graph = {"Category:A": [_file("File:Known.jpg"), _file("File:New.jpg")]}
    corpus = AssetCorpus([AssetRecord(source="Old", title="File:Known.jpg", url="https://old.example/k.jpg")])

    asyncio.run(discover_assets(FakeCommons(graph), corpus, _cfg(), LOGGER, seed_category="Category:A"))

    known = next(iter(corpus))
    assert known.source == "Old"
    assert [r.title for r in corpus] == ["File:Known.jpg", "File:New.jpg"]


class SlowCommons(FakeCommons):
    """FakeCommons whose listings take a moment, tracking how many overlap."""

    def __init__(self, graph: dict):
        super().__init__(graph)
        self.in_flight = 0
        self.peak = 0

    async def category_members(self, title, continuation=None):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().category_members(title, continuation)
        finally:
            self.in_flight -= 1


def test_concurrent_listings_never_exceed_workers():
    children = [f"Category:Child{i}" for i in range(10)]
    graph = {"Category:Root": [_cat(title) for title in children]}
    graph.update({title: [_file(f"File:{title[9:]}.jpg")] for title in children})
    commons = SlowCommons(graph)
    corpus = AssetCorpus()

    stats = asyncio.run(discover_assets(commons, corpus, _cfg(workers=3), LOGGER, seed_category="Category:Root"))

    assert stats.categories == 11
    assert len(corpus) == 10
    assert 1 < commons.peak <= 3


def test_discovery_skipped_when_corpus_large_enough(tmp_path):
    commons = FakeCommons({})
    cfg = _cfg(min_corpus_size=2)
    corpus = AssetCorpus(
        [
            AssetRecord(source="Commons", title="File:A.jpg", url="https://x/a"),
            AssetRecord(source="Commons", title="File:B.jpg", url="https://x/b"),
        ]
    )

    stats = asyncio.run(run_discovery_stage(commons, corpus, cfg, tmp_path / "assets.json", LOGGER))

    assert stats.skipped
    assert commons.calls == []
    assert not (tmp_path / "assets.json").exists()


def test_forced_discovery_runs_and_persists(tmp_path):
    cfg = _cfg(min_corpus_size=0)
    commons = FakeCommons({cfg.discovery.seed_category: [_file("File:Skin.jpg")]})
    assets_path = tmp_path / "assets.json"

    stats = asyncio.run(run_discovery_stage(commons, AssetCorpus(), cfg, assets_path, LOGGER, force=True))

    saved = json.loads(assets_path.read_text(encoding="utf-8"))
    assert not stats.skipped
    assert saved == [
        {
            "source": "Commons",
            "title": "File:Skin.jpg",
            "clean": "skin",
            "url": "https://files.example/Skin.jpg",
        }
    ]
