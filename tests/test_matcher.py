"""Tests for tiered matching of catalog entries to corpus assets."""

from __future__ import annotations

import asyncio

from histo_ingest.config import MatchConfig
from histo_ingest.core.corpus import AssetCorpus
from histo_ingest.core.matcher import (
    TIER_CONTAINMENT,
    TIER_KEYWORDS,
    TIER_LIVE,
    TIER_OVERRIDE,
    Matcher,
)
from histo_ingest.core.types import AssetRecord, CatalogEntry


def _asset(title: str) -> AssetRecord:
    return AssetRecord(source="Commons", title=title, url=f"https://files.example/{title}")


def _entry(name: str, entry_id: str = "sl-1") -> CatalogEntry:
    return CatalogEntry(id=entry_id, name=name, source_url="https://catalog.example/slideview/sl-1/x.html", category="Ch")


def test_containment_entry_name_contains_asset_key():
    corpus = AssetCorpus([_asset("File:Thymus.jpg"), _asset("File:Renal_corpuscle.jpg")])
    matcher = Matcher(corpus, MatchConfig())

    result = matcher.match_offline(_entry("Renal Corpuscle (high mag)"))

    assert result.tier == TIER_CONTAINMENT
    assert result.record.title == "File:Renal_corpuscle.jpg"


def test_containment_asset_key_contains_entry_name():
    corpus = AssetCorpus([_asset("File:Human_thyroid_gland_HE.jpg")])
    matcher = Matcher(corpus, MatchConfig())

    result = matcher.match_offline(_entry("Thyroid Gland"))

    assert result.tier == TIER_CONTAINMENT


def test_first_record_in_corpus_order_wins():
    corpus = AssetCorpus([_asset("File:Liver_lobule.jpg"), _asset("File:Liver.jpg")])
    matcher = Matcher(corpus, MatchConfig())

    result = matcher.match_offline(_entry("Liver"))

    assert result.record.title == "File:Liver_lobule.jpg"


def test_keyword_tier_requires_every_keyword():
    corpus = AssetCorpus(
        [
            _asset("File:Bone_section.jpg"),
            _asset("File:Marrow_and_bone_of_femur.jpg"),
        ]
    )
    matcher = Matcher(corpus, MatchConfig())

    result = matcher.match_offline(_entry("Bone Marrow of Rib"))

    assert result.tier == TIER_KEYWORDS
    assert result.record.title == "File:Marrow_and_bone_of_femur.jpg"


def test_specimen_code_removed_before_matching():
    corpus = AssetCorpus([_asset("File:Simple_epithelium.jpg")])
    matcher = Matcher(corpus, MatchConfig())

    result = matcher.match_offline(_entry("MH 016 Simple Epithelium"))

    assert result.clean_name == "simple epithelium"
    assert result.matched


def test_override_wins_over_corpus():
    cfg = MatchConfig(overrides={"sl-1": "File:Curated_thyroid.jpg"})
    corpus = AssetCorpus([_asset("File:Thyroid_gland.jpg")])
    matcher = Matcher(corpus, cfg, file_url=lambda title: f"https://files.example/{title}")

    result = matcher.match_offline(_entry("Thyroid Gland"))

    assert result.tier == TIER_OVERRIDE
    assert result.record.source == cfg.override_label
    assert result.record.url == "https://files.example/File:Curated_thyroid.jpg"


def test_live_search_used_only_when_offline_tiers_fail():
    queries = []

    async def search(query):
        queries.append(query)
        return _asset("File:Pancreas_islet.jpg")

    corpus = AssetCorpus([_asset("File:Thyroid_gland.jpg")])
    matcher = Matcher(corpus, MatchConfig(), search=search)

    offline = asyncio.run(matcher.match(_entry("Thyroid Gland")))
    live = asyncio.run(matcher.match(_entry("Pancreatic Islets")))

    assert offline.tier == TIER_CONTAINMENT
    assert live.tier == TIER_LIVE
    assert queries == ["pancreatic islets histology"]


def test_live_search_miss_leaves_entry_unmatched():
    async def search(query):
        return None

    matcher = Matcher(AssetCorpus(), MatchConfig(), search=search)
    result = asyncio.run(matcher.match(_entry("Pancreatic Islets")))

    assert not result.matched
    assert result.tier is None


def test_empty_name_matches_nothing_and_skips_live_search():
    calls = 0

    async def search(query):
        nonlocal calls
        calls += 1
        return _asset("File:Anything.jpg")

    corpus = AssetCorpus([_asset("File:Thyroid_gland.jpg")])
    matcher = Matcher(corpus, MatchConfig(), search=search)

    result = asyncio.run(matcher.match(_entry("MH 016")))

    assert not result.matched
    assert calls == 0
