"""
Pipeline stages.

- indexer: Stage A, catalog indexing
- discovery: Stage B, category walk building the asset corpus
- merge: Stage C, matching, download and dataset write
- batch: batch ingestion variant for the WikiLectures collection
"""

from .indexer import IndexStats, build_index, run_index_stage
from .discovery import DiscoveryStats, discover_assets, run_discovery_stage
from .merge import MergeStage, MergeStats, run_merge_stage
from .batch import BatchStats, run_batch_ingest

__all__ = [
    "IndexStats",
    "build_index",
    "run_index_stage",
    "DiscoveryStats",
    "discover_assets",
    "run_discovery_stage",
    "MergeStage",
    "MergeStats",
    "run_merge_stage",
    "BatchStats",
    "run_batch_ingest",
]
