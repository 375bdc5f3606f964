"""
Histo Ingest - histology slide ingestion pipeline.

This package indexes a structured slide catalog, discovers candidate
images on a media repository, links the two with tiered best-effort
matching, and materializes slide images plus a merged dataset under a
data root.

Main entry point is the CLI via `histo-ingest run` command.

Example:
    $ histo-ingest run --data-root data/
"""

__all__ = ["__version__", "AssetCorpus", "AssetRecord", "CatalogEntry", "MergedSlide", "normalize_title"]
__version__ = "0.1.0"

from .core.corpus import AssetCorpus
from .core.normalize import normalize_title
from .core.types import AssetRecord, CatalogEntry, MergedSlide
