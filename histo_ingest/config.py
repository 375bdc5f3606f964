"""
Configuration management using YAML files and dataclasses.

This module defines all configuration dataclasses and provides loading
from YAML files with defaults. Configuration sections:
- FetchConfig: HTTP client and download validation settings
- CatalogConfig: Structured slide catalog (Stage A) settings
- DiscoveryConfig: Media repository category walk (Stage B) settings
- MatchConfig: Matching heuristics and curated overrides (Stage C)
- PathsConfig: Data root layout and resume thresholds
- BatchConfig: WikiLectures batch ingestion settings
- LoggingConfig: Logging behavior
- AppConfig: Root configuration container
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class FetchConfig:
    """Configuration for HTTP fetching and downloads.

    Attributes:
        timeout_seconds: HTTP request timeout
        retries: Number of retry attempts for page and API loads (downloads are not retried)
        trust_env: Whether to respect system proxy settings
        user_agent: Browser-like User-Agent header string
        referer: Referer header sent with image downloads
        max_redirects: Maximum redirect hops a download may follow
        min_image_bytes: A downloaded image is valid only if larger than this
        chunk_size: Streaming chunk size in bytes
    """

    timeout_seconds: float = 30.0
    retries: int = 2
    trust_env: bool = True
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/119.0.0.0 Safari/537.36"
    )
    referer: str = "https://histologyguide.com/"
    max_redirects: int = 5
    min_image_bytes: int = 6000
    chunk_size: int = 64 * 1024


@dataclass
class CatalogConfig:
    """Configuration for the structured slide catalog.

    Attributes:
        start_url: Top-level navigation page listing chapters
        chapter_pattern: Substring an href must contain to be a chapter link
        slide_pattern: Substring an href must contain to be a slide link
        thumbnail_path: Per-slide thumbnail path relative to the slide base URL
        thumb_label: Provenance label when the thumbnail is the primary image
        fallback_label: Provenance label when the thumbnail replaced a failed asset
    """

    start_url: str = "https://histologyguide.com/slidebox/slidebox.html"
    chapter_pattern: str = "slidebox/"
    slide_pattern: str = "/slideview/"
    thumbnail_path: str = "imgs/slide.png"
    thumb_label: str = "HistologyGuide (Thumb)"
    fallback_label: str = "HistologyGuide (Fallback)"


@dataclass
class DiscoveryConfig:
    """Configuration for asset discovery on the media repository.

    Attributes:
        api_url: Query API endpoint
        file_url_base: Base URL that resolves a file name to its bytes
        seed_category: Category the walk starts from
        max_depth: Deepest category level visited (seed is depth 0)
        workers: Number of concurrent category walkers
        page_limit: Members requested per listing page
        min_corpus_size: Bulk crawl runs only while the corpus is smaller than this
        dedupe_categories: Skip categories already queued during this walk
        source_label: Provenance label for bulk-crawled assets
    """

    api_url: str = "https://commons.wikimedia.org/w/api.php"
    file_url_base: str = "https://commons.wikimedia.org/wiki/Special:FilePath/"
    seed_category: str = "Category:Histology_by_organ_system"
    max_depth: int = 2
    workers: int = 8
    page_limit: int = 500
    min_corpus_size: int = 1000
    dedupe_categories: bool = True
    source_label: str = "Commons"


@dataclass
class MatchConfig:
    """Configuration for matching catalog entries to assets.

    Attributes:
        stop_words: Words never used as keywords
        min_keyword_length: Words must be longer than this to count as keywords
        specimen_pattern: Regex for internal specimen codes stripped from names
        search_suffix: Appended to the entry name for the live search query
        search_limit: Number of live search hits requested
        file_namespace: Namespace id of files on the media repository
        live_label: Provenance label for live search hits
        persist_live_hits: Append live search hits to the persisted corpus
        overrides: Slide id to file title map consulted before any tier
        override_label: Provenance label for curated overrides
    """

    stop_words: list[str] = field(default_factory=lambda: ["and", "the", "of"])
    min_keyword_length: int = 3
    specimen_pattern: str = r"mh\s*\d+\w*"
    search_suffix: str = " histology"
    search_limit: int = 1
    file_namespace: int = 6
    live_label: str = "Commons (Live)"
    persist_live_hits: bool = False
    overrides: dict[str, str] = field(default_factory=dict)
    override_label: str = "Commons (Override)"


@dataclass
class PathsConfig:
    """Configuration for the data root layout.

    Attributes:
        data_root: Root directory for every file the pipeline writes
        index_file: Stage A output, relative to data_root
        assets_file: Stage B corpus, relative to data_root
        output_file: Stage C merged dataset, relative to data_root
        images_dir: Directory for downloaded images, relative to data_root
        image_url_prefix: Site-relative prefix written into imageUrl
        min_index_bytes: Stage A is skipped when the index is larger than this
        index_ttl_days: Optional maximum index age before Stage A runs again
        lock_file: Run lock file name, relative to data_root
    """

    data_root: str = "data"
    index_file: str = "index.json"
    assets_file: str = "assets.json"
    output_file: str = "tissues.json"
    images_dir: str = "slides"
    image_url_prefix: str = "/slides"
    min_index_bytes: int = 1000
    index_ttl_days: int | None = None
    lock_file: str = ".ingest.lock"


@dataclass
class BatchConfig:
    """Configuration for the WikiLectures batch ingestion variant.

    Attributes:
        category_url: Category page listing slide pages
        base_url: Site root used to resolve relative links
        batch_size: Slides processed concurrently per batch
        output_file: Output dataset, relative to data_root
        min_image_bytes: A downloaded image is valid only if larger than this
        source_label: Provenance label written into sourceName
    """

    category_url: str = "https://www.wikilectures.eu/w/Category:Histological_slides"
    base_url: str = "https://www.wikilectures.eu"
    batch_size: int = 4
    output_file: str = "tissues.json"
    min_image_bytes: int = 10000
    source_label: str = "WikiLectures"


@dataclass
class LoggingConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level ("DEBUG", "INFO", "WARNING", "ERROR")
        console: Whether to log to console
        file: Whether to log to file
        format: Log file format ("jsonl" or "plain")
        filename: Name of the main log file
        log_dir: Directory for log files, relative to data_root
    """

    level: str = "INFO"
    console: bool = True
    file: bool = True
    format: str = "jsonl"
    filename: str = "run.jsonl"
    log_dir: str = "logs"


@dataclass
class AppConfig:
    """Root configuration container aggregating all config sections."""

    fetch: FetchConfig = field(default_factory=FetchConfig)
    catalog: CatalogConfig = field(default_factory=CatalogConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    match: MatchConfig = field(default_factory=MatchConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    batch: BatchConfig = field(default_factory=BatchConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = {
    "fetch": FetchConfig,
    "catalog": CatalogConfig,
    "discovery": DiscoveryConfig,
    "match": MatchConfig,
    "paths": PathsConfig,
    "batch": BatchConfig,
    "logging": LoggingConfig,
}


def load_config(path: str | Path | None) -> AppConfig:
    """Load configuration from a YAML file with defaults."""
    if not path:
        return AppConfig()

    with open(path, "r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    return _merge_config(AppConfig(), raw)


def _merge_config(base: AppConfig, raw: dict[str, Any]) -> AppConfig:
    """Merge raw YAML config into base AppConfig."""
    data = asdict(base)
    for key, value in raw.items():
        if key not in data:
            continue
        if isinstance(value, dict) and isinstance(data[key], dict):
            data[key].update(value)
        else:
            data[key] = value
    return _fromdict(data)


def _fromdict(data: dict[str, Any]) -> AppConfig:
    """Reconstruct AppConfig from nested dictionary."""
    return AppConfig(**{name: cls(**data[name]) for name, cls in _SECTIONS.items()})
