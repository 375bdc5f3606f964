"""
Persistence of pipeline datasets under the data root.

Layout (all relative to PathsConfig.data_root):
- index.json: catalog index written by Stage A
- assets.json: asset corpus, append-only across runs (Stage B, optionally Stage C)
- tissues.json: merged dataset, fully overwritten by Stage C
- slides/: one image per merged slide

JSON files are written to a sibling temporary file and renamed into place so
a crash never leaves a truncated dataset behind.
"""

from __future__ import annotations

import json
import os
import tempfile
import time
from pathlib import Path
from typing import Any, Iterable

from ..config import PathsConfig
from ..core.corpus import AssetCorpus
from ..core.types import CatalogEntry, MergedSlide


class PipelineError(RuntimeError):
    """Fatal condition that stops a run (no progress possible)."""


class RunLockError(PipelineError):
    """Another run holds the data root lock."""


class DataLayout:
    """Resolves every path the pipeline reads or writes.

    Attributes:
        root: Data root directory
        index_file: Catalog index path
        assets_file: Asset corpus path
        output_file: Merged dataset path
        images_dir: Downloaded image directory
        lock_file: Run lock path
    """

    def __init__(self, cfg: PathsConfig):
        self.cfg = cfg
        self.root = Path(cfg.data_root)
        self.index_file = self.root / cfg.index_file
        self.assets_file = self.root / cfg.assets_file
        self.output_file = self.root / cfg.output_file
        self.images_dir = self.root / cfg.images_dir
        self.lock_file = self.root / cfg.lock_file

    def ensure(self) -> None:
        """Create the data root and image directory.

        Raises:
            PipelineError: If the directories cannot be created
        """
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            self.images_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise PipelineError(f"Cannot create data directory {self.root}: {exc}") from exc

    def image_path(self, filename: str) -> Path:
        return self.images_dir / filename

    def image_url(self, filename: str) -> str:
        return f"{self.cfg.image_url_prefix.rstrip('/')}/{filename}"


def write_json(path: Path, payload: Any) -> None:
    """Atomically write payload as pretty-printed UTF-8 JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def read_json(path: Path) -> Any:
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


def is_index_fresh(path: Path, min_bytes: int, ttl_days: int | None = None) -> bool:
    """Check whether an existing index can be reused instead of re-crawling.

    The index is reused when it exceeds min_bytes and, if ttl_days is set,
    was modified within that many days.
    """
    try:
        stat = path.stat()
    except OSError:
        return False
    if stat.st_size <= min_bytes:
        return False
    if ttl_days is None:
        return True
    age_seconds = max(0.0, time.time() - stat.st_mtime)
    return age_seconds <= ttl_days * 86400


def save_index(path: Path, entries: Iterable[CatalogEntry]) -> None:
    write_json(path, [entry.to_dict() for entry in entries])


def load_index(path: Path) -> list[CatalogEntry]:
    """Load the catalog index.

    Raises:
        PipelineError: If the index is missing or unreadable
    """
    try:
        raw = read_json(path)
        return [CatalogEntry.from_dict(item) for item in raw]
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise PipelineError(f"Catalog index unavailable at {path}: {exc}") from exc


def save_corpus(path: Path, corpus: AssetCorpus) -> None:
    write_json(path, corpus.to_list())


def save_dataset(path: Path, slides: Iterable[MergedSlide]) -> None:
    write_json(path, [slide.to_dict() for slide in slides])


def load_previous_dataset(path: Path) -> dict[str, dict[str, Any]]:
    """Records of the last written dataset keyed by slide id.

    A missing or unreadable dataset yields an empty mapping.
    """
    try:
        raw = read_json(path)
    except (OSError, ValueError):
        return {}
    if not isinstance(raw, list):
        return {}
    return {item["id"]: item for item in raw if isinstance(item, dict) and "id" in item}


class RunLock:
    """Exclusive lock file serializing runs against one data root.

    Usage:
        with RunLock(layout.lock_file):
            ...
    """

    def __init__(self, path: Path):
        self.path = path
        self._held = False

    def acquire(self) -> None:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as exc:
            raise RunLockError(
                f"Another run holds {self.path}; remove it if no run is active"
            ) from exc
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            fh.write(str(os.getpid()))
        self._held = True

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()
