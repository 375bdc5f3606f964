"""
Dataset persistence and data root layout.
"""

from .store import (
    DataLayout,
    PipelineError,
    RunLock,
    RunLockError,
    is_index_fresh,
    load_index,
    load_previous_dataset,
    save_corpus,
    save_dataset,
    save_index,
    write_json,
)

__all__ = [
    "DataLayout",
    "PipelineError",
    "RunLock",
    "RunLockError",
    "is_index_fresh",
    "load_index",
    "load_previous_dataset",
    "save_corpus",
    "save_dataset",
    "save_index",
    "write_json",
]
