"""
Page fetching and image downloading.

This package wraps httpx for page loads, API calls and
size-validated binary downloads.
"""

from .fetcher import (
    DownloadResult,
    FetchError,
    FetchResult,
    build_client,
    download_file,
    fetch_text,
    is_valid_file,
)

__all__ = [
    "DownloadResult",
    "FetchError",
    "FetchResult",
    "build_client",
    "download_file",
    "fetch_text",
    "is_valid_file",
]
