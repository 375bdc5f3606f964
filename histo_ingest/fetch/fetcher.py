"""
HTTP fetching for pages, API calls and image downloads.

Two entry points share one httpx.AsyncClient per run:
1. fetch_text: loads an HTML page or API response with retry logic
2. download_file: streams a binary to disk, following redirects up to a bound
   and validating the result by size

download_file is the single point through which image bytes enter the
system. It never raises for network or validation problems; every failure is
reported as a FetchError on the result and the partial file is removed.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urljoin

import httpx

from ..config import FetchConfig

TOO_MANY_REDIRECTS = "too_many_redirects"
BAD_STATUS = "bad_status"
TOO_SMALL = "too_small"
NETWORK = "network"
IO = "io"

PART_SUFFIX = ".part"


@dataclass
class FetchResult:
    """Result of a page or API fetch.

    Either text will be populated (success) or error will be populated (failure),
    but never both. status_code may be None for network-level failures.

    Attributes:
        url: The URL that was fetched
        status_code: HTTP status code, or None if request failed before getting response
        text: The response body text, or None on error
        error: Error message if fetch failed, None on success
    """
    url: str
    status_code: int | None
    text: str | None
    error: str | None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FetchError:
    """Why a download failed.

    Attributes:
        kind: One of too_many_redirects, bad_status, too_small, network, io
        detail: Human-readable description
        status_code: HTTP status for bad_status
        size: Bytes on disk for too_small
    """
    kind: str
    detail: str
    status_code: int | None = None
    size: int | None = None

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}"


@dataclass
class DownloadResult:
    """Result of a download.

    Attributes:
        url: The URL originally requested
        path: Destination path
        bytes_written: Size of the validated file, 0 on failure
        final_url: Last URL in the redirect chain
        error: FetchError on failure, None on success
    """
    url: str
    path: Path
    bytes_written: int = 0
    final_url: str | None = None
    error: FetchError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def build_client(cfg: FetchConfig, transport: httpx.AsyncBaseTransport | None = None) -> httpx.AsyncClient:
    """Create the shared async client for a pipeline run.

    Redirects are disabled at client level so download_file can count hops;
    fetch_text opts back in per request.
    """
    return httpx.AsyncClient(
        timeout=cfg.timeout_seconds,
        headers={"User-Agent": cfg.user_agent},
        follow_redirects=False,
        trust_env=cfg.trust_env,
        transport=transport,
    )


def is_valid_file(path: Path, min_bytes: int) -> bool:
    """True if path is a file larger than min_bytes."""
    try:
        return path.is_file() and path.stat().st_size > min_bytes
    except OSError:
        return False


def remove_file(path: Path) -> None:
    path.unlink(missing_ok=True)


def partial_path(dest: Path) -> Path:
    """Sibling file a download streams into before it is moved onto dest."""
    return dest.with_name(dest.name + PART_SUFFIX)


async def fetch_text(
    client: httpx.AsyncClient,
    url: str,
    retries: int = 0,
    params: dict | None = None,
) -> FetchResult:
    """Fetch a URL as text with retry logic.

    Non-2xx responses and transport errors are retried with linear backoff
    (0.5s, 1.0s, ...) and reported as FetchResult.error once attempts run out.

    Args:
        client: Shared async client
        url: The URL to fetch
        retries: Number of retry attempts after initial failure
        params: Optional query parameters

    Returns:
        FetchResult with text on success or error message on failure
    """
    last_error: str | None = None
    status_code: int | None = None

    for attempt in range(retries + 1):
        try:
            resp = await client.get(url, params=params, follow_redirects=True)
            status_code = resp.status_code
            if resp.is_success:
                return FetchResult(url=url, status_code=status_code, text=resp.text, error=None)
            last_error = f"HTTP {resp.status_code}"
        except httpx.HTTPError as exc:
            last_error = f"{type(exc).__name__}: {exc}"
            status_code = None
        if attempt < retries:
            await asyncio.sleep(0.5 * (attempt + 1))

    return FetchResult(url=url, status_code=status_code, text=None, error=last_error)


async def download_file(
    client: httpx.AsyncClient,
    url: str,
    dest: Path,
    headers: dict[str, str] | None = None,
    min_bytes: int = 6000,
    max_redirects: int = 5,
    chunk_size: int = 64 * 1024,
) -> DownloadResult:
    """Download url to dest, validating the result by size.

    - 2xx: the body is streamed to a sibling .part file, which replaces dest
      only once it passes the size check
    - 3xx with Location: the target is followed, at most max_redirects times
    - anything else: bad_status
    - a completed file of min_bytes or less is discarded, too_small
    - transport errors: network

    On every failure dest is removed. The .part file never outlives the call,
    also when the download is interrupted or cancelled mid-stream.

    Args:
        client: Shared async client (must not follow redirects itself)
        url: The URL to download
        dest: Destination file path
        headers: Extra request headers (e.g. Referer)
        min_bytes: Files this size or smaller are rejected
        max_redirects: Maximum redirect hops
        chunk_size: Streaming chunk size

    Returns:
        DownloadResult with bytes_written on success or error on failure
    """
    current = url
    result = DownloadResult(url=url, path=dest)
    part = partial_path(dest)

    try:
        for _hop in range(max_redirects + 1):
            result.final_url = current
            try:
                async with client.stream(
                    "GET", current, headers=headers, follow_redirects=False
                ) as resp:
                    if resp.is_redirect and resp.headers.get("location"):
                        current = urljoin(current, resp.headers["location"])
                        continue
                    if not resp.is_success:
                        remove_file(dest)
                        result.error = FetchError(
                            BAD_STATUS, f"HTTP {resp.status_code}", status_code=resp.status_code
                        )
                        return result
                    with open(part, "wb") as handle:
                        async for chunk in resp.aiter_bytes(chunk_size):
                            handle.write(chunk)
                size = part.stat().st_size
                if size <= min_bytes:
                    remove_file(dest)
                    result.error = FetchError(TOO_SMALL, f"file too small ({size} bytes)", size=size)
                    return result
                os.replace(part, dest)
            except httpx.HTTPError as exc:
                remove_file(dest)
                result.error = FetchError(NETWORK, f"{type(exc).__name__}: {exc}")
                return result
            except OSError as exc:
                remove_file(dest)
                result.error = FetchError(IO, f"{type(exc).__name__}: {exc}")
                return result

            result.bytes_written = size
            return result

        remove_file(dest)
        result.error = FetchError(TOO_MANY_REDIRECTS, f"more than {max_redirects} redirects")
        return result
    finally:
        remove_file(part)
