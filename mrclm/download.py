"""GTFS feed acquisition.

Fetches the agency's published GTFS zip over HTTP, streaming it to disk
and recording a SHA-256 digest so a run can be traced back to the exact
feed it remapped. Transport-level failures are retried by httpx; HTTP
error statuses are fatal.
"""

from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final

import httpx

logger: Final[logging.Logger] = logging.getLogger(__name__)

_CHUNK_SIZE: Final[int] = 65_536
_TIMEOUT: Final[int] = 120
_RETRIES: Final[int] = 3

FEED_FILE_NAME: Final[str] = "google_transit.zip"


class DownloadError(Exception):
    """Raised when an HTTP request fails with a non-success status code."""

    def __init__(self, url: str, status_code: int, body: str) -> None:
        self.url: Final[str] = url
        self.status_code: Final[int] = status_code
        self.body: Final[str] = body
        super().__init__(f"HTTP {status_code} for {url}: {body[:200]}")


@dataclass(frozen=True, slots=True)
class DownloadResult:
    """Outcome of a feed download.

    Attributes:
        file_path: Path of the downloaded zip on disk.
        url: Source URL.
        http_status: HTTP response status code.
        byte_size: File size in bytes.
        download_timestamp: ISO-8601 UTC timestamp of completion.
        sha256_hash: Hex-encoded SHA-256 digest of the file contents.
    """

    file_path: Path
    url: str
    http_status: int
    byte_size: int
    download_timestamp: str
    sha256_hash: str


def compute_sha256(file_path: Path) -> str:
    """Compute the lowercase hex SHA-256 digest of a file in chunks."""
    hasher = hashlib.sha256()
    with file_path.open("rb") as fh:
        while chunk := fh.read(_CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.hexdigest()


def _build_client() -> httpx.Client:
    transport = httpx.HTTPTransport(retries=_RETRIES)
    return httpx.Client(timeout=_TIMEOUT, transport=transport, follow_redirects=True)


def _stream_to_file(client: httpx.Client, url: str, dest: Path) -> tuple[int, int]:
    """Stream an HTTP GET response to dest.

    Returns:
        Tuple of (http_status_code, bytes_written).

    Raises:
        DownloadError: On HTTP 4xx/5xx responses.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    with client.stream("GET", url) as response:
        if response.status_code >= 400:
            body = response.read().decode("utf-8", errors="replace")
            raise DownloadError(url, response.status_code, body)
        total_bytes = 0
        with dest.open("wb") as fh:
            for chunk in response.iter_bytes(chunk_size=_CHUNK_SIZE):
                fh.write(chunk)
                total_bytes += len(chunk)
    return response.status_code, total_bytes


def download_feed(
    url: str,
    dest_dir: Path,
    client: httpx.Client | None = None,
) -> DownloadResult:
    """Download the GTFS zip at url into dest_dir.

    The body is written to a temporary file and moved into place only once
    complete, so an interrupted download never leaves a truncated feed.

    Args:
        url: Feed URL.
        dest_dir: Directory receiving google_transit.zip.
        client: Optional preconfigured client (tests inject one).

    Returns:
        DownloadResult describing the stored file.

    Raises:
        DownloadError: On HTTP 4xx/5xx responses.
    """
    dest = dest_dir / FEED_FILE_NAME
    tmp_path = dest.with_suffix(".tmp")
    owned = client is None
    http = _build_client() if client is None else client
    try:
        status, byte_size = _stream_to_file(http, url, tmp_path)
    except (DownloadError, httpx.HTTPError):
        tmp_path.unlink(missing_ok=True)
        raise
    finally:
        if owned:
            http.close()
    os.replace(tmp_path, dest)

    result = DownloadResult(
        file_path=dest,
        url=url,
        http_status=status,
        byte_size=byte_size,
        download_timestamp=datetime.now(tz=UTC).isoformat(),
        sha256_hash=compute_sha256(dest),
    )
    logger.info(
        "Downloaded %s (%d bytes, sha256 %s)", url, byte_size, result.sha256_hash[:12]
    )
    return result
