"""Static GTFS feed download.

A feed source is either an http(s) URL or a local path. Remote downloads
are streamed with a byte cap and retried with exponential backoff on
transport errors and retryable statuses (5xx, 408, 429). Any other HTTP
failure (status, redirect loop, undecodable body, bad URL) fails at once
as a :class:`FetchError`.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

import httpx

from transit_schedule.errors import CorruptArchiveError, NetworkError, SecurityViolationError
from transit_schedule.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SEC = 120
DEFAULT_MAX_RETRIES = 3
DEFAULT_BACKOFF_BASE = 2.0
DEFAULT_MAX_DOWNLOAD_BYTES = 200_000_000
USER_AGENT = "transit-schedule/0.1"

# Local file header signature
ZIP_MAGIC = b"PK\x03\x04"

RETRYABLE_STATUS = frozenset({408, 429})


class FetchError(NetworkError):
    """Raised when the feed cannot be downloaded or read."""


class InvalidZipError(CorruptArchiveError):
    """Raised when downloaded content is not a ZIP archive."""


class DownloadTooLargeError(SecurityViolationError):
    """Raised when a download exceeds the configured byte cap."""


def is_remote(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status in RETRYABLE_STATUS
    # a TransportError, but never transient
    if isinstance(exc, httpx.UnsupportedProtocol):
        return False
    return isinstance(exc, httpx.TransportError)


class GtfsStaticFetcher:
    """Fetches the static GTFS ZIP and returns it with its SHA-256 digest."""

    def __init__(
        self,
        timeout_sec: int = DEFAULT_TIMEOUT_SEC,
        max_retries: int = DEFAULT_MAX_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        max_download_bytes: int = DEFAULT_MAX_DOWNLOAD_BYTES,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_sec = timeout_sec
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.max_download_bytes = max_download_bytes
        self._transport = transport

    async def fetch_remote(self, url: str) -> tuple[bytes, str]:
        """Download the feed, retrying transient failures.

        Returns:
            Tuple of (zip_bytes, sha256_hex_digest).

        Raises:
            FetchError: On a non-retryable HTTP failure or once retries are exhausted.
            InvalidZipError: If the body is not a ZIP archive.
            DownloadTooLargeError: If the body exceeds ``max_download_bytes``.
        """
        last_error: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            logger.info(
                "Fetching GTFS static feed",
                url=url,
                attempt=attempt,
                max_retries=self.max_retries,
            )
            try:
                data = await self._download(url)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                last_error = exc
                if not _is_retryable(exc):
                    msg = f"GTFS feed request failed: {exc}"
                    raise FetchError(msg) from exc
                if attempt < self.max_retries:
                    delay = self.backoff_base**attempt
                    logger.warning(
                        "Fetch attempt failed, retrying",
                        attempt=attempt,
                        delay_sec=delay,
                        error=str(exc),
                    )
                    await asyncio.sleep(delay)
                continue

            return self._finish(data, url=url)

        msg = f"Failed to fetch GTFS feed after {self.max_retries} attempts"
        raise FetchError(msg) from last_error

    def fetch_local(self, path: str | Path) -> tuple[bytes, str]:
        """Read the feed from the local filesystem.

        Raises:
            FetchError: If the file does not exist or cannot be read.
            InvalidZipError: If the file is not a ZIP archive.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except FileNotFoundError as exc:
            msg = f"Local GTFS file not found: {path}"
            raise FetchError(msg) from exc
        except OSError as exc:
            msg = f"Cannot read local GTFS file {path}: {exc}"
            raise FetchError(msg) from exc

        return self._finish(data, path=str(path))

    async def _download(self, url: str) -> bytes:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_sec),
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                declared = response.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_download_bytes:
                    raise self._too_large(int(declared))

                chunks: list[bytes] = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_download_bytes:
                        raise self._too_large(received)
                    chunks.append(chunk)
        return b"".join(chunks)

    def _too_large(self, size: int) -> DownloadTooLargeError:
        return DownloadTooLargeError(
            f"GTFS download exceeds {self.max_download_bytes} bytes (got at least {size})"
        )

    def _finish(self, data: bytes, **log_fields: str) -> tuple[bytes, str]:
        self._validate_zip(data)
        feed_hash = hashlib.sha256(data).hexdigest()
        logger.info(
            "GTFS feed fetched",
            size_bytes=len(data),
            feed_hash=feed_hash,
            **log_fields,
        )
        return data, feed_hash

    @staticmethod
    def _validate_zip(data: bytes) -> None:
        """Reject bodies that do not start with a ZIP local header."""
        if len(data) < len(ZIP_MAGIC) or data[: len(ZIP_MAGIC)] != ZIP_MAGIC:
            msg = "Downloaded content is not a valid ZIP file"
            raise InvalidZipError(msg)
