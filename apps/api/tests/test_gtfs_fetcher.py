"""Tests for GtfsStaticFetcher - retries, size cap, local files, ZIP magic check."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from transit_schedule.errors import CorruptArchiveError, NetworkError, SecurityViolationError
from transit_schedule.services.gtfs_static.fetcher import (
    USER_AGENT,
    DownloadTooLargeError,
    FetchError,
    GtfsStaticFetcher,
    InvalidZipError,
    is_remote,
)

from .fixtures.gtfs_fixture import build_gtfs_zip, build_invalid_zip

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

URL = "https://example.com/gtfs.zip"


class Responder:
    """MockTransport handler replaying a fixed sequence of responses."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def make_fetcher(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> GtfsStaticFetcher:
    kwargs.setdefault("backoff_base", 0.01)
    return GtfsStaticFetcher(transport=httpx.MockTransport(handler), **kwargs)


class TestFetchLocal:
    """Tests for local file fetching."""

    def test_fetch_local_valid_zip(self, tmp_path: Path) -> None:
        zip_bytes = build_gtfs_zip()
        zip_file = tmp_path / "gtfs.zip"
        zip_file.write_bytes(zip_bytes)

        data, feed_hash = GtfsStaticFetcher().fetch_local(str(zip_file))

        assert data == zip_bytes
        assert len(feed_hash) == 64  # SHA-256 hex

    def test_fetch_local_file_not_found(self) -> None:
        with pytest.raises(FetchError, match="not found"):
            GtfsStaticFetcher().fetch_local("/nonexistent/path/gtfs.zip")

    def test_fetch_local_directory_is_fetch_error(self, tmp_path: Path) -> None:
        with pytest.raises(FetchError, match="Cannot read"):
            GtfsStaticFetcher().fetch_local(tmp_path)

    def test_fetch_local_invalid_zip(self, tmp_path: Path) -> None:
        bad_file = tmp_path / "bad.zip"
        bad_file.write_bytes(build_invalid_zip())

        with pytest.raises(InvalidZipError, match="not a valid ZIP"):
            GtfsStaticFetcher().fetch_local(bad_file)

    def test_fetch_local_returns_consistent_hash(self, tmp_path: Path) -> None:
        zip_file = tmp_path / "gtfs.zip"
        zip_file.write_bytes(build_gtfs_zip())

        fetcher = GtfsStaticFetcher()
        _, hash1 = fetcher.fetch_local(zip_file)
        _, hash2 = fetcher.fetch_local(zip_file)
        assert hash1 == hash2


class TestFetchRemote:
    """Tests for remote URL fetching with retry logic."""

    async def test_fetch_remote_success(self) -> None:
        zip_bytes = build_gtfs_zip()
        responder = Responder(httpx.Response(200, content=zip_bytes))

        data, feed_hash = await make_fetcher(responder, max_retries=1).fetch_remote(URL)

        assert data == zip_bytes
        assert len(feed_hash) == 64
        assert responder.requests[0].headers["User-Agent"] == USER_AGENT

    async def test_retries_on_server_error(self) -> None:
        zip_bytes = build_gtfs_zip()
        responder = Responder(httpx.Response(500), httpx.Response(200, content=zip_bytes))

        data, _ = await make_fetcher(responder, max_retries=3).fetch_remote(URL)

        assert data == zip_bytes
        assert len(responder.requests) == 2

    @pytest.mark.parametrize("status", [408, 429, 503])
    async def test_retryable_statuses(self, status: int) -> None:
        responder = Responder(httpx.Response(status), httpx.Response(200, content=build_gtfs_zip()))

        await make_fetcher(responder, max_retries=2).fetch_remote(URL)

        assert len(responder.requests) == 2

    @pytest.mark.parametrize("status", [403, 404])
    async def test_client_error_not_retried(self, status: int) -> None:
        responder = Responder(httpx.Response(status))

        with pytest.raises(FetchError, match=str(status)):
            await make_fetcher(responder, max_retries=3).fetch_remote(URL)

        assert len(responder.requests) == 1

    async def test_all_retries_exhausted(self) -> None:
        responder = Responder(httpx.Response(500))

        with pytest.raises(FetchError, match="after 2 attempts"):
            await make_fetcher(responder, max_retries=2).fetch_remote(URL)

        assert len(responder.requests) == 2

    async def test_connection_error_retried_then_raised(self) -> None:
        responder = Responder(httpx.ConnectError("connection refused"))

        with pytest.raises(NetworkError, match="after 3 attempts"):
            await make_fetcher(responder, max_retries=3).fetch_remote(URL)

        assert len(responder.requests) == 3

    async def test_invalid_zip_content(self) -> None:
        responder = Responder(httpx.Response(200, content=build_invalid_zip()))

        with pytest.raises(InvalidZipError, match="not a valid ZIP"):
            await make_fetcher(responder, max_retries=1).fetch_remote(URL)

    async def test_follows_redirect(self) -> None:
        zip_bytes = build_gtfs_zip()

        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/gtfs.zip":
                return httpx.Response(302, headers={"Location": "https://cdn.example.com/feed.zip"})
            return httpx.Response(200, content=zip_bytes)

        data, _ = await make_fetcher(handler).fetch_remote(URL)
        assert data == zip_bytes


class TestHttpFailuresAreTyped:
    """Every httpx failure surfaces as a FetchError."""

    async def test_redirect_loop(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(302, headers={"Location": str(request.url)})

        with pytest.raises(FetchError, match="redirects"):
            await make_fetcher(handler, max_retries=3).fetch_remote(URL)

    async def test_undecodable_body(self) -> None:
        responder = Responder(
            httpx.Response(200, content=b"not gzip at all", headers={"Content-Encoding": "gzip"})
        )

        with pytest.raises(FetchError):
            await make_fetcher(responder, max_retries=3).fetch_remote(URL)

        assert len(responder.requests) == 1


class TestDownloadCap:
    async def test_body_over_cap_rejected(self) -> None:
        responder = Responder(httpx.Response(200, content=build_gtfs_zip()))

        with pytest.raises(DownloadTooLargeError):
            await make_fetcher(responder, max_download_bytes=100).fetch_remote(URL)

    async def test_declared_length_over_cap_rejected(self) -> None:
        responder = Responder(
            httpx.Response(200, content=b"PK\x03\x04", headers={"Content-Length": "999999"})
        )

        with pytest.raises(DownloadTooLargeError, match="999999"):
            await make_fetcher(responder, max_download_bytes=1000).fetch_remote(URL)

    async def test_oversized_download_not_retried(self) -> None:
        responder = Responder(httpx.Response(200, content=build_gtfs_zip()))

        with pytest.raises(SecurityViolationError):
            await make_fetcher(responder, max_retries=3, max_download_bytes=100).fetch_remote(URL)

        assert len(responder.requests) == 1


class TestZipValidation:
    """Tests for ZIP magic byte validation."""

    def test_valid_zip_passes(self) -> None:
        GtfsStaticFetcher._validate_zip(build_gtfs_zip())

    @pytest.mark.parametrize("data", [b"not a zip", b"", b"PK"])
    def test_invalid_bytes_fail(self, data: bytes) -> None:
        with pytest.raises(InvalidZipError):
            GtfsStaticFetcher._validate_zip(data)


class TestErrorTypes:
    """Fetch failures map onto the refresh error types."""

    def test_fetch_error_is_network_error(self) -> None:
        assert issubclass(FetchError, NetworkError)

    def test_invalid_zip_is_corrupt_archive(self) -> None:
        assert issubclass(InvalidZipError, CorruptArchiveError)

    def test_too_large_is_security_violation(self) -> None:
        assert issubclass(DownloadTooLargeError, SecurityViolationError)


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("https://example.com/gtfs.zip", True),
        ("http://example.com/gtfs.zip", True),
        ("/var/data/gtfs.zip", False),
        ("gtfs.zip", False),
    ],
)
def test_is_remote(source: str, expected: bool) -> None:
    assert is_remote(source) is expected
