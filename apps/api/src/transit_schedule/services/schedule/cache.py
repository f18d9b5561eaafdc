"""Feed cache - owns the published schedule snapshot and refreshes it."""

from __future__ import annotations

import asyncio
import dataclasses
import tempfile
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from transit_schedule.errors import CorruptArchiveError, ScheduleFeedError
from transit_schedule.logging import get_logger, refresh_context
from transit_schedule.services.gtfs_static.fetcher import GtfsStaticFetcher, is_remote
from transit_schedule.services.gtfs_static.importer import GtfsImporter, ImportReport
from transit_schedule.services.schedule.store import ScheduleSnapshot

logger = get_logger(__name__)

DEFAULT_MAX_AGE = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FeedCache:
    """Holds the current :class:`ScheduleSnapshot` and replaces it on refresh.

    Refreshes are serialised by one lock. Readers just take ``snapshot``;
    a refresh builds its new snapshot privately (in a scratch directory
    that is always removed) and publishes it with a single assignment, so
    readers see either the old or the new snapshot, never a mix. A failed
    refresh leaves the previous snapshot and its timestamp in place.

    Usage:
        cache = FeedCache(url)
        await cache.ensure_fresh()   # no-op while the snapshot is fresh
        snapshot = cache.snapshot
    """

    def __init__(
        self,
        url: str,
        fetcher: GtfsStaticFetcher | None = None,
        importer: GtfsImporter | None = None,
        max_age: timedelta = DEFAULT_MAX_AGE,
        clock: Callable[[], datetime] = _utcnow,
        scratch_root: str | Path | None = None,
    ) -> None:
        self.url = url
        self.max_age = max_age
        self._fetcher = fetcher or GtfsStaticFetcher()
        self._importer = importer or GtfsImporter()
        self._clock = clock
        self._scratch_root = Path(scratch_root) if scratch_root else None

        self._snapshot = ScheduleSnapshot.empty()
        self._last_loaded_at: datetime | None = None
        self._lock = asyncio.Lock()
        self._refresh_count = 0
        self._last_error: str | None = None

    @property
    def snapshot(self) -> ScheduleSnapshot:
        return self._snapshot

    @property
    def last_loaded_at(self) -> datetime | None:
        return self._last_loaded_at

    @property
    def is_refreshing(self) -> bool:
        return self._lock.locked()

    def is_fresh(self) -> bool:
        """True when a non-empty snapshot was loaded less than ``max_age`` ago."""
        if self._last_loaded_at is None or self._snapshot.is_empty:
            return False
        return self._clock() - self._last_loaded_at < self.max_age

    async def ensure_fresh(self) -> ImportReport | None:
        """Refresh unless the current snapshot is still fresh.

        Returns:
            The import report when a refresh ran, None otherwise.

        Raises:
            NetworkError, CorruptArchiveError, SecurityViolationError
        """
        if self.is_fresh():
            return None
        async with self._lock:
            # A concurrent caller may have refreshed while we waited
            if self.is_fresh():
                return None
            return await self._refresh_locked()

    async def refresh(self) -> ImportReport:
        """Reload the feed regardless of freshness."""
        async with self._lock:
            return await self._refresh_locked()

    def publish(self, snapshot: ScheduleSnapshot, loaded_at: datetime | None = None) -> None:
        """Swap in a snapshot built elsewhere (tests, warm starts)."""
        loaded_at = loaded_at or self._clock()
        self._snapshot = dataclasses.replace(snapshot, loaded_at=loaded_at)
        self._last_loaded_at = loaded_at

    def status(self) -> dict[str, Any]:
        return {
            **self._snapshot.summary(),
            "fresh": self.is_fresh(),
            "refreshing": self.is_refreshing,
            "refresh_count": self._refresh_count,
            "last_error": self._last_error,
        }

    async def _refresh_locked(self) -> ImportReport:
        self._refresh_count += 1
        with refresh_context(feed_url=self.url, refresh=self._refresh_count):
            return await self._run_refresh()

    async def _run_refresh(self) -> ImportReport:
        try:
            zip_bytes, feed_hash = await self._fetch()
            try:
                snapshot, report = await asyncio.to_thread(self._import, zip_bytes, feed_hash)
            except OSError as exc:
                msg = f"Cannot unpack GTFS feed into scratch space: {exc}"
                raise CorruptArchiveError(msg) from exc
        except ScheduleFeedError as exc:
            self._last_error = f"{type(exc).__name__}: {exc}"
            logger.error(
                "Static GTFS refresh failed, keeping previous snapshot",
                error_type=type(exc).__name__,
                error=str(exc),
                has_snapshot=not self._snapshot.is_empty,
            )
            raise

        self.publish(snapshot)
        self._last_error = None
        logger.info(
            "Published schedule snapshot",
            feed_hash=feed_hash,
            loaded_at=self._last_loaded_at.isoformat() if self._last_loaded_at else None,
            **snapshot.counts(),
        )
        return report

    async def _fetch(self) -> tuple[bytes, str]:
        if is_remote(self.url):
            return await self._fetcher.fetch_remote(self.url)
        return self._fetcher.fetch_local(self.url)

    def _import(self, zip_bytes: bytes, feed_hash: str) -> tuple[ScheduleSnapshot, ImportReport]:
        if self._scratch_root is not None:
            self._scratch_root.mkdir(parents=True, exist_ok=True)
        with tempfile.TemporaryDirectory(prefix="gtfs-", dir=self._scratch_root) as scratch:
            return self._importer.run(
                zip_bytes,
                Path(scratch),
                source=self.url,
                feed_hash=feed_hash,
            )
