"""Schedule engine - the handle callers use for refreshes and queries."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from transit_schedule.config import Settings, get_settings
from transit_schedule.models import Departure
from transit_schedule.services.gtfs_static.fetcher import GtfsStaticFetcher
from transit_schedule.services.gtfs_static.importer import GtfsImporter, ImportReport
from transit_schedule.services.schedule.arrivals import DEFAULT_MATCH_WINDOW_MINUTES, arrival_time
from transit_schedule.services.schedule.cache import FeedCache
from transit_schedule.services.schedule.departures import (
    DEFAULT_OWL_CUTOFF_HOUR,
    next_departures,
)
from transit_schedule.services.schedule.store import ScheduleSnapshot


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScheduleEngine:
    """Static schedule queries over whatever snapshot the cache has published.

    Queries never wait for a refresh and never raise for "nothing found";
    they return ``[]`` or ``None``. Only :meth:`ensure_fresh` and
    :meth:`refresh` raise, with the refresh error types.
    """

    def __init__(
        self,
        cache: FeedCache,
        tz: tzinfo,
        clock: Callable[[], datetime] = _utcnow,
        direction_labels: Mapping[int, str] | None = None,
        match_window_minutes: int = DEFAULT_MATCH_WINDOW_MINUTES,
        owl_cutoff_hour: int = DEFAULT_OWL_CUTOFF_HOUR,
        default_count: int = 3,
    ) -> None:
        self.cache = cache
        self.tz = tz
        self._clock = clock
        self.direction_labels = dict(direction_labels or {})
        self.match_window_minutes = match_window_minutes
        self.owl_cutoff_hour = owl_cutoff_hour
        self.default_count = default_count

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> ScheduleEngine:
        settings = settings or get_settings()
        fetcher = GtfsStaticFetcher(
            timeout_sec=settings.gtfs_fetch_timeout_sec,
            max_retries=settings.gtfs_fetch_max_retries,
            backoff_base=settings.gtfs_fetch_backoff_base,
            max_download_bytes=settings.gtfs_max_download_bytes,
        )
        importer = GtfsImporter(
            max_entry_size=settings.max_entry_size_bytes,
            max_compression_ratio=settings.max_compression_ratio,
        )
        cache = FeedCache(
            settings.gtfs_static_url,
            fetcher=fetcher,
            importer=importer,
            max_age=timedelta(hours=settings.feed_max_age_hours),
            clock=clock,
            scratch_root=settings.scratch_dir,
        )
        return cls(
            cache,
            tz=ZoneInfo(settings.agency_timezone),
            clock=clock,
            direction_labels=settings.direction_labels,
            match_window_minutes=settings.arrival_match_window_minutes,
            owl_cutoff_hour=settings.owl_service_cutoff_hour,
            default_count=settings.default_departure_count,
        )

    @property
    def snapshot(self) -> ScheduleSnapshot:
        return self.cache.snapshot

    def now(self) -> datetime:
        return self._clock().astimezone(self.tz)

    async def ensure_fresh(self) -> ImportReport | None:
        return await self.cache.ensure_fresh()

    async def refresh(self) -> ImportReport:
        return await self.cache.refresh()

    def next_departures(
        self,
        stop_id: str,
        direction_id: int,
        reference_time: datetime | None = None,
        count: int | None = None,
    ) -> list[Departure]:
        """Next scheduled departures; ``reference_time`` defaults to now."""
        now = self.now()
        return next_departures(
            self.cache.snapshot,
            stop_id,
            direction_id,
            reference_time or now,
            count if count is not None else self.default_count,
            now=now,
            tz=self.tz,
            direction_labels=self.direction_labels,
            owl_cutoff_hour=self.owl_cutoff_hour,
        )

    def arrival_time(
        self,
        from_stop_id: str,
        to_stop_id: str,
        departure_time: datetime,
        direction_id: int,
        trip_id: str | None = None,
    ) -> datetime | None:
        """Scheduled arrival at ``to_stop_id`` for a known departure, or None."""
        return arrival_time(
            self.cache.snapshot,
            from_stop_id,
            to_stop_id,
            departure_time,
            direction_id,
            tz=self.tz,
            window_minutes=self.match_window_minutes,
            trip_id=trip_id,
        )

    def stop_name(self, stop_id: str) -> str | None:
        return self.cache.snapshot.stop_name(stop_id)

    def status(self) -> dict[str, Any]:
        return {**self.cache.status(), "timezone": str(self.tz)}
