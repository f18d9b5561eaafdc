"""Pytest configuration and fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock
from zoneinfo import ZoneInfo

import pytest
from httpx import ASGITransport, AsyncClient

from transit_schedule.dependencies import get_engine
from transit_schedule.main import app
from transit_schedule.services.gtfs_static.fetcher import GtfsStaticFetcher
from transit_schedule.services.gtfs_static.importer import GtfsImporter
from transit_schedule.services.schedule.cache import FeedCache
from transit_schedule.services.schedule.engine import ScheduleEngine

from .fixtures.gtfs_fixture import build_gtfs_zip

if TYPE_CHECKING:
    from pathlib import Path

    from transit_schedule.services.schedule.store import ScheduleSnapshot

PACIFIC = ZoneInfo("America/Los_Angeles")

# Monday 2026-10-19 23:50 in San Francisco
MONDAY_2350 = datetime(2026, 10, 19, 23, 50, tzinfo=PACIFIC)


@pytest.fixture
def tz() -> ZoneInfo:
    return PACIFIC


@pytest.fixture
def schedule_snapshot(tmp_path: Path) -> ScheduleSnapshot:
    """Snapshot imported from the fixture feed."""
    snapshot, _ = GtfsImporter().run(build_gtfs_zip(), tmp_path, source="fixture")
    return snapshot


def mock_fetcher(zip_bytes: bytes | None = None) -> AsyncMock:
    """Fetcher whose downloads return ``zip_bytes`` (the fixture feed by default)."""
    fetcher = AsyncMock(spec=GtfsStaticFetcher)
    fetcher.fetch_remote.return_value = (zip_bytes or build_gtfs_zip(), "abc123")
    return fetcher


def make_engine(
    snapshot: ScheduleSnapshot | None,
    now: datetime = MONDAY_2350,
    fetcher: AsyncMock | None = None,
) -> ScheduleEngine:
    """Engine with a frozen clock and, optionally, a published snapshot."""
    utc_now = now.astimezone(timezone.utc)

    def clock() -> datetime:
        return utc_now

    cache = FeedCache("https://example.com/gtfs.zip", fetcher=fetcher, clock=clock)
    if snapshot is not None:
        cache.publish(snapshot)
    return ScheduleEngine(
        cache,
        tz=PACIFIC,
        clock=clock,
        direction_labels={0: "North", 1: "South"},
    )


@pytest.fixture
def engine(schedule_snapshot: ScheduleSnapshot) -> ScheduleEngine:
    return make_engine(schedule_snapshot)


@asynccontextmanager
async def client_for(engine: ScheduleEngine) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for an app served by ``engine``."""
    app.dependency_overrides[get_engine] = lambda: engine
    transport = ASGITransport(app=app)
    try:
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
async def client(engine: ScheduleEngine) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing, served by the fixture engine."""
    async with client_for(engine) as ac:
        yield ac
