"""Tests for the public schedule endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from transit_schedule.errors import CorruptArchiveError
from transit_schedule.services.gtfs_static.fetcher import FetchError

from .conftest import MONDAY_2350, PACIFIC, client_for, make_engine, mock_fetcher

if TYPE_CHECKING:
    from httpx import AsyncClient

    from transit_schedule.services.schedule.store import ScheduleSnapshot


class TestDeparturesEndpoint:
    """Tests for GET /stops/{stop_id}/departures."""

    async def test_next_departures(self, client: AsyncClient) -> None:
        response = await client.get("/stops/70011/departures", params={"direction_id": 1})

        assert response.status_code == 200
        data = response.json()
        assert data["stop_id"] == "70011"
        assert data["stop_name"] == "San Francisco"
        assert data["direction_id"] == 1
        assert data["count"] == 3
        assert [item["trip_id"] for item in data["items"]] == ["T1", "T5", "T6"]

        first = data["items"][0]
        assert first["minutes_until"] == 8
        assert first["direction"] == "South"
        assert first["destination"] == "San Jose Diridon"
        assert datetime.fromisoformat(first["scheduled_departure"]) == datetime(
            2026, 10, 19, 23, 58, tzinfo=PACIFIC
        )

    async def test_reference_time_defaults_to_now(self, client: AsyncClient) -> None:
        response = await client.get("/stops/70011/departures", params={"direction_id": 1})
        assert datetime.fromisoformat(response.json()["reference_time"]) == MONDAY_2350

    async def test_count(self, client: AsyncClient) -> None:
        response = await client.get(
            "/stops/70011/departures", params={"direction_id": 1, "count": 1}
        )
        assert response.json()["count"] == 1

    async def test_earlier_time_of_day_means_tomorrow(self, client: AsyncClient) -> None:
        response = await client.get(
            "/stops/70011/departures",
            params={"direction_id": 1, "at": "2026-10-19T08:00:00-07:00", "count": 1},
        )

        item = response.json()["items"][0]
        assert item["trip_id"] == "T2"
        assert item["minutes_until"] == 8 * 60 + 10
        assert datetime.fromisoformat(item["scheduled_departure"]) == datetime(
            2026, 10, 20, 8, 0, tzinfo=PACIFIC
        )

    async def test_unknown_stop_returns_empty_list(self, client: AsyncClient) -> None:
        response = await client.get("/stops/99999/departures", params={"direction_id": 1})

        assert response.status_code == 200
        assert response.json()["items"] == []
        assert response.json()["stop_name"] is None

    async def test_invalid_direction(self, client: AsyncClient) -> None:
        response = await client.get("/stops/70011/departures", params={"direction_id": 2})
        assert response.status_code == 422

    async def test_direction_required(self, client: AsyncClient) -> None:
        response = await client.get("/stops/70011/departures")
        assert response.status_code == 422

    async def test_count_out_of_range(self, client: AsyncClient) -> None:
        response = await client.get(
            "/stops/70011/departures", params={"direction_id": 1, "count": 0}
        )
        assert response.status_code == 422


class TestArrivalsEndpoint:
    """Tests for GET /arrivals."""

    async def test_arrival_after_midnight(self, client: AsyncClient) -> None:
        response = await client.get(
            "/arrivals",
            params={
                "from_stop_id": "70011",
                "to_stop_id": "70021",
                "departure_time": "2026-10-19T23:58:00-07:00",
                "direction_id": 1,
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["from_stop_id"] == "70011"
        assert data["to_stop_id"] == "70021"
        assert datetime.fromisoformat(data["arrival_time"]) == datetime(
            2026, 10, 20, 0, 10, tzinfo=PACIFIC
        )

    async def test_no_matching_trip(self, client: AsyncClient) -> None:
        response = await client.get(
            "/arrivals",
            params={
                "from_stop_id": "70011",
                "to_stop_id": "70021",
                "departure_time": "2026-10-19T12:00:00-07:00",
                "direction_id": 1,
            },
        )

        assert response.status_code == 404
        assert response.json()["detail"] == "No scheduled arrival found"

    async def test_missing_parameters(self, client: AsyncClient) -> None:
        response = await client.get("/arrivals", params={"from_stop_id": "70011"})
        assert response.status_code == 422


class TestScheduleUnavailable:
    """Behaviour when the feed cannot be refreshed."""

    async def test_no_snapshot_and_fetch_fails(self) -> None:
        fetcher = mock_fetcher()
        fetcher.fetch_remote.side_effect = FetchError("Failed to fetch GTFS feed after 3 attempts")
        engine = make_engine(None, fetcher=fetcher)

        async with client_for(engine) as client:
            response = await client.get("/stops/70011/departures", params={"direction_id": 1})

        assert response.status_code == 503
        assert "Failed to fetch" in response.json()["detail"]

    async def test_no_snapshot_and_archive_corrupt(self) -> None:
        fetcher = mock_fetcher()
        fetcher.fetch_remote.side_effect = CorruptArchiveError("Missing required GTFS files")
        engine = make_engine(None, fetcher=fetcher)

        async with client_for(engine) as client:
            response = await client.get("/stops/70011/departures", params={"direction_id": 1})

        assert response.status_code == 502

    async def test_stale_snapshot_served_when_refresh_fails(
        self, schedule_snapshot: ScheduleSnapshot
    ) -> None:
        fetcher = mock_fetcher()
        fetcher.fetch_remote.side_effect = FetchError("down")
        engine = make_engine(None, fetcher=fetcher)
        engine.cache.publish(schedule_snapshot, loaded_at=engine.now() - timedelta(hours=30))

        async with client_for(engine) as client:
            response = await client.get("/stops/70011/departures", params={"direction_id": 1})

        assert response.status_code == 200
        assert response.json()["items"][0]["trip_id"] == "T1"
        assert fetcher.fetch_remote.await_count == 1

    async def test_empty_cache_loads_on_first_query(self) -> None:
        fetcher = mock_fetcher()
        engine = make_engine(None, fetcher=fetcher)

        async with client_for(engine) as client:
            response = await client.get("/stops/70011/departures", params={"direction_id": 1})

        assert response.status_code == 200
        assert response.json()["count"] == 3
        assert fetcher.fetch_remote.await_count == 1
