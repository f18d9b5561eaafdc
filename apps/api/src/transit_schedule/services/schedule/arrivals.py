"""Arrival time at a destination for a known scheduled departure."""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from typing import TYPE_CHECKING

from transit_schedule.logging import get_logger
from transit_schedule.services.gtfs_static.normalizer import (
    TimeParseError,
    resolve_service_time,
    service_seconds_to_datetime,
)
from transit_schedule.services.schedule.calendar import (
    localize,
    scheduled_events,
    seconds_between,
)

if TYPE_CHECKING:
    from transit_schedule.services.schedule.store import ScheduleSnapshot

logger = get_logger(__name__)

DEFAULT_MATCH_WINDOW_MINUTES = 2


def arrival_time(
    snapshot: ScheduleSnapshot,
    from_stop_id: str,
    to_stop_id: str,
    departure_time: datetime,
    direction_id: int,
    *,
    tz: tzinfo,
    window_minutes: int = DEFAULT_MATCH_WINDOW_MINUTES,
    trip_id: str | None = None,
) -> datetime | None:
    """Return when the trip departing ``from_stop_id`` at ``departure_time`` reaches ``to_stop_id``.

    The trip is recovered by matching scheduled departures within
    ``window_minutes`` of ``departure_time``, on the departure's own date and
    on the previous service date (for after-midnight departures). When
    ``trip_id`` is given and among the matches it is preferred. The arrival
    is anchored to the same service date as the matched departure.
    Returns None when nothing matches.
    """
    departure = localize(departure_time, tz)
    window_seconds = window_minutes * 60

    matches: list[tuple[str, date]] = []
    for service_date in (departure.date(), departure.date() - timedelta(days=1)):
        for event, seconds in scheduled_events(snapshot, from_stop_id, direction_id, service_date):
            scheduled = service_seconds_to_datetime(service_date, seconds, tz)
            if abs(seconds_between(departure, scheduled)) <= window_seconds:
                matches.append((event.trip_id, service_date))

    if not matches:
        logger.debug(
            "No scheduled trip matches departure",
            from_stop_id=from_stop_id,
            departure_time=departure.isoformat(),
            direction_id=direction_id,
        )
        return None

    if trip_id is not None:
        matches.sort(key=lambda match: match[0] != trip_id)

    for matched_trip, service_date in matches:
        destination = snapshot.event_in_trip(matched_trip, to_stop_id)
        if destination is None:
            logger.debug("Destination stop not in trip", trip_id=matched_trip, to_stop_id=to_stop_id)
            continue
        try:
            return resolve_service_time(service_date, destination.departure_time, tz)
        except TimeParseError:
            continue

    return None
