"""Next scheduled departures from a stop."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, time, timedelta, tzinfo
from typing import TYPE_CHECKING

from transit_schedule.models import Departure
from transit_schedule.services.gtfs_static.normalizer import service_seconds_to_datetime
from transit_schedule.services.schedule.calendar import (
    localize,
    scheduled_events,
    seconds_between,
)

if TYPE_CHECKING:
    from transit_schedule.services.schedule.store import ScheduleSnapshot

UNKNOWN_DESTINATION = "Unknown"

# Trains before this hour on the following service day are owl service
DEFAULT_OWL_CUTOFF_HOUR = 5


def next_departures(
    snapshot: ScheduleSnapshot,
    stop_id: str,
    direction_id: int,
    reference_time: datetime,
    count: int,
    *,
    now: datetime,
    tz: tzinfo,
    direction_labels: Mapping[int, str] | None = None,
    owl_cutoff_hour: int = DEFAULT_OWL_CUTOFF_HOUR,
) -> list[Departure]:
    """Return up to ``count`` departures at or after ``reference_time``.

    A reference time of day earlier than the current time of day means the
    next occurrence of that clock time, i.e. tomorrow's service. Early
    morning trains of the day after the target date are always considered so
    late-evening queries still see after-midnight service. Results are
    ordered by time until departure from ``now``. No match gives ``[]``.
    """
    if count <= 0:
        return []

    now = localize(now, tz)
    reference = localize(reference_time, tz)

    is_next_day = (reference.hour, reference.minute) < (now.hour, now.minute)
    target_date = now.date() + timedelta(days=1 if is_next_day else 0)
    not_before = datetime.combine(target_date, time(reference.hour, reference.minute), tzinfo=tz)

    found: dict[tuple[str, datetime], None] = {}

    for event, seconds in scheduled_events(snapshot, stop_id, direction_id, target_date):
        departure = service_seconds_to_datetime(target_date, seconds, tz)
        if seconds_between(not_before, departure) < 0:
            continue
        found[(event.trip_id, departure)] = None

    following_date = target_date + timedelta(days=1)
    for event, seconds in scheduled_events(snapshot, stop_id, direction_id, following_date):
        hours = seconds // 3600
        if hours < owl_cutoff_hour or 24 <= hours < 24 + owl_cutoff_hour:
            departure = service_seconds_to_datetime(following_date, seconds, tz)
            found[(event.trip_id, departure)] = None

    ordered = sorted(found, key=lambda item: seconds_between(now, item[1]))[:count]

    labels = direction_labels or {}
    results: list[Departure] = []
    for trip_id, departure in ordered:
        terminus = snapshot.terminus(trip_id)
        destination = snapshot.stop_name(terminus.stop_id) if terminus else None
        results.append(
            Departure(
                trip_id=trip_id,
                minutes_until=int(seconds_between(now, departure) / 60),
                scheduled_departure=departure,
                direction_id=direction_id,
                direction=labels.get(direction_id, str(direction_id)),
                destination=destination or UNKNOWN_DESTINATION,
            )
        )
    return results
