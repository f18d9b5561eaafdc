"""Service calendar resolution."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, datetime, timezone, tzinfo
from typing import TYPE_CHECKING

from transit_schedule.logging import get_logger
from transit_schedule.models import ExceptionKind, ServiceCalendar, ServiceException, StopTimeEvent
from transit_schedule.services.gtfs_static.normalizer import TimeParseError, parse_gtfs_time

if TYPE_CHECKING:
    from transit_schedule.services.schedule.store import ScheduleSnapshot

logger = get_logger(__name__)


def active_services(
    calendars: Iterable[ServiceCalendar],
    exceptions: Iterable[ServiceException],
    service_date: date,
    weekday: int | None = None,
) -> set[str]:
    """Return the service_ids running on ``service_date``.

    Base set: calendar rows whose date range contains the date and whose
    flag for ``weekday`` (Monday == 0, defaults to the date's weekday) is
    set. calendar_dates rows for exactly that date are applied afterwards,
    so an added or removed exception always wins over the weekly pattern.
    """
    if weekday is None:
        weekday = service_date.weekday()

    services = {
        cal.service_id for cal in calendars if cal.covers(service_date) and cal.runs_on(weekday)
    }

    for exception in exceptions:
        if exception.date != service_date:
            continue
        if exception.kind is ExceptionKind.ADDED:
            services.add(exception.service_id)
        elif exception.kind is ExceptionKind.REMOVED:
            services.discard(exception.service_id)

    return services


def scheduled_events(
    snapshot: ScheduleSnapshot,
    stop_id: str,
    direction_id: int,
    service_date: date,
) -> Iterator[tuple[StopTimeEvent, int]]:
    """Yield events at ``stop_id`` of trips running in ``direction_id`` on ``service_date``.

    Each event comes with its departure offset in seconds from the start of
    the service date. Events with an unparseable time are skipped.
    """
    services = active_services(snapshot.calendars, snapshot.exceptions, service_date)
    if not services:
        return

    for event in snapshot.events_by_stop.get(stop_id, ()):
        trip = snapshot.trips_by_id.get(event.trip_id)
        if trip is None or trip.direction_id != direction_id or trip.service_id not in services:
            continue
        try:
            seconds = parse_gtfs_time(event.departure_time)
        except TimeParseError:
            logger.debug(
                "Skipping stop time with invalid departure_time",
                trip_id=event.trip_id,
                stop_id=event.stop_id,
                departure_time=event.departure_time,
            )
            continue
        yield event, seconds


def localize(moment: datetime, tz: tzinfo) -> datetime:
    """Express ``moment`` in the agency time zone; naive values are taken as local."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def seconds_between(start: datetime, end: datetime) -> float:
    """Elapsed seconds from ``start`` to ``end``.

    Aware datetimes sharing one tzinfo subtract as wall-clock values, which
    is an hour off across a DST change, so both are taken to UTC first.
    """
    return (end.astimezone(timezone.utc) - start.astimezone(timezone.utc)).total_seconds()
