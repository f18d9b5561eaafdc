"""Immutable in-memory schedule snapshot."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any

from transit_schedule.models import (
    ServiceCalendar,
    ServiceException,
    Stop,
    StopTimeEvent,
    Trip,
)


@dataclass(frozen=True)
class ScheduleSnapshot:
    """All schedule tables loaded from one feed, plus lookup indexes.

    A snapshot is never modified after :meth:`build`; a refresh publishes a
    new one.
    """

    stops: tuple[Stop, ...] = ()
    trips: tuple[Trip, ...] = ()
    stop_times: tuple[StopTimeEvent, ...] = ()
    calendars: tuple[ServiceCalendar, ...] = ()
    exceptions: tuple[ServiceException, ...] = ()
    loaded_at: datetime | None = None
    feed_hash: str = ""

    stops_by_id: Mapping[str, Stop] = field(default_factory=dict, repr=False)
    trips_by_id: Mapping[str, Trip] = field(default_factory=dict, repr=False)
    events_by_stop: Mapping[str, tuple[StopTimeEvent, ...]] = field(
        default_factory=dict, repr=False
    )
    events_by_trip: Mapping[str, tuple[StopTimeEvent, ...]] = field(
        default_factory=dict, repr=False
    )

    @classmethod
    def build(
        cls,
        stops: Iterable[Stop] = (),
        trips: Iterable[Trip] = (),
        stop_times: Iterable[StopTimeEvent] = (),
        calendars: Iterable[ServiceCalendar] = (),
        exceptions: Iterable[ServiceException] = (),
        loaded_at: datetime | None = None,
        feed_hash: str = "",
    ) -> ScheduleSnapshot:
        stops = tuple(stops)
        trips = tuple(trips)
        stop_times = tuple(stop_times)

        by_stop: dict[str, list[StopTimeEvent]] = defaultdict(list)
        by_trip: dict[str, list[StopTimeEvent]] = defaultdict(list)
        for event in stop_times:
            by_stop[event.stop_id].append(event)
            by_trip[event.trip_id].append(event)

        return cls(
            stops=stops,
            trips=trips,
            stop_times=stop_times,
            calendars=tuple(calendars),
            exceptions=tuple(exceptions),
            loaded_at=loaded_at,
            feed_hash=feed_hash,
            # first definition wins, as a linear search would
            stops_by_id=MappingProxyType({s.stop_id: s for s in reversed(stops)}),
            trips_by_id=MappingProxyType({t.trip_id: t for t in reversed(trips)}),
            events_by_stop=MappingProxyType({k: tuple(v) for k, v in by_stop.items()}),
            events_by_trip=MappingProxyType(
                {k: tuple(sorted(v, key=lambda e: e.stop_sequence)) for k, v in by_trip.items()}
            ),
        )

    @classmethod
    def empty(cls) -> ScheduleSnapshot:
        return cls.build()

    @property
    def is_empty(self) -> bool:
        return not self.trips

    def stop_name(self, stop_id: str) -> str | None:
        stop = self.stops_by_id.get(stop_id)
        return stop.name if stop else None

    def terminus(self, trip_id: str) -> StopTimeEvent | None:
        """The event with the highest stop_sequence of a trip."""
        events = self.events_by_trip.get(trip_id)
        return events[-1] if events else None

    def event_in_trip(self, trip_id: str, stop_id: str) -> StopTimeEvent | None:
        for event in self.events_by_trip.get(trip_id, ()):
            if event.stop_id == stop_id:
                return event
        return None

    def counts(self) -> dict[str, int]:
        return {
            "stops": len(self.stops),
            "trips": len(self.trips),
            "stop_times": len(self.stop_times),
            "calendars": len(self.calendars),
            "calendar_dates": len(self.exceptions),
        }

    def summary(self) -> dict[str, Any]:
        return {
            "loaded": not self.is_empty,
            "loaded_at": self.loaded_at.isoformat() if self.loaded_at else None,
            "feed_hash": self.feed_hash or None,
            "counts": self.counts(),
        }
