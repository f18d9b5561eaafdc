"""GTFS static data models held in memory."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import IntEnum


class ExceptionKind(IntEnum):
    """calendar_dates.txt exception_type codes."""

    ADDED = 1
    REMOVED = 2


@dataclass(frozen=True)
class Stop:
    """Transit stop/station."""

    stop_id: str
    name: str


@dataclass(frozen=True)
class Trip:
    """A scheduled run of a route under one service pattern."""

    trip_id: str
    service_id: str
    direction_id: int
    route_id: str


@dataclass(frozen=True)
class StopTimeEvent:
    """One scheduled visit of a trip to a stop.

    ``departure_time`` keeps the feed's HH:MM:SS text, which may exceed
    24:00:00 for service running past midnight.
    """

    trip_id: str
    stop_id: str
    departure_time: str
    stop_sequence: int


@dataclass(frozen=True)
class ServiceCalendar:
    """Weekly recurrence rule for a service pattern (calendar.txt)."""

    service_id: str
    monday: bool
    tuesday: bool
    wednesday: bool
    thursday: bool
    friday: bool
    saturday: bool
    sunday: bool
    start_date: date
    end_date: date

    def runs_on(self, weekday: int) -> bool:
        """Weekday flag, Monday == 0 as in ``date.weekday()``."""
        flags = (
            self.monday,
            self.tuesday,
            self.wednesday,
            self.thursday,
            self.friday,
            self.saturday,
            self.sunday,
        )
        if weekday < 0 or weekday > 6:
            return False
        return flags[weekday]

    def covers(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class ServiceException:
    """Single-date override of a service pattern (calendar_dates.txt)."""

    service_id: str
    date: date
    kind: ExceptionKind
