"""In-memory models for the static schedule."""

from transit_schedule.models.gtfs import (
    ExceptionKind,
    ServiceCalendar,
    ServiceException,
    Stop,
    StopTimeEvent,
    Trip,
)
from transit_schedule.models.schedule import Departure

__all__ = [
    "Departure",
    "ExceptionKind",
    "ServiceCalendar",
    "ServiceException",
    "Stop",
    "StopTimeEvent",
    "Trip",
]
