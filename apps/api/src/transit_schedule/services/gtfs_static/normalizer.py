"""GTFS data normalizer - cleans and converts raw table rows into models."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any

from transit_schedule.models import (
    ExceptionKind,
    ServiceCalendar,
    ServiceException,
    Stop,
    StopTimeEvent,
    Trip,
)

SECONDS_PER_DAY = 86400

_WEEKDAY_COLUMNS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class TimeParseError(Exception):
    """Raised when a GTFS time string cannot be parsed."""


class NormalizationError(Exception):
    """Raised when a row cannot be normalized."""


class GtfsNormalizer:
    """Normalizes raw GTFS table rows into schedule models."""

    @staticmethod
    def normalize_stop(row: dict[str, Any]) -> Stop:
        """Normalize a stops.txt row.

        Raises:
            NormalizationError: If stop_id is missing.
        """
        stop_id = _clean_str(row.get("stop_id", ""))
        name = _clean_str(row.get("stop_name", ""))

        if not stop_id:
            raise NormalizationError("Missing stop_id")

        return Stop(stop_id=stop_id, name=name)

    @staticmethod
    def normalize_trip(row: dict[str, Any]) -> Trip:
        """Normalize a trips.txt row.

        direction_id is required here: queries are always per direction.

        Raises:
            NormalizationError: If required fields are missing/invalid.
        """
        trip_id = _clean_str(row.get("trip_id", ""))
        route_id = _clean_str(row.get("route_id", ""))
        service_id = _clean_str(row.get("service_id", ""))
        direction_id_str = _clean_str(row.get("direction_id", ""))

        if not trip_id:
            raise NormalizationError("Missing trip_id")
        if not service_id:
            raise NormalizationError(f"Missing service_id for trip_id={trip_id}")

        try:
            direction_id = int(direction_id_str)
        except ValueError as exc:
            raise NormalizationError(
                f"Non-integer direction_id={direction_id_str!r} for trip_id={trip_id}"
            ) from exc
        if direction_id not in (0, 1):
            raise NormalizationError(f"Invalid direction_id={direction_id} for trip_id={trip_id}")

        return Trip(
            trip_id=trip_id,
            service_id=service_id,
            direction_id=direction_id,
            route_id=route_id,
        )

    @staticmethod
    def normalize_stop_time(row: dict[str, Any]) -> StopTimeEvent:
        """Normalize a stop_times.txt row.

        The departure time stays as text; it is resolved against a service
        date at query time.

        Raises:
            NormalizationError: If required fields are missing/invalid.
        """
        trip_id = _clean_str(row.get("trip_id", ""))
        stop_id = _clean_str(row.get("stop_id", ""))
        seq_str = _clean_str(row.get("stop_sequence", ""))
        departure_str = _clean_str(row.get("departure_time", ""))

        if not trip_id:
            raise NormalizationError("Missing trip_id in stop_times")
        if not stop_id:
            raise NormalizationError(f"Missing stop_id in stop_times for trip_id={trip_id}")

        try:
            stop_sequence = int(seq_str)
        except ValueError as exc:
            raise NormalizationError(
                f"Invalid stop_sequence={seq_str!r} for trip_id={trip_id}"
            ) from exc

        return StopTimeEvent(
            trip_id=trip_id,
            stop_id=stop_id,
            departure_time=departure_str,
            stop_sequence=stop_sequence,
        )

    @staticmethod
    def normalize_calendar(row: dict[str, Any]) -> ServiceCalendar:
        """Normalize a calendar.txt row. Weekday flags are true only for "1".

        Raises:
            NormalizationError: If service_id is missing or a date is invalid.
        """
        service_id = _clean_str(row.get("service_id", ""))
        if not service_id:
            raise NormalizationError("Missing service_id in calendar")

        flags = {day: _clean_str(row.get(day, "")) == "1" for day in _WEEKDAY_COLUMNS}
        start_date = parse_gtfs_date(_clean_str(row.get("start_date", "")))
        end_date = parse_gtfs_date(_clean_str(row.get("end_date", "")))

        return ServiceCalendar(
            service_id=service_id,
            start_date=start_date,
            end_date=end_date,
            **flags,
        )

    @staticmethod
    def normalize_calendar_date(row: dict[str, Any]) -> ServiceException:
        """Normalize a calendar_dates.txt row.

        Raises:
            NormalizationError: If fields are missing or exception_type is not 1 or 2.
        """
        service_id = _clean_str(row.get("service_id", ""))
        if not service_id:
            raise NormalizationError("Missing service_id in calendar_dates")

        day = parse_gtfs_date(_clean_str(row.get("date", "")))
        type_str = _clean_str(row.get("exception_type", ""))
        try:
            kind = ExceptionKind(int(type_str))
        except ValueError as exc:
            raise NormalizationError(
                f"Invalid exception_type={type_str!r} for service_id={service_id}"
            ) from exc

        return ServiceException(service_id=service_id, date=day, kind=kind)


def parse_gtfs_date(date_str: str) -> date:
    """Parse a GTFS service date (YYYYMMDD).

    Raises:
        NormalizationError: If the format is invalid.
    """
    try:
        return datetime.strptime(date_str, "%Y%m%d").date()
    except ValueError as exc:
        raise NormalizationError(f"Invalid GTFS date: {date_str!r} (expected YYYYMMDD)") from exc


def parse_gtfs_time(time_str: str) -> int:
    """Parse a GTFS time string (HH:MM:SS) to seconds from midnight.

    Supports times >= 24:00:00 for trips spanning past midnight.

    Examples:
        "08:30:00" -> 30600
        "25:01:30" -> 90090

    Raises:
        TimeParseError: If the format is invalid.
    """
    time_str = time_str.strip()
    parts = time_str.split(":")
    if len(parts) != 3:
        msg = f"Invalid GTFS time format: {time_str!r} (expected HH:MM:SS)"
        raise TimeParseError(msg)

    try:
        hours = int(parts[0])
        minutes = int(parts[1])
        seconds = int(parts[2])
    except ValueError as exc:
        msg = f"Non-numeric components in GTFS time: {time_str!r}"
        raise TimeParseError(msg) from exc

    if minutes < 0 or minutes > 59 or seconds < 0 or seconds > 59:
        msg = f"Invalid minutes/seconds in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    if hours < 0:
        msg = f"Negative hours in GTFS time: {time_str!r}"
        raise TimeParseError(msg)

    return hours * 3600 + minutes * 60 + seconds


def resolve_service_time(service_date: date, time_str: str, tz: tzinfo) -> datetime:
    """Anchor a GTFS time to its service date.

    Hours of 24 and above fall on the following calendar day(s):
    "25:10:00" on a Monday service date is Tuesday 01:10.

    Raises:
        TimeParseError: If the time string is invalid.
    """
    return service_seconds_to_datetime(service_date, parse_gtfs_time(time_str), tz)


def service_seconds_to_datetime(service_date: date, seconds: int, tz: tzinfo) -> datetime:
    """Like :func:`resolve_service_time` for an already parsed offset in seconds."""
    days, remainder = divmod(seconds, SECONDS_PER_DAY)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)
    return datetime.combine(
        service_date + timedelta(days=days),
        time(hours, minutes, seconds),
        tzinfo=tz,
    )


def _clean_str(value: Any) -> str:
    """Trim whitespace from a value, return empty string for None."""
    if value is None:
        return ""
    return str(value).strip()
