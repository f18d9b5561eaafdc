"""GTFS text table parser with required-column validation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from transit_schedule.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

logger = get_logger(__name__)

# Required columns per GTFS file (subset we need)
REQUIRED_COLUMNS: dict[str, tuple[str, ...]] = {
    "stops.txt": ("stop_id", "stop_name"),
    "trips.txt": ("trip_id", "service_id", "direction_id", "route_id"),
    "stop_times.txt": ("trip_id", "stop_id", "departure_time", "stop_sequence"),
    "calendar.txt": (
        "service_id",
        "monday",
        "tuesday",
        "wednesday",
        "thursday",
        "friday",
        "saturday",
        "sunday",
        "start_date",
        "end_date",
    ),
    "calendar_dates.txt": ("service_id", "date", "exception_type"),
}


class MissingColumnError(Exception):
    """Raised when a table is empty or its header lacks a required column."""


def split_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line into trimmed fields.

    A double quote toggles quoted mode; inside quotes the delimiter is plain
    content. Quote characters themselves are not part of the field.
    """
    fields: list[str] = []
    current: list[str] = []
    inside_quotes = False

    for char in line:
        if char == '"':
            inside_quotes = not inside_quotes
        elif char == delimiter and not inside_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    fields.append("".join(current).strip())

    return fields


@dataclass
class ParsedTable:
    """Rows of one table keyed by column name."""

    filename: str
    columns: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)
    read: int = 0
    dropped: int = 0


class GtfsTableParser:
    """Parses GTFS text tables into rows of named fields.

    The first non-empty line is the header. Rows too short to hold every
    required column are dropped and counted, never raised.
    """

    def __init__(self, delimiter: str = ",") -> None:
        self.delimiter = delimiter

    def parse(self, filename: str, text: str) -> ParsedTable:
        """Parse the full text of ``filename``.

        Raises:
            MissingColumnError: If the table has no header or misses required columns.
        """
        lines = [line for line in text.lstrip("\ufeff").splitlines() if line]
        if not lines:
            msg = f"Empty GTFS file: {filename}"
            raise MissingColumnError(msg)

        columns = split_line(lines[0], self.delimiter)
        index: dict[str, int] = {}
        for position, name in enumerate(columns):
            index.setdefault(name, position)

        required = REQUIRED_COLUMNS.get(filename, ())
        missing = [name for name in required if name not in index]
        if missing:
            msg = f"Missing required columns in {filename}: {sorted(missing)}"
            raise MissingColumnError(msg)

        min_fields = max((index[name] for name in required), default=-1) + 1
        table = ParsedTable(filename=filename, columns=columns)

        for line in lines[1:]:
            table.read += 1
            fields = split_line(line, self.delimiter)
            if len(fields) < min_fields:
                table.dropped += 1
                continue
            table.rows.append(
                {name: fields[pos] for name, pos in index.items() if pos < len(fields)}
            )

        logger.info(
            "Parsed GTFS file",
            filename=filename,
            rows=len(table.rows),
            dropped=table.dropped,
        )
        return table

    def parse_file(self, path: Path) -> ParsedTable:
        """Read and parse a table file written by the extractor."""
        return self.parse(path.name, path.read_text(encoding="utf-8-sig"))
