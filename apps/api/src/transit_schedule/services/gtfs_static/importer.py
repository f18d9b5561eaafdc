"""GTFS static importer - orchestrates extract, parse, normalize, and snapshot build."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, TypeVar

from transit_schedule.config import get_settings
from transit_schedule.errors import CorruptArchiveError
from transit_schedule.logging import get_logger, refresh_context
from transit_schedule.services.gtfs_static.normalizer import (
    GtfsNormalizer,
    NormalizationError,
)
from transit_schedule.services.gtfs_static.parser import GtfsTableParser, MissingColumnError
from transit_schedule.services.gtfs_static.reader import (
    REQUIRED_FILES,
    GtfsZipReader,
    MissingRequiredFileError,
)
from transit_schedule.services.schedule.store import ScheduleSnapshot

logger = get_logger(__name__)

T = TypeVar("T")

ARCHIVE_FILENAME = "gtfs.zip"
FEED_DIRNAME = "feed"


class ImportReport:
    """Per-table row counts, warnings and timing of one import."""

    def __init__(self, source: str, feed_hash: str, import_id: str | None = None) -> None:
        self.import_id = import_id or str(uuid.uuid4())
        self.source = source
        self.feed_hash = feed_hash
        self.started_at = datetime.now(timezone.utc)
        self.ended_at: datetime | None = None
        self.duration_ms: int | None = None
        self.counts: dict[str, dict[str, int]] = {}
        self.warnings: list[str] = []

    def init_table(self, table: str) -> None:
        self.counts[table] = {"read": 0, "loaded": 0, "dropped": 0}

    @property
    def dropped_rows(self) -> int:
        return sum(table["dropped"] for table in self.counts.values())

    def finish(self) -> None:
        self.ended_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.ended_at - self.started_at).total_seconds() * 1000)

    def to_dict(self) -> dict[str, Any]:
        return {
            "import_id": self.import_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "source": self.source,
            "feed_hash": self.feed_hash,
            "counts": self.counts,
            "warnings": self.warnings[:100],  # cap for response size
        }


class GtfsImporter:
    """Turns downloaded GTFS ZIP bytes into a :class:`ScheduleSnapshot`.

    Required tables (stops, trips, stop_times) must be present with their
    required columns or the import fails. calendar.txt and
    calendar_dates.txt are loaded when usable and otherwise treated as
    empty. Malformed rows are dropped and counted.
    """

    def __init__(
        self,
        max_entry_size: int | None = None,
        max_compression_ratio: float | None = None,
    ) -> None:
        if max_entry_size is None or max_compression_ratio is None:
            settings = get_settings()
            if max_entry_size is None:
                max_entry_size = settings.max_entry_size_bytes
            if max_compression_ratio is None:
                max_compression_ratio = settings.max_compression_ratio
        self.max_entry_size = max_entry_size
        self.max_compression_ratio = max_compression_ratio
        self._parser = GtfsTableParser()
        self._normalizer = GtfsNormalizer()

    def run(
        self,
        zip_bytes: bytes,
        scratch_dir: Path,
        source: str = "",
        feed_hash: str = "",
        loaded_at: datetime | None = None,
    ) -> tuple[ScheduleSnapshot, ImportReport]:
        """Execute the import inside ``scratch_dir``.

        The archive is written to the scratch directory, extracted next to
        it, and every table parsed from disk.

        Raises:
            CorruptArchiveError: Unreadable archive or missing required table.
            SecurityViolationError: Entry rejected by size, ratio or path checks.
        """
        report = ImportReport(source=source, feed_hash=feed_hash)
        with refresh_context(import_id=report.import_id):
            snapshot = self._run(zip_bytes, scratch_dir, report, loaded_at)
        return snapshot, report

    def _run(
        self,
        zip_bytes: bytes,
        scratch_dir: Path,
        report: ImportReport,
        loaded_at: datetime | None,
    ) -> ScheduleSnapshot:
        logger.info(
            "Starting GTFS static import",
            source=report.source,
            size_bytes=len(zip_bytes),
        )

        archive_path = scratch_dir / ARCHIVE_FILENAME
        archive_path.write_bytes(zip_bytes)
        feed_dir = scratch_dir / FEED_DIRNAME
        feed_dir.mkdir(parents=True, exist_ok=True)

        self.extract(archive_path.read_bytes(), feed_dir)
        snapshot = self.load_directory(
            feed_dir, report, loaded_at=loaded_at or report.started_at
        )

        report.finish()
        logger.info(
            "GTFS static import complete",
            duration_ms=report.duration_ms,
            counts=report.counts,
            warnings_count=len(report.warnings),
            dropped_rows=report.dropped_rows,
        )
        return snapshot

    def extract(self, zip_bytes: bytes, destination: Path) -> list[Path]:
        """Extract all entries, failing early if a required table is absent."""
        reader = GtfsZipReader(
            zip_bytes,
            max_entry_size=self.max_entry_size,
            max_compression_ratio=self.max_compression_ratio,
        )
        missing = reader.missing_required_files()
        if missing:
            msg = f"Missing required GTFS files: {sorted(missing)}"
            raise MissingRequiredFileError(msg)
        return reader.extract_all(destination)

    def load_directory(
        self,
        directory: Path,
        report: ImportReport,
        loaded_at: datetime | None = None,
    ) -> ScheduleSnapshot:
        """Parse and normalize every table in an extracted feed directory."""
        stops = self._load_table(directory, "stops.txt", self._normalizer.normalize_stop, report)
        trips = self._load_table(directory, "trips.txt", self._normalizer.normalize_trip, report)
        stop_times = self._load_table(
            directory, "stop_times.txt", self._normalizer.normalize_stop_time, report
        )
        calendars = self._load_table(
            directory, "calendar.txt", self._normalizer.normalize_calendar, report
        )
        exceptions = self._load_table(
            directory, "calendar_dates.txt", self._normalizer.normalize_calendar_date, report
        )

        return ScheduleSnapshot.build(
            stops=stops,
            trips=trips,
            stop_times=stop_times,
            calendars=calendars,
            exceptions=exceptions,
            loaded_at=loaded_at,
            feed_hash=report.feed_hash,
        )

    def _load_table(
        self,
        directory: Path,
        filename: str,
        normalize_fn: Callable[[dict[str, Any]], T],
        report: ImportReport,
    ) -> list[T]:
        """Parse and normalize rows from one table file.

        Problems with a required table abort the import; an unusable
        optional table loads as empty with a warning.
        """
        table_name = filename.removesuffix(".txt")
        required = filename in REQUIRED_FILES
        report.init_table(table_name)

        path = directory / filename
        if not path.is_file():
            if required:
                msg = f"Missing required GTFS file: {filename}"
                raise MissingRequiredFileError(msg)
            msg = f"{filename} not present, treating as empty"
            logger.warning(msg)
            report.warnings.append(msg)
            return []

        try:
            table = self._parser.parse_file(path)
        except (MissingColumnError, UnicodeDecodeError) as exc:
            if required:
                raise CorruptArchiveError(f"Unusable {filename}: {exc}") from exc
            msg = f"Unusable {filename}, treating as empty: {exc}"
            logger.warning(msg)
            report.warnings.append(msg)
            return []

        counts = report.counts[table_name]
        counts["read"] = table.read
        counts["dropped"] = table.dropped
        if table.dropped:
            report.warnings.append(f"{table_name}: {table.dropped} short rows dropped")

        results: list[T] = []
        for row in table.rows:
            try:
                results.append(normalize_fn(row))
            except NormalizationError as exc:
                counts["dropped"] += 1
                report.warnings.append(f"{table_name} row error: {exc}")

        counts["loaded"] = len(results)
        if counts["dropped"]:
            logger.warning(
                "Dropped malformed rows",
                table=table_name,
                dropped=counts["dropped"],
                loaded=counts["loaded"],
            )
        return results
