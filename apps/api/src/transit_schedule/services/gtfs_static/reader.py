"""GTFS ZIP reader - scans local file headers and extracts entries."""

from __future__ import annotations

import binascii
import struct
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from transit_schedule.errors import CorruptArchiveError, SecurityViolationError
from transit_schedule.logging import get_logger
from transit_schedule.services.gtfs_static.inflate import (
    MAX_COMPRESSION_RATIO,
    MAX_ENTRY_SIZE,
    inflate,
)
from transit_schedule.services.gtfs_static.paths import safe_destination

logger = get_logger(__name__)

# Tables the schedule cannot be built without
REQUIRED_FILES = {"stops.txt", "trips.txt", "stop_times.txt"}

# Tables we load if present
OPTIONAL_FILES = {"calendar.txt", "calendar_dates.txt"}

LOCAL_HEADER_SIGNATURE = b"PK\x03\x04"

# signature, version, flags, method, mod time, mod date, crc32,
# compressed size, uncompressed size, name length, extra length
_LOCAL_HEADER = struct.Struct("<4sHHHHHIIIHH")

METHOD_STORED = 0
METHOD_DEFLATED = 8

# Sizes and CRC live in a trailing data descriptor, header CRC is zero
FLAG_DATA_DESCRIPTOR = 0x08


class MissingRequiredFileError(CorruptArchiveError):
    """Raised when a required GTFS file is missing from the ZIP."""


@dataclass(frozen=True)
class ZipEntry:
    """Metadata of one file entry found in the archive."""

    name: str
    method: int
    flags: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    data_offset: int


def scan_entries(data: bytes) -> Iterator[ZipEntry]:
    """Yield file entries by scanning ``data`` for local header signatures.

    Directory markers and entries with undecodable names are skipped. A
    header whose name or payload runs past the end of the buffer ends the
    scan quietly, so a truncated archive yields the entries before it.
    """
    size = len(data)
    offset = 0
    while True:
        offset = data.find(LOCAL_HEADER_SIGNATURE, offset)
        if offset < 0 or offset + _LOCAL_HEADER.size > size:
            return

        (
            _signature,
            _version,
            flags,
            method,
            _mod_time,
            _mod_date,
            crc32,
            compressed_size,
            uncompressed_size,
            name_len,
            extra_len,
        ) = _LOCAL_HEADER.unpack_from(data, offset)

        name_start = offset + _LOCAL_HEADER.size
        name_end = name_start + name_len
        if name_end > size:
            logger.warning("Truncated ZIP entry header, stopping scan", offset=offset)
            return

        data_start = name_end + extra_len
        data_end = data_start + compressed_size

        try:
            name = data[name_start:name_end].decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Skipping ZIP entry with undecodable name", offset=offset)
            offset = data_end
            continue

        if name.endswith("/"):
            offset = data_end
            continue

        if data_end > size:
            logger.warning("Truncated ZIP entry payload, stopping scan", entry=name, offset=offset)
            return

        yield ZipEntry(
            name=name,
            method=method,
            flags=flags,
            crc32=crc32,
            compressed_size=compressed_size,
            uncompressed_size=uncompressed_size,
            data_offset=data_start,
        )
        offset = data_end


class GtfsZipReader:
    """Reads a GTFS ZIP archive without relying on its central directory."""

    def __init__(
        self,
        data: bytes,
        max_entry_size: int = MAX_ENTRY_SIZE,
        max_compression_ratio: float = MAX_COMPRESSION_RATIO,
    ) -> None:
        self._data = data
        self.max_entry_size = max_entry_size
        self.max_compression_ratio = max_compression_ratio
        self._entries = list(scan_entries(data))

    def list_files(self) -> list[str]:
        """List all file names found in the archive."""
        return [entry.name for entry in self._entries]

    def missing_required_files(self) -> set[str]:
        return REQUIRED_FILES - set(self.list_files())

    def read(self, entry: ZipEntry) -> bytes:
        """Return the uncompressed content of ``entry``.

        Raises:
            CorruptArchiveError: Unsupported method, size or CRC mismatch.
            SecurityViolationError: Entry rejected by the size/ratio limits.
        """
        payload = self._data[entry.data_offset : entry.data_offset + entry.compressed_size]

        if entry.method == METHOD_STORED:
            if entry.uncompressed_size > self.max_entry_size:
                raise SecurityViolationError(
                    f"Entry {entry.name} declares {entry.uncompressed_size} bytes, "
                    f"limit is {self.max_entry_size}"
                )
            if len(payload) != entry.uncompressed_size:
                raise CorruptArchiveError(
                    f"Stored entry {entry.name} size mismatch: expected "
                    f"{entry.uncompressed_size} bytes, got {len(payload)}"
                )
            content = payload
        elif entry.method == METHOD_DEFLATED:
            content = inflate(
                payload,
                entry.uncompressed_size,
                max_size=self.max_entry_size,
                max_ratio=self.max_compression_ratio,
            )
        else:
            raise CorruptArchiveError(f"Unsupported ZIP compression method: {entry.method}")

        if not entry.flags & FLAG_DATA_DESCRIPTOR and binascii.crc32(content) != entry.crc32:
            raise CorruptArchiveError(f"CRC-32 mismatch for ZIP entry {entry.name}")

        return content

    def extract_all(self, destination: str | Path) -> list[Path]:
        """Write every entry below ``destination`` and return the written paths.

        All entry names are validated before the first byte is written.

        Raises:
            SecurityViolationError: On an unsafe entry name or rejected entry.
            CorruptArchiveError: If an entry cannot be decoded.
        """
        root = Path(destination)
        targets = [(entry, safe_destination(root, entry.name)) for entry in self._entries]

        written: list[Path] = []
        for entry, target in targets:
            content = self.read(entry)
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
            written.append(target)

        logger.info(
            "GTFS ZIP extracted",
            files=len(written),
            required_files=sorted(REQUIRED_FILES),
            optional_present=sorted(OPTIONAL_FILES & set(self.list_files())),
        )
        return written
