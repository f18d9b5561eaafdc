"""Extraction path validation (zip-slip protection)."""

from __future__ import annotations

from pathlib import Path

from transit_schedule.errors import SecurityViolationError


def validate_entry_name(name: str) -> None:
    """Reject entry names that could address anything outside the extraction root.

    Raises:
        SecurityViolationError: If the name is empty, absolute, or uses ``..`` or ``~``.
    """
    if not name:
        raise SecurityViolationError("Empty file path in ZIP archive")
    if ".." in name or name.startswith("/") or "~" in name:
        raise SecurityViolationError(f"Invalid file path in ZIP archive: {name!r}")


def safe_destination(root: str | Path, name: str) -> Path:
    """Return the path ``name`` should be written to under ``root``.

    The name is checked lexically first, then the joined path is resolved
    (following symlinks) and must still be inside the resolved root.

    Raises:
        SecurityViolationError: On an unsafe name or a path escape.
    """
    validate_entry_name(name)

    canonical_root = Path(root).resolve()
    destination = (canonical_root / name).resolve()
    if destination == canonical_root or not destination.is_relative_to(canonical_root):
        raise SecurityViolationError(f"Path traversal attempt detected in ZIP: {name!r}")
    return destination
