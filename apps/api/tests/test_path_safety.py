"""Tests for extraction path validation."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from transit_schedule.errors import SecurityViolationError
from transit_schedule.services.gtfs_static.paths import safe_destination, validate_entry_name

if TYPE_CHECKING:
    from pathlib import Path


class TestValidateEntryName:
    @pytest.mark.parametrize(
        "name",
        ["stops.txt", "feed/stops.txt", "google_transit/calendar_dates.txt"],
    )
    def test_plain_names_accepted(self, name: str) -> None:
        validate_entry_name(name)

    @pytest.mark.parametrize(
        "name",
        ["../stops.txt", "../../etc/passwd", "feed/../../stops.txt", "/etc/passwd", "~/stops.txt"],
    )
    def test_unsafe_names_rejected(self, name: str) -> None:
        with pytest.raises(SecurityViolationError, match="Invalid file path"):
            validate_entry_name(name)

    def test_empty_name_rejected(self) -> None:
        with pytest.raises(SecurityViolationError, match="Empty file path"):
            validate_entry_name("")


class TestSafeDestination:
    def test_resolves_inside_root(self, tmp_path: Path) -> None:
        destination = safe_destination(tmp_path, "feed/stops.txt")
        assert destination == tmp_path.resolve() / "feed" / "stops.txt"

    def test_root_itself_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(SecurityViolationError, match="Path traversal"):
            safe_destination(tmp_path, ".")

    def test_symlink_escape_rejected(self, tmp_path: Path) -> None:
        root = tmp_path / "extract"
        outside = tmp_path / "outside"
        root.mkdir()
        outside.mkdir()
        (root / "link").symlink_to(outside, target_is_directory=True)

        with pytest.raises(SecurityViolationError, match="Path traversal"):
            safe_destination(root, "link/stops.txt")

    def test_symlink_inside_root_accepted(self, tmp_path: Path) -> None:
        (tmp_path / "real").mkdir()
        (tmp_path / "alias").symlink_to(tmp_path / "real", target_is_directory=True)

        destination = safe_destination(tmp_path, "alias/stops.txt")
        assert destination == tmp_path.resolve() / "real" / "stops.txt"
