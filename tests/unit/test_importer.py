"""
Unit tests for the plain-text history importer.
"""

import os
from pathlib import Path

import pytest

from hiztery.importer import UNKNOWN_DURATION, import_history_file, read_history_file
from hiztery.schema import NANOS_PER_SECOND
from hiztery.store import SqliteHistory

MTIME_NS = 1_626_825_600 * NANOS_PER_SECOND


@pytest.fixture
def history_file(temp_dir: Path) -> Path:
    path = temp_dir / "history.txt"
    path.write_text("ls -la\n\ncd /tmp   \ngit status\n")
    os.utime(path, ns=(MTIME_NS, MTIME_NS))
    return path


class TestReadHistoryFile:
    """Tests for read_history_file."""

    def test_one_item_per_line(self, history_file: Path) -> None:
        items = list(read_history_file(history_file, cwd="/home/ellie", session_id=9))
        assert [item.command for item in items] == ["ls -la", "cd /tmp", "git status"]
        assert all(item.command_line == item.command for item in items)

    def test_metadata(self, history_file: Path) -> None:
        item = next(read_history_file(history_file, cwd="/srv", session_id=9))
        assert item.cwd == "/srv"
        assert item.session_id == 9
        assert item.duration == UNKNOWN_DURATION
        assert item.exit_status == 0
        assert item.command_params is None
        assert item.history_id is None

    def test_timestamps_count_back_from_mtime(self, history_file: Path) -> None:
        items = list(read_history_file(history_file, cwd="/", session_id=1))
        assert [item.timestamp for item in items] == [
            MTIME_NS - 2 * NANOS_PER_SECOND,
            MTIME_NS - NANOS_PER_SECOND,
            MTIME_NS,
        ]

    def test_empty_file(self, temp_dir: Path) -> None:
        path = temp_dir / "empty.txt"
        path.write_text("")
        assert list(read_history_file(path, cwd="/", session_id=1)) == []

    def test_missing_file(self, temp_dir: Path) -> None:
        with pytest.raises(OSError):
            list(read_history_file(temp_dir / "nope.txt", cwd="/", session_id=1))


class TestImportHistoryFile:
    """Tests for import_history_file."""

    def test_import(self, db: SqliteHistory, history_file: Path) -> None:
        assert import_history_file(db, history_file, cwd="/", session_id=1) == 3
        assert db.history_count() == 3
        assert db.last().command == "git status"

    def test_reimport_stores_nothing(self, db: SqliteHistory, history_file: Path) -> None:
        import_history_file(db, history_file, cwd="/", session_id=1)
        assert import_history_file(db, history_file, cwd="/", session_id=1) == 0
        assert db.history_count() == 3

    def test_grown_file_reimports_every_line(
        self, db: SqliteHistory, history_file: Path
    ) -> None:
        """Appending moves the mtime, so earlier lines get new timestamps."""
        import_history_file(db, history_file, cwd="/", session_id=1)

        with history_file.open("a") as f:
            f.write("make\n")
        later = MTIME_NS + 60 * NANOS_PER_SECOND
        os.utime(history_file, ns=(later, later))

        assert import_history_file(db, history_file, cwd="/", session_id=1) == 4
        assert db.history_count() == 7

    def test_different_cwd_is_new(self, db: SqliteHistory, history_file: Path) -> None:
        import_history_file(db, history_file, cwd="/a", session_id=1)
        assert import_history_file(db, history_file, cwd="/b", session_id=1) == 3
