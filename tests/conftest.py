"""
Pytest configuration and fixtures for hiztery tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import pytest

from hiztery.schema import HistoryConfig, HistoryItem
from hiztery.store import SqliteHistory

# 2021-07-21T00:00:00Z
BASE_TIMESTAMP = 1_626_825_600_000_000_000


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    """Path for a database file that does not exist yet."""
    return temp_dir / "history.db"


@pytest.fixture
def db(db_path: Path) -> Generator[SqliteHistory, None, None]:
    """A store backed by a temporary file."""
    store = SqliteHistory(db_path, config=HistoryConfig(db_path=db_path, session_id=4242))
    yield store
    store.close()


@pytest.fixture
def memory_db() -> Generator[SqliteHistory, None, None]:
    """A store backed by an in-memory database."""
    store = SqliteHistory(":memory:")
    yield store
    store.close()


@pytest.fixture
def make_item() -> Callable[..., HistoryItem]:
    """
    Factory for history items.

    Each call gets a timestamp one second after the previous one unless a
    timestamp is given, so items never collide on the uniqueness key by
    accident.
    """
    counter = {"n": 0}

    def _make(command: str = "ls /home/ellie", **overrides: Any) -> HistoryItem:
        counter["n"] += 1
        fields: dict[str, Any] = {
            "command_line": command,
            "command": command,
            "command_params": None,
            "cwd": "/home/ellie",
            "duration": 1_500_000,
            "exit_status": 0,
            "session_id": 4242,
            "timestamp": BASE_TIMESTAMP + counter["n"] * 1_000_000_000,
            "run_count": 1,
        }
        fields.update(overrides)
        return HistoryItem(**fields)

    return _make
