"""
Abstract store contract for hiztery.

Callers (the CLI, the importer) depend on HistoryDatabase rather than on a
concrete engine. SqliteHistory is the production implementation; tests use
the same class against ":memory:" or a temporary file.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from hiztery.schema import HistoryItem
from hiztery.search import SearchMode


class HistoryDatabase(ABC):
    """
    Abstract base class for history stores.

    Every read returns HistoryItem objects. Timestamps accept either an aware
    (or UTC-naive) datetime or an integer of epoch nanoseconds.

    Errors:
        HistoryNotFoundError: load/first/last matched no row
        StorageWriteError: a write failed and was rolled back
        StorageReadError: a read failed
        StorageLockTimeoutError: the lock wait ran out
        StorageQueryError: raw query text was invalid
    """

    # -- writes ---------------------------------------------------------------

    @abstractmethod
    def save(self, item: HistoryItem) -> int | None:
        """
        Insert one item in its own transaction.

        Returns:
            The assigned history_id, or None when an item with the same
            (timestamp, cwd, command) already exists and the insert was skipped.
        """
        ...

    @abstractmethod
    def save_bulk(self, items: Iterable[HistoryItem]) -> int:
        """
        Insert many items in a single transaction.

        Duplicates of the uniqueness key are skipped. Any other failure
        rolls back the whole batch.

        Returns:
            Number of rows actually inserted
        """
        ...

    @abstractmethod
    def update(self, item: HistoryItem) -> int:
        """Overwrite every column of the row with item.history_id. Returns rows affected."""
        ...

    @abstractmethod
    def delete_history_item(self, history_id: int) -> int:
        """Delete a row by identity. Returns rows actually removed (0 or 1)."""
        ...

    # -- reads ----------------------------------------------------------------

    @abstractmethod
    def load(self, history_id: int) -> HistoryItem:
        """Fetch one item by identity."""
        ...

    @abstractmethod
    def list_history(
        self,
        max_items: int | None = None,
        unique: bool = False,
    ) -> list[HistoryItem]:
        """
        List items newest first.

        Args:
            max_items: Cap on rows returned, applied after the unique filter
            unique: Keep only the newest item for each distinct command
        """
        ...

    @abstractmethod
    def range(
        self,
        start: datetime | int,
        end: datetime | int,
    ) -> list[HistoryItem]:
        """Items with start <= timestamp <= end, oldest first."""
        ...

    @abstractmethod
    def before(self, timestamp: datetime | int, count: int) -> list[HistoryItem]:
        """Up to count items strictly older than timestamp, newest first."""
        ...

    @abstractmethod
    def first(self) -> HistoryItem:
        """The oldest item."""
        ...

    @abstractmethod
    def last(self) -> HistoryItem:
        """The newest item."""
        ...

    @abstractmethod
    def history_count(self) -> int:
        """Total number of stored items."""
        ...

    @abstractmethod
    def search(
        self,
        limit: int | None,
        mode: SearchMode,
        query: str,
    ) -> list[HistoryItem]:
        """
        Match query against the command field.

        Results keep only the newest item per distinct command, newest
        first, capped at limit when given.
        """
        ...

    @abstractmethod
    def query_history(self, query: str) -> list[HistoryItem]:
        """
        Run caller-supplied SQL verbatim and map each row to a HistoryItem.

        Trusted input only. This is an operator diagnostic and must never be
        fed text from end users.
        """
        ...

    # -- lifecycle ------------------------------------------------------------

    def close(self) -> None:
        """Release any resources held by the store."""

    def __enter__(self) -> "HistoryDatabase":
        """Enter context manager."""
        return self

    def __exit__(self, *args: Any) -> None:
        """Exit context manager."""
        self.close()
