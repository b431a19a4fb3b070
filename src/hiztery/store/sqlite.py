"""
SQLite storage for hiztery.

All command history lives in a single table, history_items, in one SQLite
file. The file is opened in WAL mode with a fixed page size, and every write
runs inside an explicit transaction.

Uniqueness:
    (timestamp, cwd, command) is UNIQUE. An insert that collides with an
    existing row is skipped without error, which makes re-importing the
    same history a no-op.

Unique views:
    list_history(unique=True) and search() keep one row per distinct command:
    the newest by timestamp, with history_id breaking ties. Both go through
    select_newest_per_command().
"""

import logging
import sqlite3
import time
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from hiztery.errors import (
    HistoryNotFoundError,
    StorageConnectionError,
    StorageError,
    StorageLockTimeoutError,
    StorageQueryError,
    StorageReadError,
    StorageWriteError,
)
from hiztery.schema import HistoryConfig, HistoryItem, SqlLogMode, to_nanos
from hiztery.search import SearchMode, build_pattern
from hiztery.store.base import HistoryDatabase

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS history_items (
    history_id     INTEGER PRIMARY KEY AUTOINCREMENT,
    timestamp      INTEGER NOT NULL,
    duration       INTEGER NOT NULL,
    exit_status    INTEGER NOT NULL,
    command_line   TEXT NOT NULL,
    command        TEXT NOT NULL,
    command_params TEXT NOT NULL,
    cwd            TEXT NOT NULL,
    session_id     INTEGER NOT NULL,
    run_count      INTEGER NOT NULL,

    UNIQUE(timestamp, cwd, command)
);

CREATE INDEX IF NOT EXISTS idx_history_timestamp ON history_items(timestamp);
CREATE INDEX IF NOT EXISTS idx_history_command ON history_items(command);
"""

# Only the uniqueness key is ignored. NOT NULL failures, a clashing explicit
# history_id and bind errors still raise.
INSERT_IGNORING_DUPLICATES_SQL = """
INSERT INTO history_items (
    history_id, command_line, command, command_params, cwd,
    duration, exit_status, session_id, timestamp, run_count
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (timestamp, cwd, command) DO NOTHING
"""

UPDATE_SQL = """
UPDATE history_items
SET command_line = ?, command = ?, command_params = ?, cwd = ?, duration = ?,
    exit_status = ?, session_id = ?, timestamp = ?, run_count = ?
WHERE history_id = ?
"""

NEWEST_PER_COMMAND_SQL = """h.history_id = (
    SELECT newest.history_id FROM history_items newest
    WHERE newest.command = h.command
    ORDER BY newest.timestamp DESC, newest.history_id DESC
    LIMIT 1
)"""


def select_newest_per_command(
    where: str | None = None,
    limit: int | None = None,
) -> tuple[str, list[int]]:
    """
    Build a query returning the newest row for each distinct command.

    Args:
        where: Extra condition on alias ``h``, ANDed with the dedup filter
        limit: Row cap applied after the dedup filter (None for no cap)

    Returns:
        The SQL text and the trailing parameters it needs (the limit, if any)
    """
    conditions = [NEWEST_PER_COMMAND_SQL]
    if where:
        conditions.insert(0, where)

    sql = (
        "SELECT h.* FROM history_items h WHERE "
        + " AND ".join(conditions)
        + " ORDER BY h.timestamp DESC, h.history_id DESC"
    )
    params: list[int] = []
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return sql, params


def _log_trace(statement: str) -> None:
    logger.info("%s", statement)


def _log_profile(statement: str, elapsed: float) -> None:
    logger.info("%s Duration: %.3f ms", statement.strip(), elapsed * 1000)


def _is_busy(error: BaseException) -> bool:
    """Whether an error means the lock wait ran out."""
    code = getattr(error, "sqlite_errorcode", None)
    if code is not None:
        return (code & 0xFF) in (sqlite3.SQLITE_BUSY, sqlite3.SQLITE_LOCKED)
    return "database is locked" in str(error)


def _item_params(item: HistoryItem) -> tuple:
    return (
        item.command_line,
        item.command,
        item.command_params or "",
        item.cwd,
        item.duration,
        item.exit_status,
        item.session_id,
        item.timestamp,
        item.run_count,
    )


class SqliteHistory(HistoryDatabase):
    """
    SQLite-backed history store.

    Usage:
        db = SqliteHistory("~/.hiztery/history.db")
        history_id = db.save(item)
        db.search(10, SearchMode.FUZZY, "gco")
        db.close()

    Or use as context manager:
        with SqliteHistory.from_config(load_config("hiztery.yaml")) as db:
            ...
    """

    def __init__(
        self,
        db_path: str | Path,
        sql_log_mode: SqlLogMode | None = None,
        config: HistoryConfig | None = None,
    ) -> None:
        """
        Open (and if needed create) the database.

        Args:
            db_path: Path to the SQLite file, or ":memory:"
            sql_log_mode: Diagnostic SQL logging; defaults to config's value
            config: Pragmas and lock wait; defaults to HistoryConfig()
        """
        self.config = config or HistoryConfig()
        self.db_path = Path(db_path) if str(db_path) == MEMORY_PATH else Path(db_path).expanduser()
        self._sql_log_mode = SqlLogMode.DISABLED
        self._conn: sqlite3.Connection | None = None

        logger.debug("opening sqlite database at %s", self.db_path)
        self._connect()
        try:
            self.set_log_mode(sql_log_mode or self.config.sql_log_mode)
            self._configure()
            self._init_schema()
        except StorageConnectionError:
            self.close()
            raise

    @classmethod
    def from_config(cls, config: HistoryConfig) -> "SqliteHistory":
        """Open the store described by a HistoryConfig."""
        return cls(config.db_path, config=config)

    def _connect(self) -> None:
        """Establish database connection."""
        if str(self.db_path) != MEMORY_PATH and not self.db_path.exists():
            # SQLite creates the file; only the directories are ours to make.
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageConnectionError(
                    db_path=str(self.db_path),
                    operation="connect",
                    message=f"Failed to create database directory: {e}",
                ) from e

        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.config.busy_timeout_ms / 1000,
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _configure(self) -> None:
        """Apply page size, journaling and lock-wait pragmas."""
        cfg = self.config
        # page_size has to precede journal_mode: a WAL file's page size is fixed.
        pragmas = f"""
            PRAGMA page_size = {cfg.page_size};
            PRAGMA journal_mode = {cfg.journal_mode};
            PRAGMA wal_autocheckpoint = {cfg.wal_autocheckpoint};
            PRAGMA journal_size_limit = {cfg.journal_size_limit};
            PRAGMA foreign_keys = {"ON" if cfg.foreign_keys else "OFF"};
            PRAGMA busy_timeout = {cfg.busy_timeout_ms};
            PRAGMA case_sensitive_like = ON;
        """
        try:
            self._conn.executescript(pragmas)
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="configure",
                message=f"Failed to configure database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Create the history table and its indexes if they don't exist."""
        logger.debug("running sqlite database setup")
        try:
            self._conn.executescript(CREATE_TABLES_SQL)
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="init_schema",
                message=f"Failed to create schema: {e}",
            ) from e

    def set_log_mode(self, mode: SqlLogMode) -> None:
        """
        Switch diagnostic SQL logging.

        The current callback is always detached first, so trace and profile
        are never active together.
        """
        self._conn.set_trace_callback(None)
        self._sql_log_mode = SqlLogMode.DISABLED

        if mode is SqlLogMode.TRACE:
            self._conn.set_trace_callback(_log_trace)
        self._sql_log_mode = mode

    @property
    def sql_log_mode(self) -> SqlLogMode:
        """The active diagnostic logging mode."""
        return self._sql_log_mode

    def pragma(self, name: str) -> object:
        """Read the current value of a pragma (e.g. "journal_mode")."""
        if not name.isidentifier():
            msg = f"Invalid pragma name: {name!r}"
            raise ValueError(msg)
        row = self._execute(f"PRAGMA {name}").fetchone()
        return row[0] if row is not None else None

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SqliteHistory":
        """Enter context manager."""
        return self

    # =========================================================================
    # Execution Helpers
    # =========================================================================

    @contextmanager
    def _profiled(self, sql: str) -> Generator[None, None, None]:
        if self._sql_log_mode is not SqlLogMode.PROFILE:
            yield
            return
        start = time.perf_counter()
        try:
            yield
        finally:
            _log_profile(sql, time.perf_counter() - start)

    def _execute(self, sql: str, params: Iterable = ()) -> sqlite3.Cursor:
        with self._profiled(sql):
            return self._conn.execute(sql, tuple(params))

    def _fetchall(self, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        with self._profiled(sql):
            return self._conn.execute(sql, tuple(params)).fetchall()

    @contextmanager
    def _transaction(self) -> Generator[None, None, None]:
        """Run the block in one write transaction; roll back on any error."""
        # IMMEDIATE takes the write lock up front, so busy_timeout applies here.
        self._execute("BEGIN IMMEDIATE")
        try:
            yield
            self._execute("COMMIT")
        except BaseException:
            # Interrupts included. Some failures (disk full, I/O) already
            # ended the transaction.
            if self._conn.in_transaction:
                self._conn.execute("ROLLBACK")
            raise

    def _error(self, error: Exception, operation: str, write: bool) -> StorageError:
        if _is_busy(error):
            return StorageLockTimeoutError(
                operation=operation,
                timeout_ms=self.config.busy_timeout_ms,
            )
        if write:
            return StorageWriteError(operation=operation, underlying_error=str(error))
        return StorageReadError(operation=operation, underlying_error=str(error))

    def _insert_ignoring_duplicates(self, item: HistoryItem) -> sqlite3.Cursor:
        """Insert one row; a (timestamp, cwd, command) clash is a silent no-op."""
        return self._execute(
            INSERT_IGNORING_DUPLICATES_SQL,
            (item.history_id, *_item_params(item)),
        )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> HistoryItem:
        return HistoryItem(
            history_id=row["history_id"],
            command_line=row["command_line"],
            command=row["command"],
            command_params=row["command_params"],
            cwd=row["cwd"],
            duration=row["duration"],
            exit_status=row["exit_status"],
            session_id=row["session_id"],
            timestamp=row["timestamp"],
            run_count=row["run_count"],
        )

    def _select_items(self, operation: str, sql: str, params: Iterable = ()) -> list[HistoryItem]:
        try:
            rows = self._fetchall(sql, params)
        except sqlite3.Error as e:
            raise self._error(e, operation, write=False) from e
        return [self._row_to_item(row) for row in rows]

    def _select_one(self, operation: str, sql: str, params: Iterable = ()) -> HistoryItem | None:
        items = self._select_items(operation, sql, params)
        return items[0] if items else None

    # =========================================================================
    # Write Operations
    # =========================================================================

    def save(self, item: HistoryItem) -> int | None:
        logger.debug("saving history item: %r", item)
        try:
            with self._transaction():
                cursor = self._insert_ignoring_duplicates(item)
        except (sqlite3.Error, OverflowError) as e:
            raise self._error(e, "save", write=True) from e

        if cursor.rowcount == 0:
            logger.debug("skipped duplicate history item: %r", item.command)
            return None
        return cursor.lastrowid

    def save_bulk(self, items: Iterable[HistoryItem]) -> int:
        logger.debug("saving history items in bulk")
        inserted = 0
        try:
            with self._transaction():
                for item in items:
                    inserted += self._insert_ignoring_duplicates(item).rowcount
        except (sqlite3.Error, OverflowError) as e:
            raise self._error(e, "save_bulk", write=True) from e

        logger.debug("inserted %d history items", inserted)
        return inserted

    def update(self, item: HistoryItem) -> int:
        logger.debug("updating history item: %r", item)
        if item.history_id is None:
            return 0

        try:
            with self._transaction():
                cursor = self._execute(UPDATE_SQL, (*_item_params(item), item.history_id))
        except (sqlite3.Error, OverflowError) as e:
            raise self._error(e, "update", write=True) from e
        return cursor.rowcount

    def delete_history_item(self, history_id: int) -> int:
        logger.debug("deleting history item %s", history_id)
        try:
            with self._transaction():
                cursor = self._execute(
                    "DELETE FROM history_items WHERE history_id = ?",
                    (history_id,),
                )
        except (sqlite3.Error, OverflowError) as e:
            raise self._error(e, "delete", write=True) from e
        return cursor.rowcount

    # =========================================================================
    # Read Operations
    # =========================================================================

    def load(self, history_id: int) -> HistoryItem:
        logger.debug("loading history item %s", history_id)
        item = self._select_one(
            "load",
            "SELECT * FROM history_items WHERE history_id = ?",
            (history_id,),
        )
        if item is None:
            raise HistoryNotFoundError(operation="load", history_id=history_id)
        return item

    def list_history(
        self,
        max_items: int | None = None,
        unique: bool = False,
    ) -> list[HistoryItem]:
        logger.debug("listing history (max=%s, unique=%s)", max_items, unique)
        if unique:
            sql, params = select_newest_per_command(limit=max_items)
        else:
            sql = "SELECT * FROM history_items ORDER BY timestamp DESC, history_id DESC"
            params = []
            if max_items is not None:
                sql += " LIMIT ?"
                params.append(max_items)
        return self._select_items("list", sql, params)

    def range(
        self,
        start: datetime | int,
        end: datetime | int,
    ) -> list[HistoryItem]:
        logger.debug("listing history from %s to %s", start, end)
        return self._select_items(
            "range",
            """
            SELECT * FROM history_items
            WHERE timestamp >= ? AND timestamp <= ?
            ORDER BY timestamp ASC, history_id ASC
            """,
            (to_nanos(start), to_nanos(end)),
        )

    def before(self, timestamp: datetime | int, count: int) -> list[HistoryItem]:
        logger.debug("listing %d history items before %s", count, timestamp)
        return self._select_items(
            "before",
            """
            SELECT * FROM history_items
            WHERE timestamp < ?
            ORDER BY timestamp DESC, history_id DESC
            LIMIT ?
            """,
            (to_nanos(timestamp), count),
        )

    def first(self) -> HistoryItem:
        item = self._select_one(
            "first",
            "SELECT * FROM history_items ORDER BY timestamp ASC, history_id ASC LIMIT 1",
        )
        if item is None:
            raise HistoryNotFoundError(operation="first")
        return item

    def last(self) -> HistoryItem:
        item = self._select_one(
            "last",
            "SELECT * FROM history_items ORDER BY timestamp DESC, history_id DESC LIMIT 1",
        )
        if item is None:
            raise HistoryNotFoundError(operation="last")
        return item

    def history_count(self) -> int:
        try:
            row = self._execute("SELECT COUNT(1) FROM history_items").fetchone()
        except sqlite3.Error as e:
            raise self._error(e, "count", write=False) from e
        return row[0]

    def search(
        self,
        limit: int | None,
        mode: SearchMode,
        query: str,
    ) -> list[HistoryItem]:
        pattern = build_pattern(mode, query)
        logger.debug("searching (%s) with pattern %r, limit %s", mode.value, pattern, limit)
        sql, params = select_newest_per_command(where="h.command LIKE ?", limit=limit)
        return self._select_items("search", sql, [pattern, *params])

    def query_history(self, query: str) -> list[HistoryItem]:
        logger.debug("running raw history query: %s", query)
        try:
            rows = self._fetchall(query)
        except (sqlite3.Error, sqlite3.Warning) as e:
            if _is_busy(e):
                raise self._error(e, "query", write=False) from e
            raise StorageQueryError(
                operation="query",
                query=query,
                underlying_error=str(e),
            ) from e

        try:
            return [self._row_to_item(row) for row in rows]
        except (IndexError, ValidationError) as e:
            raise StorageQueryError(
                operation="query",
                query=query,
                underlying_error=f"rows do not match history_items: {e}",
            ) from e
