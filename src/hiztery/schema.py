"""
Schema definitions for hiztery.

This module defines the Pydantic models used throughout hiztery:
- HistoryItem: One executed command and its metadata
- HistoryConfig: Where the store lives and how SQLite is configured
- SqlLogMode: Which diagnostic callback (if any) is attached to the connection

Timestamps are integers of nanoseconds since the Unix epoch. Python's datetime
only carries microseconds, so the integer is the value that is stored and
compared; datetimes are accepted on input and offered as a view on output.
"""

import os
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hiztery.errors import ConfigError, InvalidTimestampError

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

NANOS_PER_SECOND = 1_000_000_000
NANOS_PER_MICRO = 1_000


# =============================================================================
# Time Helpers
# =============================================================================


def to_nanos(value: datetime | int) -> int:
    """
    Convert a datetime (or an int already in nanoseconds) to epoch nanoseconds.

    Naive datetimes are treated as UTC. The conversion is exact integer math,
    so no precision is lost to float rounding.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        delta = value - EPOCH
        seconds = delta.days * 86_400 + delta.seconds
        return seconds * NANOS_PER_SECOND + delta.microseconds * NANOS_PER_MICRO
    return int(value)


def from_nanos(nanos: int) -> datetime:
    """Convert epoch nanoseconds to an aware UTC datetime (truncated to microseconds)."""
    return EPOCH + timedelta(microseconds=nanos // NANOS_PER_MICRO)


def parse_date(value: str) -> datetime:
    """
    Parse a date ("2021-07-21") or ISO 8601 datetime given on the command line.

    A bare date means midnight. Values without an offset are UTC.

    Raises:
        InvalidTimestampError: If the value isn't ISO 8601
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise InvalidTimestampError(value=value) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# =============================================================================
# Enums
# =============================================================================


class SqlLogMode(str, Enum):
    """
    Diagnostic logging attached to the SQLite connection.

    DISABLED attaches nothing. PROFILE logs each statement with its elapsed
    time. TRACE logs each statement's text as SQLite runs it.
    """

    DISABLED = "disabled"
    PROFILE = "profile"
    TRACE = "trace"

    @classmethod
    def variants(cls) -> list[str]:
        """Return the accepted string values."""
        return [mode.value for mode in cls]


# =============================================================================
# History Models
# =============================================================================


class HistoryItem(BaseModel):
    """
    One executed shell command.

    Two items compare equal (and hash equal) when their ``command`` text is
    the same, whatever their other fields hold. That relation drives the
    unique list/search views. It is not the storage uniqueness key, which is
    ``(timestamp, cwd, command)``. Use ``same_record`` to compare every
    persisted field.

    Items sort field by field in declaration order (history_id first, an
    unset id before any set one), so ``sorted(items)`` works. ``sort_key``
    exposes that tuple.

    Attributes:
        history_id: Store-assigned identity (None until saved)
        command_line: Entire command line as typed
        command: Command part of the line; the field search matches against
        command_params: Remainder of the line (None when absent)
        cwd: Working directory at execution time
        duration: Run time in nanoseconds; negative means not measured
        exit_status: Exit status of the command
        session_id: Identifier of the shell session that ran it
        timestamp: When it ran, in nanoseconds since the epoch
        run_count: How many times it ran
    """

    model_config = ConfigDict(extra="forbid")

    history_id: int | None = Field(default=None, description="Store-assigned identity")
    command_line: str = Field(..., description="Entire command line")
    command: str = Field(..., description="Command part of the command line")
    command_params: str | None = Field(
        default=None,
        description="Parameters part of the command line",
    )
    cwd: str = Field(..., description="Current working directory")
    duration: int = Field(default=-1, description="Run time in nanoseconds")
    exit_status: int = Field(default=0, description="Exit status of the command")
    session_id: int = Field(..., description="Session the command ran in")
    timestamp: int = Field(..., description="Nanoseconds since the Unix epoch")
    run_count: int = Field(default=1, description="How many times the command ran")

    @field_validator("timestamp", mode="before")
    @classmethod
    def coerce_timestamp(cls, v: Any) -> Any:
        """Accept datetimes and convert them to epoch nanoseconds."""
        if isinstance(v, datetime):
            return to_nanos(v)
        return v

    @field_validator("command_params", mode="before")
    @classmethod
    def empty_params_to_none(cls, v: Any) -> Any:
        """An empty string is how absent parameters are persisted."""
        if v == "":
            return None
        return v

    @property
    def executed_at(self) -> datetime:
        """The timestamp as an aware UTC datetime."""
        return from_nanos(self.timestamp)

    def same_record(self, other: "HistoryItem") -> bool:
        """Compare every persisted field except the store-assigned identity."""
        exclude = {"history_id"}
        return self.model_dump(exclude=exclude) == other.model_dump(exclude=exclude)

    def sort_key(self) -> tuple:
        """Every field in declaration order; an unset id or params sorts first."""
        return (
            self.history_id is not None,
            self.history_id or 0,
            self.command_line,
            self.command,
            self.command_params is not None,
            self.command_params or "",
            self.cwd,
            self.duration,
            self.exit_status,
            self.session_id,
            self.timestamp,
            self.run_count,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HistoryItem):
            return NotImplemented
        return self.command == other.command

    def __hash__(self) -> int:
        return hash(self.command)

    # Ordering compares every field, so it is finer than equality: items
    # that are equal may still sort apart.
    def __lt__(self, other: object) -> bool:
        if not isinstance(other, HistoryItem):
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, HistoryItem):
            return NotImplemented
        return self.sort_key() > other.sort_key()


# =============================================================================
# Configuration
# =============================================================================


def default_db_path() -> Path:
    """Default location of the history database."""
    return Path.home() / ".hiztery" / "history.db"


JOURNAL_MODES = ("delete", "truncate", "persist", "memory", "wal", "off")


class HistoryConfig(BaseModel):
    """
    Store configuration.

    Defaults give a WAL database with 32 KiB pages, a checkpoint every 32
    frames, a 3 MiB WAL cap, foreign keys on and a one second lock wait.

    Attributes:
        db_path: Path to the SQLite database file
        page_size: Page size in bytes; fixed once the file has been written
        journal_mode: SQLite journal mode
        wal_autocheckpoint: Frames between automatic checkpoints
        journal_size_limit: Maximum WAL size in bytes kept after a checkpoint
        foreign_keys: Enforce referential integrity
        busy_timeout_ms: How long a writer waits for the lock before failing
        sql_log_mode: Diagnostic SQL logging
        session_id: Session id given to records built by this process
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: Path = Field(
        default_factory=default_db_path,
        description="Path to the SQLite database file",
    )
    page_size: int = Field(default=32 * 1024, description="Page size in bytes")
    journal_mode: str = Field(default="wal", description="SQLite journal mode")
    wal_autocheckpoint: int = Field(
        default=32,
        description="Frames between automatic checkpoints",
        ge=0,
    )
    journal_size_limit: int = Field(
        default=3 * 1024 * 1024,  # 3 MiB
        description="Maximum WAL size in bytes",
        ge=-1,
    )
    foreign_keys: bool = Field(default=True, description="Enforce referential integrity")
    busy_timeout_ms: int = Field(
        default=1000,
        description="Lock wait before failing, in milliseconds",
        ge=0,
    )
    sql_log_mode: SqlLogMode = Field(
        default=SqlLogMode.DISABLED,
        description="Diagnostic SQL logging",
    )
    session_id: int = Field(
        default_factory=os.getpid,
        description="Session id for records created by this process",
    )

    @field_validator("db_path")
    @classmethod
    def expand_db_path(cls, v: Path) -> Path:
        """Expand ~ in the database path."""
        if str(v) == ":memory:":
            return v
        return v.expanduser()

    @field_validator("page_size")
    @classmethod
    def validate_page_size(cls, v: int) -> int:
        """SQLite accepts powers of two between 512 and 65536."""
        if v < 512 or v > 65536 or v & (v - 1):
            msg = f"page_size must be a power of two between 512 and 65536, got {v}"
            raise ValueError(msg)
        return v

    @field_validator("journal_mode")
    @classmethod
    def validate_journal_mode(cls, v: str) -> str:
        """Restrict to the journal modes SQLite knows."""
        v = v.lower()
        if v not in JOURNAL_MODES:
            msg = f"journal_mode must be one of {', '.join(JOURNAL_MODES)}"
            raise ValueError(msg)
        return v


# =============================================================================
# YAML Loading Helpers
# =============================================================================


def load_config(path: Path | str) -> HistoryConfig:
    """
    Load store configuration from a YAML file.

    Args:
        path: Path to the YAML file

    Returns:
        Validated HistoryConfig

    Raises:
        ConfigError: If the file can't be read or doesn't match the schema
    """
    path = Path(path)
    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(path=str(path), underlying_error=str(e)) from e

    return _validate_config(data, str(path))


def load_config_from_string(content: str) -> HistoryConfig:
    """Load store configuration from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(path="<string>", underlying_error=str(e)) from e
    return _validate_config(data, "<string>")


def _validate_config(data: Any, source: str) -> HistoryConfig:
    try:
        return HistoryConfig.model_validate(data or {})
    except ValidationError as e:
        raise ConfigError(path=source, underlying_error=str(e)) from e
