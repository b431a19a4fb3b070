"""
Exception hierarchy for hiztery.

All hiztery exceptions inherit from HizteryError, allowing callers to catch
all hiztery-specific exceptions with a single except clause.

Exception Categories:
    - StorageError: Database operation failed (connect, read, write, lock)
    - HistoryNotFoundError: A single-row fetch matched nothing
    - StorageQueryError: Raw query text was rejected by SQLite
    - InvalidTimestampError: A date argument could not be parsed
    - ConfigError: Configuration file could not be loaded

A uniqueness conflict on insert is not an error: the row is skipped.

Design Principles:
    - All errors have error codes for programmatic handling
    - All errors include context (operation, ids, paths where applicable)
    - Errors wrapping sqlite3 failures chain the original exception
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes
# =============================================================================

# Storage errors: 5xxx
ERROR_STORAGE_CONNECTION = 5001
ERROR_STORAGE_WRITE = 5002
ERROR_STORAGE_READ = 5003
ERROR_STORAGE_NOT_FOUND = 5004
ERROR_STORAGE_LOCK_TIMEOUT = 5005
ERROR_STORAGE_QUERY = 5006

# Input errors: 6xxx
ERROR_INPUT_TIMESTAMP = 6001
ERROR_INPUT_CONFIG = 6002


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class HizteryError(Exception):
    """
    Base exception for all hiztery errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        """Format error for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Storage Errors
# =============================================================================


@dataclass
class StorageError(HizteryError):
    """
    Base class for storage/database errors.

    Attributes:
        operation: The store operation that failed (e.g., "save", "search")
    """

    operation: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        self.context["operation"] = self.operation


@dataclass
class StorageConnectionError(StorageError):
    """Raised when the database cannot be opened or configured."""

    db_path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Failed to open history database: {self.db_path}"
        if self.code == 0:
            self.code = ERROR_STORAGE_CONNECTION
        if not self.suggestion:
            self.suggestion = "Check that the database path is valid and writable"
        super().__post_init__()
        self.context["db_path"] = self.db_path


@dataclass
class StorageWriteError(StorageError):
    """Raised when a write fails. The enclosing transaction is rolled back."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database write failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_WRITE
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class StorageReadError(StorageError):
    """Raised when a read operation fails."""

    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database read failed: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_READ
        super().__post_init__()
        self.context["underlying_error"] = self.underlying_error


@dataclass
class HistoryNotFoundError(StorageError):
    """
    Raised when a single-row fetch finds nothing.

    Used by load (unknown id) and by first/last on an empty store.
    """

    history_id: int | None = None

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            if self.history_id is not None:
                self.message = f"History item not found: {self.history_id}"
            else:
                self.message = "No history items found"
        if self.code == 0:
            self.code = ERROR_STORAGE_NOT_FOUND
        super().__post_init__()
        self.context["history_id"] = self.history_id


@dataclass
class StorageLockTimeoutError(StorageError):
    """Raised when the write lock could not be acquired within busy_timeout."""

    timeout_ms: int = 0

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Database is locked (waited {self.timeout_ms} ms)"
        if self.code == 0:
            self.code = ERROR_STORAGE_LOCK_TIMEOUT
        if not self.suggestion:
            self.suggestion = "Retry once the other writer has finished, or raise busy_timeout_ms"
        super().__post_init__()
        self.context["timeout_ms"] = self.timeout_ms


@dataclass
class StorageQueryError(StorageError):
    """Raised when raw query text is rejected by SQLite."""

    query: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid query: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_STORAGE_QUERY
        super().__post_init__()
        self.context.update({
            "query": self.query,
            "underlying_error": self.underlying_error,
        })


# =============================================================================
# Input Errors
# =============================================================================


@dataclass
class InvalidTimestampError(HizteryError):
    """Raised when a date/time argument cannot be parsed."""

    value: str = ""
    expected_format: str = "YYYY-MM-DD"

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid date: {self.value!r}"
        if self.code == 0:
            self.code = ERROR_INPUT_TIMESTAMP
        if not self.suggestion:
            self.suggestion = f"Use the format {self.expected_format} (e.g. 2021-07-21)"
        self.context.update({
            "value": self.value,
            "expected_format": self.expected_format,
        })


@dataclass
class ConfigError(HizteryError):
    """Raised when a configuration file cannot be read or validated."""

    path: str = ""
    underlying_error: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Invalid configuration in {self.path}: {self.underlying_error}"
        if self.code == 0:
            self.code = ERROR_INPUT_CONFIG
        self.context.update({
            "path": self.path,
            "underlying_error": self.underlying_error,
        })
