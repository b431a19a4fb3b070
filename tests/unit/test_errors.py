"""
Unit tests for error hierarchy.

Tests cover:
- Base HizteryError behavior
- Storage errors with context
- Input errors
- Error serialization
"""

import pytest

from hiztery.errors import (
    ERROR_INPUT_CONFIG,
    ERROR_INPUT_TIMESTAMP,
    ERROR_STORAGE_CONNECTION,
    ERROR_STORAGE_LOCK_TIMEOUT,
    ERROR_STORAGE_NOT_FOUND,
    ERROR_STORAGE_QUERY,
    ERROR_STORAGE_READ,
    ERROR_STORAGE_WRITE,
    ConfigError,
    HistoryNotFoundError,
    HizteryError,
    InvalidTimestampError,
    StorageConnectionError,
    StorageError,
    StorageLockTimeoutError,
    StorageQueryError,
    StorageReadError,
    StorageWriteError,
)


class TestHizteryError:
    """Tests for base HizteryError."""

    def test_basic_error(self) -> None:
        """Create a basic error with message."""
        err = HizteryError(message="Something went wrong", code=9999)
        assert err.message == "Something went wrong"
        assert err.code == 9999
        assert err.suggestion is None
        assert err.context == {}

    def test_error_with_suggestion(self) -> None:
        err = HizteryError(message="Failed", code=1, suggestion="Try again")
        assert "Suggestion: Try again" in str(err)

    def test_str_format(self) -> None:
        """String format includes code and message."""
        err = HizteryError(message="Test error", code=1234)
        assert str(err) == "[E1234] Test error"

    def test_repr_format(self) -> None:
        err = HizteryError(message="Test", code=1)
        assert "HizteryError" in repr(err)
        assert "message='Test'" in repr(err)

    def test_to_dict(self) -> None:
        """Convert error to dictionary."""
        err = HizteryError(
            message="Test",
            code=1,
            suggestion="Try again",
            context={"foo": "bar"},
        )
        d = err.to_dict()
        assert d["error_type"] == "HizteryError"
        assert d["message"] == "Test"
        assert d["code"] == 1
        assert d["suggestion"] == "Try again"
        assert d["context"]["foo"] == "bar"

    def test_is_exception(self) -> None:
        with pytest.raises(HizteryError):
            raise HizteryError(message="Test", code=1)


class TestStorageErrors:
    """Tests for storage errors."""

    def test_connection_error(self) -> None:
        err = StorageConnectionError(db_path="/bad/path.db", operation="connect")
        assert err.code == ERROR_STORAGE_CONNECTION
        assert "/bad/path.db" in str(err)
        assert "writable" in err.suggestion.lower()
        assert err.context["operation"] == "connect"

    def test_write_error(self) -> None:
        err = StorageWriteError(operation="save_bulk", underlying_error="UNIQUE constraint failed")
        assert err.code == ERROR_STORAGE_WRITE
        assert "UNIQUE constraint failed" in str(err)
        assert err.context["operation"] == "save_bulk"

    def test_read_error(self) -> None:
        err = StorageReadError(operation="search", underlying_error="disk I/O error")
        assert err.code == ERROR_STORAGE_READ
        assert "disk I/O error" in str(err)

    def test_not_found_by_id(self) -> None:
        err = HistoryNotFoundError(operation="load", history_id=42)
        assert err.code == ERROR_STORAGE_NOT_FOUND
        assert "History item not found: 42" in str(err)
        assert err.context["history_id"] == 42

    def test_not_found_empty_store(self) -> None:
        err = HistoryNotFoundError(operation="first")
        assert "No history items found" in str(err)
        assert err.context["history_id"] is None

    def test_lock_timeout(self) -> None:
        err = StorageLockTimeoutError(operation="save", timeout_ms=1000)
        assert err.code == ERROR_STORAGE_LOCK_TIMEOUT
        assert "1000 ms" in str(err)
        assert "busy_timeout_ms" in err.suggestion

    def test_query_error(self) -> None:
        err = StorageQueryError(
            operation="query_history",
            query="SELEC 1",
            underlying_error='near "SELEC": syntax error',
        )
        assert err.code == ERROR_STORAGE_QUERY
        assert "syntax error" in str(err)
        assert err.context["query"] == "SELEC 1"

    def test_storage_hierarchy(self) -> None:
        """Storage errors inherit properly."""
        err = StorageLockTimeoutError(timeout_ms=5)
        assert isinstance(err, StorageError)
        assert isinstance(err, HizteryError)


class TestInputErrors:
    """Tests for input errors."""

    def test_invalid_timestamp(self) -> None:
        err = InvalidTimestampError(value="yesterday")
        assert err.code == ERROR_INPUT_TIMESTAMP
        assert "'yesterday'" in str(err)
        assert "YYYY-MM-DD" in err.suggestion
        assert err.context["value"] == "yesterday"

    def test_config_error(self) -> None:
        err = ConfigError(path="hiztery.yaml", underlying_error="bad indent")
        assert err.code == ERROR_INPUT_CONFIG
        assert "hiztery.yaml" in str(err)
        assert "bad indent" in str(err)


class TestErrorHierarchy:
    """Test that error hierarchy works correctly."""

    def test_catch_all_hiztery_errors(self) -> None:
        errors = [
            StorageConnectionError(db_path="/test.db"),
            HistoryNotFoundError(history_id=1),
            StorageQueryError(query="x"),
            InvalidTimestampError(value="x"),
            ConfigError(path="x"),
        ]
        for err in errors:
            with pytest.raises(HizteryError):
                raise err

    def test_catch_specific_errors(self) -> None:
        with pytest.raises(StorageError):
            raise StorageWriteError(operation="update", underlying_error="fail")

        with pytest.raises(StorageError):
            raise HistoryNotFoundError(history_id=3)
