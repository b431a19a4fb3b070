"""
Storage module for hiztery.

This module provides the store contract and its SQLite implementation for
shell command history.

Tables:
    - history_items: One row per executed command (timestamp, duration,
      exit status, command text, cwd, session, run count)

Design principles:
    - One file: WAL journaling, fixed 32 KiB pages, bounded lock wait
    - Idempotent writes: (timestamp, cwd, command) duplicates are skipped
    - Atomic: bulk inserts commit or roll back as one transaction
"""

from hiztery.store.base import HistoryDatabase
from hiztery.store.sqlite import SqliteHistory, select_newest_per_command

__all__ = [
    "HistoryDatabase",
    "SqliteHistory",
    "select_newest_per_command",
]
