"""
Import plain-text shell history files.

A history file holds one command per line with no metadata (nushell's
history.txt, bash's ~/.bash_history without timestamps). Each line becomes a
HistoryItem; the store's save_bulk writes them in one transaction.

Timestamps are synthesised from the file's modification time: the last line
gets the mtime and each earlier line is one second older. An unchanged file
therefore yields the same (timestamp, cwd, command) keys every time, and
importing it twice stores nothing new.

Only an unchanged file re-imports as a no-op. Appending lines moves the
mtime, which shifts the timestamp of every earlier line too, so re-importing
a grown file stores all of its lines again.
"""

import logging
from collections.abc import Iterator
from pathlib import Path

from hiztery.schema import NANOS_PER_SECOND, HistoryItem
from hiztery.store.base import HistoryDatabase

logger = logging.getLogger(__name__)

# Duration is not recorded in plain history files.
UNKNOWN_DURATION = -1


def read_history_file(
    path: Path | str,
    *,
    cwd: str,
    session_id: int,
) -> Iterator[HistoryItem]:
    """
    Yield a HistoryItem per non-blank line, oldest first.

    Args:
        path: History file to read
        cwd: Working directory recorded for every item
        session_id: Session id recorded for every item

    Raises:
        OSError: If the file can't be read
    """
    path = Path(path)
    lines = [line.rstrip() for line in path.read_text(encoding="utf-8", errors="replace").splitlines()]
    lines = [line for line in lines if line]
    logger.debug("read %d commands from %s", len(lines), path)

    newest = path.stat().st_mtime_ns
    total = len(lines)
    for index, line in enumerate(lines):
        yield HistoryItem(
            command_line=line,
            command=line,
            command_params=None,
            cwd=cwd,
            duration=UNKNOWN_DURATION,
            exit_status=0,
            session_id=session_id,
            timestamp=newest - (total - 1 - index) * NANOS_PER_SECOND,
            run_count=1,
        )


def import_history_file(
    db: HistoryDatabase,
    path: Path | str,
    *,
    cwd: str,
    session_id: int,
) -> int:
    """
    Import a history file into a store.

    Returns:
        Number of new rows stored (duplicates of earlier imports are skipped)
    """
    items = list(read_history_file(path, cwd=cwd, session_id=session_id))
    inserted = db.save_bulk(items)
    logger.info("imported %d of %d history entries from %s", inserted, len(items), path)
    return inserted
