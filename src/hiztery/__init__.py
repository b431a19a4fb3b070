"""
hiztery - Personal shell command history store.

hiztery keeps every command you run in a local SQLite file, together with
when it ran, how long it took, its exit status, working directory and
session. It provides:
- Point, range and "before" lookups
- Prefix, full-text and fuzzy search over commands
- Idempotent bulk import of plain-text history files

Example usage:
    $ hiztery import ~/.config/nushell/history.txt
    $ hiztery search -m fuzzy "gco"
    $ hiztery list --max 20 --unique
"""

__version__ = "0.1.0"
__author__ = "hiztery Contributors"

__all__ = [
    "__version__",
    "__author__",
]
