"""
Search modes for matching a query against the command field.

Each mode turns the user's query into a SQL LIKE pattern. The store matches
``command LIKE pattern`` with case-sensitive LIKE enabled on the connection.

Modes:
    - PREFIX: command starts with the query
    - FULL_TEXT: command contains the query
    - FUZZY: command contains every character of the query, in order

A ``*`` in the query always becomes the LIKE wildcard ``%``. There is no
escape for it, and ``_`` keeps its LIKE meaning of "any one character".
"""

from enum import Enum

WILDCARD = "%"


class SearchMode(str, Enum):
    """How a search query is matched against stored commands."""

    PREFIX = "prefix"
    FULL_TEXT = "full_text"
    FUZZY = "fuzzy"

    @classmethod
    def parse(cls, text: str) -> "SearchMode":
        """
        Parse a mode name or one of the short codes ``p``, ``f`` and ``z``.

        Raises:
            ValueError: If the text names no mode
        """
        key = text.strip().lower().replace("-", "_")
        if key in _SHORT_CODES:
            return _SHORT_CODES[key]
        if key == "fulltext":
            return cls.FULL_TEXT
        return cls(key)


_SHORT_CODES = {
    "p": SearchMode.PREFIX,
    "f": SearchMode.FULL_TEXT,
    "z": SearchMode.FUZZY,
}


def expand_wildcards(query: str) -> str:
    """Rewrite every literal ``*`` into the LIKE wildcard."""
    return query.replace("*", WILDCARD)


def fuzzy_pattern(query: str) -> str:
    """
    Put a wildcard between every character and at both ends.

    "ls" becomes "%l%s%", which matches any command holding an "l" followed
    somewhere later by an "s". A query of only spaces reduces to "contains a
    space", so it matches nearly everything.
    """
    return WILDCARD + WILDCARD.join(query) + WILDCARD


def build_pattern(mode: SearchMode, query: str) -> str:
    """
    Build the LIKE pattern for a query.

    The result always ends in a wildcard, so PREFIX is "starts with" and
    FULL_TEXT is "contains". Matching is textual: "ls " does not match "ls"
    because the trailing space has to be present in the command.
    """
    query = expand_wildcards(query)

    if mode is SearchMode.PREFIX:
        pattern = query
    elif mode is SearchMode.FULL_TEXT:
        pattern = WILDCARD + query
    elif mode is SearchMode.FUZZY:
        pattern = fuzzy_pattern(query)
    else:
        msg = f"Unknown search mode: {mode!r}"
        raise ValueError(msg)

    return pattern + WILDCARD
