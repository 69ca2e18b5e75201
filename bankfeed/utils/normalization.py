"""
Name normalisation helpers.

Webhook payloads reference accounts and categories by display name; these
helpers implement the case-insensitive exact match used for that lookup.
"""

from __future__ import annotations

import unicodedata
from typing import Iterable, Protocol, TypeVar


class _Named(Protocol):
    name: str


NamedT = TypeVar("NamedT", bound=_Named)


def normalize_name(value: str | None) -> str:
    """
    Normalise a display name for comparison.

    - NFKC normalisation
    - surrounding whitespace stripped
    - case folded

    Inner whitespace and punctuation are kept: "Main Checking" and
    "MainChecking" are different accounts.

    Example:
        >>> normalize_name("  Main CHECKING ")
        'main checking'
    """
    if not value:
        return ""
    return unicodedata.normalize("NFKC", value).strip().casefold()


def find_by_name(rows: Iterable[NamedT], name: str | None) -> NamedT | None:
    """Return the first row whose name matches ``name`` case-insensitively."""
    wanted = normalize_name(name)
    if not wanted:
        return None
    for row in rows:
        if normalize_name(row.name) == wanted:
            return row
    return None


def available_names(rows: Iterable[_Named]) -> str:
    return ", ".join(row.name for row in rows)
