"""
Permissive name matching for autocomplete and get-or-create lookups.

A query matches when it is a substring of the candidate or when its
characters appear in the candidate in order (``"mlk"`` matches
``"Milk 1L"``). Results are never ranked: callers get the first ``limit``
hits in the order of the underlying collection.
"""
from __future__ import annotations

from typing import Callable, Iterable, TypeVar

T = TypeVar("T")

MERCHANT_SUGGESTION_LIMIT = 6
PRODUCT_SUGGESTION_LIMIT = 8


def matches(query: str, candidate: str) -> bool:
    q = query.lower().strip()
    if not q:
        return False
    text = candidate.lower()
    if q in text:
        return True

    idx = 0
    for char in text:
        if char == q[idx]:
            idx += 1
            if idx == len(q):
                return True
    return False


def search(
    items: Iterable[T],
    query: str,
    limit: int,
    key: Callable[[T], str] = lambda item: item.name,
) -> list[T]:
    """First ``limit`` items whose ``key`` matches ``query``."""
    if not query.strip():
        return []
    found: list[T] = []
    for item in items:
        if matches(query, key(item)):
            found.append(item)
            if len(found) >= limit:
                break
    return found


def same_name(a: str, b: str) -> bool:
    """Case-insensitive exact comparison used by get-or-create."""
    return a.strip().lower() == b.strip().lower()
