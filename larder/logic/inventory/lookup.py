"""Exactly-one lookups over a loaded collection.

A duplicated id is never resolved by picking the first match: the caller gets
a DUPLICATE result (or a DuplicateRecord error) and the collection is left as is.
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Callable, List, NamedTuple, Sequence, Tuple, TypeVar

from larder.domain.exceptions import BatchNotFound, DuplicateRecord

T = TypeVar("T")

__all__ = ["LookupStatus", "Lookup", "find_exactly_one", "require_one"]


class LookupStatus(Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"


class Lookup(NamedTuple):
    status: LookupStatus
    # (position in the collection, item) for every match
    matches: List[Tuple[int, Any]]

    @property
    def count(self) -> int:
        return len(self.matches)


def _default_key(item) -> Any:
    return item.id


def find_exactly_one(items: Sequence[T], record_id, *, key: Callable[[T], Any] = _default_key) -> Lookup:
    matches = [(index, item) for index, item in enumerate(items) if key(item) == record_id]
    if not matches:
        return Lookup(LookupStatus.NOT_FOUND, matches)
    if len(matches) > 1:
        return Lookup(LookupStatus.DUPLICATE, matches)
    return Lookup(LookupStatus.FOUND, matches)


def require_one(items: Sequence[T], record_id, *, kind: str = "Batch",
                not_found: Callable[[Any], Exception] = BatchNotFound,
                key: Callable[[T], Any] = _default_key) -> Tuple[int, T]:
    """Return (position, item) of the single match or raise not_found / DuplicateRecord."""
    result = find_exactly_one(items, record_id, key=key)
    if result.status is LookupStatus.NOT_FOUND:
        raise not_found(record_id)
    if result.status is LookupStatus.DUPLICATE:
        raise DuplicateRecord(kind, record_id, result.count)
    return result.matches[0]
