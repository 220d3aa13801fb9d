"""Sorting and pagination of history rows.

Null placement is part of the contract, independent of the store engine:
- assigned: unknown starts (backfilled rows) come after every concrete
  timestamp, in both directions
- revoked: an open interval is more recent than any closed one, so it sorts
  first under DESC and last under ASC

Ties always break by interval id ascending.
"""

import enum
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any, Protocol, TypeVar


class SortColumn(str, enum.Enum):
    """Columns a history listing can be sorted by."""

    ASSIGNED = "assigned"
    REVOKED = "revoked"
    NAME = "name"
    TYPE = "type"


class SortOrder(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"


class SortableRow(Protocol):
    """Attributes the sort reads from a row."""

    @property
    def interval_id(self) -> int: ...

    @property
    def assigned_at(self) -> datetime | None: ...

    @property
    def revoked_at(self) -> datetime | None: ...

    @property
    def display_name(self) -> str: ...

    @property
    def type_label(self) -> str: ...


RowT = TypeVar("RowT", bound=SortableRow)


def _by_value(rows: Sequence[RowT], key: Callable[[RowT], Any], descending: bool) -> list[RowT]:
    # list.sort is stable under reverse=True, so the id pre-sort survives for ties
    ordered = sorted(rows, key=lambda row: row.interval_id)
    ordered.sort(key=key, reverse=descending)
    return ordered


def sort_rows(rows: Sequence[RowT], sort: SortColumn, order: SortOrder) -> list[RowT]:
    """Sort history rows.

    Args:
        rows: Rows to sort.
        sort: Column to sort by.
        order: Direction.

    Returns:
        A new, sorted list.
    """
    descending = order == SortOrder.DESC

    if sort == SortColumn.ASSIGNED:
        known = [row for row in rows if row.assigned_at is not None]
        unknown = [row for row in rows if row.assigned_at is None]
        return _by_value(known, lambda row: row.assigned_at, descending) + _by_value(
            unknown, lambda row: row.interval_id, False
        )

    if sort == SortColumn.REVOKED:
        closed = _by_value(
            [row for row in rows if row.revoked_at is not None], lambda row: row.revoked_at, descending
        )
        still_open = _by_value([row for row in rows if row.revoked_at is None], lambda row: row.interval_id, False)
        return still_open + closed if descending else closed + still_open

    if sort == SortColumn.TYPE:
        return _by_value(
            rows,
            lambda row: (row.type_label.casefold(), row.display_name.casefold()),
            descending,
        )

    return _by_value(rows, lambda row: row.display_name.casefold(), descending)


def paginate(rows: Sequence[RowT], page_start: int, page_size: int) -> list[RowT]:
    """Slice [page_start, page_start + page_size) out of the sorted rows."""
    start = max(page_start, 0)
    return list(rows[start : start + max(page_size, 0)])
