"""
Record store boundary (tables of plain dict rows).

Why:
    Persistence, row-level access rules and referential integrity live in the
    hosted backend. Services only need a narrow table-oriented port so they can
    run against the hosted PostgREST API in production and an in-memory store
    in tests and offline development.

Contract:
    - Rows are plain dicts; `id` is assigned by the store on insert.
    - `select` applies every filter (logical AND), optional ordering and limit,
      and embeds related rows for each requested `Expand`.
    - Failures surface as `StoreError` with the store's message verbatim.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Protocol, Sequence

FILTER_OPS = ("eq", "neq", "in", "gte", "lte", "is_null")


class StoreError(RuntimeError):
    """Raised when the record store rejects or fails an operation."""


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any = None

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError("invalid_filter_op")


def eq(column: str, value: Any) -> Filter:
    return Filter(column, "eq", value)


def neq(column: str, value: Any) -> Filter:
    return Filter(column, "neq", value)


def in_(column: str, values: Iterable[Any]) -> Filter:
    return Filter(column, "in", tuple(values))


def gte(column: str, value: Any) -> Filter:
    return Filter(column, "gte", value)


def lte(column: str, value: Any) -> Filter:
    return Filter(column, "lte", value)


def is_null(column: str, value: bool = True) -> Filter:
    return Filter(column, "is_null", bool(value))


@dataclass(frozen=True)
class Expand:
    """Embed related rows under `name`.

    many=False: many-to-one; `local_key` on this row points at
        `foreign_key` (usually `id`) on `table`. Embedded as dict or None.
    many=True: one-to-many; rows in `table` whose `foreign_key` equals this
        row's `local_key`. Embedded as a list, or `[{"count": n}]` when
        `count_only` is set.
    """

    name: str
    table: str
    local_key: str
    foreign_key: str = "id"
    many: bool = False
    count_only: bool = False


class RecordStore(Protocol):
    def select(
        self,
        table: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        expand: Sequence[Expand] = (),
    ) -> List[dict]:
        ...

    def insert(self, table: str, rows: Sequence[dict]) -> List[dict]:
        ...

    def update(self, table: str, record_id: str, changes: dict) -> Optional[dict]:
        ...

    def delete(self, table: str, record_id: str) -> bool:
        ...


def first(
    store: RecordStore,
    table: str,
    *,
    filters: Sequence[Filter] = (),
    order_by: Optional[str] = None,
    descending: bool = False,
    expand: Sequence[Expand] = (),
) -> Optional[dict]:
    rows = store.select(
        table,
        filters=filters,
        order_by=order_by,
        descending=descending,
        limit=1,
        expand=expand,
    )
    return rows[0] if rows else None


def embedded_count(row: dict, name: str) -> int:
    """Read an embedded `[{"count": n}]` aggregate (0 when absent)."""
    value = row.get(name)
    if isinstance(value, list) and value and isinstance(value[0], dict):
        try:
            return int(value[0].get("count") or 0)
        except (TypeError, ValueError):
            return 0
    return 0


__all__ = [
    "StoreError",
    "Filter",
    "Expand",
    "RecordStore",
    "eq",
    "neq",
    "in_",
    "gte",
    "lte",
    "is_null",
    "first",
    "embedded_count",
]
