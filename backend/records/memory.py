"""
In-memory record store for tests and offline development.

Why:
    Lets services and web routes run end-to-end without a hosted backend.
    Mirrors the subset of PostgREST behavior the services rely on: filters,
    ordering, limits, embedded relations and cascading deletes.

Notes:
    - Rows are copied on the way in and out so callers never mutate state.
    - Ids are uuid4 strings; `created_at`/`updated_at` are UTC ISO strings.
    - No row-level rules; authorization stays in the services.
"""
from __future__ import annotations

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .ports import Expand, Filter, StoreError

# child table -> [(fk column, parent table, on delete)]
DEFAULT_FOREIGN_KEYS: Dict[str, List[Tuple[str, str, str]]] = {
    "courses": [("instructor_id", "profiles", "cascade")],
    "sessions": [("course_id", "courses", "cascade")],
    "enrollments": [
        ("course_id", "courses", "cascade"),
        ("student_profile_id", "students", "cascade"),
    ],
    "homework": [("course_id", "courses", "cascade")],
    "submissions": [
        ("homework_id", "homework", "cascade"),
        ("student_profile_id", "students", "cascade"),
    ],
    "resources": [("course_id", "courses", "cascade")],
    "reviews": [("course_id", "courses", "cascade")],
    "students": [("parent_id", "profiles", "cascade")],
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _matches(row: Mapping[str, Any], f: Filter) -> bool:
    value = row.get(f.column)
    if f.op == "eq":
        return value == f.value
    if f.op == "neq":
        return value != f.value
    if f.op == "in":
        return value in tuple(f.value or ())
    if f.op == "is_null":
        return (value is None) == bool(f.value)
    if value is None:
        return False
    try:
        if f.op == "gte":
            return value >= f.value
        if f.op == "lte":
            return value <= f.value
    except TypeError:
        return False
    return False


class InMemoryRecordStore:
    """Dict-of-tables implementation of the RecordStore protocol."""

    def __init__(self, foreign_keys: Optional[Mapping[str, Sequence[Tuple[str, str, str]]]] = None):
        self._tables: Dict[str, Dict[str, dict]] = {}
        self._fks = {k: list(v) for k, v in (foreign_keys or DEFAULT_FOREIGN_KEYS).items()}
        self._lock = threading.RLock()
        self._fail_next: Dict[Tuple[str, str], str] = {}

    # --- test hooks ----------------------------------------------------------

    def fail_next(self, operation: str, table: str, message: str = "simulated store failure") -> None:
        """Make the next `operation` on `table` raise StoreError(message)."""
        self._fail_next[(operation, table)] = message

    def _check_failure(self, operation: str, table: str) -> None:
        message = self._fail_next.pop((operation, table), None)
        if message is not None:
            raise StoreError(message)

    def rows(self, table: str) -> List[dict]:
        with self._lock:
            return [copy.deepcopy(r) for r in self._tables.get(table, {}).values()]

    # --- protocol ------------------------------------------------------------

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
        with self._lock:
            self._check_failure("select", table)
            rows = [r for r in self._tables.get(table, {}).values() if all(_matches(r, f) for f in filters)]
            if order_by:
                present = [r for r in rows if r.get(order_by) is not None]
                missing = [r for r in rows if r.get(order_by) is None]
                present.sort(key=lambda r: r[order_by], reverse=descending)
                rows = present + missing
            if limit is not None:
                rows = rows[: max(0, int(limit))]
            out = []
            for row in rows:
                item = copy.deepcopy(row)
                for rel in expand:
                    item[rel.name] = self._expand(row, rel)
                out.append(item)
            return out

    def insert(self, table: str, rows: Sequence[dict]) -> List[dict]:
        with self._lock:
            self._check_failure("insert", table)
            bucket = self._tables.setdefault(table, {})
            created: List[dict] = []
            for raw in rows:
                row = copy.deepcopy(dict(raw))
                row_id = str(row.get("id") or uuid.uuid4())
                if row_id in bucket:
                    raise StoreError(f'duplicate key value violates unique constraint "{table}_pkey"')
                now = _now_iso()
                row["id"] = row_id
                row.setdefault("created_at", now)
                row.setdefault("updated_at", now)
                bucket[row_id] = row
                created.append(copy.deepcopy(row))
            return created

    def update(self, table: str, record_id: str, changes: dict) -> Optional[dict]:
        with self._lock:
            self._check_failure("update", table)
            row = self._tables.get(table, {}).get(str(record_id))
            if row is None:
                return None
            for key, value in dict(changes).items():
                if key == "id":
                    continue
                row[key] = copy.deepcopy(value)
            if "updated_at" not in changes:
                row["updated_at"] = _now_iso()
            return copy.deepcopy(row)

    def delete(self, table: str, record_id: str) -> bool:
        with self._lock:
            self._check_failure("delete", table)
            bucket = self._tables.get(table, {})
            if str(record_id) not in bucket:
                return False
            del bucket[str(record_id)]
            self._cascade(table, str(record_id))
            return True

    # --- internals -------------------------------------------------------------

    def _expand(self, row: Mapping[str, Any], rel: Expand) -> Any:
        target = self._tables.get(rel.table, {})
        if not rel.many:
            key = row.get(rel.local_key)
            if key is None:
                return None
            for candidate in target.values():
                if candidate.get(rel.foreign_key) == key:
                    return copy.deepcopy(candidate)
            return None
        key = row.get(rel.local_key)
        related = [c for c in target.values() if key is not None and c.get(rel.foreign_key) == key]
        if rel.count_only:
            return [{"count": len(related)}]
        return [copy.deepcopy(c) for c in related]

    def _cascade(self, parent_table: str, parent_id: str) -> None:
        for child_table, refs in self._fks.items():
            for column, target, action in refs:
                if target != parent_table:
                    continue
                bucket = self._tables.get(child_table, {})
                for child_id, child in list(bucket.items()):
                    if child.get(column) != parent_id:
                        continue
                    if action == "cascade":
                        bucket.pop(child_id, None)
                        self._cascade(child_table, child_id)
                    else:
                        child[column] = None


__all__ = ["InMemoryRecordStore", "DEFAULT_FOREIGN_KEYS"]
