"""
Supabase (PostgREST) backed record store.

This store is duck-typed over a supabase client to avoid a hard dependency
during testing. The client is expected to expose `.table(name)` (or
`.from_(name)`) returning a PostgREST query builder offering:

- select(columns) / insert(rows) / update(changes) / delete()
- eq / neq / in_ / gte / lte / is_ and `not_.is_`
- order(column, desc=bool) / limit(n)
- execute() -> response with `.data`

Security:
- Row-level rules are enforced by the hosted database. A client built with
  the anon key plus the caller's access token is subject to them; a client
  built with the service role key bypasses them.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from .ports import Expand, Filter, StoreError

logger = logging.getLogger("tutorhub.records")


def _embed(rel: Expand) -> str:
    if rel.count_only:
        return f"{rel.name}:{rel.table}!{rel.foreign_key}(count)"
    hint = rel.local_key if not rel.many else rel.foreign_key
    return f"{rel.name}:{rel.table}!{hint}(*)"


def build_select_columns(expand: Sequence[Expand]) -> str:
    """Return the PostgREST select string for `*` plus embedded relations."""
    return ", ".join(["*"] + [_embed(rel) for rel in expand])


def _error_message(exc: Exception) -> str:
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or exc.__class__.__name__


class SupabaseRecordStore:
    """RecordStore implementation using a supabase client."""

    def __init__(self, client: Any):
        self._client = client

    def _table(self, table: str) -> Any:
        c = self._client
        if hasattr(c, "table"):
            return c.table(table)
        if hasattr(c, "from_"):
            return c.from_(table)
        raise StoreError("invalid_supabase_client")

    @staticmethod
    def _apply_filter(query: Any, f: Filter) -> Any:
        if f.op == "eq":
            return query.eq(f.column, f.value)
        if f.op == "neq":
            return query.neq(f.column, f.value)
        if f.op == "in":
            return query.in_(f.column, list(f.value or ()))
        if f.op == "gte":
            return query.gte(f.column, f.value)
        if f.op == "lte":
            return query.lte(f.column, f.value)
        if f.value:
            return query.is_(f.column, "null")
        return query.not_.is_(f.column, "null")

    def _execute(self, operation: str, table: str, query: Any) -> List[dict]:
        try:
            response = query.execute()
        except StoreError:
            raise
        except Exception as exc:
            message = _error_message(exc)
            logger.warning("record store %s on %s failed: %s", operation, table, exc.__class__.__name__)
            raise StoreError(message) from exc
        data = getattr(response, "data", None)
        if data is None and isinstance(response, dict):
            data = response.get("data")
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)

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
        query = self._table(table).select(build_select_columns(expand))
        for f in filters:
            query = self._apply_filter(query, f)
        if order_by:
            query = query.order(order_by, desc=descending)
        if limit is not None:
            query = query.limit(int(limit))
        return self._execute("select", table, query)

    def insert(self, table: str, rows: Sequence[dict]) -> List[dict]:
        if not rows:
            return []
        return self._execute("insert", table, self._table(table).insert(list(rows)))

    def update(self, table: str, record_id: str, changes: dict) -> Optional[dict]:
        rows = self._execute("update", table, self._table(table).update(dict(changes)).eq("id", record_id))
        return rows[0] if rows else None

    def delete(self, table: str, record_id: str) -> bool:
        rows = self._execute("delete", table, self._table(table).delete().eq("id", record_id))
        return bool(rows)


__all__ = ["SupabaseRecordStore", "build_select_columns"]
