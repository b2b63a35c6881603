"""
In-memory record store: filters, ordering, embeds, cascades and failure hooks.
"""
from __future__ import annotations

import pytest

from records.memory import InMemoryRecordStore
from records.ports import Expand, Filter, StoreError, embedded_count, eq, first, gte, in_, is_null, lte, neq


def _seed(store: InMemoryRecordStore):
    store.insert("profiles", [{"id": "p1", "first_name": "Ada"}])
    store.insert(
        "courses",
        [
            {"id": "c1", "title": "Algebra", "instructor_id": "p1", "price": 10},
            {"id": "c2", "title": "Biology", "instructor_id": "p1", "price": 30},
            {"id": "c3", "title": "Chess", "instructor_id": "p1", "price": None},
        ],
    )
    store.insert(
        "enrollments",
        [
            {"id": "e1", "course_id": "c1", "status": "active"},
            {"id": "e2", "course_id": "c1", "status": "dropped"},
        ],
    )


def test_insert_assigns_id_and_timestamps():
    store = InMemoryRecordStore()
    row = store.insert("profiles", [{"first_name": "Ada"}])[0]
    assert row["id"]
    assert row["created_at"] and row["updated_at"]
    with pytest.raises(StoreError):
        store.insert("profiles", [{"id": row["id"]}])


def test_filters_are_combined():
    store = InMemoryRecordStore()
    _seed(store)
    titles = lambda rows: sorted(r["title"] for r in rows)  # noqa: E731
    assert titles(store.select("courses", filters=[gte("price", 20)])) == ["Biology"]
    assert titles(store.select("courses", filters=[lte("price", 20)])) == ["Algebra"]
    assert titles(store.select("courses", filters=[in_("id", ["c1", "c3"])])) == ["Algebra", "Chess"]
    assert titles(store.select("courses", filters=[is_null("price")])) == ["Chess"]
    assert titles(store.select("courses", filters=[neq("id", "c1"), is_null("price", False)])) == ["Biology"]


def test_ordering_puts_missing_values_last_and_limits():
    store = InMemoryRecordStore()
    _seed(store)
    rows = store.select("courses", order_by="price", descending=True)
    assert [r["id"] for r in rows] == ["c2", "c1", "c3"]
    assert [r["id"] for r in store.select("courses", order_by="price", limit=1)] == ["c1"]
    assert first(store, "courses", filters=[eq("id", "missing")]) is None


def test_expand_many_to_one_and_counts():
    store = InMemoryRecordStore()
    _seed(store)
    row = store.select(
        "courses",
        filters=[eq("id", "c1")],
        expand=[
            Expand("instructor", "profiles", "instructor_id"),
            Expand("enrollments", "enrollments", "id", foreign_key="course_id", many=True, count_only=True),
        ],
    )[0]
    assert row["instructor"]["first_name"] == "Ada"
    assert embedded_count(row, "enrollments") == 2
    assert embedded_count({}, "enrollments") == 0


def test_rows_are_copies():
    store = InMemoryRecordStore()
    _seed(store)
    row = store.select("courses", filters=[eq("id", "c1")])[0]
    row["title"] = "mutated"
    assert store.select("courses", filters=[eq("id", "c1")])[0]["title"] == "Algebra"


def test_update_merges_and_ignores_id():
    store = InMemoryRecordStore()
    _seed(store)
    updated = store.update("courses", "c1", {"id": "other", "title": "Algebra II"})
    assert updated["id"] == "c1"
    assert updated["title"] == "Algebra II"
    assert store.update("courses", "nope", {"title": "x"}) is None


def test_delete_cascades_to_children():
    store = InMemoryRecordStore()
    _seed(store)
    assert store.delete("profiles", "p1") is True
    assert store.rows("courses") == []
    assert store.rows("enrollments") == []
    assert store.delete("profiles", "p1") is False


def test_fail_next_raises_once():
    store = InMemoryRecordStore()
    store.fail_next("insert", "courses", "permission denied for table courses")
    with pytest.raises(StoreError) as exc:
        store.insert("courses", [{"title": "x"}])
    assert str(exc.value) == "permission denied for table courses"
    assert store.insert("courses", [{"title": "x"}])[0]["title"] == "x"


def test_unknown_filter_op_is_rejected():
    with pytest.raises(ValueError):
        Filter("id", "like", "x")
