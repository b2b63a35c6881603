"""
Courses API: public catalog, auth enforcement, instructor management and headers.
"""
from __future__ import annotations

import httpx
import pytest
from httpx import ASGITransport

from web import main

pytestmark = pytest.mark.anyio("asyncio")


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


def _course_body(**overrides) -> dict:
    body = {
        "title": "Algebra Basics",
        "description": "Intro to algebra",
        "category": "math",
        "start_date": "2030-01-07",  # a Monday
        "selected_days": ["Monday", "Thursday"],
        "session_time": "17:00",
        "session_duration": 50,
        "meeting_link": " ",
    }
    body.update(overrides)
    return body


async def test_protected_routes_require_a_token(api):
    async with _client() as client:
        for method, path in (
            ("GET", "/api/instructor/courses"),
            ("POST", "/api/courses"),
            ("GET", "/api/enrollments"),
            ("PUT", "/api/courses/c1/rating"),
            ("GET", "/api/courses/c1/sessions"),
        ):
            r = await client.request(method, path, json={})
            assert r.status_code == 401, path
            assert r.json() == {"error": "unauthenticated"}
            assert r.headers.get("Cache-Control") == "private, no-store"

        bogus = await client.get("/api/instructor/courses", headers={"Authorization": "Bearer nope"})
        assert bogus.status_code == 401


async def test_public_catalog_and_detail(api, seeded, make_course):
    course = make_course(start_date="2030-01-07", selected_days=["Monday"], session_time="10:00")
    make_course(title="Hidden draft", is_published=False)
    async with _client() as client:
        r = await client.get("/api/courses")
        assert r.status_code == 200
        assert r.headers.get("Cache-Control") == "private, no-store"
        assert [c["title"] for c in r.json()] == ["Algebra Basics"]
        assert r.json()[0]["instructor_name"] == "Ada Lovelace"

        detail = await client.get(f"/api/courses/{course['id']}")
        assert detail.status_code == 200
        assert detail.json()["enrollment_status"] == "Open"
        assert detail.json()["timeline"]["type"] == "scheduled"

        missing = await client.get("/api/courses/does-not-exist")
        assert missing.status_code == 404
        assert missing.json() == {"error": "not_found", "detail": "course_not_found"}

        rating = await client.get(f"/api/courses/{course['id']}/rating")
        assert rating.json() == {"average_rating": 0, "total_ratings": 0}

        instructors = await client.get("/api/instructors")
        assert sorted(p["id"] for p in instructors.json()) == ["instr-1", "instr-2"]


async def test_instructor_creates_course_with_sessions(api, seeded, instructor):
    async with _client() as client:
        r = await client.post("/api/courses", json=_course_body(), headers=api.headers(instructor))
        assert r.status_code == 201
        data = r.json()
        assert data["course"]["meeting_link"] is None
        assert data["failed_sessions"] == []
        assert [s["session_date"][:10] for s in data["sessions"]] == [
            "2030-01-07",
            "2030-01-10",
            "2030-01-14",
            "2030-01-17",
            "2030-01-21",
        ]
        listing = await client.get("/api/instructor/courses", headers=api.headers(instructor))
        assert listing.json()[0]["session_count"] == 5


async def test_course_creation_errors(api, seeded, instructor, student):
    async with _client() as client:
        forbidden = await client.post("/api/courses", json=_course_body(), headers=api.headers(student))
        assert forbidden.status_code == 403
        assert forbidden.json() == {"error": "forbidden", "detail": "instructor_role_required"}

        missing = await client.post("/api/courses", json={"title": "x"}, headers=api.headers(instructor))
        assert missing.status_code == 400
        assert missing.json()["error"] == "bad_request"

        bad_day = await client.post(
            "/api/courses", json=_course_body(selected_days=["Funday"]), headers=api.headers(instructor)
        )
        assert bad_day.status_code == 400
        assert bad_day.json()["detail"] == "invalid_weekday"


async def test_store_failure_maps_to_502(api, seeded, instructor):
    api.store.fail_next("insert", "courses", "connection reset")
    async with _client() as client:
        r = await client.post("/api/courses", json=_course_body(), headers=api.headers(instructor))
        assert r.status_code == 502
        assert r.json() == {"error": "upstream_error"}


async def test_update_publish_and_delete(api, seeded, make_course, instructor, other_instructor, student):
    course = make_course()
    path = f"/api/courses/{course['id']}"
    async with _client() as client:
        r = await client.patch(path, json={"title": "Algebra II"}, headers=api.headers(instructor))
        assert r.status_code == 200
        assert r.json()["title"] == "Algebra II"

        r = await client.patch(path, json={"title": "Mine now"}, headers=api.headers(other_instructor))
        assert r.status_code == 403

        r = await client.post(f"{path}/unpublish", headers=api.headers(instructor))
        assert r.json()["is_published"] is False
        hidden = await client.get(path)
        assert hidden.status_code == 404
        own_view = await client.get(path, headers=api.headers(instructor))
        assert own_view.status_code == 200
        r = await client.post(f"{path}/publish", headers=api.headers(instructor))
        assert r.json()["status"] == "published"

        api.store.insert("enrollments", [{"course_id": course["id"], "student_id": student.user_id, "status": "active"}])
        blocked = await client.delete(path, headers=api.headers(instructor))
        assert blocked.status_code == 409
        assert blocked.json()["detail"] == "course_has_enrollments"

        [enrollment] = api.store.rows("enrollments")
        api.store.update("enrollments", enrollment["id"], {"status": "dropped"})
        deleted = await client.delete(path, headers=api.headers(instructor))
        assert deleted.status_code == 204
        assert deleted.headers.get("Cache-Control") == "private, no-store"
        assert (await client.get(path)).status_code == 404


async def test_course_stats(api, seeded, make_course, instructor):
    make_course()
    make_course(is_published=False)
    async with _client() as client:
        r = await client.get("/api/instructor/course-stats", headers=api.headers(instructor))
        assert r.json() == {"total_courses": 2, "published_courses": 1, "draft_courses": 1, "total_enrollments": 0}


async def test_security_headers_and_health(api):
    async with _client() as client:
        r = await client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "healthy", "record_store": "memory"}
        assert r.headers.get("X-Frame-Options") == "DENY"
        assert r.headers.get("X-Content-Type-Options") == "nosniff"
        assert "frame-ancestors 'none'" in r.headers.get("Content-Security-Policy", "")
        assert "Strict-Transport-Security" not in r.headers
