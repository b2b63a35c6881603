"""
Courses service: creation with the initial session batch, listings and deletion rules.
"""
from __future__ import annotations

from datetime import datetime

import pytest

from marketplace.errors import ConflictError, NotFoundError, OperationError, UnauthorizedError, ValidationError
from marketplace.services.courses import CoursesService
from marketplace.services.sessions import SessionsService
from records.ports import eq


@pytest.fixture
def service(store, clock):
    return CoursesService(store, SessionsService(store, clock=clock), clock=clock)


def _payload(**overrides):
    data = {
        "title": "  Algebra Basics ",
        "description": "Intro to algebra",
        "category": "math",
        "course_type": "group",
        "session_duration": 45,
        "enrollment_limit": 10,
        "start_date": "2024-06-03",
        "selected_days": ["wednesday", "Monday"],
        "session_time": "16:30",
        "meeting_link": "https://meet.example.org/algebra",
    }
    data.update(overrides)
    return data


def test_create_scheduled_course_generates_first_batch(service, store, seeded, instructor):
    result = service.create_course(instructor, _payload())
    course = result["course"]
    assert course["title"] == "Algebra Basics"
    assert course["is_published"] is True
    assert course["instructor_id"] == instructor.user_id
    assert course["selected_days"] == ["Monday", "Wednesday"]
    assert course["timezone"] == "America/New_York"
    assert result["failed_sessions"] == []
    assert [s["session_date"] for s in result["sessions"]] == [
        "2024-06-03T16:30:00",
        "2024-06-05T16:30:00",
        "2024-06-10T16:30:00",
        "2024-06-12T16:30:00",
        "2024-06-17T16:30:00",
    ]
    assert all(s["duration_minutes"] == 45 for s in result["sessions"])
    assert all(s["meeting_link"] == "https://meet.example.org/algebra" for s in result["sessions"])
    assert len(store.select("sessions", filters=[eq("course_id", course["id"])])) == 5


def test_self_paced_course_has_no_sessions(service, seeded, instructor):
    result = service.create_course(instructor, _payload(is_self_paced=True))
    assert result["sessions"] == []


def test_failed_session_rows_are_reported(service, store, seeded, instructor):
    store.fail_next("insert", "sessions", "insert blocked")
    result = service.create_course(instructor, _payload())
    assert len(result["sessions"]) == 4
    assert result["failed_sessions"] == [
        {"number": 1, "session_date": "2024-06-03T16:30:00", "error": "insert blocked"}
    ]


@pytest.mark.parametrize(
    "overrides,code",
    [
        ({"title": "  "}, "invalid_title"),
        ({"course_type": "lecture"}, "invalid_course_type"),
        ({"selected_days": ["Someday"]}, "invalid_weekday"),
        ({"session_time": None}, "invalid_session_time"),
        ({"has_end_date": True, "end_date": "2024-05-01"}, "invalid_end_date"),
        ({"meeting_link": "ftp://example.org"}, "invalid_meeting_link"),
        ({"enrollment_limit": 0}, "invalid_enrollment_limit"),
    ],
)
def test_create_course_validation(service, seeded, instructor, overrides, code):
    with pytest.raises(ValidationError) as exc:
        service.create_course(instructor, _payload(**overrides))
    assert exc.value.code == code


def test_students_cannot_create_courses(service, seeded, student):
    with pytest.raises(UnauthorizedError):
        service.create_course(student, _payload())


def test_store_failure_surfaces_message(service, store, seeded, instructor):
    store.fail_next("insert", "courses", "permission denied for table courses")
    with pytest.raises(OperationError) as exc:
        service.create_course(instructor, _payload())
    assert exc.value.code == "permission denied for table courses"


def test_published_listing_flattens_relations(service, store, seeded, make_course, student):
    course = make_course(start_date="2024-06-03", selected_days=["Monday"], session_time="10:00")
    make_course(title="Draft", is_published=False, status="draft")
    store.insert(
        "enrollments",
        [
            {"course_id": course["id"], "student_id": student.user_id, "status": "active"},
            {"course_id": course["id"], "student_id": "someone", "status": "dropped"},
        ],
    )
    store.insert(
        "reviews",
        [
            {"course_id": course["id"], "student_id": "a", "rating": 4, "is_published": True},
            {"course_id": course["id"], "student_id": "b", "rating": 5, "is_published": True},
        ],
    )
    rows = service.list_published_courses()
    assert [r["title"] for r in rows] == ["Algebra Basics"]
    row = rows[0]
    assert row["instructor_name"] == "Ada Lovelace"
    assert row["current_enrollment"] == 1
    assert row["average_rating"] == 4.5
    assert row["total_ratings"] == 2
    assert row["status_text"] == "Starts June 3, 2024"
    assert row["enrollment_open"] is True
    assert "instructor" not in row and "enrollments" not in row


def test_listing_filters_by_category_and_search(service, seeded, make_course):
    make_course(title="Algebra Basics", category="math")
    make_course(title="Creative Writing", category="english", description="Stories and poems")
    assert [r["title"] for r in service.list_published_courses(category="english")] == ["Creative Writing"]
    assert [r["title"] for r in service.list_published_courses(search="POEMS")] == ["Creative Writing"]
    assert service.list_published_courses(search="chemistry") == []


def test_get_course_hides_drafts_from_others(service, seeded, make_course, instructor, student):
    draft = make_course(is_published=False, status="draft")
    with pytest.raises(NotFoundError):
        service.get_course(draft["id"], student)
    assert service.get_course(draft["id"], instructor)["id"] == draft["id"]
    with pytest.raises(NotFoundError):
        service.get_course("missing")


def test_get_course_detail_fields(service, store, seeded, make_course):
    course = make_course(start_date="2024-06-03", selected_days=["Monday"], session_time="10:00")
    store.insert(
        "sessions",
        [
            {"course_id": course["id"], "title": "Second", "session_date": "2024-06-10T10:00:00"},
            {"course_id": course["id"], "title": "First", "session_date": "2024-06-03T10:00:00"},
        ],
    )
    detail = service.get_course(course["id"], now=datetime(2024, 6, 4, 8, 0))
    assert [s["title"] for s in detail["sessions"]] == ["First", "Second"]
    assert detail["instructor_bio"] == "Maths tutor"
    assert detail["instructor_expertise"] == ["algebra"]
    assert detail["next_session_date"] == "2024-06-10"
    assert detail["enrollment_status"] == "Started"
    assert detail["average_rating"] == 0


def test_update_course_requires_owner_and_known_fields(service, seeded, make_course, instructor, other_instructor):
    course = make_course()
    with pytest.raises(UnauthorizedError):
        service.update_course(course["id"], other_instructor, {"title": "Hijacked"})
    with pytest.raises(ValidationError) as exc:
        service.update_course(course["id"], instructor, {"instructor_id": "instr-2"})
    assert exc.value.code == "invalid_field"
    updated = service.update_course(course["id"], instructor, {"title": "Algebra II", "enrollment_limit": 12})
    assert updated["title"] == "Algebra II"
    assert updated["enrollment_limit"] == 12
    assert updated["updated_at"] == "2024-06-01T09:00:00"


def test_publish_and_unpublish(service, seeded, make_course, instructor):
    course = make_course()
    assert service.unpublish_course(course["id"], instructor)["status"] == "draft"
    published = service.publish_course(course["id"], instructor)
    assert published["is_published"] is True
    assert published["status"] == "published"
    assert published["updated_at"] == "2024-06-01T09:00:00"


def test_delete_blocked_by_active_enrollment(service, store, seeded, make_course, instructor, student):
    course = make_course()
    enrollment = store.insert(
        "enrollments", [{"course_id": course["id"], "student_id": student.user_id, "status": "active"}]
    )[0]
    with pytest.raises(ConflictError) as exc:
        service.delete_course(course["id"], instructor)
    assert exc.value.code == "course_has_enrollments"
    store.update("enrollments", enrollment["id"], {"status": "dropped"})
    assert service.delete_course(course["id"], instructor) is True
    assert store.rows("courses") == []
    assert store.rows("enrollments") == []


def test_instructor_views(service, store, seeded, make_course, instructor, student):
    course = make_course()
    make_course(title="Draft", is_published=False)
    store.insert("enrollments", [{"course_id": course["id"], "student_id": student.user_id, "status": "active"}])
    store.insert("sessions", [{"course_id": course["id"], "title": "S1", "session_date": "2024-06-03T10:00:00"}])
    listing = {c["title"]: c for c in service.list_instructor_courses(instructor)}
    assert listing["Algebra Basics"]["enrollment_count"] == 1
    assert listing["Algebra Basics"]["session_count"] == 1
    assert service.course_stats(instructor) == {
        "total_courses": 2,
        "published_courses": 1,
        "draft_courses": 1,
        "total_enrollments": 1,
    }
