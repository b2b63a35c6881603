"""
Enrollments service: lifecycle, duplicates, capacity, parents and confirmation mails.
"""
from __future__ import annotations

import pytest

from marketplace.errors import ConflictError, NotFoundError, UnauthorizedError, ValidationError
from marketplace.notifications import ENROLLMENT_EMAIL, NullNotificationGateway
from marketplace.services.enrollments import EnrollmentsService


@pytest.fixture
def notifications():
    return NullNotificationGateway()


@pytest.fixture
def service(store, clock, notifications):
    return EnrollmentsService(store, notifications=notifications, clock=clock)


def test_enroll_creates_active_row_and_sends_confirmation(service, notifications, seeded, make_course, student):
    course = make_course(start_date="2024-06-03")
    enrollment = service.enroll(course["id"], student, student_id=student.user_id)
    assert enrollment["status"] == "active"
    assert enrollment["progress"] == 0
    assert enrollment["student_id"] == student.user_id
    assert enrollment["student_profile_id"] is None
    assert enrollment["enrolled_at"] == "2024-06-01T09:00:00"
    [(name, payload)] = notifications.sent
    assert name == ENROLLMENT_EMAIL
    assert payload["studentEmail"] == "kid@example.org"
    assert payload["studentName"] == "Sam Student"
    assert payload["instructorName"] == "Ada Lovelace"
    assert payload["courseTitle"] == "Algebra Basics"


def test_double_enroll_is_a_conflict(service, seeded, make_course, student):
    course = make_course()
    service.enroll(course["id"], student, student_id=student.user_id)
    with pytest.raises(ConflictError) as exc:
        service.enroll(course["id"], student, student_id=student.user_id)
    assert exc.value.code == "already_enrolled"


def test_reenroll_after_withdraw_reuses_row(service, store, seeded, make_course, student, instructor):
    course = make_course()
    first = service.enroll(course["id"], student, student_id=student.user_id)
    service.update_enrollment(first["id"], instructor, {"progress": 40})
    dropped = service.withdraw(course["id"], student)
    assert dropped["status"] == "dropped"
    assert dropped["dropped_at"]
    with pytest.raises(ConflictError) as exc:
        service.withdraw(course["id"], student)
    assert exc.value.code == "already_dropped"
    again = service.enroll(course["id"], student, student_id=student.user_id)
    assert again["id"] == first["id"]
    assert again["status"] == "active"
    assert again["progress"] == 0
    assert again["dropped_at"] is None
    assert len(store.rows("enrollments")) == 1


def test_course_full(service, store, seeded, make_course, student):
    course = make_course(enrollment_limit=1)
    store.insert("enrollments", [{"course_id": course["id"], "student_id": "someone", "status": "active"}])
    with pytest.raises(ConflictError) as exc:
        service.enroll(course["id"], student, student_id=student.user_id)
    assert exc.value.code == "course_full"


def test_enroll_rules(service, seeded, make_course, student, instructor):
    draft = make_course(is_published=False)
    with pytest.raises(ConflictError) as exc:
        service.enroll(draft["id"], student, student_id=student.user_id)
    assert exc.value.code == "course_not_published"
    with pytest.raises(NotFoundError):
        service.enroll("missing", student, student_id=student.user_id)
    own = make_course()
    with pytest.raises(ValidationError) as exc:
        service.enroll(own["id"], instructor, student_id=instructor.user_id)
    assert exc.value.code == "cannot_enroll_in_own_course"
    with pytest.raises(UnauthorizedError):
        service.enroll(own["id"], student, student_id="someone-else")
    with pytest.raises(ValidationError) as exc:
        service.enroll(own["id"], student)
    assert exc.value.code == "invalid_student"


def test_notification_failure_does_not_fail_enrollment(store, seeded, make_course, student, clock):
    class _Broken:
        def invoke(self, function_name, payload):
            raise RuntimeError("edge function down")

    service = EnrollmentsService(store, notifications=_Broken(), clock=clock)
    course = make_course()
    enrollment = service.enroll(course["id"], student, student_id=student.user_id)
    assert enrollment["status"] == "active"
    assert len(store.rows("enrollments")) == 1


def test_parent_enrolls_child_profile(service, seeded, make_course, parent, other_instructor):
    child = seeded["child"]
    course = make_course()
    enrollment = service.enroll(course["id"], parent, student_profile_id=child["id"])
    assert enrollment["student_profile_id"] == child["id"]
    assert enrollment["student_id"] is None
    assert service.check_enrollment(course["id"], parent, student_profile_id=child["id"])["id"] == enrollment["id"]
    assert service.check_enrollment(course["id"], parent) is None
    listing = service.list_student_enrollments(parent, student_profile_id=child["id"])
    assert [r["course"]["title"] for r in listing] == ["Algebra Basics"]
    assert listing[0]["course"]["instructor_name"] == "Ada Lovelace"
    with pytest.raises(UnauthorizedError):
        service.enroll(course["id"], other_instructor, student_profile_id=child["id"])


def test_list_student_enrollments_filters_by_status(service, seeded, make_course, student):
    active = make_course(title="Active course")
    dropped = make_course(title="Dropped course")
    service.enroll(active["id"], student, student_id=student.user_id)
    service.enroll(dropped["id"], student, student_id=student.user_id)
    service.withdraw(dropped["id"], student)
    assert [r["course"]["title"] for r in service.list_student_enrollments(student, status="active")] == ["Active course"]
    with pytest.raises(ValidationError):
        service.list_student_enrollments(student, status="paused")


def test_course_roster_and_updates(service, seeded, make_course, student, parent, instructor, other_instructor):
    course = make_course()
    own = service.enroll(course["id"], student, student_id=student.user_id)
    service.enroll(course["id"], parent, student_profile_id=seeded["child"]["id"])
    roster = service.list_course_enrollments(course["id"], instructor)
    assert sorted(r["student_name"] for r in roster) == ["Kim Parent", "Sam Student"]
    with pytest.raises(UnauthorizedError):
        service.list_course_enrollments(course["id"], other_instructor)
    with pytest.raises(ValidationError) as exc:
        service.update_enrollment(own["id"], instructor, {"progress": 101})
    assert exc.value.code == "invalid_progress"
    done = service.update_enrollment(own["id"], instructor, {"status": "completed", "progress": 100})
    assert done["status"] == "completed"
    assert done["completed_at"] == "2024-06-01T09:00:00"
    with pytest.raises(ConflictError) as exc:
        service.enroll(course["id"], student, student_id=student.user_id)
    assert exc.value.code == "already_completed"


def test_stats_and_completion_rate(service, seeded, make_course, student, parent, instructor):
    course = make_course()
    own = service.enroll(course["id"], student, student_id=student.user_id)
    child = service.enroll(course["id"], parent, student_profile_id=seeded["child"]["id"])
    service.update_enrollment(own["id"], instructor, {"status": "completed"})
    service.update_enrollment(child["id"], instructor, {"progress": 50})
    stats = service.enrollment_stats(instructor)
    assert stats["total_enrollments"] == 2
    assert stats["active_enrollments"] == 1
    assert stats["completed_enrollments"] == 1
    assert stats["enrollments_this_month"] == 2
    assert stats["average_progress"] == 50
    assert stats["enrollments_by_course"] == {
        "Algebra Basics": {"total": 2, "active": 1, "completed": 1, "dropped": 0}
    }
    rate = service.course_completion_rate(course["id"], instructor)
    assert rate["completion_rate"] == 50
    assert rate["total_enrollments"] == 2
