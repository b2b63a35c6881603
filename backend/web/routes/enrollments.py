"""
Enrollment API routes.

Why:
    Students enroll themselves; parents enroll the student profiles they
    manage (`student_profile_id`). Instructors see and update enrollments of
    their own courses.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel

from marketplace.errors import MarketplaceError

from .. import wiring
from .common import error_response, json_private, require_actor

enrollments_router = APIRouter(tags=["Enrollments"])


class EnrollPayload(BaseModel):
    student_profile_id: Optional[str] = None


class EnrollmentUpdate(BaseModel):
    status: Optional[str] = None
    progress: Optional[int] = None
    completed_at: Optional[str] = None


@enrollments_router.post("/api/courses/{course_id}/enroll")
async def enroll(request: Request, course_id: str, payload: EnrollPayload):
    """Enroll the caller (or their student profile) in a published course.

    Errors: 409 already_enrolled | already_completed | course_full |
    course_not_published; 403 not_student_parent.
    """
    actor, error = require_actor(request)
    if error:
        return error
    identity = (
        {"student_profile_id": payload.student_profile_id}
        if payload.student_profile_id
        else {"student_id": actor.user_id}
    )
    try:
        enrollment = wiring.enrollments_service().enroll(course_id, actor, **identity)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(enrollment, status_code=201)


@enrollments_router.get("/api/courses/{course_id}/enrollment")
async def check_enrollment(request: Request, course_id: str, student_profile_id: Optional[str] = None):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        enrollment = wiring.enrollments_service().check_enrollment(
            course_id, actor, student_profile_id=student_profile_id
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private({"enrolled": bool(enrollment and enrollment.get("status") != "dropped"), "enrollment": enrollment})


@enrollments_router.delete("/api/courses/{course_id}/enrollment")
async def withdraw(request: Request, course_id: str, student_profile_id: Optional[str] = None):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        enrollment = wiring.enrollments_service().withdraw(course_id, actor, student_profile_id=student_profile_id)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(enrollment)


@enrollments_router.get("/api/enrollments")
async def list_student_enrollments(
    request: Request, student_profile_id: Optional[str] = None, status: Optional[str] = None
):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.enrollments_service().list_student_enrollments(
            actor, student_profile_id=student_profile_id, status=status
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@enrollments_router.get("/api/courses/{course_id}/enrollments")
async def list_course_enrollments(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.enrollments_service().list_course_enrollments(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@enrollments_router.patch("/api/enrollments/{enrollment_id}")
async def update_enrollment(request: Request, enrollment_id: str, payload: EnrollmentUpdate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        enrollment = wiring.enrollments_service().update_enrollment(
            enrollment_id, actor, payload.model_dump(exclude_unset=True)
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(enrollment)


@enrollments_router.get("/api/instructor/enrollment-stats")
async def enrollment_stats(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        stats = wiring.enrollments_service().enrollment_stats(actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(stats)


@enrollments_router.get("/api/courses/{course_id}/completion-rate")
async def course_completion_rate(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        stats = wiring.enrollments_service().course_completion_rate(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(stats)
