"""
Course catalog and course management API routes.

Why:
    Parents and students browse the published catalog without signing in;
    instructors create, edit, publish and delete their own courses. Scheduled
    group courses get their initial sessions generated on creation.

Permissions:
    - GET /api/courses and GET /api/courses/{id}: public (unpublished courses
      are only visible to their instructor).
    - Everything else requires an authenticated actor; mutations require
      course ownership (checked by the service).
"""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from marketplace.errors import MarketplaceError

from .. import wiring
from .common import current_actor, error_response, json_private, require_actor

courses_router = APIRouter(tags=["Courses"])


class CourseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1, max_length=100)
    course_type: str = "group"
    session_duration: Optional[int] = None
    enrollment_limit: Optional[int] = None
    is_self_paced: bool = False
    meeting_link: Optional[str] = None
    timezone: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    has_end_date: bool = False
    session_time: Optional[str] = None
    selected_days: List[str] = Field(default_factory=list)
    frequency: str = "weekly"

    @field_validator("meeting_link", "timezone", "start_date", "end_date", "session_time")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v


class CourseUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    course_type: Optional[str] = None
    session_duration: Optional[int] = None
    enrollment_limit: Optional[int] = None
    is_self_paced: Optional[bool] = None
    meeting_link: Optional[str] = None
    timezone: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    has_end_date: Optional[bool] = None
    session_time: Optional[str] = None
    selected_days: Optional[List[str]] = None
    frequency: Optional[str] = None


@courses_router.get("/api/courses")
async def list_published_courses(category: Optional[str] = None, search: Optional[str] = None):
    """Public catalog of published courses with instructor, counts and rating."""
    try:
        items = wiring.courses_service().list_published_courses(category=category, search=search)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@courses_router.get("/api/courses/{course_id}")
async def get_course(request: Request, course_id: str):
    try:
        course = wiring.courses_service().get_course(course_id, current_actor(request))
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(course)


@courses_router.post("/api/courses")
async def create_course(request: Request, payload: CourseCreate):
    """Create (and publish) a course; scheduled group courses get sessions."""
    actor, error = require_actor(request)
    if error:
        return error
    try:
        result = wiring.courses_service().create_course(actor, payload.model_dump(exclude_none=True))
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(result, status_code=201)


@courses_router.get("/api/instructor/courses")
async def list_instructor_courses(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.courses_service().list_instructor_courses(actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@courses_router.get("/api/instructor/course-stats")
async def course_stats(request: Request):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        stats = wiring.courses_service().course_stats(actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(stats)


@courses_router.patch("/api/courses/{course_id}")
async def update_course(request: Request, course_id: str, payload: CourseUpdate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        course = wiring.courses_service().update_course(course_id, actor, payload.model_dump(exclude_unset=True))
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(course)


@courses_router.post("/api/courses/{course_id}/publish")
async def publish_course(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        course = wiring.courses_service().publish_course(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(course)


@courses_router.post("/api/courses/{course_id}/unpublish")
async def unpublish_course(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        course = wiring.courses_service().unpublish_course(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(course)


@courses_router.delete("/api/courses/{course_id}")
async def delete_course(request: Request, course_id: str):
    """Delete an owned course; refused with 409 while enrollments are not dropped."""
    actor, error = require_actor(request)
    if error:
        return error
    try:
        wiring.courses_service().delete_course(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})
