"""
Homework and submission API routes.

Uploads:
    Submission files are sent as the raw request body with `?filename=` and
    the file's Content-Type; the response carries the public URL to pass as
    `file_url` when submitting.
"""
from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Request
from fastapi.responses import Response
from pydantic import BaseModel, Field

from marketplace.errors import MarketplaceError

from .. import wiring
from .common import error_response, json_private, require_actor

homework_router = APIRouter(tags=["Homework"])


class HomeworkCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    due_date: Optional[str] = None
    points: Optional[int] = None
    submission_type: Optional[str] = None
    is_published: bool = False
    attachments: Optional[List[Any]] = None


class HomeworkUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[str] = None
    points: Optional[int] = None
    submission_type: Optional[str] = None
    is_published: Optional[bool] = None
    attachments: Optional[List[Any]] = None


class SubmissionCreate(BaseModel):
    content: Optional[str] = None
    file_url: Optional[str] = None
    student_profile_id: Optional[str] = None


class GradePayload(BaseModel):
    grade: Optional[float] = None
    feedback: Optional[str] = None


@homework_router.get("/api/courses/{course_id}/homework")
async def list_course_homework(request: Request, course_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.homework_service().list_course_homework(course_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@homework_router.post("/api/courses/{course_id}/homework")
async def create_homework(request: Request, course_id: str, payload: HomeworkCreate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        homework = wiring.homework_service().create_homework(course_id, actor, payload.model_dump())
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(homework, status_code=201)


@homework_router.patch("/api/homework/{homework_id}")
async def update_homework(request: Request, homework_id: str, payload: HomeworkUpdate):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        homework = wiring.homework_service().update_homework(
            homework_id, actor, payload.model_dump(exclude_unset=True)
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(homework)


@homework_router.delete("/api/homework/{homework_id}")
async def delete_homework(request: Request, homework_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        wiring.homework_service().delete_homework(homework_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})


@homework_router.post("/api/homework/{homework_id}/submissions")
async def submit_homework(request: Request, homework_id: str, payload: SubmissionCreate):
    """Submit once per homework; a second attempt returns 409 already_submitted."""
    actor, error = require_actor(request)
    if error:
        return error
    data = payload.model_dump(exclude={"student_profile_id"})
    try:
        submission = wiring.homework_service().submit_homework(
            homework_id, actor, data, student_profile_id=payload.student_profile_id
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(submission, status_code=201)


@homework_router.post("/api/homework/{homework_id}/submission-file")
async def upload_submission_file(
    request: Request, homework_id: str, filename: str, student_profile_id: Optional[str] = None
):
    actor, error = require_actor(request)
    if error:
        return error
    body = await request.body()
    content_type = request.headers.get("content-type") or "application/octet-stream"
    try:
        result = wiring.homework_service().upload_submission_file(
            homework_id,
            actor,
            filename=filename,
            body=body,
            content_type=content_type,
            student_profile_id=student_profile_id,
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(result, status_code=201)


@homework_router.get("/api/homework/{homework_id}/submissions")
async def list_homework_submissions(request: Request, homework_id: str):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.homework_service().list_homework_submissions(homework_id, actor)
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)


@homework_router.patch("/api/submissions/{submission_id}/grade")
async def grade_submission(request: Request, submission_id: str, payload: GradePayload):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        submission = wiring.homework_service().grade_submission(
            submission_id, actor, grade=payload.grade, feedback=payload.feedback
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(submission)


@homework_router.get("/api/courses/{course_id}/my-submissions")
async def list_student_submissions(request: Request, course_id: str, student_profile_id: Optional[str] = None):
    actor, error = require_actor(request)
    if error:
        return error
    try:
        items = wiring.homework_service().list_student_submissions(
            course_id, actor, student_profile_id=student_profile_id
        )
    except MarketplaceError as exc:
        return error_response(exc)
    return json_private(items)
