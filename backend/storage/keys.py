"""
Object key builders for TutorHub uploads.

Each upload kind gets its own path shape so buckets stay browsable and keys
never collide:
    - Course resources: courses/{course}/resources/{uuid}.{ext}
    - Profile avatars: profiles/{user}/avatar-{uuid}.{ext}
    - Homework files: homework/{homework}/{student}/{epoch_ms}-{uuid}.{ext}

Segments are reduced to ASCII [A-Za-z0-9._-] so user-provided ids or file
names cannot climb out of their prefix; extensions are lowercased.
"""
from __future__ import annotations

import os
import re
import unicodedata

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")


def _sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("-", ascii_value).strip("-_.")
    return sanitized or fallback


def _sanitize_ext(filename: str | None, default_ext: str = "") -> str:
    if not filename:
        ext = default_ext
    else:
        _, ext = os.path.splitext(os.path.basename(filename))
    ext = (ext or default_ext or "").lower()
    ext = "".join(ch for ch in ext if ch.isalnum() or ch == ".")
    ext = ext.strip(".")
    return f".{ext}" if ext else ""


def make_resource_key(*, course_id: str, filename: str, uuid_hex: str) -> str:
    """Returns: courses/{course}/resources/{uuid}.{ext}"""
    c = _sanitize_segment(course_id, fallback="course")
    hexpart = (uuid_hex or "").strip() or "file"
    return f"courses/{c}/resources/{hexpart}{_sanitize_ext(filename)}"


def make_avatar_key(*, user_id: str, filename: str, uuid_hex: str) -> str:
    """Returns: profiles/{user}/avatar-{uuid}.{ext}"""
    u = _sanitize_segment(user_id, fallback="user")
    hexpart = (uuid_hex or "").strip() or "file"
    return f"profiles/{u}/avatar-{hexpart}{_sanitize_ext(filename)}"


def make_submission_key(*, homework_id: str, student_id: str, filename: str, epoch_ms: int, uuid_hex: str) -> str:
    """Returns: homework/{homework}/{student}/{epoch_ms}-{uuid}.{ext}"""
    h = _sanitize_segment(homework_id, fallback="homework")
    s = _sanitize_segment(student_id, fallback="student")
    hexpart = (uuid_hex or "").strip() or "file"
    return f"homework/{h}/{s}/{int(epoch_ms)}-{hexpart}{_sanitize_ext(filename)}"


__all__ = ["make_resource_key", "make_avatar_key", "make_submission_key"]
