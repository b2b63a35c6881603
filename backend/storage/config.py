"""
Centralized storage configuration for buckets and size limits.

Behavior:
    - Bucket names default to "courses", "profiles" and "homework"; each can
      be overridden via COURSES_BUCKET / PROFILES_BUCKET / HOMEWORK_BUCKET.
    - Size limits read env overrides but never exceed the contract maximum.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os

COURSES_BUCKET_DEFAULT = "courses"
PROFILES_BUCKET_DEFAULT = "profiles"
HOMEWORK_BUCKET_DEFAULT = "homework"

RESOURCE_MAX_UPLOAD_BYTES = 100 * 1024 * 1024
AVATAR_MAX_UPLOAD_BYTES = 5 * 1024 * 1024
AVATAR_CONTENT_TYPES = frozenset({"image/jpeg", "image/png", "image/webp", "image/gif"})


def get_courses_bucket() -> str:
    return (os.getenv("COURSES_BUCKET") or COURSES_BUCKET_DEFAULT).strip()


def get_profiles_bucket() -> str:
    return (os.getenv("PROFILES_BUCKET") or PROFILES_BUCKET_DEFAULT).strip()


def get_homework_bucket() -> str:
    return (os.getenv("HOMEWORK_BUCKET") or HOMEWORK_BUCKET_DEFAULT).strip()


# --- Size limits --------------------------------------------------------------

def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_resource_max_upload_bytes() -> int:
    """Maximum upload size for course resources (default/clamped 100 MiB)."""
    return _parse_int_env("RESOURCE_MAX_UPLOAD_BYTES", RESOURCE_MAX_UPLOAD_BYTES, contract_max=RESOURCE_MAX_UPLOAD_BYTES)


def get_avatar_max_upload_bytes() -> int:
    """Maximum upload size for profile pictures (default/clamped 5 MiB)."""
    return _parse_int_env("AVATAR_MAX_UPLOAD_BYTES", AVATAR_MAX_UPLOAD_BYTES, contract_max=AVATAR_MAX_UPLOAD_BYTES)


__all__ = [
    "COURSES_BUCKET_DEFAULT",
    "PROFILES_BUCKET_DEFAULT",
    "HOMEWORK_BUCKET_DEFAULT",
    "RESOURCE_MAX_UPLOAD_BYTES",
    "AVATAR_MAX_UPLOAD_BYTES",
    "AVATAR_CONTENT_TYPES",
    "get_courses_bucket",
    "get_profiles_bucket",
    "get_homework_bucket",
    "get_resource_max_upload_bytes",
    "get_avatar_max_upload_bytes",
]
