"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between tools and web layer.
- Roles come from user metadata written at sign-up; unknown values are dropped.
"""

from __future__ import annotations

from typing import Iterable

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "parent", "instructor", "admin"})
DEFAULT_ROLE = "student"
MIN_PASSWORD_LENGTH = 8


def normalize_roles(raw: object) -> frozenset[str]:
    """Accept a single role string or an iterable; keep only allowed roles."""
    if raw is None:
        return frozenset()
    items: Iterable[object] = [raw] if isinstance(raw, str) else raw  # type: ignore[assignment]
    try:
        values = {str(r).strip().lower() for r in items}
    except TypeError:
        return frozenset()
    return frozenset(v for v in values if v in ALLOWED_ROLES)


__all__ = ["ALLOWED_ROLES", "DEFAULT_ROLE", "MIN_PASSWORD_LENGTH", "normalize_roles"]
