"""
Configuration and startup security checks for TutorHub.

Why: Marketplace data (children's profiles, payments-adjacent enrollment
records) must never be served from an in-memory store or over plain HTTP in
production. This module provides a single guard that enforces minimal
production safety constraints without burdening local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

_PLACEHOLDERS = ("DUMMY_DO_NOT_USE", "CHANGE_ME", "YOUR_")


def current_env() -> str:
    return (os.getenv("TUTORHUB_ENV", "dev") or "dev").strip().lower()


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _is_placeholder(value: str) -> bool:
    upper = value.strip().upper()
    return not upper or any(upper.startswith(p) for p in _PLACEHOLDERS)


def is_production() -> bool:
    return _is_prod_like(current_env())


def supabase_configured() -> bool:
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    return bool(url and key)


def record_store_backend() -> str:
    """Return "memory" or "supabase" (RECORD_STORE, default by configuration)."""
    raw = (os.getenv("RECORD_STORE") or "").strip().lower()
    if raw in ("memory", "supabase"):
        return raw
    return "supabase" if supabase_configured() else "memory"


def notifications_enabled() -> bool:
    raw = (os.getenv("NOTIFICATIONS_ENABLED", "true") or "").strip().lower()
    return raw in ("1", "true", "yes")


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/staging only):
    - SUPABASE_URL must be set and use https.
    - SUPABASE_SERVICE_ROLE_KEY must be set and not a known placeholder.
    - RECORD_STORE must not select the in-memory store.
    """

    if not _is_prod_like(current_env()):
        return  # dev/test remain permissive

    url = (os.getenv("SUPABASE_URL") or "").strip()
    if not url:
        raise SystemExit("Refusing to start: SUPABASE_URL is unset in production.")
    if not url.lower().startswith("https://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production.")

    srole = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")
    if _is_placeholder(srole):
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    if record_store_backend() == "memory":
        raise SystemExit(
            "Refusing to start: RECORD_STORE=memory is not allowed in production/staging."
        )


__all__ = [
    "current_env",
    "is_production",
    "supabase_configured",
    "record_store_backend",
    "notifications_enabled",
    "ensure_secure_config_on_startup",
]
