"""
Service wiring for the web adapter.

Why:
    Routes stay thin: they ask this module for a ready service and never touch
    adapters directly. The default wiring follows configuration (Supabase when
    SUPABASE_URL/SUPABASE_SERVICE_ROLE_KEY are present, in-memory otherwise);
    tests swap individual adapters with the `set_*` helpers.

Security:
    The service role client bypasses row-level rules, so every service call
    still performs its advisory ownership checks with the resolved actor.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Optional

from identity_access.auth import AuthGateway, InMemoryAuthGateway, SupabaseAuthGateway
from marketplace.notifications import NotificationGateway, NullNotificationGateway, SupabaseFunctionGateway
from marketplace.services.courses import CoursesService
from marketplace.services.enrollments import EnrollmentsService
from marketplace.services.homework import HomeworkService
from marketplace.services.profiles import ProfilesService
from marketplace.services.ratings import RatingsService
from marketplace.services.resources import ResourcesService
from marketplace.services.sessions import SessionsService
from records.memory import InMemoryRecordStore
from records.ports import RecordStore
from records.supabase_store import SupabaseRecordStore
from storage.ports import NullObjectStorage, ObjectStorage
from storage.supabase_storage import SupabaseObjectStorage

from .config import notifications_enabled, record_store_backend, supabase_configured

logger = logging.getLogger("tutorhub.web")

_RECORD_STORE: Optional[RecordStore] = None
_OBJECT_STORAGE: Optional[ObjectStorage] = None
_NOTIFICATIONS: Optional[NotificationGateway] = None
_AUTH_GATEWAY: Optional[AuthGateway] = None
_SUPABASE_CLIENT: Any = None


def _supabase_client() -> Any:
    """Create (once) the service-role supabase client."""
    global _SUPABASE_CLIENT
    if _SUPABASE_CLIENT is None:
        from supabase import create_client

        url = (os.getenv("SUPABASE_URL") or "").strip()
        key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
        _SUPABASE_CLIENT = create_client(url, key)
        logger.info("Supabase client created")
    return _SUPABASE_CLIENT


def get_record_store() -> RecordStore:
    global _RECORD_STORE
    if _RECORD_STORE is None:
        if record_store_backend() == "supabase":
            _RECORD_STORE = SupabaseRecordStore(_supabase_client())
        else:
            logger.warning("Record store: in-memory (data is lost on restart)")
            _RECORD_STORE = InMemoryRecordStore()
    return _RECORD_STORE


def get_object_storage() -> ObjectStorage:
    global _OBJECT_STORAGE
    if _OBJECT_STORAGE is None:
        if supabase_configured():
            _OBJECT_STORAGE = SupabaseObjectStorage(_supabase_client())
        else:
            _OBJECT_STORAGE = NullObjectStorage()
    return _OBJECT_STORAGE


def get_notifications() -> Optional[NotificationGateway]:
    global _NOTIFICATIONS
    if _NOTIFICATIONS is None:
        if supabase_configured() and notifications_enabled():
            _NOTIFICATIONS = SupabaseFunctionGateway.from_env()
        else:
            _NOTIFICATIONS = NullNotificationGateway()
    return _NOTIFICATIONS


def get_auth_gateway() -> AuthGateway:
    global _AUTH_GATEWAY
    if _AUTH_GATEWAY is None:
        if supabase_configured():
            _AUTH_GATEWAY = SupabaseAuthGateway(_supabase_client())
        else:
            _AUTH_GATEWAY = InMemoryAuthGateway()
    return _AUTH_GATEWAY


def set_record_store(store: Optional[RecordStore]) -> None:
    """Allow tests to swap the record store (None re-enables default wiring)."""
    global _RECORD_STORE
    _RECORD_STORE = store


def set_object_storage(storage: Optional[ObjectStorage]) -> None:
    global _OBJECT_STORAGE
    _OBJECT_STORAGE = storage


def set_notifications(gateway: Optional[NotificationGateway]) -> None:
    global _NOTIFICATIONS
    _NOTIFICATIONS = gateway


def set_auth_gateway(gateway: Optional[AuthGateway]) -> None:
    global _AUTH_GATEWAY
    _AUTH_GATEWAY = gateway


def reset() -> None:
    """Drop every wired adapter; the next access rebuilds from configuration."""
    global _SUPABASE_CLIENT
    set_record_store(None)
    set_object_storage(None)
    set_notifications(None)
    set_auth_gateway(None)
    _SUPABASE_CLIENT = None


def sessions_service() -> SessionsService:
    return SessionsService(get_record_store(), notifications=get_notifications())


def courses_service() -> CoursesService:
    return CoursesService(get_record_store(), sessions_service())


def enrollments_service() -> EnrollmentsService:
    return EnrollmentsService(get_record_store(), notifications=get_notifications())


def homework_service() -> HomeworkService:
    return HomeworkService(get_record_store(), get_object_storage())


def resources_service() -> ResourcesService:
    return ResourcesService(get_record_store(), get_object_storage())


def ratings_service() -> RatingsService:
    return RatingsService(get_record_store())


def profiles_service() -> ProfilesService:
    return ProfilesService(get_record_store(), get_object_storage())


__all__ = [
    "get_record_store",
    "get_object_storage",
    "get_notifications",
    "get_auth_gateway",
    "set_record_store",
    "set_object_storage",
    "set_notifications",
    "set_auth_gateway",
    "reset",
    "sessions_service",
    "courses_service",
    "enrollments_service",
    "homework_service",
    "resources_service",
    "ratings_service",
    "profiles_service",
]
