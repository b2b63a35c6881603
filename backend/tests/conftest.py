"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend, put `backend/` on sys.path and
give every test a clean environment plus freshly reset service wiring so no
adapter (or Supabase setting from a developer shell) leaks between tests.
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

BACKEND_DIR = Path(__file__).resolve().parents[1]
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(BACKEND_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)

from marketplace.context import ActorContext  # noqa: E402
from records.memory import InMemoryRecordStore  # noqa: E402

_ENV_VARS = (
    "TUTORHUB_ENV",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_ANON_KEY",
    "RECORD_STORE",
    "NOTIFICATIONS_ENABLED",
    "COURSES_BUCKET",
    "PROFILES_BUCKET",
    "HOMEWORK_BUCKET",
    "RESOURCE_MAX_UPLOAD_BYTES",
    "AVATAR_MAX_UPLOAD_BYTES",
    "ALLOWED_REGISTRATION_DOMAINS",
    "APP_BASE_URL",
    "TUTORHUB_TRUST_PROXY",
)

# Fixed "now" for deterministic schedule and timeline assertions.
FIXED_NOW = datetime(2024, 6, 1, 9, 0, 0)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_env_and_wiring(monkeypatch: pytest.MonkeyPatch):
    """Strip deployment settings and reset web wiring around each test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    from web import wiring

    wiring.reset()
    yield
    wiring.reset()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def instructor() -> ActorContext:
    return ActorContext.of("instr-1", ("instructor",), "ada@example.org")


@pytest.fixture
def other_instructor() -> ActorContext:
    return ActorContext.of("instr-2", ("instructor",), "other@example.org")


@pytest.fixture
def student() -> ActorContext:
    return ActorContext.of("stud-1", ("student",), "kid@example.org")


@pytest.fixture
def parent() -> ActorContext:
    return ActorContext.of("parent-1", ("parent",), "mum@example.org")


@pytest.fixture
def seeded(store: InMemoryRecordStore, instructor, other_instructor, student, parent):
    """Profiles for every actor fixture, plus one parent-managed student."""
    store.insert(
        "profiles",
        [
            {"id": instructor.user_id, "first_name": "Ada", "last_name": "Lovelace", "role": "instructor",
             "email": instructor.email, "bio": "Maths tutor", "expertise": ["algebra"]},
            {"id": other_instructor.user_id, "first_name": "Alan", "last_name": "Turing", "role": "instructor",
             "email": other_instructor.email},
            {"id": student.user_id, "first_name": "Sam", "last_name": "Student", "role": "student",
             "email": student.email},
            {"id": parent.user_id, "first_name": "Pat", "last_name": "Parent", "role": "parent",
             "email": parent.email},
        ],
    )
    child = store.insert("students", [{"id": "child-1", "parent_id": parent.user_id, "first_name": "Kim",
                                       "last_name": "Parent", "age": 9}])[0]
    return {"store": store, "child": child}


class RecordingStorage:
    """Object storage fake that keeps uploads in a dict keyed by (bucket, key)."""

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], tuple[bytes, str]] = {}
        self.fail_uploads = False

    def upload(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        if self.fail_uploads:
            raise RuntimeError("upload rejected")
        self.objects[(bucket, key)] = (body, content_type)

    def public_url(self, *, bucket: str, key: str) -> str:
        return f"https://storage.example.org/{bucket}/{key}"

    def remove(self, *, bucket: str, key: str) -> None:
        self.objects.pop((bucket, key), None)


@pytest.fixture
def object_storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def api(store, object_storage):
    """Wire the web app to in-memory adapters and hand out bearer headers.

    `api.headers(actor)` issues a token for an ActorContext fixture.
    """
    from identity_access.auth import InMemoryAuthGateway
    from marketplace.notifications import NullNotificationGateway
    from web import wiring

    gateway = InMemoryAuthGateway()
    notifications = NullNotificationGateway()
    wiring.set_record_store(store)
    wiring.set_object_storage(object_storage)
    wiring.set_notifications(notifications)
    wiring.set_auth_gateway(gateway)

    def headers(actor: ActorContext) -> dict:
        token = gateway.issue_token(actor.user_id, actor.roles, actor.email)
        return {"Authorization": f"Bearer {token}"}

    return SimpleNamespace(
        store=store, storage=object_storage, gateway=gateway, notifications=notifications, headers=headers
    )


@pytest.fixture
def make_course(store: InMemoryRecordStore, instructor):
    """Insert a course row directly (bypassing the service) with overrides."""

    def _make(**overrides):
        row = {
            "title": "Algebra Basics",
            "description": "Intro to algebra",
            "category": "math",
            "course_type": "group",
            "instructor_id": instructor.user_id,
            "is_published": True,
            "status": "published",
            "is_self_paced": False,
            "enrollment_limit": None,
            "selected_days": [],
            "frequency": "weekly",
        }
        row.update(overrides)
        return store.insert("courses", [row])[0]

    return _make
