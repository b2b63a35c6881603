"""
Object storage port used by resource uploads and avatars.

Keep this small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

from typing import Protocol


class ObjectStorage(Protocol):
    """Upload bytes under a generated key and hand back a public URL.

    Permissions:
        Implementations must enforce bucket/key ACLs; callers only pass keys
        built by `storage.keys`.
    """

    def upload(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None: ...

    def public_url(self, *, bucket: str, key: str) -> str: ...

    def remove(self, *, bucket: str, key: str) -> None: ...


class NullObjectStorage:
    """Default adapter when no storage backend is configured."""

    def upload(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        raise RuntimeError("storage_adapter_not_configured")

    def public_url(self, *, bucket: str, key: str) -> str:
        raise RuntimeError("storage_adapter_not_configured")

    def remove(self, *, bucket: str, key: str) -> None:
        raise RuntimeError("storage_adapter_not_configured")


__all__ = ["ObjectStorage", "NullObjectStorage"]
