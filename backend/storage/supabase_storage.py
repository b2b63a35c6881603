"""
Supabase-backed object storage adapter.

This adapter implements ObjectStorage using a provided Supabase client.
It is duck-typed to avoid a hard dependency during testing. The client is
expected to expose `.storage.from_(bucket)` which returns an object offering:

- upload(path, body, file_options) -> Any
- get_public_url(path) -> str | { publicUrl | public_url | data: {...} }
- remove([path]) -> Any

Security:
- Resource and avatar buckets are public-read; writes require a client
  initialized with the caller's token (row-level storage rules) or the
  Service Role key.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from .ports import ObjectStorage

logger = logging.getLogger("tutorhub.storage")


class SupabaseObjectStorage(ObjectStorage):
    """Object storage using a supabase client for Storage operations."""

    def __init__(self, client: Any, *, cache_control: str = "3600"):
        self._client = client
        self._cache_control = cache_control

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either a supabase client or a storage3 client.

        Supports two client shapes:
        - supabase.create_client(...): expose `.storage.from_(bucket)`
        - storage3 SyncStorageClient: expose `.from_(bucket)` directly
        """
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _relative_key(bucket: str, key: str) -> str:
        # storage3 prepends the bucket id itself
        norm_key = (key or "").lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        if not norm_key or ".." in norm_key.split("/"):
            raise ValueError("invalid_storage_key")
        return norm_key

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    # --- Protocol methods --------------------------------------------------------

    def upload(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """Upload a binary object without overwriting an existing one.

        Raises:
            Propagates client exceptions. No return value on success.
        """
        b = self._bucket(bucket)
        norm_key = self._relative_key(bucket, key)
        # Some client versions expect file options with either kebab or camel case.
        opts = {
            "content-type": content_type,
            "contentType": content_type,
            "cache-control": self._cache_control,
            "upsert": "false",
        }
        b.upload(norm_key, body, opts)
        logger.info("uploaded object bucket=%s size=%s", bucket, len(body))

    def public_url(self, *, bucket: str, key: str) -> str:
        b = self._bucket(bucket)
        norm_key = self._relative_key(bucket, key)
        res = b.get_public_url(norm_key)
        url = None
        if isinstance(res, str):
            url = res
        elif isinstance(res, dict):
            url = self._first_key(res, "publicUrl", "public_url", "publicURL")
            data = res.get("data") if "data" in res else None
            if url is None and isinstance(data, dict):
                url = self._first_key(data, "publicUrl", "public_url", "publicURL")
        if not url:
            raise RuntimeError("failed_to_resolve_public_url")
        # Some client versions append an empty query marker.
        return str(url).rstrip("?")

    def remove(self, *, bucket: str, key: str) -> None:
        b = self._bucket(bucket)
        b.remove([self._relative_key(bucket, key)])


__all__ = ["SupabaseObjectStorage"]
