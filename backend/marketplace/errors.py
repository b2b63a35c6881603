"""
Error taxonomy for marketplace services.

Each error carries a stable machine-readable `code` which is also the
exception message, e.g. `ConflictError("already_enrolled")`. The web adapter
maps the classes to HTTP status codes; services never build responses.

`OperationError` wraps record store failures and passes the store's message
through verbatim.
"""
from __future__ import annotations


class MarketplaceError(Exception):
    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


class ValidationError(MarketplaceError, ValueError):
    """Missing or malformed input."""


class UnauthorizedError(MarketplaceError, PermissionError):
    """Actor does not own (or may not access) the referenced record."""


class NotFoundError(MarketplaceError, LookupError):
    """Referenced record is absent."""


class ConflictError(MarketplaceError):
    """Duplicate or state-conflicting request (already enrolled, ...)."""


class OperationError(MarketplaceError, RuntimeError):
    """The record store, storage or auth backend reported a failure."""


__all__ = [
    "MarketplaceError",
    "ValidationError",
    "UnauthorizedError",
    "NotFoundError",
    "ConflictError",
    "OperationError",
]
