"""
core/errors.py -- Named failures raised by the store ratings core.

Every failure the core can signal is one of these classes, so the HTTP layer
maps them to status codes in one place (api/main.py) instead of inspecting
messages. Each carries a human-readable message; `code` is the stable
machine-readable identifier used in the ErrorResponse envelope.

Layer rule: no imports from api/, auth/ or catalog/.
"""

from __future__ import annotations


class RatingAppError(Exception):
    """Base class for all domain failures."""

    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class Unauthenticated(RatingAppError):
    """Credentials are missing or invalid. Raised before any role evaluation."""

    code = "unauthorized"


class Forbidden(RatingAppError):
    """The actor is authenticated but the access policy denies the operation."""

    code = "forbidden"


class NotFound(RatingAppError):
    code = "not_found"


class Conflict(RatingAppError):
    """A uniqueness rule was violated (duplicate email, store already owned, ...)."""

    code = "conflict"


class InvalidInput(RatingAppError):
    code = "invalid_input"


class StorageUnavailable(RatingAppError):
    """The database could not be reached. Never retried by the core."""

    code = "storage_unavailable"
