"""
Typed errors raised by services.

Services never raise HTTPException; app.main maps AppError subclasses to
HTTP responses so "not found", "forbidden" and "conflict" stay distinguishable.
"""

from typing import Optional
from postgrest.exceptions import APIError


class AppError(Exception):
    status_code = 500

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(AppError):
    status_code = 404


class ForbiddenError(AppError):
    status_code = 403


class ConflictError(AppError):
    status_code = 409


class InvalidArgumentError(AppError):
    status_code = 400


# Postgres SQLSTATE codes surfaced through PostgREST
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"

# Prefixes used by the transactional functions in supabase/migrations
_PREFIXED_KINDS = {
    "not_found:": NotFoundError,
    "forbidden:": ForbiddenError,
    "conflict:": ConflictError,
    "invalid:": InvalidArgumentError,
}


def translate_store_error(exc: APIError, conflict_detail: Optional[str] = None) -> Optional[AppError]:
    """Map a PostgREST error to an AppError, or None when it is not a known business error."""
    message = exc.message or ""
    for prefix, error_cls in _PREFIXED_KINDS.items():
        if message.startswith(prefix):
            return error_cls(message[len(prefix):].strip())
    if exc.code == UNIQUE_VIOLATION:
        return ConflictError(conflict_detail or "Resource already exists")
    if exc.code == FOREIGN_KEY_VIOLATION:
        return NotFoundError("Referenced resource not found")
    return None


def raise_store_error(exc: APIError, conflict_detail: Optional[str] = None) -> None:
    """Re-raise a store error as its typed AppError, or unchanged when unknown."""
    error = translate_store_error(exc, conflict_detail)
    if error is not None:
        raise error from exc
    raise exc
