"""
NoteMitra Backend — Custom Exception Hierarchy
================================================

What:  Application-specific exceptions for every error scenario of the catalog.
How:   Each exception carries a user-safe message, a machine-readable
       error_code and an optional context dict. Global exception handlers
       (registered in main.py) turn them into structured JSON responses.
Who:   Raised by services and the storage layer; caught by global handlers.

Exception Hierarchy:
    NoteMitraError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict (uniqueness violations)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    └── StorageUnavailableError  → 503 Service Unavailable (store degraded)

Response body (all errors):
    {"error": "<ERROR_CODE>", "message": "...", "details": {...}, "request_id": "..."}

    `details` only ever holds values that are safe to expose. `context`
    is logged server-side and never returned.
"""

from typing import Any, Dict, Optional


class NoteMitraError(Exception):
    """
    Base exception for all NoteMitra application errors.

    Attributes:
        message:     User-facing error description (safe to return in API response)
        error_code:  Stable machine-readable code, e.g. "DUPLICATE_TITLE"
        details:     Extra client-safe data included in the response
        context:     Additional debug info (logged but NOT returned to client)
    """

    status_code: int = 500
    default_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(NoteMitraError):
    """
    Raised when client input fails a business rule.

    HTTP: 400 Bad Request

    Schema-level problems (wrong JSON shape on typed routes) are still
    reported by FastAPI as 422; this class covers the note pipeline,
    pagination and identifier checks whose codes clients depend on.
    """

    status_code = 400
    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str = "Validation failed",
        error_code: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message=message, error_code=error_code, details=details, context=context)
        self.field = field


class AuthenticationError(NoteMitraError):
    """
    Raised when a credential is missing, malformed, unrecognized or expired.

    HTTP: 401 Unauthorized

    Codes: NO_AUTH_HEADER, INVALID_AUTH_FORMAT, INVALID_TOKEN,
    TOKEN_EXPIRED, USER_NOT_FOUND, INVALID_CREDENTIALS
    """

    status_code = 401
    default_code = "INVALID_TOKEN"


class PermissionDeniedError(NoteMitraError):
    """
    Raised when an authenticated user may not perform the operation.

    HTTP: 403 Forbidden
    Codes: FORBIDDEN, ACCOUNT_INACTIVE, CANNOT_SUSPEND_ADMIN
    """

    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(NoteMitraError):
    """
    Raised when a well-formed identifier resolves to nothing.

    HTTP: 404 Not Found

    A malformed identifier is a ValidationError (INVALID_NOTE_ID), not a
    NotFoundError: the first is a client bug, the second a normal outcome.
    """

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        error_code: Optional[str] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource.capitalize()} with ID '{resource_id}' was not found"
        ctx = dict(context or {})
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, error_code=error_code, details=details, context=ctx)


class ConflictError(NoteMitraError):
    """
    Raised when a write would violate a uniqueness invariant.

    HTTP: 409 Conflict
    Codes: DUPLICATE_TITLE, ALREADY_SAVED, EMAIL_EXISTS
    """

    status_code = 409
    default_code = "CONFLICT"


class RateLimitExceededError(NoteMitraError):
    """
    Raised when a client exceeds the per-IP request rate limit.

    HTTP: 429 Too Many Requests (with Retry-After header)
    """

    status_code = 429
    default_code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        super().__init__(message=message, details={"retry_after": retry_after}, context=context)
        self.retry_after = retry_after


class FileStorageError(NoteMitraError):
    """
    Raised when blob file system operations fail.

    HTTP: 500 Internal Server Error

    The client gets a generic message; the path and OS error stay in context.
    """

    status_code = 500
    default_code = "FILE_STORAGE_ERROR"

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class StorageUnavailableError(NoteMitraError):
    """
    Raised when the durable store cannot be reached or fails mid-operation.

    HTTP: 503 Service Unavailable

    Never reported as a validation error, so clients can tell
    "your input is wrong" apart from "the system is degraded".
    Backend error text goes to context only.
    """

    status_code = 503
    default_code = "SERVICE_UNAVAILABLE"

    def __init__(
        self,
        message: str = "The catalog is temporarily unavailable. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
