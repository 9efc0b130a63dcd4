"""
ZIMMR Backend — Custom Exception Hierarchy
===========================================

What:  The errors a ZIMMR request can end in, one class per HTTP outcome.
How:   Services raise these with a safe message plus a context dict. The
       handlers in main.py turn them into {error, message, details, request_id}
       bodies; driver and SMTP errors are wrapped before they get that far.

Classes and the status they map to:
    ZimmrError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── InvalidStateError        → 400 Bad Request (workflow transition not allowed)
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── NotificationError        → 503 Service Unavailable (mail transport failed)
    ├── CircuitBreakerOpenError  → 503 Service Unavailable (circuit open)
    ├── DocumentError            → 500 Internal Server Error (PDF render/storage)
    └── DatabaseError            → 500 Internal Server Error
"""

from typing import Any, Dict, Optional


class ZimmrError(Exception):
    """
    Base exception for all ZIMMR application errors.

    Attributes:
        message:  shown to the client as-is
        context:  logged; echoed as "details" on 4xx responses only
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(ZimmrError):
    """
    Raised when client input fails a business rule.

    HTTP: 400 Bad Request. Request-body schema errors raised by FastAPI are
    mapped to the same response shape (see main.py).
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class InvalidStateError(ZimmrError):
    """
    Raised when a workflow transition is not allowed from the current state.

    Examples: approving an appointment that is already approved or rejected,
    completing an appointment twice, converting a quote a second time.
    """

    def __init__(
        self,
        message: str = "This action is not allowed in the current state",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(ZimmrError):
    """No credentials were supplied, or login credentials are wrong (401)."""

    def __init__(
        self,
        message: str = "Authentication required",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(ZimmrError):
    """
    Raised when the caller is authenticated but may not perform the action.

    Also raised for an invalid or expired bearer token, matching the
    behaviour existing API clients rely on (401 = log in, 403 = refresh).
    """

    def __init__(
        self,
        message: str = "You do not have permission to perform this action",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotFoundError(ZimmrError):
    """
    Raised when a requested resource does not exist.

    SQLAlchemy returns None for missing records; services convert that into
    this exception so the global handler can answer 404.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = str(resource_id)
        super().__init__(message=message, context=ctx)


class DocumentError(ZimmrError):
    """
    Raised when a PDF cannot be rendered or written to storage.

    The client gets a generic message; the OS or reportlab error is logged.
    """

    def __init__(
        self,
        message: str = "The document could not be generated. Please try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class NotificationError(ZimmrError):
    """
    Raised when an email could not be delivered after all retries.

    Only surfaces on explicit user actions (POST /invoices/{id}/send).
    Notifications triggered as a side effect of a state change are
    fire-and-forget and never raise this to the caller.
    """

    def __init__(
        self,
        message: str = "The email service is temporarily unavailable",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(ZimmrError):
    """
    Raised when the mail transport circuit breaker is in OPEN state.

    How circuit breaker works:
        CLOSED (normal) → failures increment counter
        → After N failures → OPEN (reject all sends for the recovery timeout)
        → After timeout → HALF-OPEN (allow one test send)
        → If test succeeds → CLOSED; if it fails → OPEN again
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Email delivery is temporarily unavailable due to repeated failures. "
            f"It will be retried in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(ZimmrError):
    """
    Raised when database operations fail unexpectedly.

    The message returned to the client is always generic. Detailed error
    info (SQL, constraint name) is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(ZimmrError):
    """Raised when a client exceeds the per-IP request rate limit (429)."""

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
