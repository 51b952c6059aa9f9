"""
Custom exception classes for unified error handling.

Every error carries the HTTP status a router should answer with, so routes
only need ``app_error_to_http(error, error.status_code)``.
"""

from enum import Enum

from fastapi import HTTPException, status


class AppBaseError(Exception):
    """Base exception for all application errors."""
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, detail: str | None = None):
        self.message = message
        self.detail = detail
        super().__init__(message)


class ValidationError(AppBaseError):
    """Malformed, oversized or wrongly typed input. Raised before any write."""

    def __init__(
        self,
        message: str,
        detail: str | None = None,
        status_code: int = status.HTTP_400_BAD_REQUEST,
    ):
        super().__init__(message=message, detail=detail)
        self.status_code = status_code


class AuthorizationError(AppBaseError):
    """Caller does not own the resource it referenced. Raised before any write."""
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "You do not own this academic record"):
        super().__init__(
            message=message,
            detail="The academic record must belong to the signed-in user.",
        )


class NotFoundCause(str, Enum):
    """Why an academic lookup came back empty."""
    ENROLLMENT_MISSING = "enrollment_missing"  # profile incomplete, user can fix
    COLLEGE_MISSING = "college_missing"        # integrity problem, user cannot fix
    RESOURCE_MISSING = "resource_missing"


class NotFoundError(AppBaseError):
    """Raised when an academic context or a record cannot be found."""

    def __init__(self, message: str, cause: NotFoundCause = NotFoundCause.RESOURCE_MISSING):
        if cause == NotFoundCause.ENROLLMENT_MISSING:
            detail = "Complete your academic profile before uploading a handbook."
        elif cause == NotFoundCause.COLLEGE_MISSING:
            detail = "Your enrollment references a college that does not exist. Please contact support."
        else:
            detail = None
        super().__init__(message=message, detail=detail)
        self.cause = cause

    @property
    def is_actionable(self) -> bool:
        return self.cause != NotFoundCause.COLLEGE_MISSING

    @property
    def status_code(self) -> int:  # type: ignore[override]
        if self.cause == NotFoundCause.COLLEGE_MISSING:
            return status.HTTP_500_INTERNAL_SERVER_ERROR
        return status.HTTP_404_NOT_FOUND


class ExtractionFailure(AppBaseError):
    """The extraction capability could not produce structured data.

    Recorded on the handbook as ``error_message``; never leaves the worker.
    """
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, reason: str):
        super().__init__(message=reason)
        self.reason = reason


class ConcurrencyConflict(AppBaseError):
    """Lost a claim race or collided with a concurrent publish."""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "Concurrent update detected"):
        super().__init__(message=message, detail="Please retry the operation.")


class SystemFailureError(AppBaseError):
    """Storage or database unavailable. Prior state is left untouched."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str = "Storage service unavailable", original_error: str | None = None):
        super().__init__(message=message, detail=original_error)


# ── Utility: convert to HTTPException ────────────────────

def app_error_to_http(error: AppBaseError, status_code: int | None = None) -> HTTPException:
    """Convert an AppBaseError to an HTTPException with consistent JSON body."""
    body = {
        "error": error.message,
        "detail": error.detail,
        "type": type(error).__name__,
    }
    if isinstance(error, NotFoundError):
        body["cause"] = error.cause.value
    return HTTPException(
        status_code=status_code or error.status_code,
        detail=body,
    )
