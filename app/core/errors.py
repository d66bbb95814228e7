"""
API error taxonomy.

Every failure a route can produce is one of these. The exception handlers in
``app.main`` turn them into ``{"success": false, "message": ..., "errors": ...}``.
"""
from typing import Any, Optional

from fastapi import HTTPException, status

from .security import Claims


class ApiError(HTTPException):
    """Base class for errors mapped onto the response envelope."""

    def __init__(self, status_code: int, message: str, errors: Any = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.errors = errors


class Unauthenticated(ApiError):
    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(status.HTTP_401_UNAUTHORIZED, message)
        self.headers = {"WWW-Authenticate": "Bearer"}


class Forbidden(ApiError):
    """Authorization or business-rule denial.

    ``reason`` is written to the audit log only; callers always see "Forbidden".
    """

    def __init__(self, reason: str, claims: Optional[Claims] = None):
        super().__init__(status.HTTP_403_FORBIDDEN, "Forbidden")
        self.reason = reason
        self.claims = claims


class NotFound(ApiError):
    def __init__(self, message: str = "Not found"):
        super().__init__(status.HTTP_404_NOT_FOUND, message)


class Conflict(ApiError):
    def __init__(self, message: str, data: Any = None):
        super().__init__(status.HTTP_409_CONFLICT, message)
        self.data = data


class ValidationFailed(ApiError):
    def __init__(self, message: str = "Invalid body", errors: Any = None):
        super().__init__(status.HTTP_400_BAD_REQUEST, message, errors)


class IntegrityFault(ApiError):
    """Stored data violates an invariant; a bug elsewhere, not a user error."""

    def __init__(self, message: str):
        super().__init__(status.HTTP_500_INTERNAL_SERVER_ERROR, message)
