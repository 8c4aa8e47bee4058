"""
Domain error hierarchy.

Services raise these instead of HTTPException so they stay usable from
scripts and background jobs; app.main maps them onto HTTP responses.
"""

from typing import Any, Optional

from fastapi import status


class AppError(Exception):
    """
    Base class for expected, user-facing failures.

    Attributes:
        message: Human readable error, returned as ``detail``
        status_code: HTTP status the error maps to
        extra: Optional additional payload merged into the response body
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, extra: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class BadRequestError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
