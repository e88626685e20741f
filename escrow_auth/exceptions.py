"""
Custom exception hierarchy for consistent error responses.

Usage:
    from escrow_auth.exceptions import UnauthorizedError, ValidationError

    raise UnauthorizedError("Invalid refresh token")
    raise ValidationError("Refresh token required")

HTTP errors are caught by the handler registered in main.py and converted
to JSON error responses with the shape:
    {"error": "<message>", "detail": "<optional extra info>"}

Token and refresh-client errors are plain exceptions: they never cross an
HTTP boundary on their own and callers translate them where needed.
"""

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base application error with a default status code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, detail: str | None = None):
        super().__init__(
            status_code=self.__class__.status_code,
            detail=message,
        )
        self.extra_detail = detail


class NotFoundError(AppError):
    """Resource not found (404)."""

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource: str, resource_id: int | str | None = None):
        if resource_id is not None:
            message = f"{resource} not found (id={resource_id})"
        else:
            message = f"{resource} not found"
        super().__init__(message)


class ForbiddenError(AppError):
    """Forbidden access (403)."""

    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class UnauthorizedError(AppError):
    """Unauthorized access (401)."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ValidationError(AppError):
    """Validation error (400)."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)


class ServiceError(AppError):
    """Internal service error (500)."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)


# ---------------------------------------------------------
# Bearer token errors
# ---------------------------------------------------------


class TokenError(Exception):
    """Base class for bearer token problems."""


class ParseError(TokenError):
    """Token is not three base64url segments with JSON header and payload."""


class IdentityError(TokenError):
    """Token payload is missing a required identity claim."""

    def __init__(self, claim: str):
        super().__init__(f"Token payload is missing required claim '{claim}'")
        self.claim = claim


# ---------------------------------------------------------
# Refresh client errors
# ---------------------------------------------------------


class RefreshError(Exception):
    """Base class for a failed token refresh."""


class InvalidRefreshToken(RefreshError):
    """The server rejected the refresh token (session gone or unknown)."""


class NetworkError(RefreshError):
    """The refresh endpoint could not be reached."""


class ServerError(RefreshError):
    """The refresh endpoint answered with a 5xx or an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
