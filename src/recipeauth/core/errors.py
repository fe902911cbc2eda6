"""Error handling module for recipeauth.

This module defines error codes, exception classes, and response models.

Error Response Format:
{
    "error": {
        "code": "UNAUTHORIZED",
        "message": "Authentication required"
    }
}

Messages are generic on purpose: the response never says whether a
credential was malformed, forged or revoked, and never says how long an
account stays locked. The detail goes to the log instead.

Usage:
    from recipeauth.core.errors import ForbiddenError, UnauthorizedError

    # Raise with default message
    raise UnauthorizedError()

    # Raise with custom message
    raise ForbiddenError("Admin role required")
"""

from enum import Enum

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Error codes."""

    INVALID_REQUEST = "INVALID_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorDetail(BaseModel):
    """Error detail containing code and message."""

    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response format."""

    error: ErrorDetail


class RecipeAuthError(Exception):
    """Base exception for recipeauth.

    All recipeauth specific exceptions should inherit from this class.
    This enables centralized exception handling in FastAPI.

    Attributes:
        code: The error code from ErrorCode enum
        message: Human-readable error message
        status_code: HTTP status code to return
    """

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        """Convert exception to ErrorResponse model."""
        return ErrorResponse(
            error=ErrorDetail(code=self.code.value, message=self.message)
        )


class InvalidRequestError(RecipeAuthError):
    """400 Bad Request - Invalid request parameters."""

    def __init__(self, message: str = "Invalid request") -> None:
        super().__init__(ErrorCode.INVALID_REQUEST, message, 400)


class UnauthorizedError(RecipeAuthError):
    """401 Unauthorized - Authentication required."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(ErrorCode.UNAUTHORIZED, message, 401)


class ForbiddenError(RecipeAuthError):
    """403 Forbidden - Permission denied."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(ErrorCode.FORBIDDEN, message, 403)


class ConflictError(RecipeAuthError):
    """409 Conflict - Resource already exists."""

    def __init__(self, message: str = "Resource already exists") -> None:
        super().__init__(ErrorCode.CONFLICT, message, 409)


class AccountLockedError(RecipeAuthError):
    """423 Locked - Account temporarily locked after repeated failures."""

    def __init__(
        self, message: str = "Account is temporarily locked. Try again later."
    ) -> None:
        super().__init__(ErrorCode.ACCOUNT_LOCKED, message, 423)


class InternalError(RecipeAuthError):
    """500 Internal Server Error - Unexpected error."""

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(ErrorCode.INTERNAL_ERROR, message, 500)


class StoreUnavailableError(Exception):
    """Credential store or revocation ledger could not be reached.

    Never rendered directly: authentication paths fail closed and
    translate it into UnauthorizedError.
    """
