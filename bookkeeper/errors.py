# bookkeeper/errors.py
# Domain exceptions translated into JSON envelopes by the handlers in main.py

from typing import Any, Optional

from fastapi.responses import JSONResponse


class BookkeeperError(Exception):
    """Base exception for all errors raised by the bookkeeping services."""

    status_code = 500
    error = "Server error"

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(BookkeeperError):
    """Malformed or missing input."""

    status_code = 400
    error = "Validation failed"


class ConflictError(BookkeeperError):
    """A unique value (e.g. email) is already taken."""

    status_code = 400
    error = "Conflict"


class AuthError(BookkeeperError):
    """Bad credentials or missing token."""

    status_code = 401
    error = "Authentication failed"


class TokenExpiredError(AuthError):
    status_code = 401
    error = "Token expired"


class InvalidTokenError(AuthError):
    status_code = 403
    error = "Invalid token"


class ForbiddenError(BookkeeperError):
    """Authenticated, but the action is reserved for operators."""

    status_code = 403
    error = "Forbidden"


class NotFoundError(BookkeeperError):
    """Row absent or not owned by the caller."""

    status_code = 404
    error = "Not found"


class ReceiptScanError(BookkeeperError):
    """The receipt scanner could not read the supplied image."""

    status_code = 422
    error = "Receipt scan failed"


def error_response(status_code: int, message: str, error: Optional[str] = None,
                   details: Optional[Any] = None, headers: Optional[dict] = None) -> JSONResponse:
    """Failure envelope ``{success: false, message, error, details?}``."""
    content = {"success": False, "message": message, "error": error or message}
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)
