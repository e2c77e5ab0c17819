"""
Exception classes for the session store.

AppException is reserved for conditions the calling application must fix
(reading a session that was never loaded, requesting a session without the
middleware installed). Backing store outages never surface as exceptions;
they are reported through StoreResult values instead.
"""

from typing import Any, Optional

from errors.codes import ErrorCode, get_default_status_code


class AppException(Exception):
    """
    Base exception class for all application-specific errors.

    This exception provides structured error information including:
    - error_code: A standardized error code from the ErrorCode enum
    - message: A human-readable error message
    - status_code: The HTTP status code to return
    - details: Optional additional context

    Example:
        raise AppException(
            error_code=ErrorCode.SESSION_NOT_LOADED,
            message="Session accessed before load()",
        )
    """

    def __init__(
        self,
        error_code: ErrorCode,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[dict[str, Any]] = None
    ):
        """
        Initialize an AppException.

        Args:
            error_code: The error code from the ErrorCode enum
            message: A human-readable error message
            status_code: The HTTP status code (defaults to the error code's default)
            details: Optional dictionary with additional error context
        """
        self.error_code = error_code
        self.message = message
        self.status_code = status_code or get_default_status_code(error_code)
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for JSON serialization.

        Returns:
            Dictionary containing error_code, message, and details
        """
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"AppException(error_code={self.error_code.value!r}, "
            f"message={self.message!r}, status_code={self.status_code}, "
            f"details={self.details!r})"
        )


def session_not_loaded(
    message: str = "Session data accessed before the session was loaded",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a session-not-loaded exception."""
    return AppException(
        error_code=ErrorCode.SESSION_NOT_LOADED,
        message=message,
        details=details
    )


def session_middleware_missing(
    message: str = "SessionMiddleware is not installed on this application",
    details: Optional[dict[str, Any]] = None
) -> AppException:
    """Create a session-middleware-missing exception."""
    return AppException(
        error_code=ErrorCode.SESSION_MIDDLEWARE_MISSING,
        message=message,
        details=details
    )
