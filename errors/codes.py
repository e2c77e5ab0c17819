"""
Error code catalog for the session store.

This module defines the error codes used throughout the package, covering
backing store failures, payload problems, and misuse of the session
lifecycle by request handlers.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """
    Enumeration of all error codes used by the session store.

    Store-level codes (SESSION_STORE_*, SESSION_PAYLOAD_INVALID, CIRCUIT_OPEN)
    travel inside StoreResult values and are recovered at the store boundary.
    Lifecycle codes (SESSION_NOT_LOADED, SESSION_MIDDLEWARE_MISSING) are raised
    as AppException because they indicate a bug in the calling application.
    """

    # Backing store errors (5xx)
    SESSION_STORE_UNAVAILABLE = "SESSION_STORE_UNAVAILABLE"
    """Redis refused the connection or timed out (HTTP 503)"""

    SESSION_STORE_ERROR = "SESSION_STORE_ERROR"
    """Redis answered with an error reply (HTTP 503)"""

    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    """Circuit breaker is open, the call was not attempted (HTTP 503)"""

    # Payload errors (5xx)
    SESSION_PAYLOAD_INVALID = "SESSION_PAYLOAD_INVALID"
    """Session record could not be serialized or deserialized (HTTP 500)"""

    # Lifecycle misuse (5xx)
    SESSION_NOT_LOADED = "SESSION_NOT_LOADED"
    """Session data read before the handle was loaded (HTTP 500)"""

    SESSION_MIDDLEWARE_MISSING = "SESSION_MIDDLEWARE_MISSING"
    """Session requested but SessionMiddleware is not installed (HTTP 500)"""

    # Internal errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """Unexpected server error (HTTP 500)"""


# Mapping of error codes to their default HTTP status codes
ERROR_CODE_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.SESSION_STORE_UNAVAILABLE: 503,
    ErrorCode.SESSION_STORE_ERROR: 503,
    ErrorCode.CIRCUIT_OPEN: 503,
    ErrorCode.SESSION_PAYLOAD_INVALID: 500,
    ErrorCode.SESSION_NOT_LOADED: 500,
    ErrorCode.SESSION_MIDDLEWARE_MISSING: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}


def get_default_status_code(error_code: ErrorCode) -> int:
    """
    Get the default HTTP status code for an error code.

    Args:
        error_code: The error code to look up

    Returns:
        The default HTTP status code for the error code
    """
    return ERROR_CODE_STATUS_MAP.get(error_code, 500)
