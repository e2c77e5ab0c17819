"""
Backing store abstraction for session persistence.

Backends speak the four key-value commands the session store needs
(GET, SET, SETEX, DEL) plus a health probe. Every operation reports its
outcome as a StoreResult instead of raising, so an unreachable store can
be handled as an ordinary value at the session store boundary.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Union

from errors.codes import ErrorCode

Blob = Union[bytes, str]


@dataclass(frozen=True)
class StoreResult:
    """
    Outcome of one backing store command.

    Attributes:
        ok: True when the command reached the store and succeeded
        value: The payload returned by GET (None for a missing key)
        error_code: Why the command failed, when ok is False
        error: Human-readable failure description
    """
    ok: bool
    value: Optional[Blob] = None
    error_code: Optional[ErrorCode] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Optional[Blob] = None) -> "StoreResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error_code: ErrorCode, error: str) -> "StoreResult":
        return cls(ok=False, error_code=error_code, error=error)


class SessionBackend(ABC):
    """
    Abstract base class for session backing stores.

    All methods are async; implementations must be safe to share between
    concurrently running requests.
    """

    @abstractmethod
    async def get(self, key: str) -> StoreResult:
        """
        Fetch the blob stored under key.

        Returns:
            A successful result whose value is None when the key does not
            exist or has expired, or a failure result.
        """

    @abstractmethod
    async def set(self, key: str, value: bytes) -> StoreResult:
        """Store value under key without expiry."""

    @abstractmethod
    async def setex(self, key: str, ttl_seconds: int, value: bytes) -> StoreResult:
        """Store value under key, expiring after ttl_seconds."""

    @abstractmethod
    async def delete(self, key: str) -> StoreResult:
        """
        Delete key.

        Deleting a key that does not exist is a success.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check connectivity to the store.

        Returns:
            True if the store is reachable. Never raises.
        """

    async def close(self) -> None:
        """Release client resources at application shutdown."""
