"""
Server-side session persistence backed by Redis.

Sessions are identified by an opaque id carried in a cookie, loaded lazily
when a handler asks for them, and written back after the handler runs.
"""

from session.backend import SessionBackend, StoreResult
from session.dependencies import get_session, get_session_handle
from session.handle import SessionHandle, SessionOptions, SessionState
from session.memory_backend import MemorySessionBackend
from session.redis_backend import RedisSessionBackend
from session.store import SessionStore

__all__ = [
    "SessionBackend",
    "StoreResult",
    "SessionHandle",
    "SessionOptions",
    "SessionState",
    "SessionStore",
    "MemorySessionBackend",
    "RedisSessionBackend",
    "get_session",
    "get_session_handle",
]
