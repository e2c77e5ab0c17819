from typing import Any

from fastapi import Request

from errors.exceptions import session_middleware_missing
from session.handle import SessionHandle


def get_session_handle(request: Request) -> SessionHandle:
    """FastAPI dependency returning the request's (possibly unloaded) session handle."""
    handle = getattr(request.state, "session", None)
    if not isinstance(handle, SessionHandle):
        raise session_middleware_missing()
    return handle


async def get_session(request: Request) -> dict[str, Any]:
    """FastAPI dependency that loads the session and returns its mutable record."""
    return await get_session_handle(request).load()
