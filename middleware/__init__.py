"""
Middleware components for applications using the session store.
"""

from middleware.session import SessionMiddleware, setup_session_middleware

__all__ = [
    "SessionMiddleware",
    "setup_session_middleware",
]
