"""
Session middleware.

Runs the session lifecycle around every request: attach a lazy session
handle, let the rest of the stack produce a response, then persist the
session and set the session id cookie if the handler used it.
"""

import logging
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from session.store import SessionStore

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Middleware that provides ``request.state.session`` to handlers.

    Handlers load the session explicitly:

        session = await request.state.session.load()
        session["cart"] = ["sku-1"]

    or through the ``session.get_session`` dependency. Requests that never
    load their session cause no store traffic and no Set-Cookie header.
    """

    def __init__(self, app: ASGIApp, store: SessionStore):
        """
        Initialize the middleware.

        Args:
            app: The ASGI application to wrap
            store: The process-wide session store
        """
        super().__init__(app)
        self.store = store

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        self.store.prepare_session(request)
        response = await call_next(request)
        return await self.store.commit_session(request, response)


def setup_session_middleware(app, store: SessionStore) -> None:
    """
    Add SessionMiddleware to a FastAPI application.

    Args:
        app: The FastAPI application instance
        store: The session store shared by all requests
    """
    app.add_middleware(SessionMiddleware, store=store)

    logger.info(
        "Session middleware configured",
        extra={"extra_data": {
            "cookie": store.key,
            "namespace": store.namespace,
            "key_prefix": store.key_prefix,
            "expire_after": store.expire_after,
        }}
    )
