"""
Application factory wiring the session store into a FastAPI app.

    uvicorn main:create_app --factory
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings, validate_startup
from errors.handlers import register_exception_handlers
from middleware.session import setup_session_middleware
from session.backend import SessionBackend
from session.memory_backend import MemorySessionBackend
from session.redis_backend import RedisSessionBackend
from session.store import SessionStore
from telemetry.service import TelemetryService, initialize_telemetry

logger = logging.getLogger(__name__)


def build_backend(
    settings: Settings,
    telemetry: Optional[TelemetryService] = None
) -> SessionBackend:
    """Create the backing store selected by settings.session_backend."""
    if settings.session_backend == "memory":
        logger.warning("Using the in-process memory session backend; sessions are not shared")
        return MemorySessionBackend()
    return RedisSessionBackend.from_settings(settings, telemetry=telemetry)


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Create a FastAPI application with session support.

    Args:
        settings: Settings to use; loaded from the environment if omitted
        store: A ready session store; built from settings if omitted
        configure_logging: Install the JSON log handler on the root logger

    Returns:
        The configured application. Routes added to it can use
        ``request.state.session`` or the ``session.get_session`` dependency.
    """
    settings = settings or get_settings()
    validate_startup(settings)

    telemetry = initialize_telemetry(settings, configure_logging=configure_logging)

    if store is None:
        store = SessionStore.from_settings(
            settings, build_backend(settings, telemetry), telemetry=telemetry
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Session store starting", extra={"extra_data": {
            "backend": type(store.backend).__name__,
            "environment": settings.environment.value,
        }})
        if not await store.health_check():
            # Sessions degrade to empty until the store comes back
            logger.warning("Session store is not reachable at startup")

        yield

        await store.backend.close()
        logger.info("Session store stopped")

    app = FastAPI(title="Redis Session Store", lifespan=lifespan)
    app.state.session_store = store

    register_exception_handlers(app)
    setup_session_middleware(app, store)

    @app.get("/health")
    async def health() -> JSONResponse:
        healthy = await store.health_check()
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "degraded",
                "session_store": type(store.backend).__name__,
            },
        )

    return app


def run(settings: Optional[Settings] = None, configure_logging: bool = True) -> None:
    """
    Serve the application with uvicorn.

    Secure-only sessions are persisted only when the request scheme is
    https. Behind a TLS-terminating proxy that scheme comes from
    X-Forwarded-Proto, which uvicorn honours only for peers listed in
    forwarded_allow_ips.
    """
    import uvicorn

    settings = settings or get_settings()
    uvicorn.run(
        create_app(settings, configure_logging=configure_logging),
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
        proxy_headers=True,
        forwarded_allow_ips=settings.forwarded_allow_ips,
    )


if __name__ == "__main__":
    run()
