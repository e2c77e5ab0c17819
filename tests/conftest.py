"""
Shared pytest fixtures and configuration for all tests.
"""
import os
from typing import Callable, Optional
from unittest.mock import MagicMock, AsyncMock

import pytest
from fastapi import Depends, FastAPI, Request
from hypothesis import settings, Verbosity, Phase

from errors.codes import ErrorCode
from errors.handlers import register_exception_handlers
from middleware.session import SessionMiddleware
from session.backend import StoreResult
from session.dependencies import get_session, get_session_handle
from session.handle import SessionHandle
from session.memory_backend import MemorySessionBackend
from session.store import SessionStore

# Default profile: balanced for local development
settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,
    print_blob=True,
)

# CI profile: more thorough and reproducible
settings.register_profile(
    "ci",
    max_examples=200,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    derandomize=True,
)

# Debug profile: minimal examples, no shrinking
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
    print_blob=True,
    phases=[Phase.explicit, Phase.reuse, Phase.generate],
)

settings.register_profile(
    "fast",
    max_examples=20,
    verbosity=Verbosity.normal,
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingBackend(MemorySessionBackend):
    """Memory backend that records every command it receives."""

    def __init__(self, clock: Optional[Callable[[], float]] = None):
        if clock is None:
            super().__init__()
        else:
            super().__init__(clock=clock)
        self.calls: list[tuple] = []

    def commands(self, name: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == name]

    @property
    def writes(self) -> list[tuple]:
        return [call for call in self.calls if call[0] in ("set", "setex")]

    async def get(self, key):
        self.calls.append(("get", key))
        return await super().get(key)

    async def set(self, key, value):
        self.calls.append(("set", key, value))
        return await super().set(key, value)

    async def setex(self, key, ttl_seconds, value):
        self.calls.append(("setex", key, ttl_seconds, value))
        return await super().setex(key, ttl_seconds, value)

    async def delete(self, key):
        self.calls.append(("delete", key))
        return await super().delete(key)


class UnavailableBackend(RecordingBackend):
    """Backend whose every command fails as if Redis refused the connection."""

    def __init__(self):
        super().__init__()
        self._failure = StoreResult.failure(
            ErrorCode.SESSION_STORE_UNAVAILABLE, "ConnectionError: Connection refused"
        )

    async def get(self, key):
        self.calls.append(("get", key))
        return self._failure

    async def set(self, key, value):
        self.calls.append(("set", key, value))
        return self._failure

    async def setex(self, key, ttl_seconds, value):
        self.calls.append(("setex", key, ttl_seconds, value))
        return self._failure

    async def delete(self, key):
        self.calls.append(("delete", key))
        return self._failure

    async def health_check(self):
        return False


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend(clock) -> RecordingBackend:
    return RecordingBackend(clock=clock)


@pytest.fixture
def unavailable_backend() -> UnavailableBackend:
    return UnavailableBackend()


@pytest.fixture
def mock_redis() -> MagicMock:
    """Create a mock redis.asyncio client for unit tests."""
    mock = MagicMock()
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.setex = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.ping = AsyncMock(return_value=True)
    mock.aclose = AsyncMock(return_value=None)
    return mock


def _build_session_app(store: SessionStore) -> FastAPI:
    """FastAPI app exercising the session lifecycle from handlers."""
    app = FastAPI()
    register_exception_handlers(app)
    app.add_middleware(SessionMiddleware, store=store)

    @app.get("/untouched")
    async def untouched():
        return {"ok": True}

    @app.get("/read")
    async def read(session: dict = Depends(get_session)):
        return {"count": session.get("count")}

    @app.post("/increment")
    async def increment(session: dict = Depends(get_session)):
        session["count"] = session.get("count", 0) + 1
        return {"count": session["count"]}

    @app.post("/secure-increment")
    async def secure_increment(request: Request, session: dict = Depends(get_session)):
        request.state.session_options.secure = True
        session["count"] = session.get("count", 0) + 1
        return {"count": session["count"]}

    @app.post("/logout")
    async def logout(handle: SessionHandle = Depends(get_session_handle)):
        await handle.destroy()
        return {"ok": True}

    @app.post("/logout-and-restart")
    async def logout_and_restart(handle: SessionHandle = Depends(get_session_handle)):
        await handle.destroy()
        session = await handle.load()
        session["fresh"] = True
        return {"ok": True}

    @app.post("/replace")
    async def replace(request: Request):
        request.state.session = {"replaced": True}
        return {"ok": True}

    @app.post("/unserializable")
    async def unserializable(session: dict = Depends(get_session)):
        session["bad"] = {1, 2, 3}
        return {"ok": True}

    @app.get("/peek")
    async def peek(handle: SessionHandle = Depends(get_session_handle)):
        return {"data": handle.data}

    return app


@pytest.fixture
def session_app() -> Callable[[SessionStore], FastAPI]:
    """Factory building the session test application around a store."""
    return _build_session_app


@pytest.fixture
def make_store(backend) -> Callable[..., SessionStore]:
    """Factory for stores over the recording backend."""
    def _make(store_backend: Optional[object] = None, **kwargs) -> SessionStore:
        if store_backend is None:
            store_backend = backend
        return SessionStore(store_backend, **kwargs)
    return _make
