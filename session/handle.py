"""
Request-scoped session handle and options.

A SessionHandle starts UNLOADED and only reads the backing store when the
application calls ``await handle.load()``. The middleware inspects the
state after the handler has run: an UNLOADED handle means the request never
used its session, so nothing is written and no cookie is issued.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from errors.exceptions import session_not_loaded

if TYPE_CHECKING:
    from session.store import SessionStore


class SessionState(str, Enum):
    """Lifecycle state of a SessionHandle."""
    UNLOADED = "unloaded"
    LOADED = "loaded"


@dataclass
class SessionOptions:
    """
    Per-request session options.

    Seeded from the store defaults and the incoming cookie when the request
    starts. Handlers may change them, e.g. set ``secure`` to refuse issuing
    the session over plain HTTP or ``expire_after`` to shorten one session.

    Attributes:
        id: The session id; the cookie's sid until the session is loaded,
            then the sid the session was loaded under
        expire_after: Lifetime in seconds for both the store entry and the
            cookie; None means no store expiry and a browser-session cookie
        secure: Only persist and issue the cookie over HTTPS
        refresh_expiry: Renew the TTL of an existing session on every
            request even if the handler never loaded it
    """
    id: Optional[str] = None
    expire_after: Optional[int] = None
    secure: bool = False
    path: str = "/"
    domain: Optional[str] = None
    httponly: bool = True
    samesite: Optional[str] = "lax"
    refresh_expiry: bool = False


class SessionHandle:
    """
    Lazy wrapper around one request's session record.

    Example:
        session = await request.state.session.load()
        session["user_id"] = 42
    """

    def __init__(
        self,
        store: "SessionStore",
        options: SessionOptions,
        cookie_sid: Optional[str] = None,
    ):
        self._store = store
        self._options = options
        self._cookie_sid = cookie_sid
        self._state = SessionState.UNLOADED
        self._data: dict[str, Any] = {}
        self._destroyed = False

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def loaded(self) -> bool:
        return self._state is SessionState.LOADED

    @property
    def options(self) -> SessionOptions:
        return self._options

    @property
    def sid(self) -> Optional[str]:
        return self._options.id

    @property
    def cookie_sid(self) -> Optional[str]:
        """The verified sid carried by the incoming request cookie, if any."""
        return self._cookie_sid

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def data(self) -> dict[str, Any]:
        """
        The live session record.

        Raises:
            AppException: SESSION_NOT_LOADED if load() has not been awaited.
        """
        if not self.loaded:
            raise session_not_loaded()
        return self._data

    async def load(self) -> dict[str, Any]:
        """
        Load the session from the store on first call.

        Never fails: an unreachable store yields an empty session.

        Returns:
            The mutable session record.
        """
        if not self.loaded:
            sid, record = await self._store.load(self._options.id)
            self._options.id = sid
            self._data = record
            self._state = SessionState.LOADED
        return self._data

    async def destroy(self) -> None:
        """
        Delete the session named by the request cookie and reset the handle.

        The handle returns to UNLOADED, so nothing is persisted unless the
        handler loads it again, which starts a new session under a fresh sid.
        """
        await self._store.destroy(self._cookie_sid)
        self._data = {}
        self._options.id = None
        self._state = SessionState.UNLOADED
        self._destroyed = True

    def __repr__(self) -> str:
        return f"SessionHandle(state={self._state.value})"
