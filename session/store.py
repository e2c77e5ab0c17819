"""
Session store: the session lifecycle on top of a key-value backing store.

The store decides when a session is read, when it is written, which key it
lives under, and when the session id cookie is (re-)issued. Backing store
failures never leave this module: loading degrades to an empty session,
persisting reports False, and destroying is abandoned with a warning.

Per request:
1. prepare_session() attaches an UNLOADED SessionHandle to request.state.
2. The handler may ``await request.state.session.load()`` and mutate it.
3. commit_session() persists loaded sessions and sets the cookie.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from starlette.requests import Request
from starlette.responses import Response

from config.settings import DEFAULT_NAMESPACE
from errors.codes import ErrorCode
from session import identifiers
from session.backend import SessionBackend, StoreResult
from session.handle import SessionHandle, SessionOptions
from session.identifiers import SessionIdSigner
from session.serializer import JSONSerializer, SessionSerializationError
from telemetry.service import TelemetryService, get_telemetry_service

logger = logging.getLogger(__name__)

SECURE_SCHEMES = frozenset({"https", "wss"})


def _sid_hint(sid: Optional[str]) -> Optional[str]:
    """Short prefix of a sid, safe to log."""
    return f"{sid[:6]}..." if sid else None


class SessionStore:
    """
    Server-side session store keyed by a cookie-carried session id.

    Attributes:
        backend: The shared backing store client wrapper
        key: Name of the session id cookie
        key_prefix: Prefix prepended to every store key
        namespace: Constant placed between the prefix and the sid
        expire_after: Default session lifetime in seconds, or None
    """

    def __init__(
        self,
        backend: SessionBackend,
        *,
        key: str = "_session_id",
        key_prefix: str = "",
        namespace: str = DEFAULT_NAMESPACE,
        expire_after: Optional[int] = None,
        secret: Optional[str] = None,
        cookie_path: str = "/",
        cookie_domain: Optional[str] = None,
        cookie_secure: bool = False,
        cookie_httponly: bool = True,
        cookie_samesite: Optional[str] = "lax",
        refresh_expiry: bool = False,
        serializer: Optional[JSONSerializer] = None,
        telemetry: Optional[TelemetryService] = None,
    ):
        if expire_after is not None and expire_after < 1:
            raise ValueError("expire_after must be a positive number of seconds")

        self.backend = backend
        self.key = key
        self.key_prefix = key_prefix
        self.namespace = namespace
        self.expire_after = expire_after
        self.cookie_path = cookie_path
        self.cookie_domain = cookie_domain
        self.cookie_secure = cookie_secure
        self.cookie_httponly = cookie_httponly
        self.cookie_samesite = cookie_samesite
        self.refresh_expiry = refresh_expiry
        self.serializer = serializer or JSONSerializer()
        self._signer = SessionIdSigner(secret) if secret else None
        self._telemetry = telemetry

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        backend: SessionBackend,
        telemetry: Optional[TelemetryService] = None,
    ) -> "SessionStore":
        """Build a store from config.settings.Settings."""
        return cls(
            backend,
            key=settings.session_key,
            key_prefix=settings.session_key_prefix,
            namespace=settings.session_namespace,
            expire_after=settings.session_expire_after,
            secret=settings.session_secret,
            cookie_path=settings.session_cookie_path,
            cookie_domain=settings.session_cookie_domain,
            cookie_secure=settings.session_cookie_secure,
            cookie_httponly=settings.session_cookie_httponly,
            cookie_samesite=settings.session_cookie_samesite,
            refresh_expiry=settings.session_refresh_expiry,
            telemetry=telemetry,
        )

    @property
    def telemetry(self) -> Optional[TelemetryService]:
        return self._telemetry or get_telemetry_service()

    # -- identifiers and keys -------------------------------------------------

    def generate_sid(self) -> str:
        return identifiers.generate_sid()

    def store_key(self, sid: str) -> str:
        """Key under which the session for sid is stored."""
        return f"{self.key_prefix}{self.namespace}{sid}"

    def encode_cookie(self, sid: str) -> str:
        return self._signer.sign(sid) if self._signer else sid

    def decode_cookie(self, value: Optional[str]) -> Optional[str]:
        """
        Extract the sid from a cookie value.

        Returns:
            The sid, or None for a missing, malformed or badly signed value.
        """
        if self._signer:
            return self._signer.unsign(value)
        return value if identifiers.is_valid_sid(value) else None

    def read_cookie_sid(self, request: Request) -> Optional[str]:
        return self.decode_cookie(request.cookies.get(self.key))

    def default_options(self, sid: Optional[str] = None) -> SessionOptions:
        return SessionOptions(
            id=sid,
            expire_after=self.expire_after,
            secure=self.cookie_secure,
            path=self.cookie_path,
            domain=self.cookie_domain,
            httponly=self.cookie_httponly,
            samesite=self.cookie_samesite,
            refresh_expiry=self.refresh_expiry,
        )

    # -- store operations -----------------------------------------------------

    async def load(self, sid: Optional[str]) -> tuple[str, dict[str, Any]]:
        """
        Load the session stored under sid.

        A None sid gets a freshly generated one. Missing entries, corrupt
        payloads and store failures all yield an empty record.

        Returns:
            (sid, record). Never raises.
        """
        if sid is None:
            sid = self.generate_sid()

        result = await self.backend.get(self.store_key(sid))
        if not result.ok:
            self._report_failure("load", sid, result)
            return sid, {}

        if result.value is None:
            self._record_metric("session.load", {"outcome": "new"})
            return sid, {}

        try:
            record = self.serializer.loads(result.value)
        except SessionSerializationError as e:
            logger.warning(
                "Discarding unreadable session payload",
                extra={"extra_data": {
                    "error_code": ErrorCode.SESSION_PAYLOAD_INVALID.value,
                    "error": str(e),
                    "sid": _sid_hint(sid),
                }}
            )
            self._record_metric("session.store.failure", {
                "operation": "load",
                "error_code": ErrorCode.SESSION_PAYLOAD_INVALID.value,
            })
            return sid, {}

        self._record_metric("session.load", {"outcome": "found"})
        return sid, record

    async def persist(
        self,
        sid: str,
        record: dict[str, Any],
        options: Optional[SessionOptions] = None,
    ) -> bool:
        """
        Write the session record under sid.

        The entry expires after ``expire_after`` seconds when one is set
        (options override the store default), otherwise it never expires.

        Returns:
            True if the write succeeded. Never raises.
        """
        expire_after = options.expire_after if options is not None else self.expire_after

        try:
            blob = self.serializer.dumps(record)
        except SessionSerializationError as e:
            logger.error(
                "Session record is not serializable, not persisting",
                extra={"extra_data": {
                    "error_code": ErrorCode.SESSION_PAYLOAD_INVALID.value,
                    "error": str(e),
                    "sid": _sid_hint(sid),
                }}
            )
            self._record_metric("session.store.failure", {
                "operation": "persist",
                "error_code": ErrorCode.SESSION_PAYLOAD_INVALID.value,
            })
            return False

        key = self.store_key(sid)
        if expire_after:
            result = await self.backend.setex(key, expire_after, blob)
        else:
            result = await self.backend.set(key, blob)

        if not result.ok:
            self._report_failure("persist", sid, result)
            return False

        self._record_metric("session.persist", {"expiring": str(bool(expire_after)).lower()})
        return True

    async def destroy(self, sid: Optional[str]) -> None:
        """
        Delete the stored session for sid, if any.

        Best effort: a store failure is logged and the deletion abandoned.
        """
        if not sid:
            return

        result = await self.backend.delete(self.store_key(sid))
        if not result.ok:
            self._report_failure("destroy", sid, result)
            return

        self._record_metric("session.destroy", None)

    async def health_check(self) -> bool:
        return await self.backend.health_check()

    # -- request pipeline -----------------------------------------------------

    def prepare_session(self, request: Request) -> SessionHandle:
        """
        Attach an UNLOADED session handle and its options to the request.

        Does not touch the backing store.
        """
        cookie_sid = self.read_cookie_sid(request)
        options = self.default_options(cookie_sid)
        handle = SessionHandle(self, options, cookie_sid)
        request.state.session = handle
        request.state.session_options = options
        return handle

    async def commit_session(self, request: Request, response: Response) -> Response:
        """
        Persist the request's session and set the cookie when needed.

        The response is returned untouched when the session was never
        loaded, when a secure-only session would travel over plain HTTP,
        or when the store write fails.
        """
        session = getattr(request.state, "session", None)
        options: Optional[SessionOptions] = getattr(request.state, "session_options", None)
        if session is None or options is None:
            return response

        if isinstance(session, SessionHandle):
            cookie_sid = session.cookie_sid
            if not session.loaded and not self._wants_refresh(session, options):
                return response
        else:
            # The handler replaced the slot with a plain mapping
            cookie_sid = self.read_cookie_sid(request)

        if options.secure and request.url.scheme not in SECURE_SCHEMES:
            logger.info(
                "Secure-only session not issued over an insecure connection",
                extra={"extra_data": {"path": request.url.path, "scheme": request.url.scheme}}
            )
            return response

        if isinstance(session, SessionHandle):
            record = await session.load()
        else:
            record = dict(session)

        sid = options.id or self.generate_sid()

        if not await self.persist(sid, record, options):
            return response

        if cookie_sid != sid or options.expire_after:
            self.set_cookie(response, sid, options)

        return response

    def _wants_refresh(self, session: SessionHandle, options: SessionOptions) -> bool:
        """Whether an untouched session must still be loaded to slide its expiry."""
        return bool(
            options.refresh_expiry
            and options.expire_after
            and session.cookie_sid
            and not session.destroyed
        )

    def set_cookie(self, response: Response, sid: str, options: SessionOptions) -> None:
        """Set the session id cookie on the response."""
        expires = None
        if options.expire_after:
            expires = datetime.now(timezone.utc) + timedelta(seconds=options.expire_after)

        response.set_cookie(
            key=self.key,
            value=self.encode_cookie(sid),
            expires=expires,
            path=options.path,
            domain=options.domain,
            secure=options.secure,
            httponly=options.httponly,
            samesite=options.samesite,
        )

    # -- observability --------------------------------------------------------

    def _report_failure(self, operation: str, sid: str, result: StoreResult) -> None:
        error_code = result.error_code.value if result.error_code else None
        logger.warning(
            f"Session store unavailable during {operation}",
            extra={"extra_data": {
                "operation": operation,
                "error_code": error_code,
                "error": result.error,
                "sid": _sid_hint(sid),
            }}
        )
        self._record_metric("session.store.failure", {
            "operation": operation,
            "error_code": error_code or "unknown",
        })

    def _record_metric(self, name: str, tags: Optional[dict[str, str]]) -> None:
        telemetry = self.telemetry
        if telemetry is not None:
            telemetry.record_metric(name, 1, tags)
