"""
Session identifier generation, validation and optional cookie signing.
"""

import base64
import hashlib
import hmac
import re
import secrets
from typing import Optional

# 16 random bytes, hex encoded
SID_BYTES = 16

SID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

_SIGNATURE_SEPARATOR = "."


def generate_sid() -> str:
    """Return a new cryptographically random session identifier."""
    return secrets.token_hex(SID_BYTES)


def is_valid_sid(value: Optional[str]) -> bool:
    """Check that a value can be used as a session identifier."""
    return bool(value) and SID_PATTERN.fullmatch(value) is not None


class SessionIdSigner:
    """
    HMAC-SHA256 signer for session id cookies.

    A signed cookie value looks like ``<sid>.<signature>`` where the
    signature is the unpadded URL-safe base64 of HMAC-SHA256(secret, sid).
    Signing does not hide the sid; it stops clients from choosing one.
    """

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("secret must not be empty")
        self._key = secret.encode("utf-8")

    def _signature(self, sid: str) -> str:
        digest = hmac.new(self._key, sid.encode("utf-8"), hashlib.sha256).digest()
        return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

    def sign(self, sid: str) -> str:
        return f"{sid}{_SIGNATURE_SEPARATOR}{self._signature(sid)}"

    def unsign(self, value: Optional[str]) -> Optional[str]:
        """
        Verify a signed cookie value.

        Returns:
            The sid if the signature matches, None otherwise.
        """
        if not value or _SIGNATURE_SEPARATOR not in value:
            return None
        sid, _, signature = value.rpartition(_SIGNATURE_SEPARATOR)
        if not is_valid_sid(sid):
            return None
        if not hmac.compare_digest(signature, self._signature(sid)):
            return None
        return sid
