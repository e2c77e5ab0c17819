"""
Serialization of session records to the opaque blobs stored in Redis.
"""

import json
from typing import Any, Union


class SessionSerializationError(Exception):
    """Raised when a session record cannot be encoded or a stored blob decoded."""


def _check_round_trip(value: Any, path: str = "session") -> None:
    """
    Reject values JSON would not hand back unchanged.

    json.dumps coerces non-string keys to strings and tuples to lists, so
    such records would load as a different record than was persisted.
    """
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise SessionSerializationError(
                    f"Cannot serialize session record: key {key!r} at {path} is not a string"
                )
            _check_round_trip(item, f"{path}[{key!r}]")
    elif isinstance(value, list):
        for index, item in enumerate(value):
            _check_round_trip(item, f"{path}[{index}]")
    elif isinstance(value, tuple):
        raise SessionSerializationError(
            f"Cannot serialize session record: tuple at {path} would load as a list"
        )


class JSONSerializer:
    """
    Encode session records as compact UTF-8 JSON objects.

    Records must be mappings of string keys to JSON values (None, bool,
    int, finite float, str, list and str-keyed dict). Anything that would
    not load back equal to what was stored is refused. Decoding accepts
    bytes (the default redis client mode) or str (clients created with
    decode_responses=True).
    """

    def dumps(self, record: dict[str, Any]) -> bytes:
        _check_round_trip(record)
        try:
            return json.dumps(
                record, separators=(",", ":"), allow_nan=False
            ).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise SessionSerializationError(f"Cannot serialize session record: {e}") from e

    def loads(self, blob: Union[bytes, str]) -> dict[str, Any]:
        try:
            if isinstance(blob, (bytes, bytearray)):
                blob = blob.decode("utf-8")
            data = json.loads(blob)
        except (UnicodeDecodeError, ValueError) as e:
            raise SessionSerializationError(f"Corrupt session payload: {e}") from e

        if not isinstance(data, dict):
            raise SessionSerializationError(
                f"Session payload is a {type(data).__name__}, expected an object"
            )
        return data
