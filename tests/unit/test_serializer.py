"""
Unit tests for the JSON session serializer.
"""

import pytest

from session.serializer import JSONSerializer, SessionSerializationError


@pytest.fixture
def serializer():
    return JSONSerializer()


class TestDumps:

    def test_compact_utf8_json(self, serializer):
        assert serializer.dumps({"user_id": 42, "name": "Zoë"}) == (
            '{"user_id":42,"name":"Zo\\u00eb"}'.encode("utf-8")
        )

    @pytest.mark.parametrize(
        "record",
        [
            {"tags": {"a"}},
            {"obj": object()},
            {"n": float("nan")},
            {"b": b"bytes"},
            {"pos": (1, 2)},
            {1: "a", "1": "b"},
            {"cart": [{"qty": 1}, {2: "sku-2"}]},
        ],
    )
    def test_unserializable_values(self, serializer, record):
        with pytest.raises(SessionSerializationError):
            serializer.dumps(record)


class TestLoads:

    def test_accepts_bytes_and_str(self, serializer):
        assert serializer.loads(b'{"a":1}') == {"a": 1}
        assert serializer.loads('{"a":1}') == {"a": 1}

    @pytest.mark.parametrize("blob", [b"\xff\xfe", b"not json", b"", b'{"a":'])
    def test_corrupt_payloads(self, serializer, blob):
        with pytest.raises(SessionSerializationError):
            serializer.loads(blob)

    @pytest.mark.parametrize("blob", [b"[]", b"42", b'"text"', b"null"])
    def test_non_object_payloads(self, serializer, blob):
        with pytest.raises(SessionSerializationError, match="expected an object"):
            serializer.loads(blob)
