"""
Unit tests for the lazy SessionHandle.
"""

import pytest

from errors.codes import ErrorCode
from errors.exceptions import AppException
from session.handle import SessionHandle, SessionOptions, SessionState


@pytest.fixture
def store(make_store):
    return make_store()


class TestSessionHandle:

    def test_starts_unloaded(self, store, backend):
        handle = SessionHandle(store, SessionOptions(id="abc123"), "abc123")

        assert handle.state is SessionState.UNLOADED
        assert not handle.loaded
        assert handle.sid == "abc123"
        assert backend.calls == []

    def test_data_before_load_raises(self, store):
        handle = SessionHandle(store, SessionOptions())

        with pytest.raises(AppException) as exc_info:
            handle.data

        assert exc_info.value.error_code == ErrorCode.SESSION_NOT_LOADED

    @pytest.mark.asyncio
    async def test_load_reads_store_once(self, store, backend):
        await store.persist("abc123", {"user_id": 42})
        handle = SessionHandle(store, SessionOptions(id="abc123"), "abc123")

        first = await handle.load()
        second = await handle.load()

        assert first is second
        assert first == {"user_id": 42}
        assert handle.data is first
        assert backend.commands("get") == [("get", "session:abc123")]

    @pytest.mark.asyncio
    async def test_load_without_sid_assigns_one(self, store):
        options = SessionOptions()
        handle = SessionHandle(store, options)

        await handle.load()

        assert handle.state is SessionState.LOADED
        assert options.id is not None
        assert handle.cookie_sid is None

    @pytest.mark.asyncio
    async def test_destroy_resets_handle(self, store, backend):
        """Destroy deletes the cookie's session and returns to UNLOADED."""
        await store.persist("abc123", {"user_id": 42})
        options = SessionOptions(id="abc123")
        handle = SessionHandle(store, options, "abc123")
        await handle.load()

        await handle.destroy()

        assert handle.state is SessionState.UNLOADED
        assert handle.destroyed
        assert options.id is None
        assert backend.commands("delete") == [("delete", "session:abc123")]

    @pytest.mark.asyncio
    async def test_reload_after_destroy_is_a_new_session(self, store):
        await store.persist("abc123", {"user_id": 42})
        handle = SessionHandle(store, SessionOptions(id="abc123"), "abc123")

        await handle.destroy()
        record = await handle.load()

        assert record == {}
        assert handle.sid != "abc123"

    def test_repr(self, store):
        assert repr(SessionHandle(store, SessionOptions())) == "SessionHandle(state=unloaded)"
