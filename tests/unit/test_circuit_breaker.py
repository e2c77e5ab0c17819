"""
Unit tests for the circuit breaker implementation.

These tests verify the circuit breaker state machine behavior:
- CLOSED -> OPEN after failure threshold
- OPEN -> HALF_OPEN after recovery timeout
- HALF_OPEN -> CLOSED on success
- HALF_OPEN -> OPEN on failure
- Only configured failure exceptions count against the circuit
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenException,
    CircuitState,
)


class StoreDown(Exception):
    """Stand-in for a connection failure."""


class ReplyError(Exception):
    """Stand-in for an error reply from a healthy server."""


@pytest.fixture
def breaker(clock):
    return CircuitBreaker(
        "redis",
        CircuitBreakerConfig(failure_threshold=3, recovery_timeout=30.0),
        failure_exceptions=(StoreDown,),
        clock=clock,
    )


async def _fail(breaker, times=1):
    failing = AsyncMock(side_effect=StoreDown("refused"))
    for _ in range(times):
        with pytest.raises(StoreDown):
            await breaker.execute(failing)


class TestCircuitBreakerConfig:
    """Tests for CircuitBreakerConfig defaults and customization."""

    def test_default_config(self):
        config = CircuitBreakerConfig()

        assert config.failure_threshold == 3
        assert config.recovery_timeout == 30.0
        assert config.half_open_max_calls == 1

    def test_custom_config(self):
        config = CircuitBreakerConfig(
            failure_threshold=5,
            recovery_timeout=60.0,
            half_open_max_calls=2
        )

        assert config.failure_threshold == 5
        assert config.recovery_timeout == 60.0
        assert config.half_open_max_calls == 2


class TestCircuitBreakerClosedState:

    def test_initial_state_is_closed(self, breaker):
        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_successful_call_passes_arguments(self, breaker):
        func = AsyncMock(return_value=b"value")

        result = await breaker.execute(func, "session:abc", ttl=5)

        assert result == b"value"
        func.assert_awaited_once_with("session:abc", ttl=5)

    @pytest.mark.asyncio
    async def test_failure_increments_count(self, breaker):
        await _fail(breaker)

        assert breaker.failure_count == 1
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, breaker):
        await _fail(breaker, times=2)

        await breaker.execute(AsyncMock(return_value=True))

        assert breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_opens_after_threshold_failures(self, breaker):
        """Three consecutive connection failures open the circuit."""
        await _fail(breaker, times=3)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_other_exceptions_do_not_count(self, breaker):
        """Error replies propagate without tripping the circuit."""
        replying = AsyncMock(side_effect=ReplyError("WRONGTYPE"))

        for _ in range(5):
            with pytest.raises(ReplyError):
                await breaker.execute(replying)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0


class TestCircuitBreakerOpenState:

    @pytest.mark.asyncio
    async def test_rejects_calls_without_invoking(self, breaker):
        await _fail(breaker, times=3)
        func = AsyncMock(return_value=True)

        with pytest.raises(CircuitOpenException) as exc_info:
            await breaker.execute(func)

        func.assert_not_called()
        assert exc_info.value.circuit_name == "redis"

    @pytest.mark.asyncio
    async def test_exception_reports_remaining_time(self, breaker, clock):
        await _fail(breaker, times=3)
        clock.advance(10)

        with pytest.raises(CircuitOpenException) as exc_info:
            await breaker.execute(AsyncMock())

        assert exc_info.value.retry_in == pytest.approx(20.0)

    @pytest.mark.asyncio
    async def test_probe_allowed_after_recovery_timeout(self, breaker, clock):
        await _fail(breaker, times=3)
        clock.advance(30)

        result = await breaker.execute(AsyncMock(return_value="PONG"))

        assert result == "PONG"
        assert breaker.state == CircuitState.CLOSED


class TestCircuitBreakerHalfOpenState:

    @pytest.mark.asyncio
    async def test_failed_probe_reopens(self, breaker, clock):
        await _fail(breaker, times=3)
        clock.advance(30)

        await _fail(breaker)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitOpenException):
            await breaker.execute(AsyncMock())

    @pytest.mark.asyncio
    async def test_only_one_probe_in_flight(self, breaker, clock):
        """While a probe is pending, other calls are rejected."""
        await _fail(breaker, times=3)
        clock.advance(30)
        release = asyncio.Event()

        async def slow_probe():
            await release.wait()
            return True

        probe = asyncio.create_task(breaker.execute(slow_probe))
        await asyncio.sleep(0)

        assert breaker.state == CircuitState.HALF_OPEN
        with pytest.raises(CircuitOpenException):
            await breaker.execute(AsyncMock())

        release.set()
        assert await probe is True
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_non_failure_exception_frees_probe_slot(self, breaker, clock):
        await _fail(breaker, times=3)
        clock.advance(30)

        with pytest.raises(ReplyError):
            await breaker.execute(AsyncMock(side_effect=ReplyError("bad")))

        assert await breaker.execute(AsyncMock(return_value=1)) == 1


class TestCircuitBreakerReset:

    @pytest.mark.asyncio
    async def test_manual_reset_closes_circuit(self, breaker):
        await _fail(breaker, times=3)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.failure_count == 0
        assert await breaker.execute(AsyncMock(return_value=True)) is True


class TestCircuitOpenException:

    def test_message_includes_circuit_name(self):
        exc = CircuitOpenException("redis")

        assert "redis" in str(exc)
        assert exc.retry_in is None

    def test_message_includes_retry_time(self):
        exc = CircuitOpenException("redis", retry_in=12.7)

        assert "retry in 12 seconds" in str(exc)


class TestCircuitBreakerRepr:

    def test_repr_includes_name_and_state(self, breaker):
        text = repr(breaker)

        assert "redis" in text
        assert "closed" in text
