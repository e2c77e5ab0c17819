"""
Circuit breaker guarding calls to the session backing store.

When Redis is down every session operation would otherwise wait for a
socket timeout before degrading to "no session". The breaker remembers
recent failures and short-circuits calls for a while so that requests are
served immediately during an outage.

States:
- CLOSED: Normal operation, calls pass through
- OPEN: Store is failing, calls are rejected immediately
- HALF_OPEN: A single probe call decides whether the store recovered
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


class CircuitState(Enum):
    """
    Circuit breaker states.

    Transitions:
    - CLOSED -> OPEN: After failure_threshold consecutive failures
    - OPEN -> HALF_OPEN: After recovery_timeout seconds have elapsed
    - HALF_OPEN -> CLOSED: On a successful probe
    - HALF_OPEN -> OPEN: On a failed probe
    """
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    """
    Configuration for a circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures before the circuit opens.
        recovery_timeout: Seconds to stay open before allowing a probe.
        half_open_max_calls: Probe calls allowed while half-open.
    """
    failure_threshold: int = 3
    recovery_timeout: float = 30.0
    half_open_max_calls: int = 1


class CircuitOpenException(Exception):
    """Raised by CircuitBreaker.execute when the call was not attempted."""

    def __init__(self, circuit_name: str, retry_in: Optional[float] = None):
        self.circuit_name = circuit_name
        self.retry_in = retry_in

        message = f"Circuit breaker '{circuit_name}' is open"
        if retry_in is not None:
            message += f", retry in {int(retry_in)} seconds"

        super().__init__(message)


class CircuitBreaker:
    """
    Circuit breaker for awaitable calls.

    Only exceptions listed in ``failure_exceptions`` count as failures.
    Anything else propagates without touching the failure counter, so that
    an error reply from a healthy server does not trip the circuit.

    Example:
        breaker = CircuitBreaker(
            "redis",
            failure_exceptions=(redis.exceptions.ConnectionError,),
        )
        try:
            value = await breaker.execute(client.get, "session:abc")
        except CircuitOpenException:
            value = None
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        failure_exceptions: tuple[type[BaseException], ...] = (Exception,),
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize a circuit breaker.

        Args:
            name: A descriptive name used in logs and exceptions
            config: Configuration options. Uses defaults if not provided.
            failure_exceptions: Exception types that count as store failures
            clock: Monotonic clock returning seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.failure_exceptions = failure_exceptions
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._half_open_calls = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _retry_in(self) -> Optional[float]:
        if self._opened_at is None:
            return None
        remaining = self.config.recovery_timeout - (self._clock() - self._opened_at)
        return remaining if remaining > 0 else None

    def _on_success(self) -> None:
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._half_open_calls = 0
        self._opened_at = None

    def _on_failure(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._half_open_calls = 0
            self._opened_at = self._clock()
            return

        self._failure_count += 1
        if self._failure_count >= self.config.failure_threshold:
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()

    async def _admit(self) -> None:
        """Admit a call or raise CircuitOpenException."""
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self._retry_in() is not None:
                    raise CircuitOpenException(self.name, self._retry_in())
                self._state = CircuitState.HALF_OPEN
                self._half_open_calls = 0

            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    raise CircuitOpenException(self.name, self._retry_in())
                self._half_open_calls += 1

    async def execute(
        self,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any
    ) -> T:
        """
        Await ``func(*args, **kwargs)`` under circuit breaker protection.

        Raises:
            CircuitOpenException: If the circuit is open (or a half-open
                probe is already in flight)
            Exception: Whatever the underlying call raises
        """
        await self._admit()

        # The call itself runs outside the lock
        try:
            result = await func(*args, **kwargs)
        except self.failure_exceptions:
            async with self._lock:
                self._on_failure()
            raise
        except BaseException:
            async with self._lock:
                if self._state == CircuitState.HALF_OPEN:
                    self._half_open_calls = max(0, self._half_open_calls - 1)
            raise

        async with self._lock:
            self._on_success()
        return result

    def reset(self) -> None:
        """Force the circuit back to CLOSED."""
        self._on_success()

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self.name!r}, state={self._state.value}, "
            f"failure_count={self._failure_count})"
        )
