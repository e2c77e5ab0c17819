"""
Redis-backed session backing store.

One redis.asyncio client (and its connection pool) is shared by every
request in the process. Connection failures are reported as
SESSION_STORE_UNAVAILABLE results, error replies and unexpected client
errors as SESSION_STORE_ERROR, and calls rejected by the circuit breaker
as CIRCUIT_OPEN.
"""

import asyncio
import logging
from contextlib import nullcontext
from typing import Any, Optional

import redis.asyncio as redis
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from errors.codes import ErrorCode
from resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenException,
)
from session.backend import SessionBackend, StoreResult
from telemetry.service import TelemetryService, get_telemetry_service

logger = logging.getLogger(__name__)

# Failures that mean "the store cannot be reached"; they also trip the breaker
UNAVAILABLE_EXCEPTIONS = (
    RedisConnectionError,
    RedisTimeoutError,
    OSError,
    asyncio.TimeoutError,
)


class RedisSessionBackend(SessionBackend):
    """
    Redis implementation of SessionBackend.

    Attributes:
        client: The shared redis.asyncio client, or None if it could not
            be constructed (every command then reports the store unavailable)
        breaker: Circuit breaker wrapped around every command
    """

    def __init__(
        self,
        client: Optional[Any] = None,
        *,
        url: Optional[str] = None,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        socket_timeout: Optional[float] = 5.0,
        breaker: Optional[CircuitBreaker] = None,
        telemetry: Optional[TelemetryService] = None,
    ):
        """
        Initialize the backend.

        Creating a redis client does not open a connection, so an unreachable
        server is only noticed by the first command.

        Args:
            client: An existing redis.asyncio client to use
            url: Redis URL (e.g. "redis://localhost:6379/0"); wins over host/port/db
            host: Redis host name
            port: Redis port
            db: Database number, useful to separate sessions from other data
            socket_timeout: Socket and connect timeout in seconds
            breaker: Circuit breaker; a default one is created if omitted
            telemetry: Telemetry service for spans; defaults to the global one
        """
        if client is None:
            client = self._build_client(url, host, port, db, socket_timeout)
        self.client = client
        self.breaker = breaker or CircuitBreaker(
            "redis", failure_exceptions=UNAVAILABLE_EXCEPTIONS
        )
        self._telemetry = telemetry

    @classmethod
    def from_settings(
        cls,
        settings: Any,
        telemetry: Optional[TelemetryService] = None
    ) -> "RedisSessionBackend":
        """Build a backend from config.settings.Settings."""
        breaker = CircuitBreaker(
            "redis",
            CircuitBreakerConfig(
                failure_threshold=settings.circuit_failure_threshold,
                recovery_timeout=settings.circuit_recovery_seconds,
            ),
            failure_exceptions=UNAVAILABLE_EXCEPTIONS,
        )
        return cls(
            url=settings.redis_url,
            host=settings.redis_host,
            port=settings.redis_port,
            db=settings.redis_db,
            socket_timeout=settings.redis_socket_timeout,
            breaker=breaker,
            telemetry=telemetry,
        )

    @staticmethod
    def _build_client(
        url: Optional[str],
        host: str,
        port: int,
        db: int,
        socket_timeout: Optional[float],
    ) -> Optional[Any]:
        try:
            if url:
                return redis.from_url(
                    url,
                    socket_timeout=socket_timeout,
                    socket_connect_timeout=socket_timeout,
                )
            return redis.Redis(
                host=host,
                port=port,
                db=db,
                socket_timeout=socket_timeout,
                socket_connect_timeout=socket_timeout,
            )
        except (RedisError, ValueError) as e:
            logger.error(
                "Failed to create Redis client",
                extra={"extra_data": {"error": str(e), "host": host, "port": port}}
            )
            return None

    @property
    def telemetry(self) -> Optional[TelemetryService]:
        return self._telemetry or get_telemetry_service()

    def _span(self, command: str):
        telemetry = self.telemetry
        if telemetry is None:
            return nullcontext()
        return telemetry.create_external_service_span("redis", command)

    async def _execute(self, command: str, *args: Any) -> StoreResult:
        """Run one client command through the breaker and classify the outcome."""
        if self.client is None:
            return StoreResult.failure(
                ErrorCode.SESSION_STORE_UNAVAILABLE,
                "Redis client could not be created"
            )

        try:
            with self._span(command):
                value = await self.breaker.execute(getattr(self.client, command), *args)
        except CircuitOpenException as e:
            return StoreResult.failure(ErrorCode.CIRCUIT_OPEN, str(e))
        except UNAVAILABLE_EXCEPTIONS as e:
            return StoreResult.failure(
                ErrorCode.SESSION_STORE_UNAVAILABLE, f"{type(e).__name__}: {e}"
            )
        except RedisError as e:
            return StoreResult.failure(
                ErrorCode.SESSION_STORE_ERROR, f"{type(e).__name__}: {e}"
            )
        except Exception as e:
            # Cancellation is a BaseException and still propagates
            logger.warning(
                "Unexpected error from Redis client",
                extra={"extra_data": {
                    "command": command,
                    "exception_type": type(e).__name__,
                    "error": str(e),
                }}
            )
            return StoreResult.failure(
                ErrorCode.SESSION_STORE_ERROR, f"{type(e).__name__}: {e}"
            )

        return StoreResult.success(value)

    async def get(self, key: str) -> StoreResult:
        return await self._execute("get", key)

    async def set(self, key: str, value: bytes) -> StoreResult:
        result = await self._execute("set", key, value)
        return StoreResult.success() if result.ok else result

    async def setex(self, key: str, ttl_seconds: int, value: bytes) -> StoreResult:
        result = await self._execute("setex", key, int(ttl_seconds), value)
        return StoreResult.success() if result.ok else result

    async def delete(self, key: str) -> StoreResult:
        result = await self._execute("delete", key)
        return StoreResult.success() if result.ok else result

    async def health_check(self) -> bool:
        """
        Check connectivity with PING.

        Returns:
            True if Redis answered, False otherwise. Never raises.
        """
        result = await self._execute("ping")
        return result.ok and bool(result.value)

    async def close(self) -> None:
        """Close the Redis client and its connection pool."""
        if self.client is not None:
            await self.client.aclose()
            self.client = None
