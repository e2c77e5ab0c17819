"""
Resilience patterns for the session store.

The circuit breaker keeps a Redis outage from costing a socket timeout on
every request.
"""

from resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenException,
    CircuitState,
)

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenException",
    "CircuitState",
]
