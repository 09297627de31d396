"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!* as an
explicit state machine guarding calls to text-generation providers.

Key behavior notes:
  - State lives in the ``CircuitBreaker`` instance only; nothing is persisted.
  - ``OPEN -> HALF_OPEN`` is evaluated lazily on the next call; there is no
    timer task.
  - ``HALF_OPEN`` admits at most ``half_open_max_successes`` trial calls at
    once; a single trial failure re-opens the circuit and restarts the timeout.
  - Every failure counts, including caller cancellation and timeouts.
"""

from enrich_core.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    run_guarded,
)
from enrich_core.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from enrich_core.circuit_breaker.metrics import BreakerListener, LoggingBreakerListener
from enrich_core.circuit_breaker.state import BreakerMetrics, CircuitState

__all__ = [
    "BreakerListener",
    "BreakerMetrics",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "LoggingBreakerListener",
    "run_guarded",
]
