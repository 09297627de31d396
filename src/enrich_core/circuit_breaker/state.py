"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


@dataclass(frozen=True)
class BreakerMetrics:
    """Point-in-time view of breaker counters useful for metrics/logging.

    Attributes:
        total_requests: Lifetime count of calls that reached the breaker.
        total_successes: Lifetime count of successful calls.
        total_failures: Lifetime count of failed or cancelled calls.
        consecutive_successes: Current run of successes.
        consecutive_failures: Current run of failures.
    """

    total_requests: int
    total_successes: int
    total_failures: int
    consecutive_successes: int
    consecutive_failures: int
