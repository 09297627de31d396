"""Observability hooks for circuit breakers."""

from typing import Protocol

import structlog

from enrich_core.circuit_breaker.state import CircuitState
from enrich_core.logging import StructuredLogger, log_info, log_warning


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change(OPEN → HALF_OPEN)`` is emitted lazily, when the
        first call or state read after the open timeout observes it.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(self, name: str, exc: BaseException, elapsed: float) -> None:
        """Handle failed protected call completion."""


class LoggingBreakerListener:
    """Emit structured log events for breaker activity."""

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._logger: StructuredLogger = (
            structlog.get_logger(__name__) if logger is None else logger
        )

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        if new == CircuitState.OPEN:
            log_warning(
                self._logger,
                "circuit_breaker.state_changed",
                breaker=name,
                old_state=str(old),
                new_state=str(new),
            )
            return
        log_info(
            self._logger,
            "circuit_breaker.state_changed",
            breaker=name,
            old_state=str(old),
            new_state=str(new),
        )

    async def on_call_rejected(self, name: str) -> None:
        log_info(self._logger, "circuit_breaker.call_rejected", breaker=name)

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        return None

    async def on_call_failed(self, name: str, exc: BaseException, elapsed: float) -> None:
        log_warning(
            self._logger,
            "circuit_breaker.call_failed",
            breaker=name,
            error_type=exc.__class__.__name__,
            elapsed_seconds=round(elapsed, 3),
        )
