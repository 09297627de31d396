"""Core circuit breaker implementation."""

import asyncio
import threading
import time
from collections.abc import Awaitable, Callable, Sequence
from contextlib import suppress
from dataclasses import dataclass, field
from typing import TypeVar

from enrich_core.circuit_breaker.exceptions import CircuitOpenError
from enrich_core.circuit_breaker.metrics import BreakerListener
from enrich_core.circuit_breaker.state import BreakerMetrics, CircuitState
from enrich_core.errors import CallCancelledError

T = TypeVar("T")

_Transition = tuple[CircuitState, CircuitState]


def _now() -> float:
    return time.monotonic()


def _raise_if_stopped(stop_event: asyncio.Event | None) -> None:
    if stop_event is not None and stop_event.is_set():
        raise CallCancelledError("call cancelled by stop event")


async def run_guarded(
    operation: Callable[[], Awaitable[T]],
    *,
    stop_event: asyncio.Event | None = None,
    timeout: float | None = None,
) -> T:
    """Await ``operation`` while honouring a stop event and a deadline.

    Args:
        operation: Zero-argument async callable to run.
        stop_event: Optional caller cancellation signal.
        timeout: Optional deadline in seconds.

    Returns:
        The result of ``operation``.

    Raises:
        CallCancelledError: When ``stop_event`` is set before completion.
        TimeoutError: When ``timeout`` elapses before completion.
        Exception: The original exception raised by ``operation``.
    """
    _raise_if_stopped(stop_event)
    if stop_event is None and timeout is None:
        return await operation()

    task = asyncio.ensure_future(operation())
    waiters: set[asyncio.Future[object]] = {task}
    stop_waiter: asyncio.Future[object] | None = None
    if stop_event is not None:
        stop_waiter = asyncio.ensure_future(stop_event.wait())
        waiters.add(stop_waiter)

    try:
        done, _ = await asyncio.wait(
            waiters,
            timeout=timeout,
            return_when=asyncio.FIRST_COMPLETED,
        )
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        if stop_waiter is not None:
            stop_waiter.cancel()

    if task in done:
        return task.result()

    task.cancel()
    with suppress(asyncio.CancelledError):
        await task
    if stop_waiter is not None and stop_waiter in done:
        raise CallCancelledError("call cancelled by stop event")
    raise TimeoutError(f"call exceeded timeout of {timeout:g}s")


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        max_failures: Consecutive failures while ``CLOSED`` before opening.
        open_timeout: Seconds to stay ``OPEN`` before allowing trial calls.
        half_open_max_successes: Consecutive ``HALF_OPEN`` successes required
            to close again. Also caps concurrent trial calls.
    """

    max_failures: int = 3
    open_timeout: float = 30.0
    half_open_max_successes: int = 2

    def __post_init__(self) -> None:
        if self.max_failures < 1:
            raise ValueError("max_failures must be >= 1")
        if self.open_timeout < 0:
            raise ValueError("open_timeout must be >= 0")
        if self.half_open_max_successes < 1:
            raise ValueError("half_open_max_successes must be >= 1")


@dataclass(slots=True)
class _Admission:
    generation: int
    is_trial: bool
    retry_after: float | None = None
    transitions: list[_Transition] = field(default_factory=list)


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation.

    Every counter mutation and state transition happens inside one
    ``threading.Lock`` section that never awaits, so a single instance can be
    shared by any number of tasks. Each transition starts a new generation;
    outcomes of calls admitted under an older generation update lifetime
    totals only.
    """

    def __init__(
        self,
        name: str = "llm",
        *,
        config: CircuitBreakerConfig | None = None,
        listeners: Sequence[BreakerListener] | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used in errors and listener events.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            listeners: Optional listener hooks for breaker events.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._generation = 0
        self._opened_at: float | None = None
        self._trials_in_flight = 0
        self._consecutive_successes = 0
        self._consecutive_failures = 0
        self._total_requests = 0
        self._total_successes = 0
        self._total_failures = 0

    @property
    def state(self) -> CircuitState:
        """Return the current state.

        An ``OPEN`` circuit whose timeout has elapsed reports ``HALF_OPEN``;
        the transition itself is applied by the next ``execute`` call.
        """
        with self._lock:
            if (
                self._state == CircuitState.OPEN
                and self._retry_after_locked(_now()) <= 0
            ):
                return CircuitState.HALF_OPEN
            return self._state

    def metrics(self) -> BreakerMetrics:
        """Return a consistent snapshot of all breaker counters."""
        with self._lock:
            return BreakerMetrics(
                total_requests=self._total_requests,
                total_successes=self._total_successes,
                total_failures=self._total_failures,
                consecutive_successes=self._consecutive_successes,
                consecutive_failures=self._consecutive_failures,
            )

    async def _emit_state_changes(self, transitions: Sequence[_Transition]) -> None:
        for old, new in transitions:
            for listener in self._listeners:
                try:
                    await listener.on_state_change(self.name, old, new)
                except Exception:
                    continue

    async def _emit_call_rejected(self) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(self.name)
            except Exception:
                continue

    async def _emit_call_succeeded(self, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_succeeded(self.name, elapsed)
            except Exception:
                continue

    async def _emit_call_failed(self, exc: BaseException, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(self.name, exc, elapsed)
            except Exception:
                continue

    def _retry_after_locked(self, now: float) -> float:
        opened_at = now if self._opened_at is None else self._opened_at
        return max(self.config.open_timeout - (now - opened_at), 0.0)

    def _transition_locked(
        self,
        new: CircuitState,
        now: float,
        transitions: list[_Transition],
    ) -> None:
        old = self._state
        self._state = new
        self._generation += 1
        self._trials_in_flight = 0
        if new == CircuitState.OPEN:
            self._opened_at = now
            self._consecutive_successes = 0
        elif new == CircuitState.HALF_OPEN:
            self._consecutive_successes = 0
        else:
            self._opened_at = None
            self._consecutive_successes = 0
            self._consecutive_failures = 0
        transitions.append((old, new))

    def _count_failure_locked(self, now: float, transitions: list[_Transition]) -> None:
        self._consecutive_successes = 0
        self._consecutive_failures += 1
        if self._state == CircuitState.HALF_OPEN:
            self._transition_locked(CircuitState.OPEN, now, transitions)
        elif (
            self._state == CircuitState.CLOSED
            and self._consecutive_failures >= self.config.max_failures
        ):
            self._transition_locked(CircuitState.OPEN, now, transitions)

    def _admit(self) -> _Admission:
        now = _now()
        transitions: list[_Transition] = []
        with self._lock:
            if self._state == CircuitState.OPEN:
                retry_after = self._retry_after_locked(now)
                if retry_after > 0:
                    self._total_requests += 1
                    self._total_failures += 1
                    return _Admission(
                        generation=self._generation,
                        is_trial=False,
                        retry_after=retry_after,
                    )
                self._transition_locked(CircuitState.HALF_OPEN, now, transitions)

            if self._state == CircuitState.HALF_OPEN:
                admitted = self._trials_in_flight + self._consecutive_successes
                if admitted >= self.config.half_open_max_successes:
                    self._total_requests += 1
                    self._total_failures += 1
                    return _Admission(
                        generation=self._generation,
                        is_trial=False,
                        retry_after=0.0,
                        transitions=transitions,
                    )
                self._trials_in_flight += 1
                return _Admission(
                    generation=self._generation,
                    is_trial=True,
                    transitions=transitions,
                )

            return _Admission(
                generation=self._generation,
                is_trial=False,
                transitions=transitions,
            )

    def _on_success(self, admission: _Admission) -> list[_Transition]:
        now = _now()
        transitions: list[_Transition] = []
        with self._lock:
            self._total_requests += 1
            self._total_successes += 1
            if admission.generation != self._generation:
                return transitions
            if admission.is_trial:
                self._trials_in_flight -= 1
            self._consecutive_failures = 0
            self._consecutive_successes += 1
            if (
                self._state == CircuitState.HALF_OPEN
                and self._consecutive_successes >= self.config.half_open_max_successes
            ):
                self._transition_locked(CircuitState.CLOSED, now, transitions)
        return transitions

    def _on_failure(self, admission: _Admission) -> list[_Transition]:
        now = _now()
        transitions: list[_Transition] = []
        with self._lock:
            self._total_requests += 1
            self._total_failures += 1
            if admission.generation != self._generation:
                return transitions
            if admission.is_trial:
                self._trials_in_flight -= 1
            self._count_failure_locked(now, transitions)
        return transitions

    def _on_cancelled_before_dispatch(self) -> list[_Transition]:
        now = _now()
        transitions: list[_Transition] = []
        with self._lock:
            self._total_requests += 1
            self._total_failures += 1
            if self._state == CircuitState.OPEN:
                if self._retry_after_locked(now) > 0:
                    return transitions
                self._transition_locked(CircuitState.HALF_OPEN, now, transitions)
            # Counted as a failure in the state the call observes.
            self._count_failure_locked(now, transitions)
        return transitions

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        stop_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> T:
        """Invoke an async operation under circuit breaker protection.

        Cancellation through ``stop_event``, an elapsed ``timeout`` and task
        cancellation all count as circuit failures, exactly like an error
        raised by ``operation``.

        Args:
            operation: Zero-argument async callable performing one remote call.
            stop_event: Optional caller cancellation signal.
            timeout: Optional deadline in seconds for this call.

        Returns:
            The result of ``operation`` when allowed and successful.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            CallCancelledError: When ``stop_event`` is set before or during
                the call.
            TimeoutError: When ``timeout`` elapses during the call.
            Exception: The original exception from ``operation``.
        """
        task = asyncio.current_task()
        if task is not None:
            callable_name = getattr(operation, "__qualname__", None)
            if callable_name is None:
                callable_name = operation.__class__.__qualname__
            task.set_name(f"circuit_breaker:{self.name}:{str(callable_name)}")

        if stop_event is not None and stop_event.is_set():
            cancelled = CallCancelledError("call cancelled by stop event")
            transitions = self._on_cancelled_before_dispatch()
            await self._emit_call_failed(cancelled, 0.0)
            await self._emit_state_changes(transitions)
            raise cancelled

        admission = self._admit()
        await self._emit_state_changes(admission.transitions)
        if admission.retry_after is not None:
            await self._emit_call_rejected()
            raise CircuitOpenError(self.name, retry_after=admission.retry_after)

        start = time.monotonic()
        try:
            result = await run_guarded(
                operation,
                stop_event=stop_event,
                timeout=timeout,
            )
        except asyncio.CancelledError as exc:
            elapsed = max(time.monotonic() - start, 0.0)
            transitions = self._on_failure(admission)
            with suppress(asyncio.CancelledError):
                await self._emit_call_failed(exc, elapsed)
                await self._emit_state_changes(transitions)
            raise
        except Exception as exc:
            elapsed = max(time.monotonic() - start, 0.0)
            transitions = self._on_failure(admission)
            await self._emit_call_failed(exc, elapsed)
            await self._emit_state_changes(transitions)
            raise

        elapsed = max(time.monotonic() - start, 0.0)
        transitions = self._on_success(admission)
        await self._emit_state_changes(transitions)
        await self._emit_call_succeeded(elapsed)
        return result

    async def health_check(
        self,
        probe: Callable[[], Awaitable[object]],
        *,
        stop_event: asyncio.Event | None = None,
        timeout: float | None = None,
    ) -> None:
        """Run ``probe`` outside breaker bookkeeping.

        The probe is not gated by the circuit state and its outcome does not
        touch any counter.

        Raises:
            CallCancelledError: When ``stop_event`` fires first.
            TimeoutError: When ``timeout`` elapses first.
            Exception: The probe's own exception.
        """
        await run_guarded(probe, stop_event=stop_event, timeout=timeout)
