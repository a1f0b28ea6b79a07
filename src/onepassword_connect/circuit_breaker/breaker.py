"""Core circuit breaker implementation."""

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, ParamSpec, TypeVar

from onepassword_connect.circuit_breaker.exceptions import CircuitOpenError
from onepassword_connect.circuit_breaker.metrics import BreakerListener
from onepassword_connect.circuit_breaker.state import (
    Admission,
    BreakerSnapshot,
    BreakerTransition,
    CircuitState,
)
from onepassword_connect.circuit_breaker.storage import (
    AbstractBreakerStorage,
    InMemoryBreakerStorage,
)

T = TypeVar("T")
P = ParamSpec("P")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _never_fails(_: object) -> bool:
    return False


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures required while ``CLOSED``
            before opening.
        recovery_timeout: Seconds to wait while ``OPEN`` before allowing a probe.
        failure_predicate: Returns true when a returned value is a failure.
        expected_exceptions: Raised exceptions that count as failures. Anything
            else (including cancellation) passes through without touching the
            failure count.
    """

    failure_threshold: int = 5
    recovery_timeout: float = 30.0
    failure_predicate: Callable[[Any], bool] = _never_fails
    expected_exceptions: tuple[type[Exception], ...] = ()

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout must be >= 0")


class CircuitBreaker:
    """Stateful proxy around a dangerous async operation."""

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        storage: AbstractBreakerStorage | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Unique breaker name used for storage and metrics. One name
                per backend target.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            storage: State storage backend. Defaults to in-memory storage.
            listeners: Optional listener hooks for breaker events.
            clock: Timezone-aware clock. Defaults to UTC wall time.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._storage = InMemoryBreakerStorage() if storage is None else storage
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._clock = _utcnow if clock is None else clock

    async def _emit_state_change(self, old: CircuitState, new: CircuitState) -> None:
        for listener in self._listeners:
            try:
                await listener.on_state_change(self.name, old, new)
            except Exception:
                continue

    async def _emit_transition(self, transition: BreakerTransition) -> None:
        if transition.changed:
            await self._emit_state_change(
                transition.previous, transition.snapshot.state
            )

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

    async def _emit_call_failed(self, reason: object, elapsed: float) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_failed(self.name, reason, elapsed)
            except Exception:
                continue

    async def snapshot(self) -> BreakerSnapshot:
        """Return the current breaker snapshot."""
        return await self._storage.get_state(self.name)

    async def reset(self) -> None:
        """Force the breaker back to ``CLOSED``."""
        previous = await self._storage.get_state(self.name)
        await self._storage.reset(self.name)
        if previous.state != CircuitState.CLOSED:
            await self._emit_state_change(previous.state, CircuitState.CLOSED)

    async def force_open(self) -> None:
        """Open the breaker now and restart the break duration."""
        previous = await self._storage.get_state(self.name)
        await self._storage.force_open(self.name, now=self._clock())
        if previous.state != CircuitState.OPEN:
            await self._emit_state_change(previous.state, CircuitState.OPEN)

    async def _admit(self) -> Admission:
        admission = await self._storage.acquire(
            self.name,
            now=self._clock(),
            recovery_timeout=self.config.recovery_timeout,
        )
        if not admission.allowed:
            await self._emit_call_rejected()
            raise CircuitOpenError(self.name, retry_after=admission.retry_after)
        if admission.probe:
            await self._emit_state_change(CircuitState.OPEN, CircuitState.HALF_OPEN)
        return admission

    async def _on_failure(
        self, reason: object, elapsed: float, *, probe: bool
    ) -> None:
        await self._emit_call_failed(reason, elapsed)
        transition = await self._storage.record_failure(
            self.name,
            now=self._clock(),
            threshold=self.config.failure_threshold,
            probe=probe,
        )
        await self._emit_transition(transition)

    async def _on_success(self, elapsed: float, *, probe: bool) -> None:
        transition = await self._storage.record_success(self.name, probe=probe)
        await self._emit_transition(transition)
        await self._emit_call_succeeded(elapsed)

    async def call(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs,
    ) -> T:
        """Invoke an async callable under circuit breaker protection.

        Args:
            func: Dangerous async callable to execute.
            *args: Positional arguments forwarded to ``func``.
            **kwargs: Keyword arguments forwarded to ``func``.

        Returns:
            The result of ``func`` when allowed, whether or not the result is
            counted as a failure.

        Raises:
            CircuitOpenError: When the circuit is open and the call is rejected.
            BaseException: Whatever ``func`` raised, unchanged.
        """
        admission = await self._admit()
        probe = admission.probe

        start = time.monotonic()
        try:
            result = await func(*args, **kwargs)
        except self.config.expected_exceptions as exc:
            await self._on_failure(exc, max(time.monotonic() - start, 0.0), probe=probe)
            raise
        except BaseException:
            # Cancellation and uncounted errors leave no trace; a probe is
            # handed back so a later call may try again.
            if probe:
                await self._release_probe()
            raise

        elapsed = max(time.monotonic() - start, 0.0)
        if self.config.failure_predicate(result):
            await self._on_failure(result, elapsed, probe=probe)
        else:
            await self._on_success(elapsed, probe=probe)
        return result

    async def _release_probe(self) -> None:
        transition = await asyncio.shield(self._storage.release_probe(self.name))
        await self._emit_transition(transition)
