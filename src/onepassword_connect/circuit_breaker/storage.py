"""State storage for circuit breakers.

Storage is decoupled from breaker logic. Every method is one atomic state
transition, so two concurrent callers can never both be admitted as the
half-open probe. Custom backends (for example Redis) can implement the
interface for multi-process coordination, provided each method stays atomic.

Timestamps are supplied by the caller so that a single clock drives both the
breaker and its storage.
"""

import asyncio
import sys
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from onepassword_connect.circuit_breaker.state import (
    Admission,
    BreakerSnapshot,
    BreakerTransition,
    CircuitState,
)


class AbstractBreakerStorage(ABC):
    """Abstract breaker storage interface."""

    @abstractmethod
    async def get_state(self, name: str) -> BreakerSnapshot:
        """Return the current breaker snapshot for ``name``."""

    @abstractmethod
    async def acquire(
        self, name: str, *, now: datetime, recovery_timeout: float
    ) -> Admission:
        """Decide whether a call may pass, entering ``HALF_OPEN`` for a probe."""

    @abstractmethod
    async def record_success(
        self, name: str, *, probe: bool
    ) -> BreakerTransition:
        """Record a successful call and return the transition."""

    @abstractmethod
    async def record_failure(
        self, name: str, *, now: datetime, threshold: int, probe: bool
    ) -> BreakerTransition:
        """Record a failed call, opening the circuit when warranted."""

    @abstractmethod
    async def release_probe(self, name: str) -> BreakerTransition:
        """Return a ``HALF_OPEN`` breaker to ``OPEN`` without an outcome."""

    @abstractmethod
    async def force_open(self, name: str, *, now: datetime) -> BreakerSnapshot:
        """Force breaker ``name`` into ``OPEN`` state."""

    @abstractmethod
    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset breaker ``name`` to a healthy ``CLOSED`` state."""


def _closed(name: str) -> BreakerSnapshot:
    return BreakerSnapshot(
        name=name,
        state=CircuitState.CLOSED,
        failure_count=0,
        last_failure_at=None,
        opened_at=None,
    )


def retry_after_seconds(
    snapshot: BreakerSnapshot, now: datetime, recovery_timeout: float
) -> float:
    """Seconds left before an ``OPEN`` breaker may admit a probe."""
    opened_at = now if snapshot.opened_at is None else snapshot.opened_at
    elapsed = (now - opened_at).total_seconds()
    return max(recovery_timeout - elapsed, 0.0)


class InMemoryBreakerStorage(AbstractBreakerStorage):
    """In-memory storage with per-breaker cooperative + optional thread locks."""

    def __init__(self) -> None:
        """Initialize in-memory snapshot and lock registries."""
        self._snapshots: dict[str, BreakerSnapshot] = {}
        self._async_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._thread_locks: dict[str, threading.Lock] = defaultdict(threading.Lock)
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @asynccontextmanager
    async def _locked(self, name: str) -> AsyncIterator[None]:
        async_lock = self._async_locks[name]
        if self._gil_enabled:
            await async_lock.acquire()
            try:
                yield
            finally:
                async_lock.release()
            return

        thread_lock = self._thread_locks[name]
        thread_lock.acquire()
        try:
            await async_lock.acquire()
        except BaseException:
            thread_lock.release()
            raise
        try:
            yield
        finally:
            async_lock.release()
            thread_lock.release()

    def _current(self, name: str) -> BreakerSnapshot:
        return self._snapshots.get(name) or _closed(name)

    def _store(
        self, previous: BreakerSnapshot, updated: BreakerSnapshot
    ) -> BreakerTransition:
        self._snapshots[updated.name] = updated
        return BreakerTransition(previous=previous.state, snapshot=updated)

    async def get_state(self, name: str) -> BreakerSnapshot:
        """Return the current snapshot, creating a default one if missing."""
        async with self._locked(name):
            snapshot = self._current(name)
            self._snapshots[name] = snapshot
            return snapshot

    async def acquire(
        self, name: str, *, now: datetime, recovery_timeout: float
    ) -> Admission:
        """Admit, reject, or promote an ``OPEN`` breaker to a probe."""
        async with self._locked(name):
            snapshot = self._current(name)
            if snapshot.state == CircuitState.CLOSED:
                return Admission(
                    allowed=True, probe=False, retry_after=0.0, snapshot=snapshot
                )
            if snapshot.state == CircuitState.HALF_OPEN:
                return Admission(
                    allowed=False, probe=False, retry_after=0.0, snapshot=snapshot
                )

            retry_after = retry_after_seconds(snapshot, now, recovery_timeout)
            if retry_after > 0:
                return Admission(
                    allowed=False,
                    probe=False,
                    retry_after=retry_after,
                    snapshot=snapshot,
                )

            probing = BreakerSnapshot(
                name=name,
                state=CircuitState.HALF_OPEN,
                failure_count=snapshot.failure_count,
                last_failure_at=snapshot.last_failure_at,
                opened_at=snapshot.opened_at,
            )
            self._snapshots[name] = probing
            return Admission(
                allowed=True, probe=True, retry_after=0.0, snapshot=probing
            )

    async def record_success(
        self, name: str, *, probe: bool
    ) -> BreakerTransition:
        """Record a successful call.

        A success only closes the circuit when it comes from ``CLOSED`` or from
        the probe itself. Late successes from calls admitted before the circuit
        opened leave ``OPEN``/``HALF_OPEN`` untouched.
        """
        async with self._locked(name):
            snapshot = self._current(name)
            if snapshot.state == CircuitState.CLOSED and snapshot.failure_count == 0:
                return BreakerTransition(previous=snapshot.state, snapshot=snapshot)
            if snapshot.state == CircuitState.OPEN:
                return BreakerTransition(previous=snapshot.state, snapshot=snapshot)
            if snapshot.state == CircuitState.HALF_OPEN and not probe:
                return BreakerTransition(previous=snapshot.state, snapshot=snapshot)
            return self._store(snapshot, _closed(name))

    async def record_failure(
        self, name: str, *, now: datetime, threshold: int, probe: bool
    ) -> BreakerTransition:
        """Increment failure counters, opening or re-opening as needed."""
        async with self._locked(name):
            snapshot = self._current(name)
            failure_count = snapshot.failure_count + 1

            if snapshot.state == CircuitState.HALF_OPEN and probe:
                state, opened_at = CircuitState.OPEN, now
            elif snapshot.state == CircuitState.CLOSED and failure_count >= threshold:
                state, opened_at = CircuitState.OPEN, now
            else:
                state, opened_at = snapshot.state, snapshot.opened_at

            updated = BreakerSnapshot(
                name=name,
                state=state,
                failure_count=failure_count,
                last_failure_at=now,
                opened_at=opened_at,
            )
            return self._store(snapshot, updated)

    async def release_probe(self, name: str) -> BreakerTransition:
        """Drop an in-flight probe, keeping the original ``opened_at``."""
        async with self._locked(name):
            snapshot = self._current(name)
            if snapshot.state != CircuitState.HALF_OPEN:
                return BreakerTransition(previous=snapshot.state, snapshot=snapshot)
            updated = BreakerSnapshot(
                name=name,
                state=CircuitState.OPEN,
                failure_count=snapshot.failure_count,
                last_failure_at=snapshot.last_failure_at,
                opened_at=snapshot.opened_at,
            )
            return self._store(snapshot, updated)

    async def force_open(self, name: str, *, now: datetime) -> BreakerSnapshot:
        """Force the circuit open and restart the recovery timeout window."""
        async with self._locked(name):
            snapshot = self._current(name)
            updated = BreakerSnapshot(
                name=name,
                state=CircuitState.OPEN,
                failure_count=snapshot.failure_count,
                last_failure_at=snapshot.last_failure_at,
                opened_at=now,
            )
            self._snapshots[name] = updated
            return updated

    async def reset(self, name: str) -> BreakerSnapshot:
        """Reset breaker state and counters to a healthy default snapshot."""
        async with self._locked(name):
            updated = _closed(name)
            self._snapshots[name] = updated
            return updated
