import asyncio
from dataclasses import dataclass, field

import pytest

from onepassword_connect.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitOpenError,
    CircuitState,
    InMemoryBreakerStorage,
    LoggingBreakerListener,
)
from tests.onepassword_connect.support.fakes import FakeClock, FakeLogger

pytestmark = pytest.mark.asyncio


@dataclass(slots=True)
class _RecordingListener:
    events: list[tuple[str, object]] = field(default_factory=list)

    async def on_state_change(self, name: str, old: CircuitState, new: CircuitState):
        self.events.append(("state", (old, new)))

    async def on_call_rejected(self, name: str):
        self.events.append(("rejected", name))

    async def on_call_succeeded(self, name: str, elapsed: float):
        self.events.append(("succeeded", name))

    async def on_call_failed(self, name: str, reason: object, elapsed: float):
        self.events.append(("failed", reason))


@dataclass(slots=True)
class _ExplodingListener:
    async def on_state_change(self, name: str, old: CircuitState, new: CircuitState):
        raise RuntimeError("boom")

    async def on_call_rejected(self, name: str):
        raise RuntimeError("boom")

    async def on_call_succeeded(self, name: str, elapsed: float):
        raise RuntimeError("boom")

    async def on_call_failed(self, name: str, reason: object, elapsed: float):
        raise RuntimeError("boom")


def _is_failed(result: object) -> bool:
    return result == "failed"


def _build_breaker(
    clock: FakeClock,
    *,
    threshold: int = 5,
    recovery_timeout: float = 30.0,
    storage: InMemoryBreakerStorage | None = None,
    listeners: list[object] | None = None,
    expected_exceptions: tuple[type[Exception], ...] = (),
) -> CircuitBreaker:
    return CircuitBreaker(
        "svc",
        config=CircuitBreakerConfig(
            failure_threshold=threshold,
            recovery_timeout=recovery_timeout,
            failure_predicate=_is_failed,
            expected_exceptions=expected_exceptions,
        ),
        storage=storage,
        listeners=listeners,  # type: ignore[arg-type]
        clock=clock.now,
    )


async def _fail() -> str:
    return "failed"


async def _ok() -> str:
    return "ok"


@pytest.mark.parametrize(
    ("threshold", "timeout", "message"),
    [
        (0, 1.0, "failure_threshold must be >= 1"),
        (1, -1.0, "recovery_timeout must be >= 0"),
    ],
)
async def test_config_validation(threshold: int, timeout: float, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        CircuitBreakerConfig(failure_threshold=threshold, recovery_timeout=timeout)


async def test_closed_call_succeeds_and_stays_closed(fake_clock: FakeClock) -> None:
    breaker = _build_breaker(fake_clock)

    assert await breaker.call(_ok) == "ok"

    snapshot = await breaker.snapshot()
    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.failure_count == 0


async def test_failed_results_are_returned_and_counted(fake_clock: FakeClock) -> None:
    breaker = _build_breaker(fake_clock)

    assert await breaker.call(_fail) == "failed"
    assert await breaker.call(_fail) == "failed"

    snapshot = await breaker.snapshot()
    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.failure_count == 2
    assert snapshot.last_failure_at == fake_clock.now()


async def test_success_resets_consecutive_failures(fake_clock: FakeClock) -> None:
    breaker = _build_breaker(fake_clock)
    for _ in range(4):
        await breaker.call(_fail)

    await breaker.call(_ok)
    await breaker.call(_fail)

    snapshot = await breaker.snapshot()
    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.failure_count == 1


async def test_threshold_opens_and_rejects_without_invoking(
    fake_clock: FakeClock,
) -> None:
    breaker = _build_breaker(fake_clock)
    calls = 0

    async def _counted_failure() -> str:
        nonlocal calls
        calls += 1
        return "failed"

    for _ in range(5):
        await breaker.call(_counted_failure)

    fake_clock.advance(10.0)
    with pytest.raises(CircuitOpenError) as excinfo:
        await breaker.call(_counted_failure)

    assert calls == 5
    assert excinfo.value.breaker_name == "svc"
    assert excinfo.value.retry_after == pytest.approx(20.0)
    snapshot = await breaker.snapshot()
    assert snapshot.state == CircuitState.OPEN
    assert snapshot.opened_at is not None


async def test_half_open_admits_single_probe_and_rejects_concurrent(
    fake_clock: FakeClock,
) -> None:
    breaker = _build_breaker(fake_clock, threshold=1)
    await breaker.call(_fail)
    fake_clock.advance(30.0)

    started = asyncio.Event()
    release = asyncio.Event()

    async def _probe() -> str:
        started.set()
        await release.wait()
        return "ok"

    task = asyncio.create_task(breaker.call(_probe))
    await started.wait()

    assert (await breaker.snapshot()).state == CircuitState.HALF_OPEN
    with pytest.raises(CircuitOpenError) as excinfo:
        await breaker.call(_ok)
    assert excinfo.value.retry_after == 0.0

    release.set()
    assert await task == "ok"

    snapshot = await breaker.snapshot()
    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.failure_count == 0
    assert await breaker.call(_ok) == "ok"


async def test_probe_failure_reopens_and_restarts_break(
    fake_clock: FakeClock,
) -> None:
    breaker = _build_breaker(fake_clock, threshold=1, recovery_timeout=5.0)
    await breaker.call(_fail)

    fake_clock.advance(5.0)
    assert await breaker.call(_fail) == "failed"

    with pytest.raises(CircuitOpenError) as excinfo:
        await breaker.call(_ok)
    assert excinfo.value.retry_after == pytest.approx(5.0)
    assert (await breaker.snapshot()).opened_at == fake_clock.now()


async def test_cancelled_probe_hands_back_the_probe(fake_clock: FakeClock) -> None:
    breaker = _build_breaker(fake_clock, threshold=1, recovery_timeout=5.0)
    await breaker.call(_fail)
    opened_at = (await breaker.snapshot()).opened_at
    fake_clock.advance(5.0)

    started = asyncio.Event()

    async def _hang() -> str:
        started.set()
        await asyncio.Event().wait()
        return "unreachable"

    task = asyncio.create_task(breaker.call(_hang))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    snapshot = await breaker.snapshot()
    assert snapshot.state == CircuitState.OPEN
    assert snapshot.opened_at == opened_at
    assert await breaker.call(_ok) == "ok"
    assert (await breaker.snapshot()).state == CircuitState.CLOSED


async def test_uncounted_exception_passes_through(fake_clock: FakeClock) -> None:
    breaker = _build_breaker(fake_clock, threshold=1)

    async def _boom() -> str:
        raise RuntimeError("nope")

    with pytest.raises(RuntimeError, match="nope"):
        await breaker.call(_boom)

    snapshot = await breaker.snapshot()
    assert snapshot.state == CircuitState.CLOSED
    assert snapshot.failure_count == 0


async def test_expected_exception_counts_as_failure(fake_clock: FakeClock) -> None:
    breaker = _build_breaker(
        fake_clock, threshold=1, expected_exceptions=(ConnectionError,)
    )

    async def _refused() -> str:
        raise ConnectionError("refused")

    with pytest.raises(ConnectionError):
        await breaker.call(_refused)

    assert (await breaker.snapshot()).state == CircuitState.OPEN


async def test_listeners_receive_lifecycle_events(fake_clock: FakeClock) -> None:
    listener = _RecordingListener()
    breaker = _build_breaker(
        fake_clock, threshold=1, recovery_timeout=1.0, listeners=[listener]
    )

    await breaker.call(_fail)
    with pytest.raises(CircuitOpenError):
        await breaker.call(_ok)
    fake_clock.advance(1.0)
    await breaker.call(_ok)

    assert listener.events == [
        ("failed", "failed"),
        ("state", (CircuitState.CLOSED, CircuitState.OPEN)),
        ("rejected", "svc"),
        ("state", (CircuitState.OPEN, CircuitState.HALF_OPEN)),
        ("state", (CircuitState.HALF_OPEN, CircuitState.CLOSED)),
        ("succeeded", "svc"),
    ]


async def test_listener_errors_do_not_break_calls(fake_clock: FakeClock) -> None:
    breaker = _build_breaker(
        fake_clock, threshold=1, recovery_timeout=1.0, listeners=[_ExplodingListener()]
    )

    assert await breaker.call(_fail) == "failed"
    with pytest.raises(CircuitOpenError):
        await breaker.call(_ok)
    fake_clock.advance(1.0)
    assert await breaker.call(_ok) == "ok"


async def test_force_open_and_reset(fake_clock: FakeClock) -> None:
    listener = _RecordingListener()
    breaker = _build_breaker(fake_clock, listeners=[listener])

    await breaker.force_open()
    with pytest.raises(CircuitOpenError):
        await breaker.call(_ok)

    await breaker.reset()
    assert await breaker.call(_ok) == "ok"
    assert ("state", (CircuitState.CLOSED, CircuitState.OPEN)) in listener.events
    assert ("state", (CircuitState.OPEN, CircuitState.CLOSED)) in listener.events


async def test_breakers_with_separate_names_do_not_share_state(
    fake_clock: FakeClock,
) -> None:
    storage = InMemoryBreakerStorage()
    first = _build_breaker(fake_clock, threshold=1, storage=storage)
    second = CircuitBreaker(
        "other",
        config=CircuitBreakerConfig(failure_threshold=1, failure_predicate=_is_failed),
        storage=storage,
        clock=fake_clock.now,
    )

    await first.call(_fail)

    assert (await first.snapshot()).state == CircuitState.OPEN
    assert await second.call(_ok) == "ok"


async def test_logging_listener_emits_circuit_events(
    fake_clock: FakeClock,
    fake_logger: FakeLogger,
) -> None:
    listener = LoggingBreakerListener(recovery_timeout_seconds=2.0, logger=fake_logger)
    breaker = _build_breaker(
        fake_clock, threshold=1, recovery_timeout=2.0, listeners=[listener]
    )

    await breaker.call(_fail)
    with pytest.raises(CircuitOpenError):
        await breaker.call(_ok)
    fake_clock.advance(2.0)
    await breaker.call(_fail)
    fake_clock.advance(2.0)
    await breaker.call(_ok)

    assert [event for event in fake_logger.events if event.startswith("circuit.")] == [
        "circuit.opened",
        "circuit.call_rejected",
        "circuit.half_open_probe",
        "circuit.reopened",
        "circuit.half_open_probe",
        "circuit.closed",
    ]
    level, _, fields = fake_logger.named("circuit.opened")[0]
    assert level == "error"
    assert fields["break_duration_seconds"] == 2.0
