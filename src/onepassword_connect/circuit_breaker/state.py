"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Persisted breaker state.
        failure_count: Count of consecutive failures.
        last_failure_at: Timestamp of the last counted failure, if any.
        opened_at: Timestamp when the breaker entered ``OPEN``, if open or
            probing.
    """

    name: str
    state: CircuitState
    failure_count: int
    last_failure_at: datetime | None
    opened_at: datetime | None

    def __post_init__(self) -> None:
        if self.failure_count < 0:
            raise ValueError("failure_count must be >= 0")
        if self.state != CircuitState.CLOSED and self.opened_at is None:
            raise ValueError(f"opened_at is required when state is {self.state}")


@dataclass(frozen=True)
class BreakerTransition:
    """Result of one storage transition: the prior state and the new snapshot."""

    previous: CircuitState
    snapshot: BreakerSnapshot

    @property
    def changed(self) -> bool:
        return self.previous != self.snapshot.state


@dataclass(frozen=True)
class Admission:
    """Decision taken when a call asks to pass the breaker.

    Attributes:
        allowed: Whether the call may proceed.
        probe: Whether the call is the single half-open probe.
        retry_after: Seconds until a probe may be attempted when rejected.
        snapshot: Breaker snapshot after the decision.
    """

    allowed: bool
    probe: bool
    retry_after: float
    snapshot: BreakerSnapshot
