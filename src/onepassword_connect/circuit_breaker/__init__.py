"""Framework-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*.

Key behavior notes:
  - Storage persists ``CLOSED``, ``OPEN`` and ``HALF_OPEN``. Entering
    ``HALF_OPEN`` happens inside one storage transition, so at most one probe
    call is in flight per breaker name, even across breaker instances sharing
    the same storage.
  - Outcomes are classified by data: ``failure_predicate`` inspects returned
    values, ``expected_exceptions`` lists raised exceptions that count.
  - If a probe is cancelled or raises an uncounted exception, the probe is
    treated as if it never happened: the circuit goes back to ``OPEN`` with its
    original ``opened_at`` and a later call may attempt a fresh probe.
"""

from onepassword_connect.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
)
from onepassword_connect.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from onepassword_connect.circuit_breaker.listeners import LoggingBreakerListener
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

__all__ = [
    "AbstractBreakerStorage",
    "Admission",
    "BreakerListener",
    "BreakerSnapshot",
    "BreakerTransition",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "InMemoryBreakerStorage",
    "LoggingBreakerListener",
]
