"""Observability hooks for circuit breakers."""

from typing import Protocol

from onepassword_connect.circuit_breaker.state import CircuitState


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        ``on_state_change(OPEN → HALF_OPEN)`` is emitted once per admitted
        probe. A probe that ends without an outcome (cancellation or an
        uncounted exception) emits ``HALF_OPEN → OPEN``.
    """

    async def on_state_change(
        self, name: str, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, name: str) -> None:
        """Handle call rejection while the circuit is open."""

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """Handle successful protected call completion."""

    async def on_call_failed(
        self, name: str, reason: object, elapsed: float
    ) -> None:
        """Handle failed protected call completion.

        ``reason`` is the raised exception or the failed result value.
        """
