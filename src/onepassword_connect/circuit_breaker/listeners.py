from __future__ import annotations

from onepassword_connect.circuit_breaker.metrics import BreakerListener
from onepassword_connect.circuit_breaker.state import CircuitState
from onepassword_connect.logging import (
    StructuredLogger,
    get_logger,
    log_error,
    log_info,
    log_warning,
)

_TRANSITION_EVENTS: dict[tuple[CircuitState, CircuitState], str] = {
    (CircuitState.CLOSED, CircuitState.OPEN): "circuit.opened",
    (CircuitState.OPEN, CircuitState.HALF_OPEN): "circuit.half_open_probe",
    (CircuitState.HALF_OPEN, CircuitState.CLOSED): "circuit.closed",
    (CircuitState.HALF_OPEN, CircuitState.OPEN): "circuit.reopened",
    (CircuitState.OPEN, CircuitState.CLOSED): "circuit.reset",
}


class LoggingBreakerListener(BreakerListener):
    """Listener that turns breaker transitions into structured log events."""

    def __init__(
        self,
        *,
        recovery_timeout_seconds: float,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create a logging listener.

        Args:
            recovery_timeout_seconds: Break duration reported on open events.
            logger: Structured logger. Defaults to the library logger.
        """
        self._recovery_timeout_seconds = recovery_timeout_seconds
        self._logger: StructuredLogger = get_logger() if logger is None else logger

    async def on_state_change(
        self,
        name: str,
        old: CircuitState,
        new: CircuitState,
    ) -> None:
        """Log opened, half-open probe, and closed transitions."""
        event = _TRANSITION_EVENTS.get((old, new), "circuit.state_changed")
        fields: dict[str, object] = {"breaker": name, "old": old, "new": new}
        if new == CircuitState.OPEN:
            fields["break_duration_seconds"] = self._recovery_timeout_seconds
            log_error(self._logger, event, **fields)
            return
        log_info(self._logger, event, **fields)

    async def on_call_rejected(self, name: str) -> None:
        """Log a call short-circuited by an open breaker."""
        log_warning(self._logger, "circuit.call_rejected", breaker=name)

    async def on_call_succeeded(self, name: str, elapsed: float) -> None:
        """No-op for this listener."""
        _ = (name, elapsed)

    async def on_call_failed(
        self, name: str, reason: object, elapsed: float
    ) -> None:
        """No-op for this listener; failures are logged by the pipeline."""
        _ = (name, reason, elapsed)
