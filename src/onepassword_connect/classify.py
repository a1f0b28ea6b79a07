"""Response classification: one place deciding success, retry, or terminal."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import httpx

REQUEST_TIMEOUT = 408
TOO_MANY_REQUESTS = 429

StatusPredicate = Callable[[int], bool]


@dataclass(frozen=True)
class Success:
    """2xx response."""

    response: httpx.Response


@dataclass(frozen=True)
class RetryableFailure:
    """Failure presumed transient: transport error, 408, or 5xx.

    Exactly one of ``response`` and ``error`` is set.
    """

    reason: str
    response: httpx.Response | None = None
    error: httpx.TransportError | None = None


@dataclass(frozen=True)
class TerminalFailure:
    """Non-2xx response that retrying will not resolve."""

    status_code: int
    body: str | None
    reason_phrase: str | None = None


@dataclass(frozen=True)
class ProtocolFailure:
    """Exchange httpx gave up on without a transport fault.

    Covers bodies that fail ``Content-Encoding`` decoding and redirect loops.
    The server answered, so this is neither retried nor counted by the breaker.
    """

    reason: str
    error: httpx.RequestError


Outcome = Success | RetryableFailure | TerminalFailure | ProtocolFailure


def is_transient_status(status_code: int) -> bool:
    """Default retryable statuses: 408 and every 5xx."""
    return status_code == REQUEST_TIMEOUT or 500 <= status_code <= 599


def retryable_status_predicate(
    *, include_too_many_requests: bool = False
) -> StatusPredicate:
    """Build the retryable-status predicate, optionally treating 429 as transient."""
    if not include_too_many_requests:
        return is_transient_status

    def _is_retryable(status_code: int) -> bool:
        return status_code == TOO_MANY_REQUESTS or is_transient_status(status_code)

    return _is_retryable


def is_retryable_outcome(outcome: Outcome) -> bool:
    return isinstance(outcome, RetryableFailure)


def classify_transport_error(exc: httpx.TransportError) -> RetryableFailure:
    """Transport-level exceptions (refused, DNS, timeout) are always retryable."""
    return RetryableFailure(reason=f"{type(exc).__name__}: {exc}", error=exc)


def classify_response(
    response: httpx.Response,
    *,
    is_retryable_status: StatusPredicate = is_transient_status,
) -> Outcome:
    """Classify a completed response."""
    status = response.status_code
    if 200 <= status <= 299:
        return Success(response)
    if is_retryable_status(status):
        return RetryableFailure(reason=f"HTTP {status}", response=response)
    return TerminalFailure(
        status_code=status,
        body=response.text or None,
        reason_phrase=response.reason_phrase or None,
    )


def classify_request_error(exc: httpx.RequestError) -> Outcome:
    """Classify any httpx request error; only transport errors are retryable."""
    if isinstance(exc, httpx.TransportError):
        return classify_transport_error(exc)
    return ProtocolFailure(reason=f"{type(exc).__name__}: {exc}", error=exc)


def terminal_from_retryable(failure: RetryableFailure) -> TerminalFailure | None:
    """Turn an exhausted retryable HTTP failure into a terminal one.

    Returns ``None`` for transport failures, which have no response.
    """
    response = failure.response
    if response is None:
        return None
    return TerminalFailure(
        status_code=response.status_code,
        body=response.text or None,
        reason_phrase=response.reason_phrase or None,
    )
