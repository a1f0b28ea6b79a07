from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
from pydantic import SecretStr
from tenacity import RetryCallState

from onepassword_connect.circuit_breaker import CircuitBreaker
from onepassword_connect.classify import (
    Outcome,
    ProtocolFailure,
    RetryableFailure,
    StatusPredicate,
    Success,
    TerminalFailure,
    classify_response,
    classify_request_error,
    is_retryable_outcome,
    is_transient_status,
    terminal_from_retryable,
)
from onepassword_connect.errors import (
    ConnectApiError,
    ConnectTransportError,
    DeserializationError,
    RequestCancelledError,
    map_error,
)
from onepassword_connect.logging import (
    StructuredLogger,
    get_logger,
    log_debug,
    log_error,
    log_warning,
)
from onepassword_connect.retry import (
    Backoff,
    RetryBackoffPolicy,
    build_interruptible_sleep,
    build_outcome_retrying,
)
from onepassword_connect.serialization import (
    JSON_CONTENT_TYPE,
    decode_payload,
    encode_body,
)
from onepassword_connect.transport import DEFAULT_HEADERS, HttpTransport, RequestSpec

ATTEMPT_STOP_MESSAGE = "Stop requested before sending the request."


class RequestPipeline:
    """Authenticated request path: circuit breaker, then retries, then HTTP.

    Every call ends in exactly one of: a success value, a
    ``ConnectApiError`` subclass, ``ConnectTransportError``,
    ``DeserializationError``, ``CircuitOpenError``, ``RequestCancelledError``,
    or a propagated ``asyncio.CancelledError``.
    """

    def __init__(
        self,
        *,
        transport: HttpTransport,
        api_token: SecretStr | str,
        breaker: CircuitBreaker,
        retry_policy: RetryBackoffPolicy | None = None,
        is_retryable_status: StatusPredicate = is_transient_status,
        backoff: Backoff | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Create a pipeline around one backend target.

        Args:
            transport: HTTP transport bound to the shared connection pool.
            api_token: Bearer credential attached to every request.
            breaker: Circuit breaker owned by this target. Its
                ``failure_predicate`` decides which final outcomes count.
            retry_policy: Retry count and backoff. Defaults to 3 retries with
                2s, 4s, 8s delays.
            is_retryable_status: Statuses treated as transient.
            backoff: Optional override of the policy's delay function.
            sleep: Sleep used between attempts. Defaults to ``asyncio.sleep``.
            logger: Structured logger. Defaults to the library logger.
        """
        token = (
            api_token.get_secret_value()
            if isinstance(api_token, SecretStr)
            else api_token
        )
        if not token.strip():
            raise ValueError("api_token must be non-empty")
        self._transport = transport
        self._auth_headers = {
            **DEFAULT_HEADERS,
            "Authorization": f"Bearer {token}",
        }
        self._breaker = breaker
        self._retry_policy = (
            RetryBackoffPolicy() if retry_policy is None else retry_policy
        )
        self._is_retryable_status = is_retryable_status
        self._backoff = backoff
        self._sleep = sleep
        self._logger: StructuredLogger = get_logger() if logger is None else logger

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    def _authorize(self, spec: RequestSpec) -> RequestSpec:
        headers = dict(self._auth_headers)
        if spec.body is not None:
            headers["Content-Type"] = JSON_CONTENT_TYPE
        return spec.with_headers(headers)

    async def send(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        stop_event: asyncio.Event | None = None,
        stream: bool = False,
    ) -> httpx.Response:
        """Execute one call and return the raw successful response.

        With ``stream=True`` the success body is left unread and the caller
        must close the response; prefer ``stream()``.
        """
        spec = self._authorize(
            RequestSpec(
                method=method, path=path, body=encode_body(body), stream=stream
            )
        )
        with structlog.contextvars.bound_contextvars(
            correlation_id=spec.correlation_id
        ):
            outcome = await self._breaker.call(
                self._execute_with_retry, spec, stop_event
            )
            return self._resolve(spec, outcome)

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        path: str,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> AsyncIterator[httpx.Response]:
        """Open a call whose success body is read by the caller.

        Breaker, retries and error mapping apply until the response headers
        arrive. httpx errors raised while the body is read inside the block
        are mapped the same way as for buffered calls.
        """
        response = await self.send(method, path, stop_event=stop_event, stream=True)
        spec = RequestSpec(method=method, path=path)
        try:
            yield response
        except httpx.RequestError as exc:
            failure = ProtocolFailure(reason=f"{type(exc).__name__}: {exc}", error=exc)
            raise self._map_protocol(spec, failure) from exc
        finally:
            await response.aclose()

    async def request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        response_type: Any = None,
        stop_event: asyncio.Event | None = None,
    ) -> Any:
        """Execute one call and decode the success body into ``response_type``.

        With ``response_type=None`` the body is ignored and ``None`` returned.
        """
        response = await self.send(method, path, body=body, stop_event=stop_event)
        if response_type is None:
            return None
        try:
            return decode_payload(
                response.content,
                response_type,
                http_status=response.status_code,
            )
        except DeserializationError as exc:
            log_error(
                self._logger,
                "request.deserialization_failed",
                method=method,
                path=path,
                status_code=response.status_code,
                target=exc.target,
            )
            raise

    async def get(self, path: str, response_type: Any, **kwargs: Any) -> Any:
        return await self.request("GET", path, response_type=response_type, **kwargs)

    async def get_raw(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.send("GET", path, **kwargs)

    async def post(
        self, path: str, body: Any, response_type: Any, **kwargs: Any
    ) -> Any:
        return await self.request(
            "POST", path, body=body, response_type=response_type, **kwargs
        )

    async def put(
        self, path: str, body: Any, response_type: Any, **kwargs: Any
    ) -> Any:
        return await self.request(
            "PUT", path, body=body, response_type=response_type, **kwargs
        )

    async def patch(
        self, path: str, body: Any, response_type: Any, **kwargs: Any
    ) -> Any:
        return await self.request(
            "PATCH", path, body=body, response_type=response_type, **kwargs
        )

    async def delete(self, path: str, **kwargs: Any) -> None:
        await self.request("DELETE", path, **kwargs)

    async def _execute_with_retry(
        self,
        spec: RequestSpec,
        stop_event: asyncio.Event | None,
    ) -> Outcome:
        sleep = self._sleep
        if sleep is None and stop_event is not None:
            sleep = build_interruptible_sleep(stop_event)
        retrying = build_outcome_retrying(
            is_retryable=is_retryable_outcome,
            policy=self._retry_policy,
            backoff=self._backoff,
            sleep=sleep,
            before_sleep=self._log_retry_scheduled(spec),
        )
        return await retrying(self._attempt_once, spec, stop_event)

    async def _attempt_once(
        self,
        spec: RequestSpec,
        stop_event: asyncio.Event | None,
    ) -> Outcome:
        if stop_event is not None and stop_event.is_set():
            raise RequestCancelledError(ATTEMPT_STOP_MESSAGE)

        log_debug(
            self._logger,
            "request.attempt_started",
            method=spec.method,
            path=spec.path,
        )
        start = time.monotonic()
        try:
            response = await self._transport.send(spec, stop_event=stop_event)
        except httpx.RequestError as exc:
            outcome = classify_request_error(exc)
            log_debug(
                self._logger,
                "request.attempt_finished",
                method=spec.method,
                path=spec.path,
                status_code=None,
                error=type(exc).__name__,
                elapsed=max(time.monotonic() - start, 0.0),
            )
            return outcome

        log_debug(
            self._logger,
            "request.attempt_finished",
            method=spec.method,
            path=spec.path,
            status_code=response.status_code,
            elapsed=max(time.monotonic() - start, 0.0),
        )
        return classify_response(
            response, is_retryable_status=self._is_retryable_status
        )

    def _log_retry_scheduled(
        self, spec: RequestSpec
    ) -> Callable[[RetryCallState], None]:
        def _before_sleep(retry_state: RetryCallState) -> None:
            outcome = retry_state.outcome
            reason = "unknown"
            if outcome is not None and not outcome.failed:
                result = outcome.result()
                if isinstance(result, RetryableFailure):
                    reason = result.reason
            next_action = retry_state.next_action
            delay = next_action.sleep if next_action is not None else 0.0
            log_warning(
                self._logger,
                "request.retry_scheduled",
                method=spec.method,
                path=spec.path,
                attempt=retry_state.attempt_number,
                delay_seconds=delay,
                reason=reason,
            )

        return _before_sleep

    def _resolve(self, spec: RequestSpec, outcome: Outcome) -> httpx.Response:
        if isinstance(outcome, Success):
            return outcome.response

        if isinstance(outcome, RetryableFailure):
            terminal = terminal_from_retryable(outcome)
            if terminal is None:
                log_error(
                    self._logger,
                    "request.failed",
                    method=spec.method,
                    path=spec.path,
                    status_code=None,
                    reason=outcome.reason,
                )
                raise ConnectTransportError(
                    f"{spec.method} {spec.path} failed after "
                    f"{self._retry_policy.max_attempts} attempt(s): {outcome.reason}",
                    attempts=self._retry_policy.max_attempts,
                ) from outcome.error
            outcome = terminal

        if isinstance(outcome, ProtocolFailure):
            raise self._map_protocol(spec, outcome) from outcome.error

        raise self._map_terminal(spec, outcome)

    def _map_protocol(
        self, spec: RequestSpec, failure: ProtocolFailure
    ) -> DeserializationError | ConnectTransportError:
        reason = failure.reason
        error: DeserializationError | ConnectTransportError
        if isinstance(failure.error, httpx.DecodingError):
            error = DeserializationError(
                f"{spec.method} {spec.path} response could not be decoded: {reason}"
            )
        else:
            error = ConnectTransportError(
                f"{spec.method} {spec.path} failed: {reason}", attempts=1
            )
        log_error(
            self._logger,
            "request.failed",
            method=spec.method,
            path=spec.path,
            status_code=None,
            reason=reason,
        )
        return error

    def _map_terminal(
        self, spec: RequestSpec, failure: TerminalFailure
    ) -> ConnectApiError:
        error = map_error(failure.status_code, failure.body, failure.reason_phrase)
        log = log_error if failure.status_code >= 500 else log_warning
        log(
            self._logger,
            "request.failed",
            method=spec.method,
            path=spec.path,
            status_code=failure.status_code,
            kind=error.kind,
            message=error.message,
        )
        return error
