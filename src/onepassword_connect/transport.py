from __future__ import annotations

import asyncio
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from types import MappingProxyType

import httpx

from onepassword_connect.errors import RequestCancelledError
from onepassword_connect.serialization import JSON_CONTENT_TYPE

DEFAULT_HEADERS: Mapping[str, str] = MappingProxyType({"Accept": JSON_CONTENT_TYPE})
NETWORK_STOP_MESSAGE = "Stop requested while waiting for the server."


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RequestSpec:
    """Immutable description of one logical call."""

    method: str
    path: str
    body: bytes | None = None
    correlation_id: str = field(default_factory=new_correlation_id)
    headers: Mapping[str, str] = field(default_factory=dict)
    stream: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def with_headers(self, headers: Mapping[str, str]) -> RequestSpec:
        """Return a copy with ``headers`` merged over the current ones."""
        return replace(self, headers={**self.headers, **headers})


def build_http_client(
    *,
    base_url: str,
    timeout_seconds: float,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the shared connection pool for one backend target."""
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=httpx.Timeout(timeout_seconds),
        headers=dict(DEFAULT_HEADERS),
        transport=transport,
    )


class HttpTransport:
    """Issue one HTTP exchange for a ``RequestSpec`` over a shared client.

    Transport errors propagate as ``httpx.TransportError``; classification is
    left to the caller.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    async def send(
        self,
        spec: RequestSpec,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> httpx.Response:
        """Send ``spec`` and read the response body.

        With ``spec.stream`` set, a success body is left unread for the caller.
        Error bodies are always read so they can be classified.

        Raises:
            RequestCancelledError: When ``stop_event`` is set before the
                response arrives.
        """
        request = self._client.build_request(
            spec.method,
            spec.path,
            content=spec.body,
            headers=dict(spec.headers),
        )
        if stop_event is None:
            response = await self._client.send(request, stream=spec.stream)
        else:
            response = await self._send_until_stopped(
                request, stop_event, stream=spec.stream
            )
        if spec.stream and not response.is_success:
            await response.aread()
        return response

    async def _send_until_stopped(
        self,
        request: httpx.Request,
        stop_event: asyncio.Event,
        *,
        stream: bool = False,
    ) -> httpx.Response:
        if stop_event.is_set():
            raise RequestCancelledError(NETWORK_STOP_MESSAGE)

        send_task = asyncio.ensure_future(self._client.send(request, stream=stream))
        stop_task = asyncio.ensure_future(stop_event.wait())
        try:
            await asyncio.wait(
                {send_task, stop_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_task.cancel()
            if not send_task.done():
                send_task.cancel()

        if send_task.done() and not send_task.cancelled():
            return send_task.result()

        # Let the cancelled send unwind so the connection goes back to the pool.
        await asyncio.wait({send_task})
        raise RequestCancelledError(NETWORK_STOP_MESSAGE)
