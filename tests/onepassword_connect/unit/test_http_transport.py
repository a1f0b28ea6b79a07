from __future__ import annotations

import asyncio

import httpx
import pytest
from pytest_httpx import HTTPXMock

from onepassword_connect.errors import RequestCancelledError
from onepassword_connect.transport import (
    HttpTransport,
    RequestSpec,
    build_http_client,
)

pytestmark = pytest.mark.asyncio

_BASE_URL = "http://connect.test"


async def test_request_spec_normalizes_method_and_merges_headers() -> None:
    spec = RequestSpec(method="get", path="/v1/vaults", headers={"A": "1"})

    merged = spec.with_headers({"B": "2"})

    assert spec.method == "GET"
    assert dict(merged.headers) == {"A": "1", "B": "2"}
    assert merged.correlation_id == spec.correlation_id
    assert RequestSpec("GET", "/x").correlation_id != spec.correlation_id


async def test_send_uses_client_base_url_and_headers(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_response(method="PUT", url=f"{_BASE_URL}/v1/vaults/v1", text="ok")
    spec = RequestSpec(
        method="PUT",
        path="/v1/vaults/v1",
        body=b"{}",
        headers={"X-Test": "yes"},
    )

    async with build_http_client(base_url=_BASE_URL, timeout_seconds=5.0) as client:
        response = await HttpTransport(client).send(spec)

    assert response.text == "ok"
    request = httpx_mock.get_requests()[0]
    assert request.content == b"{}"
    assert request.headers["X-Test"] == "yes"
    assert request.headers["Accept"] == "application/json"


async def test_streamed_error_body_is_read_for_classification(
    httpx_mock: HTTPXMock,
) -> None:
    httpx_mock.add_response(status_code=404, json={"message": "missing"})
    spec = RequestSpec("GET", "/v1/vaults/v1/items/i1/files/f1/content", stream=True)

    async with build_http_client(base_url=_BASE_URL, timeout_seconds=5.0) as client:
        response = await HttpTransport(client).send(spec)

    assert response.json() == {"message": "missing"}
    assert response.is_closed


async def test_transport_errors_propagate(httpx_mock: HTTPXMock) -> None:
    httpx_mock.add_exception(httpx.ConnectError("refused"))

    async with build_http_client(base_url=_BASE_URL, timeout_seconds=5.0) as client:
        with pytest.raises(httpx.ConnectError):
            await HttpTransport(client).send(RequestSpec("GET", "/heartbeat"))


async def test_stop_event_aborts_network_wait(httpx_mock: HTTPXMock) -> None:
    received = asyncio.Event()

    async def _hang(request: httpx.Request) -> httpx.Response:
        received.set()
        await asyncio.Event().wait()
        return httpx.Response(200)

    httpx_mock.add_callback(_hang)
    stop_event = asyncio.Event()

    async with build_http_client(base_url=_BASE_URL, timeout_seconds=5.0) as client:
        task = asyncio.create_task(
            HttpTransport(client).send(
                RequestSpec("GET", "/heartbeat"), stop_event=stop_event
            )
        )
        await asyncio.wait_for(received.wait(), timeout=1.0)
        stop_event.set()

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(task, timeout=1.0)


async def test_stop_event_already_set_sends_nothing(httpx_mock: HTTPXMock) -> None:
    stop_event = asyncio.Event()
    stop_event.set()

    async with build_http_client(base_url=_BASE_URL, timeout_seconds=5.0) as client:
        with pytest.raises(RequestCancelledError):
            await HttpTransport(client).send(
                RequestSpec("GET", "/heartbeat"), stop_event=stop_event
            )

    assert httpx_mock.get_requests() == []
