from __future__ import annotations

import asyncio

from onepassword_connect.models import ServerHealth
from onepassword_connect.pipeline import RequestPipeline


class HealthClient:
    """Liveness, dependency health and metrics endpoints (not under ``/v1``)."""

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline

    async def heartbeat(self, *, stop_event: asyncio.Event | None = None) -> str:
        """Ping the server; a healthy server answers ``"."``."""
        response = await self._pipeline.get_raw("/heartbeat", stop_event=stop_event)
        return response.text

    async def health(
        self, *, stop_event: asyncio.Event | None = None
    ) -> ServerHealth:
        return await self._pipeline.get("/health", ServerHealth, stop_event=stop_event)

    async def metrics(self, *, stop_event: asyncio.Event | None = None) -> str:
        """Return Prometheus metrics in text exposition format."""
        response = await self._pipeline.get_raw("/metrics", stop_event=stop_event)
        return response.text
