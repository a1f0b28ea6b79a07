from __future__ import annotations

import asyncio

from onepassword_connect.models import ApiRequest
from onepassword_connect.paths import build_path, with_query
from onepassword_connect.pipeline import RequestPipeline


class ActivityClient:
    """Audit log of API requests made against the server."""

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline

    async def list(
        self,
        limit: int = 50,
        offset: int = 0,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> list[ApiRequest]:
        if limit <= 0:
            raise ValueError("Limit must be greater than 0.")
        if offset < 0:
            raise ValueError("Offset cannot be negative.")
        path = with_query(build_path("activity"), {"limit": limit, "offset": offset})
        return await self._pipeline.get(path, list[ApiRequest], stop_event=stop_event)
