from __future__ import annotations

import asyncio

from onepassword_connect.models import Vault
from onepassword_connect.paths import build_path, require_id, with_query
from onepassword_connect.pipeline import RequestPipeline


class VaultsClient:
    """Vault listing and lookup."""

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline

    async def list(
        self,
        filter: str | None = None,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> list[Vault]:
        """List vaults, optionally narrowed by a SCIM ``eq`` filter.

        Example filter: ``name eq "Production Vault"``.
        """
        query = filter if filter and filter.strip() else None
        path = with_query(build_path("vaults"), {"filter": query})
        return await self._pipeline.get(path, list[Vault], stop_event=stop_event)

    async def get(
        self,
        vault_id: str,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> Vault:
        require_id(vault_id, "Vault ID")
        path = build_path("vaults", vault_id)
        return await self._pipeline.get(path, Vault, stop_event=stop_event)
