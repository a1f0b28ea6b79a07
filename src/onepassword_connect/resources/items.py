from __future__ import annotations

import asyncio
from collections.abc import Sequence

from onepassword_connect.models import FullItem, Item, PatchOperation
from onepassword_connect.paths import build_path, require_id, with_query
from onepassword_connect.pipeline import RequestPipeline


class ItemsClient:
    """Item CRUD within a vault."""

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline

    @staticmethod
    def _item_path(vault_id: str, item_id: str) -> str:
        require_id(vault_id, "Vault ID")
        require_id(item_id, "Item ID")
        return build_path("vaults", vault_id, "items", item_id)

    async def list(
        self,
        vault_id: str,
        filter: str | None = None,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> list[Item]:
        """List item summaries, optionally narrowed by a SCIM ``eq`` filter.

        Example filter: ``title eq "Database Password"``.
        """
        require_id(vault_id, "Vault ID")
        query = filter if filter and filter.strip() else None
        path = with_query(build_path("vaults", vault_id, "items"), {"filter": query})
        return await self._pipeline.get(path, list[Item], stop_event=stop_event)

    async def get(
        self,
        vault_id: str,
        item_id: str,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> FullItem:
        path = self._item_path(vault_id, item_id)
        return await self._pipeline.get(path, FullItem, stop_event=stop_event)

    async def create(
        self,
        vault_id: str,
        item: FullItem,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> FullItem:
        require_id(vault_id, "Vault ID")
        if item is None:
            raise ValueError("item is required.")
        path = build_path("vaults", vault_id, "items")
        return await self._pipeline.post(path, item, FullItem, stop_event=stop_event)

    async def replace(
        self,
        vault_id: str,
        item_id: str,
        item: FullItem,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> FullItem:
        """Replace an item wholesale (PUT)."""
        path = self._item_path(vault_id, item_id)
        if item is None:
            raise ValueError("item is required.")
        return await self._pipeline.put(path, item, FullItem, stop_event=stop_event)

    async def patch(
        self,
        vault_id: str,
        item_id: str,
        operations: Sequence[PatchOperation],
        *,
        stop_event: asyncio.Event | None = None,
    ) -> FullItem:
        """Apply RFC 6902 patch operations and return the updated item."""
        path = self._item_path(vault_id, item_id)
        if not operations:
            raise ValueError("Patch operations cannot be empty.")
        return await self._pipeline.patch(
            path, list(operations), FullItem, stop_event=stop_event
        )

    async def delete(
        self,
        vault_id: str,
        item_id: str,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> None:
        path = self._item_path(vault_id, item_id)
        await self._pipeline.delete(path, stop_event=stop_event)
