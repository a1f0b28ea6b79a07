from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from onepassword_connect.models import File
from onepassword_connect.paths import build_path, require_id, with_query
from onepassword_connect.pipeline import RequestPipeline


def _inline(inline_files: bool) -> dict[str, object | None]:
    return {"inline_files": "true" if inline_files else None}


class FilesClient:
    """Files attached to items."""

    def __init__(self, pipeline: RequestPipeline) -> None:
        self._pipeline = pipeline

    @staticmethod
    def _files_path(vault_id: str, item_id: str, *rest: str) -> str:
        require_id(vault_id, "Vault ID")
        require_id(item_id, "Item ID")
        return build_path("vaults", vault_id, "items", item_id, "files", *rest)

    async def list(
        self,
        vault_id: str,
        item_id: str,
        inline_files: bool = False,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> list[File]:
        """List an item's files; ``inline_files`` embeds base64 content."""
        path = with_query(self._files_path(vault_id, item_id), _inline(inline_files))
        return await self._pipeline.get(path, list[File], stop_event=stop_event)

    async def get(
        self,
        vault_id: str,
        item_id: str,
        file_id: str,
        inline_files: bool = False,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> File:
        require_id(file_id, "File ID")
        path = with_query(
            self._files_path(vault_id, item_id, file_id), _inline(inline_files)
        )
        return await self._pipeline.get(path, File, stop_event=stop_event)

    async def download(
        self,
        vault_id: str,
        item_id: str,
        file_id: str,
        *,
        stop_event: asyncio.Event | None = None,
    ) -> bytes:
        """Download a file's content into memory."""
        require_id(file_id, "File ID")
        path = self._files_path(vault_id, item_id, file_id, "content")
        response = await self._pipeline.get_raw(path, stop_event=stop_event)
        return response.content

    @asynccontextmanager
    async def stream_download(
        self,
        vault_id: str,
        item_id: str,
        file_id: str,
        *,
        chunk_size: int | None = None,
        stop_event: asyncio.Event | None = None,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Stream a file's content without buffering it.

        The chunks must be consumed inside the ``async with`` block; the
        connection is released when the block exits::

            async with client.files.stream_download(vault, item, file) as chunks:
                async for chunk in chunks:
                    sink.write(chunk)
        """
        require_id(file_id, "File ID")
        path = self._files_path(vault_id, item_id, file_id, "content")
        stream = self._pipeline.stream("GET", path, stop_event=stop_event)
        async with stream as response:
            yield response.aiter_bytes(chunk_size)
