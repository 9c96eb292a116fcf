"""
Local filesystem backend.

Blobs are written to <upload_dir>/<item_id><ext>, where ext is the lower-cased
extension of the display name. The blob id is that path. Writes go through
asyncio.to_thread so the event loop never blocks on disk I/O.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from uuid import UUID

from insight_vault.core.errors import NotFound, StorageUnavailable
from insight_vault.storage.base import StorageBackend, StorageBackendKind, StorageRef

logger = logging.getLogger(__name__)


class LocalStorageBackend(StorageBackend):
    kind = StorageBackendKind.LOCAL

    def __init__(self, upload_dir: str | os.PathLike[str]) -> None:
        self._root = Path(upload_dir)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, item_id: UUID, display_name: str) -> Path:
        ext = os.path.splitext(display_name or "")[1].lower()
        return self._root / f"{item_id}{ext}"

    async def store(
        self,
        data: bytes,
        *,
        item_id: UUID,
        display_name: str,
        media_type: str,
    ) -> StorageRef:
        path = self.path_for(item_id, display_name)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        try:
            await asyncio.to_thread(_write)
        except OSError as exc:
            raise StorageUnavailable(f"Local write failed: {exc}", {"path": str(path)}) from exc

        logger.info("Local store ok | item=%s path=%s size=%d", item_id, path, len(data))
        return StorageRef(backend=self.kind, blob_id=str(path))

    async def fetch(self, blob_id: str) -> bytes:
        path = Path(blob_id)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError as exc:
            raise NotFound("blob", blob_id) from exc

    async def delete(self, blob_id: str) -> None:
        await asyncio.to_thread(Path(blob_id).unlink, missing_ok=True)
