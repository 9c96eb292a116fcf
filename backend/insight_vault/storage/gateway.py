"""
Storage Gateway

Single entry point for original-bytes persistence.

Selection happens once, in build_storage_gateway():
  s3_bucket + AWS credentials configured → S3StorageBackend
  otherwise                              → LocalStorageBackend

store() always writes to the selected backend. A remote failure propagates
as StorageUnavailable; nothing is retried or written locally instead.

fetch() routes by the ref: remote only when the ref says remote AND a remote
backend is enabled, local path otherwise.
"""

from __future__ import annotations

import logging
from uuid import UUID

from insight_vault.core.config import Settings
from insight_vault.core.errors import ConfigurationMissing
from insight_vault.storage.base import StorageBackend, StorageBackendKind, StorageRef
from insight_vault.storage.local import LocalStorageBackend
from insight_vault.storage.s3 import S3StorageBackend

logger = logging.getLogger(__name__)


class StorageGateway:
    def __init__(
        self,
        local: LocalStorageBackend,
        remote: StorageBackend | None = None,
    ) -> None:
        self._local  = local
        self._remote = remote

    @property
    def remote_enabled(self) -> bool:
        return self._remote is not None

    @property
    def selected_backend(self) -> StorageBackendKind:
        return StorageBackendKind.REMOTE if self._remote is not None else StorageBackendKind.LOCAL

    def _writer(self) -> StorageBackend:
        return self._remote if self._remote is not None else self._local

    def _reader(self, ref: StorageRef) -> StorageBackend:
        if ref.backend == StorageBackendKind.REMOTE and self._remote is not None:
            return self._remote
        return self._local

    async def store(
        self,
        data: bytes,
        *,
        item_id: UUID,
        display_name: str,
        media_type: str,
    ) -> StorageRef:
        ref = await self._writer().store(
            data,
            item_id=item_id,
            display_name=display_name,
            media_type=media_type,
        )
        for note in ref.diagnostics:
            logger.info("Store completed with diagnostics | item=%s %s", item_id, note)
        return ref

    async def fetch(self, ref: StorageRef) -> bytes:
        return await self._reader(ref).fetch(ref.blob_id)

    async def delete(self, ref: StorageRef) -> None:
        await self._reader(ref).delete(ref.blob_id)


def build_storage_gateway(settings: Settings) -> StorageGateway:
    """Pick the write backend once from configuration."""
    local = LocalStorageBackend(settings.upload_dir)

    if not settings.remote_storage_configured:
        missing = ConfigurationMissing(
            "s3_bucket",
            "Remote storage not configured; original files are kept on local disk.",
        )
        logger.info("Storage backend | backend=local reason=%s", missing.message)
        return StorageGateway(local=local)

    remote = S3StorageBackend.from_settings(settings)
    logger.info(
        "Storage backend | backend=remote bucket=%s region=%s",
        settings.s3_bucket, settings.aws_region,
    )
    return StorageGateway(local=local, remote=remote)
