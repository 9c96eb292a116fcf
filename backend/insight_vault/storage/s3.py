"""
S3 Storage Backend

Remote object store for original uploads.

Key layout:
    s3://<BUCKET>/<prefix>/<uuid hex>/<sanitized display name>

The key doubles as the blob id recorded on the item. The uuid segment is
generated server-side, so two uploads with the same display name never
collide and the client never supplies a raw key.

Sharing:
    When s3_owner_canonical_id is configured, every stored object is granted
    FULL_CONTROL to that principal via put_object_acl. This is a
    non-critical step: a failure is logged and recorded on the returned
    StorageRef but never fails store().

Error mapping:
    put_object failure              → StorageUnavailable
    get_object NoSuchKey / 404      → NotFound
    any other get/delete failure    → StorageUnavailable
"""

from __future__ import annotations

import logging
import re
import uuid
from urllib.parse import quote
from uuid import UUID

import aioboto3
from botocore.exceptions import BotoCoreError, ClientError

from insight_vault.core.config import Settings
from insight_vault.core.errors import NotFound, StorageUnavailable
from insight_vault.core.steps import run_non_critical
from insight_vault.storage.base import StorageBackend, StorageBackendKind, StorageRef

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._ -]+")


def sanitize_display_name(name: str) -> str:
    """Strip directory components and characters S3 keys should not carry."""
    base = (name or "").replace("\\", "/").rsplit("/", 1)[-1]
    base = base.replace("..", "_")
    cleaned = _UNSAFE_CHARS.sub("_", base).strip(" .")
    return cleaned or "upload"


class S3StorageBackend(StorageBackend):
    """
    Async S3 operations over one configured bucket.

    A single instance is shared by the process; each call opens its own
    client context from the aioboto3 session.
    """

    kind = StorageBackendKind.REMOTE

    def __init__(
        self,
        bucket: str,
        region: str,
        prefix: str = "",
        owner_id: str = "",
        access_key_id: str = "",
        secret_access_key: str = "",
    ) -> None:
        if not bucket:
            raise ValueError("S3StorageBackend requires a bucket")
        self._bucket   = bucket
        self._region   = region
        self._prefix   = prefix.strip("/")
        self._owner_id = owner_id
        self._session  = aioboto3.Session(
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
            region_name=region,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3StorageBackend":
        return cls(
            bucket=settings.s3_bucket,
            region=settings.aws_region,
            prefix=settings.s3_prefix,
            owner_id=settings.s3_owner_canonical_id,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _client(self):
        """Return a scoped async S3 client context manager."""
        return self._session.client("s3", region_name=self._region)

    def build_key(self, display_name: str) -> str:
        parts = [self._prefix] if self._prefix else []
        parts += [uuid.uuid4().hex, sanitize_display_name(display_name)]
        return "/".join(parts)

    def locator_url(self, key: str) -> str:
        return f"https://{self._bucket}.s3.{self._region}.amazonaws.com/{quote(key)}"

    async def _grant_owner(self, key: str) -> None:
        async with self._client() as s3:
            await s3.put_object_acl(
                Bucket=self._bucket,
                Key=key,
                GrantFullControl=f"id={self._owner_id}",
            )

    # ------------------------------------------------------------------
    # StorageBackend
    # ------------------------------------------------------------------

    async def store(
        self,
        data: bytes,
        *,
        item_id: UUID,
        display_name: str,
        media_type: str,
    ) -> StorageRef:
        key = self.build_key(display_name)

        try:
            async with self._client() as s3:
                await s3.put_object(
                    Bucket=self._bucket,
                    Key=key,
                    Body=data,
                    ContentType=media_type or "application/octet-stream",
                    Metadata={
                        "item_id":      str(item_id),
                        "display_name": quote(display_name or ""),
                    },
                )
        except (ClientError, BotoCoreError) as exc:
            logger.error("S3 upload failed | item=%s key=%s error=%s", item_id, key, exc)
            raise StorageUnavailable(
                f"Remote store rejected upload: {exc}",
                {"bucket": self._bucket, "key": key},
            ) from exc

        logger.info("S3 upload ok | item=%s key=%s size=%d", item_id, key, len(data))

        steps = ()
        if self._owner_id:
            outcome = await run_non_critical(
                "share_with_owner", self._grant_owner(key), key=key,
            )
            steps = (outcome,)

        return StorageRef(
            backend=self.kind,
            blob_id=key,
            locator_url=self.locator_url(key),
            steps=steps,
        )

    async def fetch(self, blob_id: str) -> bytes:
        try:
            async with self._client() as s3:
                resp = await s3.get_object(Bucket=self._bucket, Key=blob_id)
                return await resp["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise NotFound("blob", blob_id) from exc
            raise StorageUnavailable(f"Remote store read failed: {exc}", {"key": blob_id}) from exc
        except BotoCoreError as exc:
            raise StorageUnavailable(f"Remote store read failed: {exc}", {"key": blob_id}) from exc

    async def delete(self, blob_id: str) -> None:
        try:
            async with self._client() as s3:
                await s3.delete_object(Bucket=self._bucket, Key=blob_id)
        except (ClientError, BotoCoreError) as exc:
            raise StorageUnavailable(f"Remote store delete failed: {exc}", {"key": blob_id}) from exc
        logger.info("S3 delete | key=%s", blob_id)
