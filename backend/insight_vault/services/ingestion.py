"""
Ingestion Service

Orchestrates every single-item flow:

  submit_file
    1. Validate extension and size (before any side effect)
    2. Resolve the media type (magic bytes → extension → declared)
    3. Extract text in a worker thread
    4. Register the item (status=pending)
    5. Store original bytes on the selected backend
         failure → item=error (storage diagnostic in rationale), StorageUnavailable
    6. classifying → classify
         ReasoningUnavailable → needs_api_key (pillar stays NULL)
         ClassificationFailed → error + audit entry, re-raised with item_id
         success              → classified + audit entry

  submit_video
    1. Parse the video id; an item with that external_id is returned as-is
    2. Fetch metadata, register with INSERT … ON CONFLICT DO NOTHING
    3. classifying → classify (same outcomes as above)

  confirm / reclassify
    Operator edits; allowed only from classified or confirmed. Taxonomy ids
    are validated before anything is written.

Status changes go through _advance(), which enforces ItemStatus transitions.
"""

from __future__ import annotations

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import UUID

from insight_vault.core.errors import (
    ClassificationFailed,
    InvalidTransition,
    NotFound,
    ReasoningUnavailable,
    StorageUnavailable,
    ValidationFailed,
)
from insight_vault.integrations.youtube import VideoMetadata, YouTubeVideoSource, extract_video_id
from insight_vault.models.items import ClassificationLog, Item
from insight_vault.processing.extractor import (
    CollectionMemberSource,
    ContentExtractor,
    FileSource,
    VideoSource,
    resolve_media_type,
)
from insight_vault.schemas.items import (
    ALLOWED_EXTENSIONS,
    MAX_FILE_SIZE_BYTES,
    ItemStatus,
    SourceKind,
)
from insight_vault.services.classifier import MAX_TAGS, Classifier
from insight_vault.services.ledger import ItemLedger, ItemPage
from insight_vault.storage.gateway import StorageGateway
from insight_vault.taxonomy import Taxonomy

logger = logging.getLogger(__name__)

VIDEO_MEDIA_TYPE = "video/youtube"


@dataclass(frozen=True)
class OriginalContent:
    data:       bytes
    media_type: str
    filename:   str


def _get_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def normalise_tags(tags: list[str]) -> list[str]:
    """Lower-case, strip, de-duplicate (order kept) and cap at MAX_TAGS."""
    seen: list[str] = []
    for raw in tags:
        tag = str(raw).strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return seen[:MAX_TAGS]


class IngestionService:
    def __init__(
        self,
        *,
        ledger:     ItemLedger,
        extractor:  ContentExtractor,
        classifier: Classifier,
        storage:    StorageGateway,
        videos:     YouTubeVideoSource,
        taxonomy:   Taxonomy,
        max_upload_bytes: int = MAX_FILE_SIZE_BYTES,
        version:    str = "",
        db_check:   Callable[[], Awaitable[dict]] | None = None,
    ) -> None:
        self._ledger     = ledger
        self._extractor  = extractor
        self._classifier = classifier
        self._storage    = storage
        self._videos     = videos
        self._taxonomy   = taxonomy
        self._max_bytes  = max_upload_bytes
        self._version    = version
        self._db_check   = db_check

    @property
    def ledger(self) -> ItemLedger:
        return self._ledger

    @property
    def videos(self) -> YouTubeVideoSource:
        return self._videos

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_upload(self, filename: str, size: int) -> None:
        if not filename or not filename.strip():
            raise ValidationFailed("No file received.", {"field": "file"})

        ext = _get_extension(filename)
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationFailed(
                f"File type '{ext or filename}' is not supported.",
                {"field": "file", "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        if size > self._max_bytes:
            raise ValidationFailed(
                f"Uploaded file exceeds the {self._max_bytes // (1024 * 1024)} MB limit.",
                {"field": "file", "size": size, "limit": self._max_bytes},
            )

    # ------------------------------------------------------------------
    # Status changes
    # ------------------------------------------------------------------

    async def _advance(self, item: Item, target: ItemStatus, **fields: Any) -> Item:
        if not ItemStatus.can_transition(item.status, target):
            raise InvalidTransition(item.id, item.status, target.value)
        return await self._ledger.update(item.id, status=target.value, **fields)

    # ------------------------------------------------------------------
    # submit-file
    # ------------------------------------------------------------------

    async def submit_file(
        self,
        data: bytes,
        filename: str,
        declared_type: str | None = None,
    ) -> Item:
        self.validate_upload(filename, len(data))

        media_type = resolve_media_type(filename, declared_type, data[:16])
        extracted = await asyncio.to_thread(
            self._extractor.extract, FileSource(data=data, media_type=media_type, filename=filename),
        )

        item = await self._ledger.create(
            Item(
                id=uuid.uuid4(),
                source_kind=SourceKind.FILE.value,
                original_name=filename,
                media_type=media_type,
                byte_size=len(data),
                extracted_text=extracted.text,
                tags=[],
                status=ItemStatus.PENDING.value,
            )
        )
        logger.info(
            "Upload registered | item=%s name=%s type=%s size=%d truncated=%s degraded=%s",
            item.id, filename, media_type, len(data), extracted.truncated, extracted.degraded,
        )

        try:
            ref = await self._storage.store(
                data, item_id=item.id, display_name=filename, media_type=media_type,
            )
        except StorageUnavailable as exc:
            logger.error("Storage failed | item=%s error=%s", item.id, exc.message)
            await self._advance(item, ItemStatus.ERROR, rationale=f"Storage failed: {exc.message}")
            raise

        item = await self._advance(
            item,
            ItemStatus.CLASSIFYING,
            storage_backend=ref.backend.value,
            storage_blob_id=ref.blob_id,
            storage_url=ref.locator_url,
        )
        return await self._classify_item(item, extracted.grounding_text, filename)

    # ------------------------------------------------------------------
    # submit-video / collection members
    # ------------------------------------------------------------------

    async def submit_video(self, ref: str) -> Item:
        video_id = extract_video_id(ref)

        existing = await self._ledger.get_by_external_id(video_id)
        if existing is not None:
            logger.info("Video already ingested | video=%s item=%s", video_id, existing.id)
            return existing

        metadata = await self._videos.get_video(video_id)
        item, inserted = await self.register_video(metadata)
        if not inserted:
            return item
        return await self.classify_registered(item)

    async def register_video(
        self,
        metadata: VideoMetadata,
        collection_id: str | None = None,
    ) -> tuple[Item, bool]:
        """
        Conditionally register a video. Returns (item, inserted); when the
        external id already exists the stored item is returned unchanged.
        """
        if collection_id:
            source = CollectionMemberSource(metadata=metadata, collection_id=collection_id)
            kind = SourceKind.VIDEO_COLLECTION_MEMBER
        else:
            source = VideoSource(metadata=metadata)
            kind = SourceKind.VIDEO
        extracted = self._extractor.extract(source)

        candidate = Item(
            id=uuid.uuid4(),
            source_kind=kind.value,
            external_id=metadata.video_id,
            collection_id=collection_id,
            original_name=metadata.title or metadata.url,
            media_type=VIDEO_MEDIA_TYPE,
            byte_size=len(extracted.text.encode("utf-8")),
            extracted_text=extracted.text,
            tags=[],
            status=ItemStatus.PENDING.value,
        )

        if not await self._ledger.insert_if_absent(candidate):
            existing = await self._ledger.get_by_external_id(metadata.video_id)
            if existing is None:
                raise NotFound("video", metadata.video_id)
            return existing, False

        return await self._ledger.get(candidate.id), True

    async def classify_registered(self, item: Item) -> Item:
        """Run classification for an item registered as pending."""
        item = await self._advance(item, ItemStatus.CLASSIFYING)
        display_name = f"YouTube: {item.original_name}" if item.external_id else item.original_name
        return await self._classify_item(item, item.extracted_text or "", display_name)

    # ------------------------------------------------------------------
    # Classification step shared by every source
    # ------------------------------------------------------------------

    async def _classify_item(self, item: Item, text: str, display_name: str) -> Item:
        try:
            attempt = await self._classifier.classify(text, display_name)
        except ReasoningUnavailable:
            logger.info("Classification skipped, no credential | item=%s", item.id)
            return await self._advance(item, ItemStatus.NEEDS_API_KEY)

        outcome = attempt.outcome
        try:
            await self._ledger.append_log(attempt.log.for_item(item.id))
            if not isinstance(outcome, ClassificationFailed):
                return await self._advance(item, ItemStatus.CLASSIFIED, **outcome.as_item_fields())
            await self._advance(item, ItemStatus.ERROR, rationale=outcome.message)
        except Exception as exc:
            await self._record_failure(item, exc)
            raise

        raise outcome.for_item(item.id)

    async def _record_failure(self, item: Item, exc: Exception) -> None:
        """Move an item stuck in classifying to error after a ledger failure."""
        logger.exception("Recording classification failed | item=%s", item.id)
        try:
            await self._advance(
                item, ItemStatus.ERROR, rationale=f"Recording classification failed: {type(exc).__name__}: {exc}",
            )
        except Exception as inner:
            logger.error("Item left in classifying | item=%s error=%s", item.id, inner)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get_item(self, item_id: UUID) -> Item:
        return await self._ledger.get(item_id)

    async def list_items(
        self,
        pillar_id:     str | None = None,
        topic_id:      str | None = None,
        status:        str | None = None,
        search:        str | None = None,
        collection_id: str | None = None,
        limit:         int = 50,
        offset:        int = 0,
    ) -> ItemPage:
        return await self._ledger.list(
            pillar_id=pillar_id,
            topic_id=topic_id,
            status=status,
            search=search,
            collection_id=collection_id,
            limit=limit,
            offset=offset,
        )

    async def list_logs(self, item_id: UUID | None = None, limit: int = 100) -> list[ClassificationLog]:
        return await self._ledger.list_logs(item_id=item_id, limit=limit)

    async def fetch_original(self, item_id: UUID) -> OriginalContent:
        item = await self._ledger.get(item_id)
        ref = item.storage_ref
        if ref is None:
            raise NotFound("blob", item_id)
        data = await self._storage.fetch(ref)
        return OriginalContent(data=data, media_type=item.media_type, filename=item.original_name)

    # ------------------------------------------------------------------
    # Operator actions
    # ------------------------------------------------------------------

    def _ensure_editable(self, item: Item) -> None:
        if not ItemStatus(item.status).is_operator_editable:
            raise InvalidTransition(item.id, item.status, ItemStatus.CONFIRMED.value)

    async def confirm(
        self,
        item_id:   UUID,
        pillar_id: str | None = None,
        topic_id:  str | None = None,
        tags:      list[str] | None = None,
        summary:   str | None = None,
    ) -> Item:
        fields: dict[str, Any] = {}
        if pillar_id is not None or topic_id is not None:
            pillar, topic = self._taxonomy.validate(pillar_id or "", topic_id or "")
            fields.update(
                pillar_id=pillar.id, pillar_name=pillar.name_primary,
                topic_id=topic.id, topic_name=topic.name,
            )
        if tags is not None:
            fields["tags"] = normalise_tags(tags)
        if summary is not None and summary.strip():
            fields["summary"] = summary.strip()

        item = await self._ledger.get(item_id)
        self._ensure_editable(item)

        item = await self._advance(item, ItemStatus.CONFIRMED, **fields)
        logger.info("Item confirmed | item=%s pillar=%s topic=%s", item.id, item.pillar_id, item.topic_id)
        return item

    async def reclassify(
        self,
        item_id:    UUID,
        pillar_id:  str,
        topic_id:   str | None = None,
        topic_name: str | None = None,
    ) -> Item:
        if topic_id:
            pillar, topic = self._taxonomy.validate(pillar_id, topic_id)
        else:
            if pillar_id not in self._taxonomy.pillar_ids:
                raise ValidationFailed(f"Unknown pillar '{pillar_id}'.", {"pillar_id": pillar_id})
            pillar = self._taxonomy.find_pillar(pillar_id)
            topic = self._taxonomy.find_topic_by_name(pillar_id, topic_name)
            if topic is None:
                raise ValidationFailed(
                    f"Topic '{topic_name}' not found in pillar '{pillar_id}'.",
                    {"pillar_id": pillar_id, "topic_name": topic_name},
                )

        item = await self._ledger.get(item_id)
        self._ensure_editable(item)

        item = await self._advance(
            item,
            ItemStatus.CONFIRMED,
            pillar_id=pillar.id,
            pillar_name=pillar.name_primary,
            topic_id=topic.id,
            topic_name=topic.name,
        )
        logger.info("Item reclassified | item=%s pillar=%s topic=%s", item.id, pillar.id, topic.id)
        return item

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health(self) -> dict[str, Any]:
        db = await self._db_check() if self._db_check else {"status": "ok"}
        items = await self._ledger.count() if db.get("status") == "ok" else 0
        return {
            "status":           "ok" if db.get("status") == "ok" else "degraded",
            "version":          self._version,
            "taxonomy_version": self._taxonomy.version,
            "items":            items,
            "database":         db.get("status", "unknown"),
            "reasoning":        self._classifier.configured,
            "video_source":     self._videos.configured,
            "storage_backend":  self._storage.selected_backend.value,
            "timestamp":        datetime.now(timezone.utc),
        }
