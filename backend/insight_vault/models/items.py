"""
SQLAlchemy ORM Models: Items & Classification Log

Two tables:
  items               one row per ingested content unit
  classification_log  append-only audit of every classifier invocation

Column types stay portable (Uuid, JSON, DateTime) so the same models run on
SQLite (aiosqlite, default) and PostgreSQL (asyncpg). Timestamps are set by
Python defaults rather than server defaults so that columns added later by
init_schema() never need a dialect-specific DEFAULT clause.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from insight_vault.schemas.items import ItemStatus
from insight_vault.storage.base import StorageBackendKind, StorageRef


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in ItemStatus)


# ---------------------------------------------------------------------------
# Item model: items
# ---------------------------------------------------------------------------

class Item(Base):
    """
    One ingested content unit.

    State machine (status column):
        pending        row registered, nothing processed yet
        classifying    classifier invocation in progress
        classified     classifier succeeded
        needs_api_key  no reasoning credential configured
        error          storage or classification failed (see rationale)
        confirmed      operator accepted or corrected the classification

    external_id is the video id for video sources and NULL for files. The
    unique index on it is what makes insert_if_absent() idempotent; NULLs
    never collide.
    """

    __tablename__ = "items"
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="items_status_check"),
        Index("uq_items_external_id", "external_id", unique=True),
        Index("idx_items_pillar_topic", "pillar_id", "topic_id"),
        Index("idx_items_status", "status"),
        Index("idx_items_collection", "collection_id"),
        Index("idx_items_created_at", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Source
    source_kind:   Mapped[str]           = mapped_column(String(32), nullable=False)
    external_id:   Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    collection_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    original_name: Mapped[str]           = mapped_column(Text, nullable=False)
    media_type:    Mapped[str]           = mapped_column(String(128), nullable=False)
    byte_size:     Mapped[int]           = mapped_column(BigInteger, nullable=False, default=0)

    # Content + classification
    extracted_text:  Mapped[Optional[str]]   = mapped_column(Text, nullable=True)
    summary:         Mapped[Optional[str]]   = mapped_column(Text, nullable=True)
    tags:            Mapped[Optional[list]]  = mapped_column(JSON, nullable=True, default=list)
    pillar_id:       Mapped[Optional[str]]   = mapped_column(String(8), nullable=True)
    pillar_name:     Mapped[Optional[str]]   = mapped_column(Text, nullable=True)
    topic_id:        Mapped[Optional[str]]   = mapped_column(String(16), nullable=True)
    topic_name:      Mapped[Optional[str]]   = mapped_column(Text, nullable=True)
    confidence:      Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    rationale:       Mapped[Optional[str]]   = mapped_column(Text, nullable=True)
    suggested_topic: Mapped[Optional[str]]   = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=ItemStatus.PENDING.value,
    )

    # Storage reference
    storage_backend: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    storage_blob_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    storage_url:     Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def storage_ref(self) -> StorageRef | None:
        if not self.storage_backend or not self.storage_blob_id:
            return None
        return StorageRef(
            backend=StorageBackendKind(self.storage_backend),
            blob_id=self.storage_blob_id,
            locator_url=self.storage_url,
        )

    def __repr__(self) -> str:
        return f"<Item id={self.id} status={self.status} name={self.original_name!r}>"


# ---------------------------------------------------------------------------
# ClassificationLog model: classification_log
# ---------------------------------------------------------------------------

class ClassificationLog(Base):
    """
    Immutable audit record, one per classifier invocation.

    item_id is a plain back-reference (no foreign key) so log rows outlive
    any future item cleanup. Rows are INSERT-only.
    """

    __tablename__ = "classification_log"
    __table_args__ = (
        Index("idx_classification_log_item", "item_id"),
        Index("idx_classification_log_created", "created_at"),
    )

    id:                Mapped[uuid.UUID]     = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    item_id:           Mapped[uuid.UUID]     = mapped_column(Uuid, nullable=False)
    prompt_text:       Mapped[str]           = mapped_column(Text, nullable=False)
    raw_response_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    model_identifier:  Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    token_count:       Mapped[int]           = mapped_column(Integer, nullable=False, default=0)
    succeeded:         Mapped[bool]          = mapped_column(Boolean, nullable=False, default=False)
    created_at:        Mapped[datetime]      = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<ClassificationLog item={self.item_id} ok={self.succeeded}>"
