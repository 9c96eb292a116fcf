"""
Items: Pydantic Request/Response Schemas

Covers every route under /api/v1:
  - Item status state machine and source kinds
  - Item, log, taxonomy, health and collection responses
  - Video / collection / confirm / reclassify request bodies
  - The uniform ErrorResponse envelope and its factories

Design decisions:
  - Item ids are always server-generated (UUID4); never client-supplied.
  - pillar_name / topic_name are never accepted from clients; they are
    derived from the taxonomy by the service layer.
  - All timestamps are serialized as ISO-8601 strings.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Upload limits: enforced before any side effect
# ---------------------------------------------------------------------------

ALLOWED_EXTENSIONS: frozenset[str] = frozenset(
    {".pdf", ".txt", ".md", ".docx", ".png", ".jpg", ".jpeg", ".webp"}
)

MAX_FILE_SIZE_BYTES: int = 20 * 1024 * 1024  # 20 MB


# ---------------------------------------------------------------------------
# Item state machine
# ---------------------------------------------------------------------------

class ItemStatus(str, Enum):
    """
    Maps to items.status.

    pending → classifying → classified | needs_api_key | error
    classified → confirmed (confirm or reclassify)
    confirmed → confirmed (operator correction)
    error → pending (resubmission)
    """
    PENDING       = "pending"
    CLASSIFYING   = "classifying"
    CLASSIFIED    = "classified"
    NEEDS_API_KEY = "needs_api_key"
    ERROR         = "error"
    CONFIRMED     = "confirmed"

    @classmethod
    def can_transition(cls, src: "ItemStatus | str", dst: "ItemStatus | str") -> bool:
        return cls(dst) in _TRANSITIONS.get(cls(src), frozenset())

    @property
    def is_operator_editable(self) -> bool:
        return self in (ItemStatus.CLASSIFIED, ItemStatus.CONFIRMED)


_TRANSITIONS: dict[ItemStatus, frozenset[ItemStatus]] = {
    ItemStatus.PENDING:       frozenset({ItemStatus.CLASSIFYING, ItemStatus.ERROR}),
    ItemStatus.CLASSIFYING:   frozenset({ItemStatus.CLASSIFIED, ItemStatus.NEEDS_API_KEY, ItemStatus.ERROR}),
    ItemStatus.CLASSIFIED:    frozenset({ItemStatus.CONFIRMED}),
    ItemStatus.CONFIRMED:     frozenset({ItemStatus.CONFIRMED}),
    ItemStatus.ERROR:         frozenset({ItemStatus.PENDING}),
    ItemStatus.NEEDS_API_KEY: frozenset(),
}


class SourceKind(str, Enum):
    FILE                    = "file"
    VIDEO                   = "video"
    VIDEO_COLLECTION_MEMBER = "video_collection_member"


# ---------------------------------------------------------------------------
# Item responses
# ---------------------------------------------------------------------------

class ItemResponse(BaseModel):
    """Full item as stored in the ledger."""
    model_config = ConfigDict(from_attributes=True)

    id:              UUID
    source_kind:     SourceKind
    external_id:     str | None = None
    collection_id:   str | None = None
    original_name:   str
    media_type:      str
    byte_size:       int
    extracted_text:  str | None = None
    summary:         str | None = None
    tags:            list[str]  = Field(default_factory=list)
    pillar_id:       str | None = None
    pillar_name:     str | None = None
    topic_id:        str | None = None
    topic_name:      str | None = None
    confidence:      float | None = None
    rationale:       str | None = None
    suggested_topic: str | None = None
    status:          ItemStatus
    storage_backend: str | None = None
    storage_url:     str | None = None
    created_at:      datetime
    updated_at:      datetime

    @field_validator("tags", mode="before")
    @classmethod
    def _none_tags(cls, v: Any) -> Any:
        return v or []


class ItemListResponse(BaseModel):
    total:  int
    limit:  int
    offset: int
    items:  list[ItemResponse]


class LogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id:                UUID
    item_id:           UUID
    prompt_text:       str
    raw_response_text: str | None = None
    model_identifier:  str | None = None
    token_count:       int
    succeeded:         bool
    created_at:        datetime


# ---------------------------------------------------------------------------
# Taxonomy responses
# ---------------------------------------------------------------------------

class TopicResponse(BaseModel):
    id:        str
    pillar_id: str
    name:      str


class PillarResponse(BaseModel):
    id:             str
    name_primary:   str
    name_secondary: str
    topic_count:    int


# ---------------------------------------------------------------------------
# Health / collections
# ---------------------------------------------------------------------------

class HealthResponse(BaseModel):
    status:           str = "ok"
    version:          str
    taxonomy_version: str
    items:            int
    database:         str
    reasoning:        bool = Field(..., description="Reasoning credential configured")
    video_source:     bool = Field(..., description="Video metadata credential configured")
    storage_backend:  str
    timestamp:        datetime


class CollectionAccepted(BaseModel):
    """Returned immediately; members are processed in the background."""
    collection_id: str
    accepted:      int


class CollectionProgress(BaseModel):
    collection_id: str
    total:         int
    by_status:     dict[str, int]


# ---------------------------------------------------------------------------
# Request bodies
# ---------------------------------------------------------------------------

class VideoSubmitRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Video URL or bare video id")


class CollectionSubmitRequest(BaseModel):
    url: str = Field(..., min_length=1, description="Playlist URL or bare playlist id")


class ConfirmRequest(BaseModel):
    """
    Optional operator corrections applied together with the confirmation.
    Omitted fields keep their stored value.
    """
    pillar_id: str | None = None
    topic_id:  str | None = None
    tags:      list[str] | None = None
    summary:   str | None = None

    @model_validator(mode="after")
    def _pillar_and_topic_together(self) -> "ConfirmRequest":
        if (self.pillar_id is None) != (self.topic_id is None):
            raise ValueError("pillar_id and topic_id must be supplied together")
        return self


class ReclassifyRequest(BaseModel):
    pillar_id:  str = Field(..., min_length=1)
    topic_id:   str | None = None
    topic_name: str | None = None

    @model_validator(mode="after")
    def _topic_reference(self) -> "ReclassifyRequest":
        if not self.topic_id and not self.topic_name:
            raise ValueError("topic_id or topic_name is required")
        return self


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error; may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str        = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    context:    dict[str, Any]    = Field(default_factory=dict)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


class ItemErrors:
    """Factories for the error cases route handlers build themselves."""

    @staticmethod
    def from_vault_error(exc: Any, request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code=exc.code,
            message=exc.message,
            context=dict(exc.details),
            request_id=request_id,
        )

    @staticmethod
    def request_validation(errors: list[dict], request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="VALIDATION_FAILED",
            message="Request validation failed.",
            details=[
                ErrorDetail(
                    field=".".join(str(p) for p in err.get("loc", ())) or None,
                    message=err.get("msg", "invalid"),
                    code=err.get("type", "invalid"),
                )
                for err in errors
            ],
            request_id=request_id,
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred.",
            request_id=request_id,
        )
