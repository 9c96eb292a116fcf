"""
Items API Router

  POST  /items/upload                 multipart upload → classified item
  POST  /items/video                  single video → classified item
  POST  /collections                  playlist → 202, members run in background
  GET   /collections/{id}/progress    per-status counts for one playlist
  GET   /items                        filtered, paginated listing
  GET   /items/{id}                   one item
  PATCH /items/{id}/confirm           operator confirmation (+ optional edits)
  PATCH /items/{id}/reclassify        operator correction of pillar/topic
  GET   /items/{id}/original          stored original bytes
  GET   /logs                         classification audit log
  GET   /pillars                      taxonomy pillars
  GET   /pillars/{id}/topics          topics of one pillar
  GET   /health                       credential flags, storage backend, counts

Handlers stay thin: every rule lives in the service layer, and domain errors
propagate to the VaultError handler registered in main.py, which renders the
ErrorResponse envelope.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote
from uuid import UUID

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile, status

from insight_vault.core.errors import ValidationFailed
from insight_vault.schemas.items import (
    CollectionAccepted,
    CollectionProgress,
    CollectionSubmitRequest,
    ConfirmRequest,
    ErrorResponse,
    HealthResponse,
    ItemListResponse,
    ItemResponse,
    ItemStatus,
    LogResponse,
    PillarResponse,
    ReclassifyRequest,
    TopicResponse,
    VideoSubmitRequest,
)
from insight_vault.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Invalid input or unknown taxonomy id"},
    404: {"model": ErrorResponse, "description": "Item, pillar, video or blob not found"},
}


def get_container(request: Request) -> ServiceContainer:
    """The container is built by the lifespan hook and parked on app.state."""
    return request.app.state.container


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

@router.post(
    "/items/upload",
    response_model=ItemResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Ingestion"],
    summary="Upload and classify a file",
    description=(
        "Accepts PDF, DOCX, TXT, MD and PNG/JPG/WEBP files up to 20 MB. "
        "Text is extracted, the original is stored and the item is classified "
        "against the taxonomy before the response is returned."
    ),
    responses={
        **_ERRORS,
        502: {"model": ErrorResponse, "description": "Storage or classification failed"},
    },
)
async def upload_item(
    request:   Request,
    file:      UploadFile       = File(..., description="Document or image (max 20 MB)"),
    container: ServiceContainer = Depends(get_container),
) -> ItemResponse:
    limit = container.settings.max_upload_bytes
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > limit + 4096:
        raise ValidationFailed(
            f"Uploaded file exceeds the {limit // (1024 * 1024)} MB limit.",
            {"field": "file", "size": int(content_length), "limit": limit},
        )

    data = await file.read()
    item = await container.ingestion.submit_file(
        data,
        filename=file.filename or "",
        declared_type=file.content_type,
    )
    return ItemResponse.model_validate(item)


@router.post(
    "/items/video",
    response_model=ItemResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Ingestion"],
    summary="Ingest and classify a single video",
    responses={
        **_ERRORS,
        502: {"model": ErrorResponse, "description": "Video source or classification failed"},
        503: {"model": ErrorResponse, "description": "Video source credential missing"},
    },
)
async def submit_video(
    body:      VideoSubmitRequest,
    container: ServiceContainer = Depends(get_container),
) -> ItemResponse:
    item = await container.ingestion.submit_video(body.url)
    return ItemResponse.model_validate(item)


@router.post(
    "/collections",
    response_model=CollectionAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Ingestion"],
    summary="Ingest every video of a playlist",
    description=(
        "Lists the playlist members and returns immediately. Members are "
        "registered and classified in the background; poll "
        "GET /collections/{id}/progress or GET /items?collection=… for results."
    ),
    responses={
        400: _ERRORS[400],
        502: {"model": ErrorResponse, "description": "Video source failed"},
        503: {"model": ErrorResponse, "description": "Video source credential missing"},
    },
)
async def submit_collection(
    body:      CollectionSubmitRequest,
    response:  Response,
    container: ServiceContainer = Depends(get_container),
) -> CollectionAccepted:
    accepted = await container.batch.process_collection(body.url)
    response.headers["Location"] = f"/api/v1/collections/{accepted.collection_id}/progress"
    return accepted


@router.get(
    "/collections/{collection_id}/progress",
    response_model=CollectionProgress,
    tags=["Ingestion"],
    summary="Per-status item counts for a playlist",
)
async def collection_progress(
    collection_id: str,
    container:     ServiceContainer = Depends(get_container),
) -> CollectionProgress:
    return await container.batch.collection_progress(collection_id)


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

@router.get(
    "/items",
    response_model=ItemListResponse,
    tags=["Items"],
    summary="List items",
    description="Newest first. `q` matches summary, tags and original name (case-insensitive).",
)
async def list_items(
    pillar:     Optional[str]        = Query(None, description="Pillar id, e.g. P3"),
    topic:      Optional[str]        = Query(None, description="Topic id, e.g. P3.02"),
    status_:    Optional[ItemStatus] = Query(None, alias="status"),
    q:          Optional[str]        = Query(None, max_length=200),
    collection: Optional[str]        = Query(None, description="Playlist id"),
    limit:      int                  = Query(50, ge=1, le=200),
    offset:     int                  = Query(0, ge=0),
    container:  ServiceContainer     = Depends(get_container),
) -> ItemListResponse:
    page = await container.ingestion.list_items(
        pillar_id=pillar,
        topic_id=topic,
        status=status_.value if status_ else None,
        search=q,
        collection_id=collection,
        limit=limit,
        offset=offset,
    )
    return ItemListResponse(
        total=page.total,
        limit=limit,
        offset=offset,
        items=[ItemResponse.model_validate(i) for i in page.items],
    )


@router.get(
    "/items/{item_id}",
    response_model=ItemResponse,
    tags=["Items"],
    summary="Get one item",
    responses={404: _ERRORS[404]},
)
async def get_item(
    item_id:   UUID,
    container: ServiceContainer = Depends(get_container),
) -> ItemResponse:
    return ItemResponse.model_validate(await container.ingestion.get_item(item_id))


@router.patch(
    "/items/{item_id}/confirm",
    response_model=ItemResponse,
    tags=["Items"],
    summary="Confirm a classification",
    description="Optionally overrides pillar/topic (together), tags and summary in the same step.",
    responses={
        **_ERRORS,
        409: {"model": ErrorResponse, "description": "Item is not classified or confirmed"},
    },
)
async def confirm_item(
    item_id:   UUID,
    body:      ConfirmRequest | None = None,
    container: ServiceContainer      = Depends(get_container),
) -> ItemResponse:
    body = body or ConfirmRequest()
    item = await container.ingestion.confirm(
        item_id,
        pillar_id=body.pillar_id,
        topic_id=body.topic_id,
        tags=body.tags,
        summary=body.summary,
    )
    return ItemResponse.model_validate(item)


@router.patch(
    "/items/{item_id}/reclassify",
    response_model=ItemResponse,
    tags=["Items"],
    summary="Move an item to another pillar/topic",
    responses={
        **_ERRORS,
        409: {"model": ErrorResponse, "description": "Item is not classified or confirmed"},
    },
)
async def reclassify_item(
    item_id:   UUID,
    body:      ReclassifyRequest,
    container: ServiceContainer = Depends(get_container),
) -> ItemResponse:
    item = await container.ingestion.reclassify(
        item_id,
        pillar_id=body.pillar_id,
        topic_id=body.topic_id,
        topic_name=body.topic_name,
    )
    return ItemResponse.model_validate(item)


@router.get(
    "/items/{item_id}/original",
    tags=["Items"],
    summary="Download the stored original",
    response_class=Response,
    responses={
        200: {"content": {"application/octet-stream": {}}},
        404: _ERRORS[404],
        502: {"model": ErrorResponse, "description": "Storage backend unavailable"},
    },
)
async def get_original(
    item_id:   UUID,
    container: ServiceContainer = Depends(get_container),
) -> Response:
    original = await container.ingestion.fetch_original(item_id)
    return Response(
        content=original.data,
        media_type=original.media_type,
        headers={
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(original.filename)}",
        },
    )


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

@router.get(
    "/logs",
    response_model=list[LogResponse],
    tags=["Items"],
    summary="Classification audit log",
)
async def list_logs(
    item_id:   Optional[UUID] = Query(None),
    limit:     int            = Query(100, ge=1, le=500),
    container: ServiceContainer = Depends(get_container),
) -> list[LogResponse]:
    entries = await container.ingestion.list_logs(item_id=item_id, limit=limit)
    return [LogResponse.model_validate(e) for e in entries]


# ---------------------------------------------------------------------------
# Taxonomy
# ---------------------------------------------------------------------------

@router.get(
    "/pillars",
    response_model=list[PillarResponse],
    tags=["Taxonomy"],
    summary="List pillars",
)
async def list_pillars(container: ServiceContainer = Depends(get_container)) -> list[PillarResponse]:
    return [
        PillarResponse(
            id=p.id,
            name_primary=p.name_primary,
            name_secondary=p.name_secondary,
            topic_count=len(p.topics),
        )
        for p in container.taxonomy.list_pillars()
    ]


@router.get(
    "/pillars/{pillar_id}/topics",
    response_model=list[TopicResponse],
    tags=["Taxonomy"],
    summary="List the topics of a pillar",
    responses={404: _ERRORS[404]},
)
async def list_topics(
    pillar_id: str,
    container: ServiceContainer = Depends(get_container),
) -> list[TopicResponse]:
    pillar = container.taxonomy.find_pillar(pillar_id)
    return [TopicResponse(id=t.id, pillar_id=t.pillar_id, name=t.name) for t in pillar.topics]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["Operations"],
    summary="Service health",
    description="Database reachability, item count, credential flags and the active storage backend.",
)
async def health(container: ServiceContainer = Depends(get_container)) -> HealthResponse:
    return HealthResponse(**await container.ingestion.health())
