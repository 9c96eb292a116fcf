"""
Service wiring.

build_container(settings) constructs every component from one Settings
object. The FastAPI lifespan and the Celery worker both go through it, so
the API process and workers share identical wiring. Tests pass overrides
(a fake reasoning service, a fake video source, a storage gateway) instead
of patching module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from insight_vault.core.config import Settings
from insight_vault.db.session import build_engine, build_sessionmaker, check_db_health, init_schema
from insight_vault.integrations.youtube import YouTubeVideoSource
from insight_vault.llm.gateway import OpenAIReasoningService, ReasoningService
from insight_vault.processing.extractor import ContentExtractor
from insight_vault.services.batch import (
    BatchOrchestrator,
    BatchPublisher,
    CeleryBatchPublisher,
    InProcessBatchPublisher,
)
from insight_vault.services.classifier import Classifier
from insight_vault.services.ingestion import IngestionService
from insight_vault.services.ledger import ItemLedger
from insight_vault.storage.gateway import StorageGateway, build_storage_gateway
from insight_vault.taxonomy import Taxonomy, default_taxonomy

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings:        Settings
    engine:          AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    taxonomy:        Taxonomy
    ledger:          ItemLedger
    storage:         StorageGateway
    videos:          YouTubeVideoSource
    classifier:      Classifier
    ingestion:       IngestionService
    publisher:       BatchPublisher
    batch:           BatchOrchestrator

    async def startup(self) -> None:
        await init_schema(self.engine)
        logger.info(
            "Container ready | storage=%s reasoning=%s video_source=%s batch=%s",
            self.storage.selected_backend.value,
            self.classifier.configured,
            self.videos.configured,
            type(self.publisher).__name__,
        )

    async def shutdown(self) -> None:
        if isinstance(self.publisher, InProcessBatchPublisher):
            await self.publisher.drain()
        await self.engine.dispose()
        logger.info("Container disposed")


def build_publisher(settings: Settings) -> BatchPublisher:
    backend = settings.batch_backend.lower()
    if backend == "celery":
        return CeleryBatchPublisher()
    if backend != "inprocess":
        raise ValueError(f"Unknown batch_backend '{settings.batch_backend}'")
    return InProcessBatchPublisher()


def build_container(
    settings:  Settings,
    *,
    reasoning: ReasoningService | None = None,
    videos:    YouTubeVideoSource | None = None,
    storage:   StorageGateway | None = None,
    publisher: BatchPublisher | None = None,
) -> ServiceContainer:
    engine = build_engine(settings)
    session_factory = build_sessionmaker(engine)
    taxonomy = default_taxonomy()
    ledger = ItemLedger(session_factory)

    storage = storage or build_storage_gateway(settings)
    videos = videos or YouTubeVideoSource.from_settings(settings)
    reasoning = reasoning or OpenAIReasoningService.from_settings(settings)

    classifier = Classifier(taxonomy, reasoning, max_chars=settings.max_extracted_chars)
    ingestion = IngestionService(
        ledger=ledger,
        extractor=ContentExtractor(max_chars=settings.max_extracted_chars),
        classifier=classifier,
        storage=storage,
        videos=videos,
        taxonomy=taxonomy,
        max_upload_bytes=settings.max_upload_bytes,
        version=settings.app_version,
        db_check=partial(check_db_health, engine),
    )
    publisher = publisher or build_publisher(settings)
    batch = BatchOrchestrator(ingestion, videos, publisher)

    return ServiceContainer(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        taxonomy=taxonomy,
        ledger=ledger,
        storage=storage,
        videos=videos,
        classifier=classifier,
        ingestion=ingestion,
        publisher=publisher,
        batch=batch,
    )
