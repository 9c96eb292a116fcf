"""
Batch Orchestrator

Collection (playlist) ingestion.

process_collection(ref)
    Resolve the playlist id, page through every member (nextPageToken until
    exhausted), hand the member list to the publisher and return
    CollectionAccepted(collection_id, accepted=len(members)) immediately.

run_members(collection_id, members)
    Sequential per-member loop; one member's failure never stops the loop:
      1. fetch full metadata       failure → skipped, no row written
      2. insert_if_absent          already present → duplicate, ignored
      3. classify via the single-video pipeline
    Returns a BatchReport. Progress is observable through the ledger
    (collection_progress) while the loop runs.

Publishers decide where run_members executes:
    InProcessBatchPublisher  detached asyncio task in this process (default)
    CeleryBatchPublisher     process_collection_members task on a worker
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Awaitable, Callable

from insight_vault.core.errors import ClassificationFailed
from insight_vault.integrations.youtube import VideoMetadata, YouTubeVideoSource, extract_playlist_id
from insight_vault.schemas.items import CollectionAccepted, CollectionProgress, ItemStatus
from insight_vault.services.ingestion import IngestionService

logger = logging.getLogger(__name__)


@dataclass
class BatchReport:
    collection_id: str
    total:         int = 0
    classified:    int = 0
    needs_api_key: int = 0
    failed:        int = 0
    skipped:       int = 0
    duplicates:    int = 0


MemberRunner = Callable[[str, list[VideoMetadata]], Awaitable[BatchReport]]


# ---------------------------------------------------------------------------
# Publishers
# ---------------------------------------------------------------------------

class BatchPublisher(ABC):
    @abstractmethod
    async def publish(
        self,
        collection_id: str,
        members: list[VideoMetadata],
        runner: MemberRunner,
    ) -> None:
        """Schedule runner(collection_id, members) and return without waiting."""


class InProcessBatchPublisher(BatchPublisher):
    """
    Runs each batch as a detached asyncio task.

    Task references are held until completion so they are not garbage
    collected mid-run; drain() awaits whatever is still running.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def publish(
        self,
        collection_id: str,
        members: list[VideoMetadata],
        runner: MemberRunner,
    ) -> None:
        task = asyncio.create_task(runner(collection_id, members), name=f"collection:{collection_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> list[BatchReport]:
        if not self._tasks:
            return []
        results = await asyncio.gather(*list(self._tasks), return_exceptions=True)
        reports = []
        for result in results:
            if isinstance(result, BaseException):
                logger.error("Batch task ended with error | error=%s", result)
            else:
                reports.append(result)
        return reports


class CeleryBatchPublisher(BatchPublisher):
    """Dispatches the member loop to a Celery worker."""

    async def publish(
        self,
        collection_id: str,
        members: list[VideoMetadata],
        runner: MemberRunner,
    ) -> None:
        from insight_vault.workers.tasks import process_collection_members

        payload = [asdict(m) for m in members]
        result = await asyncio.to_thread(
            process_collection_members.apply_async,
            kwargs={"collection_id": collection_id, "members": payload},
        )
        logger.info(
            "Batch dispatched | collection=%s members=%d task=%s",
            collection_id, len(members), result.id,
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class BatchOrchestrator:
    def __init__(
        self,
        pipeline:  IngestionService,
        videos:    YouTubeVideoSource,
        publisher: BatchPublisher,
    ) -> None:
        self._pipeline  = pipeline
        self._videos    = videos
        self._publisher = publisher

    @property
    def publisher(self) -> BatchPublisher:
        return self._publisher

    async def process_collection(self, collection_ref: str) -> CollectionAccepted:
        collection_id = extract_playlist_id(collection_ref)
        members = [m async for m in self._videos.iter_collection_members(collection_id)]

        await self._publisher.publish(collection_id, members, self.run_members)
        logger.info("Collection accepted | collection=%s members=%d", collection_id, len(members))
        return CollectionAccepted(collection_id=collection_id, accepted=len(members))

    async def run_members(self, collection_id: str, members: list[VideoMetadata]) -> BatchReport:
        report = BatchReport(collection_id=collection_id, total=len(members))

        for position, member in enumerate(members, start=1):
            try:
                metadata = await self._videos.get_video(member.video_id)
            except Exception as exc:
                report.skipped += 1
                logger.warning(
                    "Member skipped, metadata unavailable | collection=%s position=%d video=%s error=%s",
                    collection_id, position, member.video_id, exc,
                )
                continue

            try:
                item, inserted = await self._pipeline.register_video(metadata, collection_id)
                if not inserted:
                    report.duplicates += 1
                    continue

                item = await self._pipeline.classify_registered(item)
                if item.status == ItemStatus.NEEDS_API_KEY.value:
                    report.needs_api_key += 1
                else:
                    report.classified += 1
            except ClassificationFailed as exc:
                report.failed += 1
                logger.warning(
                    "Member classification failed | collection=%s video=%s item=%s",
                    collection_id, member.video_id, exc.item_id,
                )
            except Exception:
                report.failed += 1
                logger.exception(
                    "Member failed | collection=%s video=%s", collection_id, member.video_id,
                )

        logger.info(
            "Collection finished | collection=%s total=%d classified=%d needs_api_key=%d "
            "failed=%d skipped=%d duplicates=%d",
            collection_id, report.total, report.classified, report.needs_api_key,
            report.failed, report.skipped, report.duplicates,
        )
        return report

    async def collection_progress(self, collection_id: str) -> CollectionProgress:
        by_status = await self._pipeline.ledger.count_by_status(collection_id)
        return CollectionProgress(
            collection_id=collection_id,
            total=sum(by_status.values()),
            by_status=by_status,
        )
