"""
Celery Tasks: Collection Processing

Task: process_collection_members
  Rebuilds the service container inside the worker, runs the same
  BatchOrchestrator.run_members loop the in-process publisher uses, then
  disposes the container. Per-member failures are absorbed by the loop, so
  the task itself only fails on infrastructure errors (database down).

Task: health_check
  Liveness probe for the system.health queue.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict
from typing import Any

from celery import Task

from insight_vault.core.config import get_settings
from insight_vault.integrations.youtube import VideoMetadata
from insight_vault.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Async task helper
# Run async coroutines inside Celery's synchronous task context.
# ---------------------------------------------------------------------------

def run_async(coro):
    """Execute an async coroutine from a synchronous Celery task."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    import concurrent.futures
    with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
        return pool.submit(asyncio.run, coro).result()


# ---------------------------------------------------------------------------
# Collection loop
# ---------------------------------------------------------------------------

@celery_app.task(
    name="insight_vault.workers.tasks.process_collection_members",
    bind=True,
    acks_late=True,
    reject_on_worker_lost=True,
)
def process_collection_members(
    self: Task,
    *,
    collection_id: str,
    members: list[dict[str, Any]],
) -> dict[str, Any]:
    return run_async(_process_collection_members_async(collection_id, members))


async def _process_collection_members_async(
    collection_id: str,
    members: list[dict[str, Any]],
) -> dict[str, Any]:
    from insight_vault.services.batch import InProcessBatchPublisher
    from insight_vault.services.container import build_container

    container = build_container(get_settings(), publisher=InProcessBatchPublisher())
    await container.startup()
    try:
        report = await container.batch.run_members(
            collection_id,
            [VideoMetadata(**m) for m in members],
        )
    finally:
        await container.shutdown()

    return asdict(report)


# ---------------------------------------------------------------------------
# Health check task
# ---------------------------------------------------------------------------

@celery_app.task(name="insight_vault.workers.tasks.health_check")
def health_check() -> dict[str, str]:
    return {"status": "ok", "worker": "healthy"}
