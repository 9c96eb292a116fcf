"""
Celery Application Factory

Runs collection member loops out of process when batch_backend=celery.
Broker and result backend URLs come from Settings (CELERY_BROKER_URL,
CELERY_RESULT_BACKEND).

Queue topology:
  collections.ingest  collection member loops
  system.health       internal health-check tasks

Task payloads carry only video metadata (ids, titles, descriptions); never
file bytes.
"""

from __future__ import annotations

import logging

from celery import Celery
from celery.signals import task_failure, task_postrun, task_prerun
from kombu import Exchange, Queue

from insight_vault.core.config import Settings, get_settings

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Queue and exchange definitions
# ---------------------------------------------------------------------------

INGEST_EXCHANGE = Exchange("collections", type="direct", durable=True)

TASK_QUEUES = (
    Queue(
        "collections.ingest",
        exchange=INGEST_EXCHANGE,
        routing_key="collections.ingest",
        durable=True,
    ),
    Queue(
        "system.health",
        Exchange("system", type="direct"),
        routing_key="system.health",
        durable=True,
    ),
)

TASK_ROUTES = {
    "insight_vault.workers.tasks.process_collection_members": {"queue": "collections.ingest"},
    "insight_vault.workers.tasks.health_check":               {"queue": "system.health"},
}

# ---------------------------------------------------------------------------
# Celery app factory
# ---------------------------------------------------------------------------

def create_celery_app(settings: Settings | None = None) -> Celery:
    settings = settings or get_settings()
    app = Celery("insight_vault")

    app.conf.update(
        broker_url=settings.celery_broker_url,
        result_backend=settings.celery_result_backend,

        # --- Serialization (reject non-JSON messages) ---
        task_serializer="json",
        result_serializer="json",
        accept_content=["json"],
        event_serializer="json",

        # --- Queues ---
        task_queues=TASK_QUEUES,
        task_routes=TASK_ROUTES,
        task_default_queue="collections.ingest",
        task_default_exchange="collections",
        task_default_routing_key="collections.ingest",

        # --- Reliability ---
        task_acks_late=True,         # ack only after the loop completes
        task_reject_on_worker_lost=True,
        worker_prefetch_multiplier=1,

        # --- Timeouts: a 50-video page takes minutes, not seconds ---
        task_soft_time_limit=3300,
        task_time_limit=3600,

        result_expires=3600,   # progress lives in the items table, not in results

        timezone="UTC",
        enable_utc=True,

        worker_max_tasks_per_child=50,
    )

    app.autodiscover_tasks(["insight_vault.workers"])
    return app


celery_app = create_celery_app()


# ---------------------------------------------------------------------------
# Celery signals: task lifecycle logging
# ---------------------------------------------------------------------------

@task_prerun.connect
def on_task_prerun(task_id, task, args, kwargs, **_):
    logger.info(
        "Task start | task_id=%s task=%s collection=%s",
        task_id, task.name, (kwargs or {}).get("collection_id", "?"),
    )


@task_postrun.connect
def on_task_postrun(task_id, task, args, kwargs, retval, state, **_):
    logger.info(
        "Task end | task_id=%s task=%s state=%s collection=%s",
        task_id, task.name, state, (kwargs or {}).get("collection_id", "?"),
    )


@task_failure.connect
def on_task_failure(task_id, exception, args, kwargs, traceback, einfo, **_):
    logger.error(
        "Task failed | task_id=%s collection=%s error=%s",
        task_id, (kwargs or {}).get("collection_id", "?"), exception,
        exc_info=True,
    )
