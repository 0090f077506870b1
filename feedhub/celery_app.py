"""
Celery Application Configuration for FeedHub.

Celery beat is the scheduler that periodically fetches every source:

Architecture:
    Celery beat -> Redis (Message Broker) -> Celery workers -> IngestionService

Usage:
    # Start worker:
    celery -A feedhub.celery_app worker --loglevel=info --concurrency=2

    # Start scheduler:
    celery -A feedhub.celery_app beat --loglevel=info
"""

from celery import Celery

from .config import settings

# =============================================================================
# Celery App Instance
# =============================================================================

celery_app = Celery(
    "feedhub",
    broker=settings.effective_celery_broker_url,
    backend=settings.effective_celery_result_backend,
    include=["feedhub.tasks"]
)

# =============================================================================
# Celery Configuration
# =============================================================================

celery_app.conf.update(
    # Security: Use JSON serializer (not pickle)
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],

    result_expires=3600,  # Results expire after 1 hour

    # Task execution settings
    task_track_started=True,
    task_time_limit=1800,  # Hard limit: 30 minutes for a full fetch cycle
    task_soft_time_limit=1680,

    # Worker settings
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,

    task_acks_late=True,
    task_reject_on_worker_lost=True,

    timezone="UTC",
    enable_utc=True,

    # Periodic fetch of all sources
    beat_schedule={
        "fetch-all-sources": {
            "task": "feedhub.tasks.fetch_all_sources_task",
            "schedule": settings.fetch_interval_minutes * 60.0,
        },
    },
)

# =============================================================================
# Task Routes
# =============================================================================

celery_app.conf.task_routes = {
    "feedhub.tasks.fetch_all_sources_task": {"queue": "ingestion"},
    "feedhub.tasks.fetch_user_sources_task": {"queue": "ingestion"},
    "feedhub.tasks.fetch_source_task": {"queue": "ingestion"},
}

__all__ = ["celery_app"]
