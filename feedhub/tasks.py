"""
Celery Background Tasks for FeedHub.

- fetch_all_sources_task: scheduled by beat; fetches every non-muted source
- fetch_user_sources_task: fetches one user's sources (e.g. after signup)
- fetch_source_task: fetches a single source (e.g. right after it is added)

Batch tasks return FetchStats as a dict and never fail because one source
failed. Each batch invalidates the feed cache of the affected users.
"""

import logging
from typing import Dict, Optional

from celery.signals import worker_process_init

from .adapters.registry import AdapterRegistry, build_adapter_registry
from .celery_app import celery_app
from .config import settings
from .database import SessionLocal, get_db_context, init_db
from .db_models import DBSource
from .ingestion import IngestionService
from .redis_client import FeedCache, get_redis_client

logger = logging.getLogger(__name__)

_adapters: Optional[AdapterRegistry] = None


@worker_process_init.connect
def init_worker(**kwargs):
    """Create tables and resolve adapters once per worker process."""
    global _adapters
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
    init_db()
    _adapters = build_adapter_registry(settings)


def get_ingestion_service() -> IngestionService:
    global _adapters
    if _adapters is None:
        _adapters = build_adapter_registry(settings)
    return IngestionService(SessionLocal, _adapters, settings)


def _invalidate_users(user_ids):
    cache = FeedCache(get_redis_client())
    for user_id in user_ids:
        cache.invalidate(user_id)


def _subscriber_ids(source_id: str):
    """Every user subscribed to the same provider feed as this source."""
    with get_db_context() as db:
        source = db.query(DBSource).filter(DBSource.id == source_id).first()
        if source is None:
            return []
        rows = (
            db.query(DBSource.user_id)
            .filter(DBSource.provider_type == source.provider_type, DBSource.external_id == source.external_id)
            .distinct()
            .all()
        )
        return [row.user_id for row in rows]


def _all_user_ids():
    with get_db_context() as db:
        return [row.user_id for row in db.query(DBSource.user_id).distinct().all()]


@celery_app.task(bind=True, name="feedhub.tasks.fetch_all_sources_task")
def fetch_all_sources_task(self) -> Dict:
    logger.info(f"Task {self.request.id}: fetching all sources")
    stats = get_ingestion_service().fetch_all_sources()
    if stats.new_items_count:
        _invalidate_users(_all_user_ids())
    return stats.model_dump()


@celery_app.task(bind=True, name="feedhub.tasks.fetch_user_sources_task")
def fetch_user_sources_task(self, user_id: str, force_backlog: bool = False) -> Dict:
    logger.info(f"Task {self.request.id}: fetching sources of user {user_id}")
    stats = get_ingestion_service().fetch_user_sources(user_id, force_backlog=force_backlog)
    _invalidate_users([user_id])
    return stats.model_dump()


@celery_app.task(bind=True, name="feedhub.tasks.fetch_source_task")
def fetch_source_task(self, source_id: str, force_backlog: bool = False) -> Dict:
    """
    Fetch a single source. Unlike the batch tasks, failures are re-raised
    so the task is marked failed.
    """
    logger.info(f"Task {self.request.id}: fetching source {source_id}")
    new_items = get_ingestion_service().fetch_source(source_id, force_backlog=force_backlog)

    _invalidate_users(_subscriber_ids(source_id))

    return {"source_id": source_id, "new_items": new_items}
