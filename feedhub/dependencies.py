"""
Shared Dependencies for FeedHub.

Provides:
- Authenticated user id (supplied by the upstream auth layer)
- Adapter registry (populated once at startup)
- Feed cache and service instances per request
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from .adapters.registry import AdapterRegistry
from .collection_service import CollectionService
from .config import Settings, get_settings
from .database import SessionLocal, get_db
from .feed_service import FeedService
from .filter_service import FilterService
from .ingestion import IngestionService
from .interaction_service import InteractionService
from .preferences_service import PreferencesService
from .redis_client import FeedCache, get_redis_client
from .source_service import SourceService

logger = logging.getLogger(__name__)

# =============================================================================
# Global State
# =============================================================================

# Provider type -> adapter; filled by the application lifespan
adapter_registry: AdapterRegistry = {}

# =============================================================================
# Authentication
# =============================================================================


def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    """
    Authenticated user id, set by the auth gateway in front of this service.

    Raises:
        HTTPException: 401 if the header is missing
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return x_user_id.strip()


# =============================================================================
# Infrastructure
# =============================================================================

def get_adapters() -> AdapterRegistry:
    return adapter_registry


def get_session_factory() -> Callable[[], Session]:
    return SessionLocal


def get_feed_cache(settings: Settings = Depends(get_settings)) -> FeedCache:
    return FeedCache(get_redis_client(), ttl_seconds=settings.feed_cache_ttl_seconds)


# =============================================================================
# Service Instances
# =============================================================================

def get_feed_service(
    db: Session = Depends(get_db),
    cache: FeedCache = Depends(get_feed_cache),
    settings: Settings = Depends(get_settings),
) -> FeedService:
    return FeedService(db, cache, settings)


def get_interaction_service(
    db: Session = Depends(get_db),
    cache: FeedCache = Depends(get_feed_cache),
) -> InteractionService:
    return InteractionService(db, cache)


def get_filter_service(
    db: Session = Depends(get_db),
    cache: FeedCache = Depends(get_feed_cache),
) -> FilterService:
    return FilterService(db, cache)


def get_preferences_service(
    db: Session = Depends(get_db),
    cache: FeedCache = Depends(get_feed_cache),
    settings: Settings = Depends(get_settings),
) -> PreferencesService:
    return PreferencesService(db, cache, settings)


def get_source_service(
    db: Session = Depends(get_db),
    cache: FeedCache = Depends(get_feed_cache),
    adapters: AdapterRegistry = Depends(get_adapters),
) -> SourceService:
    return SourceService(db, cache, adapters)


def get_collection_service(
    db: Session = Depends(get_db),
    cache: FeedCache = Depends(get_feed_cache),
) -> CollectionService:
    return CollectionService(db, cache)


def get_ingestion_service(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    adapters: AdapterRegistry = Depends(get_adapters),
    settings: Settings = Depends(get_settings),
) -> IngestionService:
    return IngestionService(session_factory, adapters, settings)
