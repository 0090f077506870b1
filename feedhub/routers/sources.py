"""
Sources Router.

Endpoints:
- GET /sources - List sources with item counts
- POST /sources - Subscribe to a source (validated through its adapter)
- POST /sources/fetch - Fetch all of the user's sources now
- GET /sources/{source_id} - Get one source
- PATCH /sources/{source_id} - Rename, mute or mark always-safe
- DELETE /sources/{source_id} - Unsubscribe
- GET /sources/{source_id}/metadata - Provider metadata of a source
- POST /sources/{source_id}/fetch - Fetch one source now
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..dependencies import (
    get_current_user_id,
    get_feed_cache,
    get_ingestion_service,
    get_source_service,
)
from ..ingestion import IngestionService
from ..models import FetchStats, SourceCreate, SourceMetadata, SourceResponse, SourceUpdate
from ..redis_client import FeedCache
from ..source_service import SourceService

logger = logging.getLogger(__name__)

# Manual fetches hit external providers; keep them rare
limiter = Limiter(key_func=get_remote_address, enabled=not settings.testing)

router = APIRouter(
    prefix="/sources",
    tags=["sources"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[SourceResponse])
def list_sources(
    user_id: str = Depends(get_current_user_id),
    source_service: SourceService = Depends(get_source_service),
):
    return source_service.list_sources(user_id)


@router.post("", response_model=SourceResponse, status_code=status.HTTP_201_CREATED)
def add_source(
    payload: SourceCreate,
    user_id: str = Depends(get_current_user_id),
    source_service: SourceService = Depends(get_source_service),
):
    """Validate the identifier with the provider and subscribe the user."""
    source = source_service.add_source(
        user_id,
        provider_type=payload.provider_type,
        external_id=payload.external_id,
        display_name=payload.display_name,
    )
    return SourceResponse.model_validate(source)


@router.post("/fetch", response_model=FetchStats)
@limiter.limit("5/minute")
def fetch_my_sources(
    request: Request,
    force_backlog: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    ingestion: IngestionService = Depends(get_ingestion_service),
    cache: FeedCache = Depends(get_feed_cache),
):
    """Fetch every non-muted source of the current user."""
    stats = ingestion.fetch_user_sources(user_id, force_backlog=force_backlog)
    cache.invalidate(user_id)
    return stats


@router.get("/{source_id}", response_model=SourceResponse)
def get_source(
    source_id: str,
    user_id: str = Depends(get_current_user_id),
    source_service: SourceService = Depends(get_source_service),
):
    return SourceResponse.model_validate(source_service.get_source(user_id, source_id))


@router.patch("/{source_id}", response_model=SourceResponse)
def update_source(
    source_id: str,
    payload: SourceUpdate,
    user_id: str = Depends(get_current_user_id),
    source_service: SourceService = Depends(get_source_service),
):
    source = source_service.update_source(
        user_id,
        source_id,
        display_name=payload.display_name,
        is_muted=payload.is_muted,
        always_safe=payload.always_safe,
    )
    return SourceResponse.model_validate(source)


@router.delete("/{source_id}")
def remove_source(
    source_id: str,
    user_id: str = Depends(get_current_user_id),
    source_service: SourceService = Depends(get_source_service),
):
    removed = source_service.remove_source(user_id, source_id)
    return {"message": "Source removed", "content_items_removed": removed}


@router.get("/{source_id}/metadata", response_model=SourceMetadata)
def get_source_metadata(
    source_id: str,
    user_id: str = Depends(get_current_user_id),
    source_service: SourceService = Depends(get_source_service),
):
    return source_service.get_source_metadata(user_id, source_id)


@router.post("/{source_id}/fetch")
@limiter.limit("10/minute")
def fetch_source(
    request: Request,
    source_id: str,
    force_backlog: bool = Query(False),
    user_id: str = Depends(get_current_user_id),
    source_service: SourceService = Depends(get_source_service),
    ingestion: IngestionService = Depends(get_ingestion_service),
    cache: FeedCache = Depends(get_feed_cache),
):
    """
    Fetch one source now.

    Provider failures propagate (502/429); the failure is already recorded
    on the source.
    """
    # Ownership check; ingestion itself is user-agnostic
    source_service.get_source(user_id, source_id)
    try:
        new_items = ingestion.fetch_source(source_id, force_backlog=force_backlog)
    finally:
        cache.invalidate(user_id)
    return {"source_id": source_id, "new_items": new_items}
