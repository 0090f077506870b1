"""
Content Interaction Router.

Endpoints:
- POST /content/{content_id}/watch - Mark watched (optional progress)
- POST /content/{content_id}/save - Save (optionally into a collection)
- DELETE /content/{content_id}/save - Unsave
- POST /content/{content_id}/dismiss - Hide permanently
- POST /content/{content_id}/not-now - Hide until the cool-down passes
- POST /content/{content_id}/block - Hide permanently, optionally block title keywords
- GET /history - Interaction history
- DELETE /history - Clear interaction history
- GET /saved - Saved content
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..dependencies import get_current_user_id, get_interaction_service
from ..interaction_service import InteractionService
from ..models import (
    BlockRequest,
    DismissRequest,
    HistoryEntry,
    InteractionResponse,
    InteractionType,
    SaveRequest,
    SavedItemResponse,
    WatchRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["content"],
    responses={401: {"description": "Unauthorized"}},
)


# =============================================================================
# Interactions
# =============================================================================

@router.post("/content/{content_id}/watch", response_model=InteractionResponse)
def watch_content(
    content_id: int,
    payload: Optional[WatchRequest] = None,
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    payload = payload or WatchRequest()
    return interactions.record_watch(
        user_id,
        content_id,
        watch_duration=payload.watch_duration,
        completion_rate=payload.completion_rate,
    )


@router.post("/content/{content_id}/save", response_model=SavedItemResponse)
def save_content(
    content_id: int,
    payload: Optional[SaveRequest] = None,
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    payload = payload or SaveRequest()
    saved = interactions.save_content(user_id, content_id, collection_id=payload.collection_id, notes=payload.notes)
    content = saved.content_item
    return SavedItemResponse(
        id=saved.id,
        content_item_id=content.id,
        title=content.title,
        url=content.url,
        thumbnail_url=content.thumbnail_url,
        duration=content.duration,
        collection_id=saved.collection_id,
        notes=saved.notes,
        saved_at=saved.saved_at,
    )


@router.delete("/content/{content_id}/save", status_code=status.HTTP_204_NO_CONTENT)
def unsave_content(
    content_id: int,
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    interactions.unsave_content(user_id, content_id)


@router.post("/content/{content_id}/dismiss", response_model=InteractionResponse)
def dismiss_content(
    content_id: int,
    payload: Optional[DismissRequest] = None,
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    reason = payload.reason if payload else None
    return interactions.dismiss_content(user_id, content_id, reason=reason)


@router.post("/content/{content_id}/not-now", response_model=InteractionResponse)
def not_now(
    content_id: int,
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    return interactions.not_now(user_id, content_id)


@router.post("/content/{content_id}/block")
def block_content(
    content_id: int,
    payload: Optional[BlockRequest] = None,
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    extract = payload.extract_keywords if payload else False
    added = interactions.block_content(user_id, content_id, extract=extract)
    return {"message": "Content blocked", "keywords_added": added}


# =============================================================================
# History & Saved Views
# =============================================================================

@router.get("/history", response_model=List[HistoryEntry])
def get_history(
    type: Optional[InteractionType] = Query(None, description="Only this interaction type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    return interactions.get_history(user_id, interaction_type=type, limit=limit, offset=offset)


@router.delete("/history")
def clear_history(
    type: Optional[InteractionType] = Query(None, description="Only clear this interaction type"),
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    deleted = interactions.clear_history(user_id, interaction_type=type)
    return {"message": "History cleared", "deleted": deleted}


@router.get("/saved", response_model=List[SavedItemResponse])
def get_saved(
    collection_id: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    return interactions.get_saved(user_id, collection_id=collection_id)
