"""
Feed Router.

Endpoints:
- GET /feed - Ranked feed for the current user (cached)
- POST /feed/refresh - Drop the cached feed so the next read recomputes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_current_user_id, get_feed_service
from ..feed_service import FeedService
from ..models import FeedResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/feed",
    tags=["feed"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=FeedResponse)
def get_feed(
    limit: Optional[int] = Query(None, ge=1, le=200, description="Return only the first N items"),
    user_id: str = Depends(get_current_user_id),
    feed_service: FeedService = Depends(get_feed_service),
):
    """
    Get the current user's feed.

    The full feed is computed and cached as a unit; `limit` only trims the
    response.
    """
    items = feed_service.get_user_feed(user_id)
    if limit is not None:
        items = items[:limit]
    return FeedResponse(items=items, count=len(items))


@router.post("/refresh")
def refresh_feed(
    user_id: str = Depends(get_current_user_id),
    feed_service: FeedService = Depends(get_feed_service),
):
    feed_service.refresh_feed(user_id)
    return {"message": "Feed cache cleared"}
