"""
Preferences Router.

Endpoints:
- GET /preferences - Current preferences (defaults if never set)
- PUT /preferences - Partial update; invalidates the cached feed
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends

from ..dependencies import get_current_user_id, get_preferences_service
from ..models import PreferencesResponse
from ..preferences_service import PreferencesService

router = APIRouter(
    prefix="/preferences",
    tags=["preferences"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=PreferencesResponse)
def get_preferences(
    user_id: str = Depends(get_current_user_id),
    preferences_service: PreferencesService = Depends(get_preferences_service),
):
    return preferences_service.get_preferences(user_id)


@router.put("", response_model=PreferencesResponse)
def update_preferences(
    updates: Dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    preferences_service: PreferencesService = Depends(get_preferences_service),
):
    """
    Update preferences.

    Validation errors are returned with field-level detail, e.g.
    {"errors": [{"field": "backlog_ratio", "message": "..."}]}.
    """
    return preferences_service.update_preferences(user_id, updates)
