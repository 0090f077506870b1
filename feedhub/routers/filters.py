"""
Filters Router.

Endpoints:
- GET /filters - List block-list keywords
- POST /filters - Add a keyword (whole-word or wildcard)
- DELETE /filters/{keyword_id} - Remove a keyword
"""

from typing import List

from fastapi import APIRouter, Depends, status

from ..dependencies import get_current_user_id, get_filter_service
from ..filter_service import FilterService
from ..models import FilterKeywordCreate, FilterKeywordResponse

router = APIRouter(
    prefix="/filters",
    tags=["filters"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("", response_model=List[FilterKeywordResponse])
def list_keywords(
    user_id: str = Depends(get_current_user_id),
    filter_service: FilterService = Depends(get_filter_service),
):
    return filter_service.list_keywords(user_id)


@router.post("", response_model=FilterKeywordResponse, status_code=status.HTTP_201_CREATED)
def add_keyword(
    payload: FilterKeywordCreate,
    user_id: str = Depends(get_current_user_id),
    filter_service: FilterService = Depends(get_filter_service),
):
    return filter_service.add_keyword(user_id, payload.keyword, is_wildcard=payload.is_wildcard)


@router.delete("/{keyword_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_keyword(
    keyword_id: int,
    user_id: str = Depends(get_current_user_id),
    filter_service: FilterService = Depends(get_filter_service),
):
    filter_service.remove_keyword(user_id, keyword_id)
