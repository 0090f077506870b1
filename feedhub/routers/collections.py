"""
Collections Router.

Endpoints:
- GET /collections - List collections with item counts
- POST /collections - Create a collection
- GET /collections/{collection_id} - Get one collection
- PATCH /collections/{collection_id} - Rename or restyle
- DELETE /collections/{collection_id} - Delete (items stay saved)
- PUT /saved/{content_id}/collection - Move a saved item between collections
"""

from typing import List

from fastapi import APIRouter, Depends, status

from ..collection_service import CollectionService
from ..dependencies import get_collection_service, get_current_user_id
from ..models import CollectionCreate, CollectionResponse, CollectionUpdate, MoveToCollectionRequest

router = APIRouter(
    tags=["collections"],
    responses={401: {"description": "Unauthorized"}},
)


@router.get("/collections", response_model=List[CollectionResponse])
def list_collections(
    user_id: str = Depends(get_current_user_id),
    collections: CollectionService = Depends(get_collection_service),
):
    return collections.list_collections(user_id)


@router.post("/collections", response_model=CollectionResponse, status_code=status.HTTP_201_CREATED)
def create_collection(
    payload: CollectionCreate,
    user_id: str = Depends(get_current_user_id),
    collections: CollectionService = Depends(get_collection_service),
):
    collection = collections.create_collection(user_id, payload.name, color=payload.color, icon=payload.icon)
    return CollectionResponse.model_validate(collection)


@router.get("/collections/{collection_id}", response_model=CollectionResponse)
def get_collection(
    collection_id: str,
    user_id: str = Depends(get_current_user_id),
    collections: CollectionService = Depends(get_collection_service),
):
    collection = collections.get_collection(user_id, collection_id)
    response = CollectionResponse.model_validate(collection)
    response.item_count = len(collection.saved_items)
    return response


@router.patch("/collections/{collection_id}", response_model=CollectionResponse)
def update_collection(
    collection_id: str,
    payload: CollectionUpdate,
    user_id: str = Depends(get_current_user_id),
    collections: CollectionService = Depends(get_collection_service),
):
    collection = collections.update_collection(
        user_id, collection_id, name=payload.name, color=payload.color, icon=payload.icon
    )
    return CollectionResponse.model_validate(collection)


@router.delete("/collections/{collection_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_collection(
    collection_id: str,
    user_id: str = Depends(get_current_user_id),
    collections: CollectionService = Depends(get_collection_service),
):
    collections.delete_collection(user_id, collection_id)


@router.put("/saved/{content_id}/collection")
def move_saved_item(
    content_id: int,
    payload: MoveToCollectionRequest,
    user_id: str = Depends(get_current_user_id),
    collections: CollectionService = Depends(get_collection_service),
):
    saved = collections.move_saved_item(user_id, content_id, payload.collection_id)
    return {"content_item_id": saved.content_item_id, "collection_id": saved.collection_id}
