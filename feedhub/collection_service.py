"""Collections of saved content."""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .db_models import DBCollection, DBSavedContent
from .exceptions import NotFoundError, ValidationError
from .models import CollectionResponse
from .redis_client import FeedCache

logger = logging.getLogger(__name__)


class CollectionService:
    def __init__(self, db: Session, cache: FeedCache):
        self.db = db
        self.cache = cache

    def list_collections(self, user_id: str) -> List[CollectionResponse]:
        counts = dict(
            self.db.query(DBSavedContent.collection_id, func.count(DBSavedContent.id))
            .filter(DBSavedContent.user_id == user_id, DBSavedContent.collection_id.isnot(None))
            .group_by(DBSavedContent.collection_id)
            .all()
        )
        collections = (
            self.db.query(DBCollection)
            .filter(DBCollection.user_id == user_id)
            .order_by(DBCollection.created_at)
            .all()
        )

        responses = []
        for collection in collections:
            response = CollectionResponse.model_validate(collection)
            response.item_count = counts.get(collection.id, 0)
            responses.append(response)
        return responses

    def get_collection(self, user_id: str, collection_id: str) -> DBCollection:
        collection = (
            self.db.query(DBCollection)
            .filter(DBCollection.id == collection_id, DBCollection.user_id == user_id)
            .first()
        )
        if collection is None:
            raise NotFoundError("Collection", collection_id)
        return collection

    def create_collection(self, user_id: str, name: str, color: Optional[str] = None,
                          icon: Optional[str] = None) -> DBCollection:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Collection name cannot be empty", field="name")
        self._ensure_unique_name(user_id, name)

        collection = DBCollection(user_id=user_id, name=name, color=color, icon=icon)
        self.db.add(collection)
        self._commit_unique(name)
        self.db.refresh(collection)
        return collection

    def update_collection(self, user_id: str, collection_id: str, name: Optional[str] = None,
                          color: Optional[str] = None, icon: Optional[str] = None) -> DBCollection:
        collection = self.get_collection(user_id, collection_id)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Collection name cannot be empty", field="name")
            if name != collection.name:
                self._ensure_unique_name(user_id, name)
                collection.name = name
        if color is not None:
            collection.color = color
        if icon is not None:
            collection.icon = icon

        self._commit_unique(collection.name)
        self.db.refresh(collection)
        return collection

    def delete_collection(self, user_id: str, collection_id: str) -> None:
        """Delete a collection; its saved items stay saved, uncategorized."""
        collection = self.get_collection(user_id, collection_id)
        self.db.query(DBSavedContent).filter(
            DBSavedContent.collection_id == collection.id
        ).update({DBSavedContent.collection_id: None}, synchronize_session=False)
        self.db.delete(collection)
        self.db.commit()
        self.cache.invalidate(user_id)

    def move_saved_item(self, user_id: str, content_id: int, collection_id: Optional[str]) -> DBSavedContent:
        saved = (
            self.db.query(DBSavedContent)
            .filter(DBSavedContent.user_id == user_id, DBSavedContent.content_item_id == content_id)
            .first()
        )
        if saved is None:
            raise NotFoundError("Saved content", content_id)
        if collection_id is not None:
            self.get_collection(user_id, collection_id)

        saved.collection_id = collection_id
        self.db.commit()
        self.db.refresh(saved)
        self.cache.invalidate(user_id)
        return saved

    def _ensure_unique_name(self, user_id: str, name: str):
        exists = (
            self.db.query(DBCollection.id)
            .filter(DBCollection.user_id == user_id, DBCollection.name == name)
            .first()
        )
        if exists:
            raise ValidationError(f"Collection '{name}' already exists", field="name")

    def _commit_unique(self, name: str):
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(f"Collection '{name}' already exists", field="name")
