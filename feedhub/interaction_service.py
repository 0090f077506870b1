"""
Interaction Ledger.

Records watch/save/dismiss/not-now/block actions (one row per user,
content item and type; repeats refresh the timestamp) and serves the
history and saved views. Every write invalidates the user's feed cache.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .constants import MAX_EXTRACTED_KEYWORDS, MIN_EXTRACTED_KEYWORD_LENGTH, STOP_WORDS
from .db_models import DBCollection, DBContentItem, DBFilterKeyword, DBInteraction, DBSavedContent
from .exceptions import NotFoundError, ValidationError
from .models import HistoryEntry, InteractionResponse, InteractionType, SavedItemResponse
from .redis_client import FeedCache

logger = logging.getLogger(__name__)


def extract_keywords(title: str, limit: int = MAX_EXTRACTED_KEYWORDS) -> List[str]:
    """Significant lower-cased words of a title, in order of appearance."""
    words = re.findall(r"[a-z0-9]+", (title or "").lower())
    keywords: List[str] = []
    for word in words:
        if len(word) < MIN_EXTRACTED_KEYWORD_LENGTH or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) >= limit:
            break
    return keywords


class InteractionService:
    def __init__(self, db: Session, cache: FeedCache):
        self.db = db
        self.cache = cache

    # =========================================================================
    # Writes
    # =========================================================================

    def record_watch(self, user_id: str, content_id: int, watch_duration: Optional[int] = None,
                     completion_rate: Optional[float] = None) -> DBInteraction:
        if watch_duration is not None and watch_duration < 0:
            raise ValidationError("watch_duration must be >= 0", field="watch_duration")
        if completion_rate is not None and not 0.0 <= completion_rate <= 1.0:
            raise ValidationError("completion_rate must be between 0 and 1", field="completion_rate")

        interaction = self._upsert(
            user_id, content_id, InteractionType.WATCHED,
            watch_duration=watch_duration, completion_rate=completion_rate,
        )
        self._commit_and_invalidate(user_id)
        return interaction

    def save_content(self, user_id: str, content_id: int, collection_id: Optional[str] = None,
                     notes: Optional[str] = None) -> DBSavedContent:
        if collection_id is not None:
            self._require_collection(user_id, collection_id)

        self._upsert(user_id, content_id, InteractionType.SAVED)

        saved = (
            self.db.query(DBSavedContent)
            .filter(DBSavedContent.user_id == user_id, DBSavedContent.content_item_id == content_id)
            .first()
        )
        if saved is None:
            saved = DBSavedContent(user_id=user_id, content_item_id=content_id)
            self.db.add(saved)
        saved.collection_id = collection_id
        saved.notes = notes
        saved.saved_at = datetime.utcnow()

        self._commit_and_invalidate(user_id)
        return saved

    def unsave_content(self, user_id: str, content_id: int) -> None:
        saved = (
            self.db.query(DBSavedContent)
            .filter(DBSavedContent.user_id == user_id, DBSavedContent.content_item_id == content_id)
            .first()
        )
        if saved is None:
            raise NotFoundError("Saved content", content_id)

        self.db.delete(saved)
        self.db.query(DBInteraction).filter(
            DBInteraction.user_id == user_id,
            DBInteraction.content_item_id == content_id,
            DBInteraction.type == InteractionType.SAVED.value,
        ).delete(synchronize_session=False)
        self._commit_and_invalidate(user_id)

    def dismiss_content(self, user_id: str, content_id: int, reason: Optional[str] = None) -> DBInteraction:
        interaction = self._upsert(user_id, content_id, InteractionType.DISMISSED, dismiss_reason=reason)
        self._commit_and_invalidate(user_id)
        return interaction

    def not_now(self, user_id: str, content_id: int) -> DBInteraction:
        interaction = self._upsert(user_id, content_id, InteractionType.NOT_NOW)
        self._commit_and_invalidate(user_id)
        return interaction

    def block_content(self, user_id: str, content_id: int, extract: bool = False) -> List[str]:
        """
        Permanently hide an item; optionally add keywords taken from its title.

        Returns:
            Keywords added to the user's block-list
        """
        content = self._require_content(content_id)
        self._upsert(user_id, content_id, InteractionType.BLOCKED)

        added: List[str] = []
        if extract:
            existing = {
                row.keyword for row in
                self.db.query(DBFilterKeyword.keyword).filter(DBFilterKeyword.user_id == user_id).all()
            }
            for keyword in extract_keywords(content.title):
                if keyword in existing:
                    continue
                self.db.add(DBFilterKeyword(user_id=user_id, keyword=keyword, is_wildcard=False))
                added.append(keyword)

        self._commit_and_invalidate(user_id)
        if added:
            logger.info(f"User {user_id} blocked content {content_id}, added keywords {added}")
        return added

    def clear_history(self, user_id: str, interaction_type: Optional[InteractionType] = None) -> int:
        """Delete the user's interactions (optionally of one type). The only delete path."""
        query = self.db.query(DBInteraction).filter(DBInteraction.user_id == user_id)
        if interaction_type is not None:
            query = query.filter(DBInteraction.type == interaction_type.value)
        deleted = query.delete(synchronize_session=False)
        self._commit_and_invalidate(user_id)
        logger.info(f"Cleared {deleted} interactions for user {user_id}")
        return deleted

    # =========================================================================
    # Views
    # =========================================================================

    def get_history(self, user_id: str, interaction_type: Optional[InteractionType] = None,
                    limit: int = 50, offset: int = 0) -> List[HistoryEntry]:
        query = (
            self.db.query(DBInteraction, DBContentItem)
            .join(DBContentItem, DBInteraction.content_item_id == DBContentItem.id)
            .filter(DBInteraction.user_id == user_id)
        )
        if interaction_type is not None:
            query = query.filter(DBInteraction.type == interaction_type.value)

        rows = query.order_by(DBInteraction.timestamp.desc()).offset(offset).limit(limit).all()
        return [
            HistoryEntry(
                interaction=InteractionResponse.model_validate(interaction),
                title=content.title,
                url=content.url,
                thumbnail_url=content.thumbnail_url,
                duration=content.duration,
            )
            for interaction, content in rows
        ]

    def get_saved(self, user_id: str, collection_id: Optional[str] = None) -> List[SavedItemResponse]:
        query = (
            self.db.query(DBSavedContent, DBContentItem)
            .join(DBContentItem, DBSavedContent.content_item_id == DBContentItem.id)
            .filter(DBSavedContent.user_id == user_id)
        )
        if collection_id is not None:
            query = query.filter(DBSavedContent.collection_id == collection_id)

        return [
            SavedItemResponse(
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
            for saved, content in query.order_by(DBSavedContent.saved_at.desc()).all()
        ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _require_content(self, content_id: int) -> DBContentItem:
        content = self.db.query(DBContentItem).filter(DBContentItem.id == content_id).first()
        if content is None:
            raise NotFoundError("Content", content_id)
        return content

    def _require_collection(self, user_id: str, collection_id: str) -> DBCollection:
        collection = (
            self.db.query(DBCollection)
            .filter(DBCollection.id == collection_id, DBCollection.user_id == user_id)
            .first()
        )
        if collection is None:
            raise NotFoundError("Collection", collection_id)
        return collection

    def _upsert(self, user_id: str, content_id: int, interaction_type: InteractionType, **fields) -> DBInteraction:
        self._require_content(content_id)

        interaction = (
            self.db.query(DBInteraction)
            .filter(
                DBInteraction.user_id == user_id,
                DBInteraction.content_item_id == content_id,
                DBInteraction.type == interaction_type.value,
            )
            .first()
        )
        if interaction is None:
            interaction = DBInteraction(user_id=user_id, content_item_id=content_id, type=interaction_type.value)
            self.db.add(interaction)

        interaction.timestamp = datetime.utcnow()
        for key, value in fields.items():
            setattr(interaction, key, value)
        return interaction

    def _commit_and_invalidate(self, user_id: str):
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("Interaction was recorded concurrently, please retry")
        self.cache.invalidate(user_id)
