"""Keyword block-list management."""

import logging
from typing import List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .constants import MAX_KEYWORD_LENGTH
from .db_models import DBFilterKeyword
from .exceptions import NotFoundError, ValidationError
from .redis_client import FeedCache

logger = logging.getLogger(__name__)


def normalize_keyword(keyword: str) -> str:
    return (keyword or "").strip().lower()


class FilterService:
    def __init__(self, db: Session, cache: FeedCache):
        self.db = db
        self.cache = cache

    def list_keywords(self, user_id: str) -> List[DBFilterKeyword]:
        return (
            self.db.query(DBFilterKeyword)
            .filter(DBFilterKeyword.user_id == user_id)
            .order_by(DBFilterKeyword.created_at.desc(), DBFilterKeyword.id.desc())
            .all()
        )

    def add_keyword(self, user_id: str, keyword: str, is_wildcard: bool = False) -> DBFilterKeyword:
        """
        Add a keyword to the user's block-list.

        Raises:
            ValidationError: empty, too long, or already present
        """
        normalized = normalize_keyword(keyword)
        if not normalized or (is_wildcard and not normalized.replace("*", "").strip()):
            raise ValidationError("Keyword cannot be empty", field="keyword")
        if len(normalized) > MAX_KEYWORD_LENGTH:
            raise ValidationError(f"Keyword must be at most {MAX_KEYWORD_LENGTH} characters", field="keyword")

        exists = (
            self.db.query(DBFilterKeyword.id)
            .filter(DBFilterKeyword.user_id == user_id, DBFilterKeyword.keyword == normalized)
            .first()
        )
        if exists:
            raise ValidationError(f"Keyword '{normalized}' already exists", field="keyword")

        row = DBFilterKeyword(user_id=user_id, keyword=normalized, is_wildcard=is_wildcard)
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError(f"Keyword '{normalized}' already exists", field="keyword")

        self.db.refresh(row)
        self.cache.invalidate(user_id)
        logger.info(f"User {user_id} added filter keyword '{normalized}' (wildcard={is_wildcard})")
        return row

    def remove_keyword(self, user_id: str, keyword_id: int) -> None:
        row = (
            self.db.query(DBFilterKeyword)
            .filter(DBFilterKeyword.id == keyword_id, DBFilterKeyword.user_id == user_id)
            .first()
        )
        if row is None:
            raise NotFoundError("Filter keyword", keyword_id)

        self.db.delete(row)
        self.db.commit()
        self.cache.invalidate(user_id)
