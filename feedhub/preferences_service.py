"""
User preferences: duration bounds, backlog ratio, diversity limit and
cosmetic settings. One row per user, created on first update.
"""

import logging
from typing import Any, Dict

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from .config import Settings
from .db_models import DBUserPreferences
from .exceptions import ValidationError
from .models import PreferencesResponse, PreferencesUpdate
from .redis_client import FeedCache

logger = logging.getLogger(__name__)

NULLABLE_FIELDS = {"min_duration", "max_duration"}


def default_preferences(settings: Settings) -> PreferencesResponse:
    return PreferencesResponse(
        min_duration=None,
        max_duration=None,
        backlog_ratio=settings.default_backlog_ratio,
        diversity_limit=settings.default_diversity_limit,
    )


def load_preferences(db: Session, user_id: str, settings: Settings) -> PreferencesResponse:
    """Stored preferences, or configured defaults when the user has none."""
    row = db.query(DBUserPreferences).filter(DBUserPreferences.user_id == user_id).first()
    if row is None:
        return default_preferences(settings)
    return PreferencesResponse.model_validate(row)


class PreferencesService:
    def __init__(self, db: Session, cache: FeedCache, settings: Settings):
        self.db = db
        self.cache = cache
        self.settings = settings

    def get_preferences(self, user_id: str) -> PreferencesResponse:
        return load_preferences(self.db, user_id, self.settings)

    def update_preferences(self, user_id: str, updates: Dict[str, Any]) -> PreferencesResponse:
        """
        Apply a partial update and invalidate the user's feed.

        Raises:
            ValidationError: out-of-range values or min_duration > max_duration
        """
        try:
            parsed = PreferencesUpdate.model_validate(updates)
        except PydanticValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            raise ValidationError("Invalid preferences", errors=errors)

        changes = parsed.model_dump(exclude_unset=True)

        row = self.db.query(DBUserPreferences).filter(DBUserPreferences.user_id == user_id).first()
        if row is None:
            defaults = default_preferences(self.settings)
            row = DBUserPreferences(
                user_id=user_id,
                backlog_ratio=defaults.backlog_ratio,
                diversity_limit=defaults.diversity_limit,
                theme=defaults.theme.value,
                density=defaults.density.value,
                auto_play=defaults.auto_play,
            )
            self.db.add(row)

        min_duration = changes.get("min_duration", row.min_duration)
        max_duration = changes.get("max_duration", row.max_duration)
        if min_duration is not None and max_duration is not None and min_duration > max_duration:
            self.db.rollback()
            raise ValidationError("min_duration cannot exceed max_duration", field="min_duration")

        for key, value in changes.items():
            # Only the duration bounds may be cleared back to "unbounded"
            if value is None and key not in NULLABLE_FIELDS:
                continue
            setattr(row, key, value.value if hasattr(value, "value") else value)

        self.db.commit()
        self.db.refresh(row)
        self.cache.invalidate(user_id)

        logger.info(f"Updated preferences for user {user_id}: {sorted(changes)}")
        return PreferencesResponse.model_validate(row)
