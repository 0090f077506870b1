"""
Source management: subscribe, rename, mute, mark always-safe, remove.

Content items are shared, so removing a source only deletes its items
when no other source (of any user) still subscribes to the same
provider_type + external_id.
"""

import logging
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .adapters.registry import AdapterRegistry
from .db_models import DBContentItem, DBInteraction, DBSavedContent, DBSource
from .exceptions import NotFoundError, UnsupportedProviderError, ValidationError
from .feed_service import PERMANENT_EXCLUSIONS
from .models import FetchStatus, ProviderType, SourceMetadata, SourceResponse
from .redis_client import FeedCache

logger = logging.getLogger(__name__)


class SourceService:
    def __init__(self, db: Session, cache: FeedCache, adapters: AdapterRegistry):
        self.db = db
        self.cache = cache
        self.adapters = adapters

    # =========================================================================
    # Reads
    # =========================================================================

    def get_source(self, user_id: str, source_id: str) -> DBSource:
        source = (
            self.db.query(DBSource)
            .filter(DBSource.id == source_id, DBSource.user_id == user_id)
            .first()
        )
        if source is None:
            raise NotFoundError("Source", source_id)
        return source

    def list_sources(self, user_id: str) -> List[SourceResponse]:
        """All of a user's sources with stored and still-unseen item counts."""
        sources = (
            self.db.query(DBSource)
            .filter(DBSource.user_id == user_id)
            .order_by(DBSource.added_at.desc())
            .all()
        )

        responses = []
        for source in sources:
            items = self.db.query(DBContentItem.id).filter(
                DBContentItem.provider_type == source.provider_type,
                DBContentItem.source_external_id == source.external_id,
            )
            item_count = items.count()
            seen = (
                self.db.query(func.count(func.distinct(DBInteraction.content_item_id)))
                .filter(
                    DBInteraction.user_id == user_id,
                    DBInteraction.type.in_(PERMANENT_EXCLUSIONS),
                    DBInteraction.content_item_id.in_(items.scalar_subquery()),
                )
                .scalar()
            ) or 0

            response = SourceResponse.model_validate(source)
            response.item_count = item_count
            response.unseen_count = max(item_count - seen, 0)
            responses.append(response)
        return responses

    def get_source_metadata(self, user_id: str, source_id: str) -> SourceMetadata:
        source = self.get_source(user_id, source_id)
        adapter = self.adapters.get(ProviderType(source.provider_type))
        if adapter is None:
            raise UnsupportedProviderError(source.provider_type)
        return adapter.get_source_metadata(source.external_id)

    # =========================================================================
    # Writes
    # =========================================================================

    def add_source(self, user_id: str, provider_type: ProviderType, external_id: str,
                   display_name: Optional[str] = None) -> DBSource:
        """
        Validate the identifier through the provider's adapter and subscribe.

        Raises:
            ValidationError: unsupported provider, unknown source, or duplicate subscription
        """
        provider_type = ProviderType(provider_type)
        adapter = self.adapters.get(provider_type)
        if adapter is None:
            raise ValidationError(f"Unsupported provider type: {provider_type.value}", field="provider_type")

        validation = adapter.validate_source(external_id)
        if not validation.is_valid:
            raise ValidationError(validation.error_message or "Invalid source", field="external_id")

        canonical_id = validation.canonical_id or external_id.strip()
        if self._find(user_id, provider_type.value, canonical_id) is not None:
            raise ValidationError("Source already added", field="external_id")

        source = DBSource(
            user_id=user_id,
            provider_type=provider_type.value,
            external_id=canonical_id,
            display_name=display_name or validation.display_name or canonical_id,
            avatar_url=validation.avatar_url,
            last_fetch_status=FetchStatus.PENDING.value,
        )
        self.db.add(source)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ValidationError("Source already added", field="external_id")

        self.db.refresh(source)
        self.cache.invalidate(user_id)
        logger.info(f"User {user_id} added source {provider_type.value}:{canonical_id}")
        return source

    def update_source(self, user_id: str, source_id: str, display_name: Optional[str] = None,
                      is_muted: Optional[bool] = None, always_safe: Optional[bool] = None) -> DBSource:
        source = self.get_source(user_id, source_id)

        if display_name is not None:
            if not display_name.strip():
                raise ValidationError("Display name cannot be empty", field="display_name")
            source.display_name = display_name.strip()
        if is_muted is not None:
            source.is_muted = is_muted
        if always_safe is not None:
            source.always_safe = always_safe

        self.db.commit()
        self.db.refresh(source)
        self.cache.invalidate(user_id)
        return source

    def remove_source(self, user_id: str, source_id: str) -> int:
        """
        Unsubscribe; returns the number of content items deleted with it.
        """
        source = self.get_source(user_id, source_id)
        provider_type, external_id = source.provider_type, source.external_id
        self.db.delete(source)
        self.db.flush()

        removed = 0
        still_subscribed = (
            self.db.query(DBSource.id)
            .filter(DBSource.provider_type == provider_type, DBSource.external_id == external_id)
            .first()
        )
        if still_subscribed is None:
            removed = self._delete_content(provider_type, external_id)

        self.db.commit()
        self.cache.invalidate(user_id)
        logger.info(f"User {user_id} removed source {source_id} ({removed} content items deleted)")
        return removed

    # =========================================================================
    # Helpers
    # =========================================================================

    def _find(self, user_id: str, provider_type: str, external_id: str) -> Optional[DBSource]:
        return (
            self.db.query(DBSource)
            .filter(
                DBSource.user_id == user_id,
                DBSource.provider_type == provider_type,
                DBSource.external_id == external_id,
            )
            .first()
        )

    def _delete_content(self, provider_type: str, external_id: str) -> int:
        content_ids = [
            row.id for row in
            self.db.query(DBContentItem.id)
            .filter(DBContentItem.provider_type == provider_type, DBContentItem.source_external_id == external_id)
            .all()
        ]
        if not content_ids:
            return 0

        self.db.query(DBInteraction).filter(
            DBInteraction.content_item_id.in_(content_ids)
        ).delete(synchronize_session=False)
        self.db.query(DBSavedContent).filter(
            DBSavedContent.content_item_id.in_(content_ids)
        ).delete(synchronize_session=False)
        return self.db.query(DBContentItem).filter(
            DBContentItem.id.in_(content_ids)
        ).delete(synchronize_session=False)
