"""
Content Store: deduplicated, provider-agnostic content items.

Items are keyed by the natural key (provider_type, original_id), backed by
a unique constraint. New rows go through INSERT ... ON CONFLICT DO NOTHING
so concurrent fetches of the same source can never create duplicates;
already-known rows only get their last_seen_in_feed refreshed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Set, Tuple

from sqlalchemy import and_, or_, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .constants import CONTENT_INSERT_CHUNK_SIZE
from .db_models import DBContentItem
from .models import NormalizedItem

logger = logging.getLogger(__name__)

NaturalKey = Tuple[str, str]

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass
class UpsertResult:
    new_count: int = 0
    touched_count: int = 0


def dedupe_by_key(items: Iterable[NormalizedItem]) -> List[NormalizedItem]:
    """Drop repeated natural keys within one batch, keeping the first."""
    seen: Set[NaturalKey] = set()
    unique = []
    for item in items:
        if item.natural_key in seen:
            continue
        seen.add(item.natural_key)
        unique.append(item)
    return unique


class ContentStore:
    """Repository for DBContentItem rows keyed by natural key."""

    def __init__(self, db: Session):
        self.db = db

    def find_existing_keys(self, keys: Iterable[NaturalKey]) -> Set[NaturalKey]:
        """Return the subset of keys already stored, in a single query."""
        by_provider: Dict[str, List[str]] = {}
        for provider_type, original_id in keys:
            by_provider.setdefault(provider_type, []).append(original_id)

        if not by_provider:
            return set()

        clauses = [
            and_(DBContentItem.provider_type == provider_type, DBContentItem.original_id.in_(ids))
            for provider_type, ids in by_provider.items()
        ]
        rows = (
            self.db.query(DBContentItem.provider_type, DBContentItem.original_id)
            .filter(or_(*clauses))
            .all()
        )
        return {(row.provider_type, row.original_id) for row in rows}

    def upsert_items(self, items: Iterable[NormalizedItem], now: datetime = None) -> UpsertResult:
        """
        Insert absent items and touch known ones.

        Does not commit; the caller owns the transaction.
        """
        now = now or datetime.utcnow()
        items = dedupe_by_key(items)
        if not items:
            return UpsertResult()

        existing = self.find_existing_keys(item.natural_key for item in items)
        result = UpsertResult()

        if existing:
            result.touched_count = self._touch(existing, now)

        absent = [item for item in items if item.natural_key not in existing]
        if absent:
            result.new_count = self._insert_if_absent(absent, now)

        logger.debug(f"Content upsert: {result.new_count} new, {result.touched_count} touched")
        return result

    def _touch(self, keys: Set[NaturalKey], now: datetime) -> int:
        by_provider: Dict[str, List[str]] = {}
        for provider_type, original_id in keys:
            by_provider.setdefault(provider_type, []).append(original_id)

        touched = 0
        for provider_type, ids in by_provider.items():
            stmt = (
                update(DBContentItem)
                .where(DBContentItem.provider_type == provider_type)
                .where(DBContentItem.original_id.in_(ids))
                .values(last_seen_in_feed=now)
                .execution_options(synchronize_session=False)
            )
            touched += self.db.execute(stmt).rowcount or 0
        return touched

    def _insert_if_absent(self, items: List[NormalizedItem], now: datetime) -> int:
        rows = [self._to_row(item, now) for item in items]
        insert = _INSERT_BY_DIALECT.get(self.db.get_bind().dialect.name)

        if insert is None:
            return self._insert_with_savepoints(rows)

        inserted = 0
        for start in range(0, len(rows), CONTENT_INSERT_CHUNK_SIZE):
            chunk = rows[start:start + CONTENT_INSERT_CHUNK_SIZE]
            stmt = insert(DBContentItem).values(chunk).on_conflict_do_nothing(
                index_elements=["provider_type", "original_id"]
            )
            inserted += self.db.execute(stmt).rowcount or 0
        return inserted

    def _insert_with_savepoints(self, rows: List[dict]) -> int:
        inserted = 0
        for row in rows:
            try:
                with self.db.begin_nested():
                    self.db.add(DBContentItem(**row))
                inserted += 1
            except IntegrityError:
                logger.debug(f"Content item {row['provider_type']}:{row['original_id']} inserted concurrently")
        return inserted

    @staticmethod
    def _to_row(item: NormalizedItem, now: datetime) -> dict:
        return {
            "provider_type": item.provider_type.value,
            "original_id": item.original_id,
            "source_external_id": item.source_external_id,
            "title": item.title,
            "description": item.description,
            "thumbnail_url": item.thumbnail_url,
            "url": item.url,
            "duration": item.duration,
            "published_at": item.published_at,
            "fetched_at": now,
            "last_seen_in_feed": now,
        }

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, content_id: int):
        return self.db.query(DBContentItem).filter(DBContentItem.id == content_id).first()

    def get_by_natural_key(self, provider_type: str, original_id: str):
        return (
            self.db.query(DBContentItem)
            .filter(DBContentItem.provider_type == provider_type, DBContentItem.original_id == original_id)
            .first()
        )

    def count_for_source(self, provider_type: str, source_external_id: str) -> int:
        return (
            self.db.query(DBContentItem)
            .filter(
                DBContentItem.provider_type == provider_type,
                DBContentItem.source_external_id == source_external_id,
            )
            .count()
        )
