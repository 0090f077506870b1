"""
Feed Ranking Engine.

get_user_feed() is read-through: a cached feed is returned unchanged; on a
miss the feed is rebuilt from the user's non-muted sources, minus
interaction exclusions and filter rules, mixed between recent and backlog
content, capped per source and interleaved, then written back with a TTL.

Concurrent misses for one user share a single computation.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from .config import Settings
from .db_models import DBContentItem, DBFilterKeyword, DBInteraction, DBSource
from .feed_ranking import cap_diversity, feed_size, interleave_sources, partition_by_recency, select_mix
from .filter_engine import FilterEngine
from .models import FeedItem, InteractionType
from .preferences_service import load_preferences
from .redis_client import FeedCache
from .single_flight import SingleFlight

logger = logging.getLogger(__name__)

# Shared by every FeedService in the process
feed_flight = SingleFlight()

PERMANENT_EXCLUSIONS = (InteractionType.DISMISSED.value, InteractionType.BLOCKED.value, InteractionType.WATCHED.value)


@dataclass
class Candidate:
    """A content item paired with the user's source it came from."""
    content: DBContentItem
    source: DBSource
    is_returning: bool = False

    @property
    def source_id(self) -> str:
        return self.source.id

    @property
    def published_at(self) -> datetime:
        return self.content.published_at

    @property
    def title(self) -> str:
        return self.content.title

    @property
    def description(self) -> Optional[str]:
        return self.content.description

    @property
    def duration(self) -> Optional[int]:
        return self.content.duration

    @property
    def provider_type(self) -> str:
        return self.content.provider_type

    @property
    def source_external_id(self) -> str:
        return self.content.source_external_id


class FeedService:
    """Builds, caches and invalidates per-user feeds."""

    def __init__(self, db: Session, cache: FeedCache, settings: Settings,
                 single_flight: Optional[SingleFlight] = None):
        self.db = db
        self.cache = cache
        self.settings = settings
        self.single_flight = single_flight or feed_flight

    def get_user_feed(self, user_id: str) -> List[FeedItem]:
        cached = self.cache.get_feed(user_id)
        if cached is not None:
            logger.debug(f"Serving cached feed for user {user_id} ({len(cached)} items)")
            return cached

        return self.single_flight.do(user_id, lambda: self._build_and_cache(user_id))

    def refresh_feed(self, user_id: str) -> None:
        """Drop the cached feed; the next get_user_feed recomputes."""
        self.cache.invalidate(user_id)
        logger.info(f"Feed cache invalidated for user {user_id}")

    # =========================================================================
    # Computation
    # =========================================================================

    def _build_and_cache(self, user_id: str) -> List[FeedItem]:
        # A caller that just finished may have populated the cache
        cached = self.cache.get_feed(user_id)
        if cached is not None:
            return cached

        feed = self.build_feed(user_id)
        self.cache.set_feed(user_id, feed, ttl=self.settings.feed_cache_ttl_seconds)
        return feed

    def build_feed(self, user_id: str, now: Optional[datetime] = None) -> List[FeedItem]:
        """Compute the feed without touching the cache."""
        now = now or datetime.utcnow()
        sources = (
            self.db.query(DBSource)
            .filter(DBSource.user_id == user_id, DBSource.is_muted.is_(False))
            .all()
        )
        if not sources:
            return []

        source_by_key = {(s.provider_type, s.external_id): s for s in sources}
        candidates = self._load_candidates(source_by_key)
        total = len(candidates)

        candidates = self._apply_interactions(user_id, candidates, now)
        after_interactions = len(candidates)

        prefs = load_preferences(self.db, user_id, self.settings)
        keywords = self.db.query(DBFilterKeyword).filter(DBFilterKeyword.user_id == user_id).all()
        engine = FilterEngine(keywords, prefs.min_duration, prefs.max_duration)
        safe_keys: Set[Tuple[str, str]] = {key for key, s in source_by_key.items() if s.always_safe}
        candidates = engine.apply(candidates, safe_keys)

        recent, backlog = partition_by_recency(candidates, now, self.settings.feed_recency_days)
        # Quota is taken against the size the diversity cap can fill
        limit = feed_size(candidates, self.settings.feed_max_items, prefs.diversity_limit)
        mixed = select_mix(recent, backlog, limit, prefs.backlog_ratio, prefs.diversity_limit)
        capped = cap_diversity(mixed, prefs.diversity_limit)
        ordered = interleave_sources(capped)

        logger.info(
            f"Built feed for user {user_id}: {total} candidates, "
            f"{total - after_interactions} excluded by interactions, "
            f"{after_interactions - len(candidates)} filtered, {len(ordered)} returned"
        )

        recent_cutoff = now - timedelta(days=self.settings.feed_recency_days)
        return [self._to_feed_item(c, position, recent_cutoff) for position, c in enumerate(ordered)]

    def _load_candidates(self, source_by_key: Dict[Tuple[str, str], DBSource]) -> List[Candidate]:
        by_provider: Dict[str, List[str]] = {}
        for provider_type, external_id in source_by_key:
            by_provider.setdefault(provider_type, []).append(external_id)

        clauses = [
            and_(DBContentItem.provider_type == provider_type, DBContentItem.source_external_id.in_(ids))
            for provider_type, ids in by_provider.items()
        ]
        rows = (
            self.db.query(DBContentItem)
            .filter(or_(*clauses))
            .order_by(DBContentItem.published_at.desc())
            .limit(self.settings.feed_candidate_pool_size)
            .all()
        )
        return [
            Candidate(content=row, source=source_by_key[(row.provider_type, row.source_external_id)])
            for row in rows
        ]

    def _apply_interactions(self, user_id: str, candidates: List[Candidate], now: datetime) -> List[Candidate]:
        rows = (
            self.db.query(DBInteraction.content_item_id, DBInteraction.type, DBInteraction.timestamp)
            .filter(
                DBInteraction.user_id == user_id,
                DBInteraction.type.in_(PERMANENT_EXCLUSIONS + (InteractionType.NOT_NOW.value,)),
            )
            .all()
        )

        excluded: Set[int] = set()
        not_now: Dict[int, datetime] = {}
        for row in rows:
            if row.type == InteractionType.NOT_NOW.value:
                not_now[row.content_item_id] = row.timestamp
            else:
                excluded.add(row.content_item_id)

        cooldown = timedelta(hours=self.settings.not_now_cooldown_hours)
        kept = []
        for candidate in candidates:
            content_id = candidate.content.id
            if content_id in excluded:
                continue
            if content_id in not_now:
                if now - not_now[content_id] < cooldown:
                    continue
                candidate.is_returning = True
            kept.append(candidate)
        return kept

    @staticmethod
    def _to_feed_item(candidate: Candidate, position: int, recent_cutoff: datetime) -> FeedItem:
        content = candidate.content
        return FeedItem(
            content_id=content.id,
            provider_type=content.provider_type,
            original_id=content.original_id,
            title=content.title,
            description=content.description,
            thumbnail_url=content.thumbnail_url,
            url=content.url,
            duration=content.duration,
            published_at=content.published_at,
            source_id=candidate.source.id,
            source_display_name=candidate.source.display_name,
            position=position,
            is_new=content.published_at > recent_cutoff,
            is_returning=candidate.is_returning,
        )
