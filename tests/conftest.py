"""
Pytest configuration and shared fixtures.

Every test gets a fresh in-memory SQLite database, a dict-backed fake
Redis client and stub adapters, so nothing touches the network.
"""

import os

# Configure the environment before any feedhub module reads settings
os.environ["TESTING"] = "true"
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["REDIS_URL"] = "redis://localhost:6399/15"

from datetime import datetime, timedelta
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from feedhub.adapters.base import ContentAdapter
from feedhub.config import Settings
from feedhub.db_models import Base, DBContentItem, DBSource
from feedhub.models import NormalizedItem, ProviderType, SourceMetadata, SourceValidation
from feedhub.redis_client import FeedCache


# =============================================================================
# Test Doubles
# =============================================================================

class FakeRedis:
    """The subset of the redis-py client used by the cache layer."""

    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                self.ttls.pop(key, None)
                removed += 1
        return removed

    def ping(self):
        return True


class StubAdapter(ContentAdapter):
    """
    In-memory adapter.

    recent/backlog map canonical ids to item lists; errors maps canonical
    ids to the exception every call for that id raises.
    """

    def __init__(self, provider_type: ProviderType = ProviderType.RSS):
        self.provider_type = provider_type
        self.recent: Dict[str, List[NormalizedItem]] = {}
        self.backlog: Dict[str, List[NormalizedItem]] = {}
        self.errors: Dict[str, Exception] = {}
        self.invalid: Dict[str, str] = {}
        self.calls: List[tuple] = []

    def _check(self, canonical_id):
        if canonical_id in self.errors:
            raise self.errors[canonical_id]

    def validate_source(self, raw_id: str) -> SourceValidation:
        raw_id = raw_id.strip()
        if raw_id in self.invalid:
            return SourceValidation(is_valid=False, error_message=self.invalid[raw_id])
        return SourceValidation(
            is_valid=True,
            canonical_id=raw_id.lower(),
            display_name=f"Source {raw_id}",
            avatar_url=None,
        )

    def fetch_recent(self, canonical_id: str, since_days: int) -> List[NormalizedItem]:
        self.calls.append(("recent", canonical_id))
        self._check(canonical_id)
        return list(self.recent.get(canonical_id, []))

    def fetch_backlog(self, canonical_id: str) -> List[NormalizedItem]:
        self.calls.append(("backlog", canonical_id))
        self._check(canonical_id)
        return list(self.backlog.get(canonical_id, []))

    def get_source_metadata(self, canonical_id: str) -> SourceMetadata:
        self._check(canonical_id)
        return SourceMetadata(display_name=f"Source {canonical_id}", total_content_count=len(self.recent.get(canonical_id, [])))


# =============================================================================
# Factories
# =============================================================================

def make_item(original_id: str, source: str = "feed-a", provider: ProviderType = ProviderType.RSS,
              published_at: Optional[datetime] = None, title: Optional[str] = None,
              description: Optional[str] = None, duration: Optional[int] = None) -> NormalizedItem:
    return NormalizedItem(
        provider_type=provider,
        original_id=original_id,
        source_external_id=source,
        title=title or f"Item {original_id}",
        description=description,
        url=f"https://example.com/{original_id}",
        duration=duration,
        published_at=published_at or datetime.utcnow() - timedelta(hours=1),
    )


def add_source(db, user_id: str = "user-1", external_id: str = "feed-a",
               provider: ProviderType = ProviderType.RSS, **fields) -> DBSource:
    source = DBSource(
        user_id=user_id,
        provider_type=provider.value,
        external_id=external_id,
        display_name=fields.pop("display_name", f"Source {external_id}"),
        **fields,
    )
    db.add(source)
    db.commit()
    db.refresh(source)
    return source


def add_content(db, original_id: str, source: str = "feed-a", provider: ProviderType = ProviderType.RSS,
                published_at: Optional[datetime] = None, title: Optional[str] = None,
                description: Optional[str] = None, duration: Optional[int] = None) -> DBContentItem:
    item = DBContentItem(
        provider_type=provider.value,
        original_id=original_id,
        source_external_id=source,
        title=title or f"Item {original_id}",
        description=description,
        url=f"https://example.com/{original_id}",
        duration=duration,
        published_at=published_at or datetime.utcnow() - timedelta(hours=1),
    )
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def test_settings():
    """Settings tuned for deterministic tests: one worker, no backoff sleeps."""
    return Settings().model_copy(update={
        "ingestion_max_workers": 1,
        "rate_limit_max_attempts": 2,
        "rate_limit_backoff_seconds": 0.0,
        "rate_limit_error_threshold": 3,
        "feed_cache_ttl_seconds": 300,
        "feed_max_items": 200,
        "default_backlog_ratio": 0.0,
        "default_diversity_limit": 3,
        "not_now_cooldown_hours": 24.0,
    })


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def feed_cache(fake_redis):
    return FeedCache(fake_redis, ttl_seconds=300)


@pytest.fixture
def rss_adapter():
    return StubAdapter(ProviderType.RSS)


@pytest.fixture
def adapters(rss_adapter):
    return {ProviderType.RSS: rss_adapter}
