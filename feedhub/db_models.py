"""
SQLAlchemy database models.

Maps the feed domain to relational tables. Separate from the Pydantic
models (models.py) which handle API validation and adapter payloads.

Content items are shared across users and linked to sources by natural
key (provider_type, source_external_id), never by a foreign key to a
user's source row.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Float, Text, DateTime, ForeignKey, Boolean,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class DBSource(Base):
    """A user's subscription to an external content provider."""
    __tablename__ = "sources"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    provider_type = Column(String(20), nullable=False)  # YOUTUBE, TWITCH, RSS, PODCAST
    external_id = Column(String(512), nullable=False)
    display_name = Column(String(255), nullable=False)
    avatar_url = Column(String(2048), nullable=True)
    is_muted = Column(Boolean, default=False, nullable=False)
    always_safe = Column(Boolean, default=False, nullable=False)  # bypasses keyword filters
    added_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Ingestion bookkeeping
    last_fetch_at = Column(DateTime, nullable=True)
    last_fetch_status = Column(String(20), default='pending', nullable=False)  # pending, success, error, rate_limited
    error_message = Column(Text, nullable=True)
    consecutive_rate_limits = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'provider_type', 'external_id', name='uq_source_user_provider_external'),
        Index('idx_source_natural_key', 'provider_type', 'external_id'),
        Index('idx_source_user_muted', 'user_id', 'is_muted'),
    )

    def __repr__(self):
        return f"<DBSource(id='{self.id}', type='{self.provider_type}', external_id='{self.external_id}')>"


class DBContentItem(Base):
    """Deduplicated content shared by every subscriber of its source."""
    __tablename__ = "content_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider_type = Column(String(20), nullable=False)
    original_id = Column(String(512), nullable=False)
    source_external_id = Column(String(512), nullable=False)

    title = Column(String(1024), nullable=False)
    description = Column(Text, nullable=True)
    thumbnail_url = Column(String(2048), nullable=True)
    url = Column(String(2048), nullable=False)
    duration = Column(Integer, nullable=True)  # whole seconds, None when unknown

    published_at = Column(DateTime, nullable=False, index=True)
    fetched_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_seen_in_feed = Column(DateTime, default=datetime.utcnow, nullable=False)

    interactions = relationship("DBInteraction", back_populates="content_item", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('provider_type', 'original_id', name='uq_content_natural_key'),
        Index('idx_content_source_published', 'provider_type', 'source_external_id', 'published_at'),
    )

    def __repr__(self):
        return f"<DBContentItem(id={self.id}, type='{self.provider_type}', original_id='{self.original_id}')>"


class DBInteraction(Base):
    """One user action against one content item; at most one row per type."""
    __tablename__ = "interactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    content_item_id = Column(Integer, ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False)
    type = Column(String(20), nullable=False)  # WATCHED, SAVED, DISMISSED, NOT_NOW, BLOCKED
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    # WATCHED only
    watch_duration = Column(Integer, nullable=True)
    completion_rate = Column(Float, nullable=True)

    # DISMISSED only
    dismiss_reason = Column(String(255), nullable=True)

    content_item = relationship("DBContentItem", back_populates="interactions")

    __table_args__ = (
        UniqueConstraint('user_id', 'content_item_id', 'type', name='uq_interaction_user_content_type'),
        Index('idx_interaction_user_type', 'user_id', 'type'),
    )

    def __repr__(self):
        return f"<DBInteraction(user='{self.user_id}', content={self.content_item_id}, type='{self.type}')>"


class DBFilterKeyword(Base):
    """Keyword block-list entry, stored trimmed and lower-cased."""
    __tablename__ = "filter_keywords"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    keyword = Column(String(100), nullable=False)
    is_wildcard = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint('user_id', 'keyword', name='uq_filter_user_keyword'),
    )

    def __repr__(self):
        return f"<DBFilterKeyword(user='{self.user_id}', keyword='{self.keyword}', wildcard={self.is_wildcard})>"


class DBUserPreferences(Base):
    """Per-user feed tuning plus cosmetic settings; one row per user."""
    __tablename__ = "user_preferences"

    user_id = Column(String(64), primary_key=True)
    min_duration = Column(Integer, nullable=True)
    max_duration = Column(Integer, nullable=True)
    backlog_ratio = Column(Float, default=0.3, nullable=False)
    diversity_limit = Column(Integer, default=3, nullable=False)

    # Cosmetic
    theme = Column(String(20), default='dark', nullable=False)
    density = Column(String(20), default='cozy', nullable=False)
    auto_play = Column(Boolean, default=False, nullable=False)

    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<DBUserPreferences(user='{self.user_id}', ratio={self.backlog_ratio}, diversity={self.diversity_limit})>"


class DBCollection(Base):
    """Named grouping of saved content."""
    __tablename__ = "collections"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    color = Column(String(20), nullable=True)
    icon = Column(String(50), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    saved_items = relationship("DBSavedContent", back_populates="collection")

    __table_args__ = (
        UniqueConstraint('user_id', 'name', name='uq_collection_user_name'),
    )

    def __repr__(self):
        return f"<DBCollection(id='{self.id}', name='{self.name}')>"


class DBSavedContent(Base):
    """A saved content item, optionally filed into a collection."""
    __tablename__ = "saved_content"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    content_item_id = Column(Integer, ForeignKey("content_items.id", ondelete="CASCADE"), nullable=False)
    collection_id = Column(String(36), ForeignKey("collections.id", ondelete="SET NULL"), nullable=True, index=True)
    notes = Column(Text, nullable=True)
    saved_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    content_item = relationship("DBContentItem")
    collection = relationship("DBCollection", back_populates="saved_items")

    __table_args__ = (
        UniqueConstraint('user_id', 'content_item_id', name='uq_saved_user_content'),
        Index('idx_saved_user_saved_at', 'user_id', 'saved_at'),
    )

    def __repr__(self):
        return f"<DBSavedContent(user='{self.user_id}', content={self.content_item_id})>"
