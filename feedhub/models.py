"""Data models and schemas for FeedHub."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from .constants import (
    MAX_KEYWORD_LENGTH,
    MAX_DISPLAY_NAME_LENGTH,
    MAX_COLLECTION_NAME_LENGTH,
    MAX_NOTES_LENGTH,
    MIN_DIVERSITY_LIMIT,
    MAX_DIVERSITY_LIMIT,
    MIN_BACKLOG_RATIO,
    MAX_BACKLOG_RATIO,
)


# =============================================================================
# Enums
# =============================================================================

class ProviderType(str, Enum):
    """Closed set of content providers."""
    YOUTUBE = "YOUTUBE"
    TWITCH = "TWITCH"
    RSS = "RSS"
    PODCAST = "PODCAST"


class InteractionType(str, Enum):
    """User actions recorded against a content item."""
    WATCHED = "WATCHED"
    SAVED = "SAVED"
    DISMISSED = "DISMISSED"
    NOT_NOW = "NOT_NOW"
    BLOCKED = "BLOCKED"


class FetchStatus(str, Enum):
    """Outcome of the most recent fetch of a source."""
    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"
    RATE_LIMITED = "rate_limited"


class Theme(str, Enum):
    LIGHT = "light"
    DARK = "dark"


class Density(str, Enum):
    COMPACT = "compact"
    COZY = "cozy"
    COMFORTABLE = "comfortable"


# =============================================================================
# Adapter Payloads
# =============================================================================

class NormalizedItem(BaseModel):
    """Provider-agnostic content produced by a source adapter."""
    provider_type: ProviderType
    original_id: str
    source_external_id: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    url: str
    duration: Optional[int] = Field(default=None, ge=0)  # whole seconds
    published_at: datetime

    @property
    def natural_key(self):
        return (self.provider_type.value, self.original_id)


class SourceValidation(BaseModel):
    """Result of resolving a user-supplied source identifier."""
    is_valid: bool
    canonical_id: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    error_message: Optional[str] = None


class SourceMetadata(BaseModel):
    """Descriptive metadata of a source as reported by its provider."""
    display_name: str
    description: Optional[str] = None
    avatar_url: Optional[str] = None
    subscriber_count: Optional[int] = None
    total_content_count: Optional[int] = None


# =============================================================================
# Feed & Ingestion Results
# =============================================================================

class FeedItem(BaseModel):
    """One ranked entry of a user's feed."""
    content_id: int
    provider_type: ProviderType
    original_id: str
    title: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None
    url: str
    duration: Optional[int] = None
    published_at: datetime
    source_id: str
    source_display_name: str
    position: int
    is_new: bool
    is_returning: bool = False


class FetchStats(BaseModel):
    """Aggregate outcome of a batch fetch; returned even when every source fails."""
    total_sources: int = 0
    success_count: int = 0
    error_count: int = 0
    rate_limited_count: int = 0
    new_items_count: int = 0
    duration: float = 0.0  # seconds


# =============================================================================
# Sources
# =============================================================================

class SourceCreate(BaseModel):
    """Schema for subscribing to a new source."""
    provider_type: ProviderType
    external_id: str = Field(..., min_length=1, max_length=512)
    display_name: Optional[str] = Field(default=None, max_length=MAX_DISPLAY_NAME_LENGTH)


class SourceUpdate(BaseModel):
    """Schema for muting, renaming or marking a source always-safe."""
    display_name: Optional[str] = Field(default=None, min_length=1, max_length=MAX_DISPLAY_NAME_LENGTH)
    is_muted: Optional[bool] = None
    always_safe: Optional[bool] = None


class SourceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    provider_type: ProviderType
    external_id: str
    display_name: str
    avatar_url: Optional[str] = None
    is_muted: bool
    always_safe: bool
    added_at: datetime
    last_fetch_at: Optional[datetime] = None
    last_fetch_status: FetchStatus
    error_message: Optional[str] = None
    item_count: int = 0
    unseen_count: int = 0


# =============================================================================
# Filters & Preferences
# =============================================================================

class FilterKeywordCreate(BaseModel):
    """Schema for adding a keyword to the block-list."""
    keyword: str = Field(..., max_length=MAX_KEYWORD_LENGTH)
    is_wildcard: bool = False


class FilterKeywordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    keyword: str
    is_wildcard: bool
    created_at: datetime


class PreferencesUpdate(BaseModel):
    """Partial update of a user's feed preferences."""
    min_duration: Optional[int] = Field(default=None, ge=0)
    max_duration: Optional[int] = Field(default=None, ge=0)
    backlog_ratio: Optional[float] = Field(default=None, ge=MIN_BACKLOG_RATIO, le=MAX_BACKLOG_RATIO)
    diversity_limit: Optional[int] = Field(default=None, ge=MIN_DIVERSITY_LIMIT, le=MAX_DIVERSITY_LIMIT)
    theme: Optional[Theme] = None
    density: Optional[Density] = None
    auto_play: Optional[bool] = None


class PreferencesResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    min_duration: Optional[int] = None
    max_duration: Optional[int] = None
    backlog_ratio: float
    diversity_limit: int
    theme: Theme = Theme.DARK
    density: Density = Density.COZY
    auto_play: bool = False


# =============================================================================
# Interactions
# =============================================================================

class WatchRequest(BaseModel):
    watch_duration: Optional[int] = Field(default=None, ge=0)
    completion_rate: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class SaveRequest(BaseModel):
    collection_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=MAX_NOTES_LENGTH)


class DismissRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=255)


class BlockRequest(BaseModel):
    extract_keywords: bool = False


class InteractionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    content_item_id: int
    type: InteractionType
    timestamp: datetime
    watch_duration: Optional[int] = None
    completion_rate: Optional[float] = None
    dismiss_reason: Optional[str] = None


class HistoryEntry(BaseModel):
    interaction: InteractionResponse
    title: str
    url: str
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None


class SavedItemResponse(BaseModel):
    id: int
    content_item_id: int
    title: str
    url: str
    thumbnail_url: Optional[str] = None
    duration: Optional[int] = None
    collection_id: Optional[str] = None
    notes: Optional[str] = None
    saved_at: datetime


# =============================================================================
# Collections
# =============================================================================

class CollectionCreate(BaseModel):
    name: str = Field(..., max_length=MAX_COLLECTION_NAME_LENGTH)
    color: Optional[str] = Field(default=None, max_length=20)
    icon: Optional[str] = Field(default=None, max_length=50)

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Collection name cannot be empty")
        return v


class CollectionUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=MAX_COLLECTION_NAME_LENGTH)
    color: Optional[str] = Field(default=None, max_length=20)
    icon: Optional[str] = Field(default=None, max_length=50)


class CollectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None
    created_at: datetime
    item_count: int = 0


class MoveToCollectionRequest(BaseModel):
    collection_id: Optional[str] = None


# =============================================================================
# Responses
# =============================================================================

class FeedResponse(BaseModel):
    items: List[FeedItem]
    count: int
