"""
Source adapter contract.

Every content provider implements ContentAdapter. Adapters normalize
provider payloads into NormalizedItem and signal throttling with
RateLimitedError, separately from terminal failures (ProviderError), so
the ingestion service can back off instead of marking the source errored.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Union

import isodate

from ..models import NormalizedItem, ProviderType, SourceMetadata, SourceValidation

logger = logging.getLogger(__name__)


class ContentAdapter(ABC):
    """
    Abstract interface for a content provider.

    Implementations:
    - YouTubeAdapter: YouTube Data API v3
    - YtDlpAdapter: YouTube via yt-dlp (no API key)
    - RssAdapter: RSS/Atom feeds
    - PodcastAdapter: podcast RSS feeds with iTunes extensions
    """

    provider_type: ProviderType

    @abstractmethod
    def validate_source(self, raw_id: str) -> SourceValidation:
        """Resolve a user-supplied identifier to a canonical source id."""
        pass

    @abstractmethod
    def fetch_recent(self, canonical_id: str, since_days: int) -> List[NormalizedItem]:
        """Fetch items published within the last `since_days` days."""
        pass

    @abstractmethod
    def fetch_backlog(self, canonical_id: str) -> List[NormalizedItem]:
        """Fetch older items, bounded by the adapter's backlog limit."""
        pass

    @abstractmethod
    def get_source_metadata(self, canonical_id: str) -> SourceMetadata:
        pass


# =============================================================================
# Duration Normalization
# =============================================================================

def parse_iso_duration(duration_str: Optional[str]) -> Optional[int]:
    """Convert an ISO 8601 duration (PT1H2M3S) to whole seconds."""
    if not duration_str:
        return None
    try:
        duration = isodate.parse_duration(duration_str)
        return int(duration.total_seconds())
    except (isodate.ISO8601Error, TypeError, ValueError) as e:
        logger.warning(f"Could not parse duration {duration_str}: {e}")
        return None


def parse_clock_duration(value: Union[str, int, float, None]) -> Optional[int]:
    """
    Convert HH:MM:SS, MM:SS or plain seconds to whole seconds.

    Podcast feeds use all three forms in itunes:duration.
    """
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return max(int(value), 0)

    try:
        text = str(value).strip()
        if ':' in text:
            seconds = 0
            for part in text.split(':'):
                seconds = seconds * 60 + int(float(part))
            return seconds
        return int(float(text))
    except ValueError:
        logger.warning(f"Could not parse duration {value}")
        return None


def struct_time_to_datetime(value) -> Optional[datetime]:
    """feedparser exposes dates as time.struct_time in UTC."""
    if not value:
        return None
    return datetime(*value[:6])
