"""
RSS/Atom and podcast feed adapters.

Feeds are downloaded with requests (so timeouts and HTTP 429 are handled
uniformly) and parsed with feedparser. The canonical id of a feed source
is its URL.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional
from urllib.parse import urlparse

import feedparser
import requests

from ..exceptions import ProviderError, RateLimitedError
from ..models import NormalizedItem, ProviderType, SourceMetadata, SourceValidation
from .base import ContentAdapter, parse_clock_duration, struct_time_to_datetime

logger = logging.getLogger(__name__)


class RssAdapter(ContentAdapter):
    """Generic RSS/Atom feed source."""

    provider_type = ProviderType.RSS
    provider_name = "RSS"

    def __init__(self, timeout: int = 15, backlog_max_items: int = 500,
                 user_agent: str = "FeedHub/1.0", session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.backlog_max_items = backlog_max_items
        self.user_agent = user_agent
        self.session = session or requests.Session()

    # =========================================================================
    # Feed download
    # =========================================================================

    def _fetch_feed(self, feed_url: str) -> feedparser.FeedParserDict:
        try:
            response = self.session.get(
                feed_url,
                timeout=self.timeout,
                headers={"User-Agent": self.user_agent},
            )
        except requests.Timeout:
            raise ProviderError(self.provider_name, f"Timed out fetching {feed_url}")
        except requests.RequestException as e:
            raise ProviderError(self.provider_name, f"Failed to fetch {feed_url}: {e}")

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            raise RateLimitedError(self.provider_name, int(retry_after) if retry_after and retry_after.isdigit() else None)
        if not response.ok:
            raise ProviderError(self.provider_name, f"HTTP {response.status_code} fetching {feed_url}")

        feed = feedparser.parse(response.content)
        if feed.bozo and not feed.entries:
            raise ProviderError(self.provider_name, f"Could not parse feed {feed_url}: {feed.get('bozo_exception')}")
        return feed

    # =========================================================================
    # ContentAdapter
    # =========================================================================

    def validate_source(self, raw_id: str) -> SourceValidation:
        feed_url = (raw_id or "").strip()
        parsed = urlparse(feed_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            return SourceValidation(is_valid=False, error_message="Feed URL must be an http(s) URL")

        try:
            feed = self._fetch_feed(feed_url)
        except ProviderError as e:
            return SourceValidation(is_valid=False, error_message=str(e))

        return SourceValidation(
            is_valid=True,
            canonical_id=feed_url,
            display_name=feed.feed.get("title") or parsed.netloc,
            avatar_url=self._feed_image(feed),
        )

    def fetch_recent(self, canonical_id: str, since_days: int) -> List[NormalizedItem]:
        cutoff = datetime.utcnow() - timedelta(days=since_days)
        return [item for item in self._items(canonical_id) if item.published_at >= cutoff]

    def fetch_backlog(self, canonical_id: str) -> List[NormalizedItem]:
        items = sorted(self._items(canonical_id), key=lambda i: i.published_at, reverse=True)
        return items[:self.backlog_max_items]

    def get_source_metadata(self, canonical_id: str) -> SourceMetadata:
        feed = self._fetch_feed(canonical_id)
        return SourceMetadata(
            display_name=feed.feed.get("title") or canonical_id,
            description=feed.feed.get("subtitle") or feed.feed.get("description"),
            avatar_url=self._feed_image(feed),
            total_content_count=len(feed.entries),
        )

    # =========================================================================
    # Entry mapping
    # =========================================================================

    def _items(self, feed_url: str) -> List[NormalizedItem]:
        feed = self._fetch_feed(feed_url)
        items = []
        for entry in feed.entries:
            item = self._to_item(entry, feed_url)
            if item is not None:
                items.append(item)
        return items

    def _to_item(self, entry, feed_url: str) -> Optional[NormalizedItem]:
        original_id = entry.get("id") or entry.get("guid") or entry.get("link")
        if not original_id:
            logger.debug(f"Skipping entry without id in {feed_url}")
            return None

        published_at = (
            struct_time_to_datetime(entry.get("published_parsed"))
            or struct_time_to_datetime(entry.get("updated_parsed"))
        )
        if published_at is None:
            logger.debug(f"Skipping undated entry {original_id} in {feed_url}")
            return None

        return NormalizedItem(
            provider_type=self.provider_type,
            original_id=original_id,
            source_external_id=feed_url,
            title=entry.get("title") or "(untitled)",
            description=entry.get("summary") or entry.get("description"),
            thumbnail_url=self._entry_thumbnail(entry),
            url=entry.get("link") or original_id,
            duration=self._entry_duration(entry),
            published_at=published_at,
        )

    def _entry_duration(self, entry) -> Optional[int]:
        return None

    @staticmethod
    def _entry_thumbnail(entry) -> Optional[str]:
        for media in entry.get("media_thumbnail") or []:
            if media.get("url"):
                return media["url"]
        image = entry.get("image")
        if image and image.get("href"):
            return image["href"]
        return None

    @staticmethod
    def _feed_image(feed) -> Optional[str]:
        image = feed.feed.get("image")
        if image:
            return image.get("href") or image.get("url")
        return None


class PodcastAdapter(RssAdapter):
    """Podcast feed; reads iTunes extensions for duration and artwork."""

    provider_type = ProviderType.PODCAST
    provider_name = "Podcast"

    def _entry_duration(self, entry) -> Optional[int]:
        return parse_clock_duration(entry.get("itunes_duration"))

    def _to_item(self, entry, feed_url: str) -> Optional[NormalizedItem]:
        item = super()._to_item(entry, feed_url)
        if item is None:
            return None

        # Episode pages are optional in podcast feeds; fall back to the audio enclosure
        if item.url == item.original_id:
            for enclosure in entry.get("enclosures") or []:
                if enclosure.get("href"):
                    item.url = enclosure["href"]
                    break
        return item
