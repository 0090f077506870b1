"""
YouTube Data API v3 adapter.

YouTubeClient performs the raw HTTP requests and classifies failures:
HTTP 429 and quota/rate errors become RateLimitedError, anything else
(timeouts, 4xx/5xx, malformed JSON) becomes ProviderError.
YouTubeAdapter maps API payloads onto NormalizedItem.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import requests

from ..constants import YOUTUBE_PAGE_SIZE
from ..exceptions import ProviderError, RateLimitedError
from ..models import NormalizedItem, ProviderType, SourceMetadata, SourceValidation
from .base import ContentAdapter, parse_iso_duration

logger = logging.getLogger(__name__)

PROVIDER_NAME = "YouTube"

# 403 reasons that mean "slow down" rather than "forbidden"
RATE_LIMIT_REASONS = {"quotaExceeded", "rateLimitExceeded", "userRateLimitExceeded", "dailyLimitExceeded"}


def _parse_retry_after(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_api_datetime(value: str) -> datetime:
    # API timestamps look like 2024-01-15T10:30:00Z; stored naive UTC
    return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)


class YouTubeClient:
    """Thin wrapper around the YouTube Data API v3 REST endpoints."""

    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(self, api_key: str, timeout: int = 15, session: Optional[requests.Session] = None):
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, path: str, params: Dict) -> Dict:
        url = f"{self.BASE_URL}/{path}"
        query = dict(params, key=self.api_key)

        try:
            response = self.session.get(url, params=query, timeout=self.timeout)
        except requests.Timeout:
            raise ProviderError(PROVIDER_NAME, f"Request to {path} timed out after {self.timeout}s")
        except requests.RequestException as e:
            raise ProviderError(PROVIDER_NAME, f"Request to {path} failed: {e}")

        if response.status_code == 429:
            raise RateLimitedError(PROVIDER_NAME, _parse_retry_after(response.headers.get("Retry-After")))

        if not response.ok:
            message = f"HTTP {response.status_code}"
            reasons = set()
            try:
                error = response.json().get("error", {})
                message = error.get("message", message)
                reasons = {e.get("reason") for e in error.get("errors", [])}
            except ValueError:
                pass

            if response.status_code == 403 and reasons & RATE_LIMIT_REASONS:
                raise RateLimitedError(PROVIDER_NAME, _parse_retry_after(response.headers.get("Retry-After")))
            raise ProviderError(PROVIDER_NAME, message)

        try:
            return response.json()
        except ValueError:
            raise ProviderError(PROVIDER_NAME, f"Malformed JSON from {path}")

    def search_channel_videos(self, channel_id: str, published_after: Optional[datetime] = None,
                              max_results: int = YOUTUBE_PAGE_SIZE) -> Dict:
        params = {
            "part": "snippet",
            "channelId": channel_id,
            "type": "video",
            "order": "date",
            "maxResults": max_results,
        }
        if published_after:
            params["publishedAfter"] = published_after.strftime("%Y-%m-%dT%H:%M:%SZ")
        return self._request("search", params)

    def get_videos(self, video_ids: List[str]) -> Dict:
        if not video_ids:
            return {"items": []}
        return self._request("videos", {
            "part": "snippet,contentDetails",
            "id": ",".join(video_ids),
        })

    def get_channel(self, channel_id: str) -> Dict:
        return self._request("channels", {
            "part": "snippet,statistics,contentDetails",
            "id": channel_id,
        })

    def get_channel_by_handle(self, handle: str) -> Dict:
        return self._request("channels", {
            "part": "snippet,statistics,contentDetails",
            "forHandle": handle.lstrip("@"),
        })

    def get_playlist_items(self, playlist_id: str, page_token: Optional[str] = None) -> Dict:
        params = {
            "part": "snippet,contentDetails",
            "playlistId": playlist_id,
            "maxResults": YOUTUBE_PAGE_SIZE,
        }
        if page_token:
            params["pageToken"] = page_token
        return self._request("playlistItems", params)


class YouTubeAdapter(ContentAdapter):
    """Channel-based YouTube source backed by the Data API."""

    provider_type = ProviderType.YOUTUBE

    def __init__(self, client: YouTubeClient, backlog_max_items: int = 500):
        self.client = client
        self.backlog_max_items = backlog_max_items

    # =========================================================================
    # ContentAdapter
    # =========================================================================

    def validate_source(self, raw_id: str) -> SourceValidation:
        raw_id = (raw_id or "").strip()
        if not raw_id:
            return SourceValidation(is_valid=False, error_message="Channel ID or handle is required")

        try:
            channel = self._resolve_channel(raw_id)
        except ProviderError as e:
            logger.warning(f"Failed to validate YouTube channel {raw_id}: {e}")
            return SourceValidation(is_valid=False, error_message=str(e))

        if channel is None:
            return SourceValidation(
                is_valid=False,
                error_message="Channel not found. Please check the channel ID or handle.",
            )

        snippet = channel.get("snippet", {})
        return SourceValidation(
            is_valid=True,
            canonical_id=channel["id"],
            display_name=snippet.get("title"),
            avatar_url=self._thumbnail(snippet),
        )

    def fetch_recent(self, canonical_id: str, since_days: int) -> List[NormalizedItem]:
        logger.info(f"Fetching recent YouTube videos for {canonical_id} (last {since_days} days)")
        published_after = datetime.utcnow() - timedelta(days=since_days)

        search = self.client.search_channel_videos(canonical_id, published_after=published_after)
        video_ids = [
            item["id"]["videoId"]
            for item in search.get("items", [])
            if item.get("id", {}).get("videoId")
        ]
        return self._load_videos(video_ids, canonical_id)

    def fetch_backlog(self, canonical_id: str) -> List[NormalizedItem]:
        channel = self._first(self.client.get_channel(canonical_id))
        uploads = (channel or {}).get("contentDetails", {}).get("relatedPlaylists", {}).get("uploads")
        if not uploads:
            logger.warning(f"No uploads playlist found for channel {canonical_id}")
            return []

        items: List[NormalizedItem] = []
        page_token = None
        while len(items) < self.backlog_max_items:
            page = self.client.get_playlist_items(uploads, page_token=page_token)
            video_ids = [
                entry.get("contentDetails", {}).get("videoId")
                or entry.get("snippet", {}).get("resourceId", {}).get("videoId")
                for entry in page.get("items", [])
            ]
            video_ids = [v for v in video_ids if v]
            if not video_ids:
                break

            items.extend(self._load_videos(video_ids, canonical_id))

            page_token = page.get("nextPageToken")
            if not page_token:
                break

        logger.info(f"Fetched {len(items)} backlog videos for channel {canonical_id}")
        return items[:self.backlog_max_items]

    def get_source_metadata(self, canonical_id: str) -> SourceMetadata:
        channel = self._first(self.client.get_channel(canonical_id))
        if channel is None:
            raise ProviderError(PROVIDER_NAME, f"Channel {canonical_id} not found")

        snippet = channel.get("snippet", {})
        statistics = channel.get("statistics", {})
        return SourceMetadata(
            display_name=snippet.get("title", canonical_id),
            description=snippet.get("description"),
            avatar_url=self._thumbnail(snippet),
            subscriber_count=int(statistics["subscriberCount"]) if "subscriberCount" in statistics else None,
            total_content_count=int(statistics["videoCount"]) if "videoCount" in statistics else None,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    def _resolve_channel(self, raw_id: str) -> Optional[Dict]:
        """Resolve @handle or channel id (UC...) to the channel resource."""
        if raw_id.startswith("@") or not raw_id.startswith("UC"):
            channel = self._first(self.client.get_channel_by_handle(raw_id))
            if channel:
                return channel
        return self._first(self.client.get_channel(raw_id))

    def _load_videos(self, video_ids: List[str], channel_id: str) -> List[NormalizedItem]:
        items = []
        for start in range(0, len(video_ids), YOUTUBE_PAGE_SIZE):
            response = self.client.get_videos(video_ids[start:start + YOUTUBE_PAGE_SIZE])
            for video in response.get("items", []):
                try:
                    items.append(self._to_item(video, channel_id))
                except (KeyError, ValueError) as e:
                    logger.warning(f"Skipping malformed YouTube video {video.get('id')}: {e}")
        return items

    def _to_item(self, video: Dict, channel_id: str) -> NormalizedItem:
        snippet = video["snippet"]
        return NormalizedItem(
            provider_type=self.provider_type,
            original_id=video["id"],
            source_external_id=channel_id,
            title=snippet["title"],
            description=snippet.get("description"),
            thumbnail_url=self._thumbnail(snippet),
            url=f"https://www.youtube.com/watch?v={video['id']}",
            duration=parse_iso_duration(video.get("contentDetails", {}).get("duration")),
            published_at=_parse_api_datetime(snippet["publishedAt"]),
        )

    @staticmethod
    def _first(response: Dict) -> Optional[Dict]:
        items = response.get("items") or []
        return items[0] if items else None

    @staticmethod
    def _thumbnail(snippet: Dict) -> Optional[str]:
        thumbnails = snippet.get("thumbnails", {})
        for size in ("medium", "high", "default"):
            if size in thumbnails:
                return thumbnails[size].get("url")
        return None
