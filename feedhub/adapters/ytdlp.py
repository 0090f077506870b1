"""
YouTube adapter backed by yt-dlp.

Used when no Data API key is configured (or USE_YT_DLP=true). Channel
listings are read with flat extraction, so no media is downloaded and no
API quota is consumed.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import yt_dlp
from yt_dlp.utils import DownloadError

from ..exceptions import ProviderError, RateLimitedError
from ..models import NormalizedItem, ProviderType, SourceMetadata, SourceValidation
from .base import ContentAdapter, parse_clock_duration

logger = logging.getLogger(__name__)

PROVIDER_NAME = "YouTube (yt-dlp)"


def _published_at(entry: Dict) -> Optional[datetime]:
    """Prefer the unix timestamp, fall back to upload_date (YYYYMMDD)."""
    if entry.get("timestamp"):
        return datetime.utcfromtimestamp(entry["timestamp"])
    if entry.get("upload_date"):
        try:
            return datetime.strptime(entry["upload_date"], "%Y%m%d")
        except ValueError:
            return None
    return None


class YtDlpAdapter(ContentAdapter):
    provider_type = ProviderType.YOUTUBE

    def __init__(self, timeout: int = 15, backlog_max_items: int = 500, recent_scan_limit: int = 50):
        self.timeout = timeout
        self.backlog_max_items = backlog_max_items
        self.recent_scan_limit = recent_scan_limit

    def _extract(self, url: str, playlist_end: Optional[int] = None) -> Dict:
        ydl_opts = {
            'extract_flat': 'in_playlist',
            'skip_download': True,
            'quiet': True,
            'no_warnings': True,
            'socket_timeout': self.timeout,
        }
        if playlist_end:
            ydl_opts['playlistend'] = playlist_end

        try:
            with yt_dlp.YoutubeDL(ydl_opts) as ydl:
                return ydl.extract_info(url, download=False) or {}
        except DownloadError as e:
            message = str(e)
            if "429" in message or "Too Many Requests" in message:
                raise RateLimitedError(PROVIDER_NAME)
            raise ProviderError(PROVIDER_NAME, message)

    @staticmethod
    def _channel_url(canonical_id: str) -> str:
        if canonical_id.startswith("@"):
            return f"https://www.youtube.com/{canonical_id}"
        return f"https://www.youtube.com/channel/{canonical_id}"

    def validate_source(self, raw_id: str) -> SourceValidation:
        raw_id = (raw_id or "").strip()
        if not raw_id:
            return SourceValidation(is_valid=False, error_message="Channel ID or handle is required")

        try:
            info = self._extract(self._channel_url(raw_id), playlist_end=1)
        except ProviderError as e:
            return SourceValidation(is_valid=False, error_message=str(e))

        channel_id = info.get("channel_id") or info.get("id")
        if not channel_id:
            return SourceValidation(is_valid=False, error_message="Channel not found")

        return SourceValidation(
            is_valid=True,
            canonical_id=channel_id,
            display_name=info.get("channel") or info.get("title"),
            avatar_url=self._best_thumbnail(info),
        )

    def fetch_recent(self, canonical_id: str, since_days: int) -> List[NormalizedItem]:
        cutoff = datetime.utcnow() - timedelta(days=since_days)
        info = self._extract(f"{self._channel_url(canonical_id)}/videos", playlist_end=self.recent_scan_limit)

        items = []
        for entry in info.get("entries") or []:
            item = self._to_item(entry, canonical_id)
            # Flat extraction may omit dates; those are kept and dated "now"
            if item is not None and item.published_at >= cutoff:
                items.append(item)
        return items

    def fetch_backlog(self, canonical_id: str) -> List[NormalizedItem]:
        info = self._extract(f"{self._channel_url(canonical_id)}/videos", playlist_end=self.backlog_max_items)
        items = [self._to_item(entry, canonical_id) for entry in info.get("entries") or []]
        return [item for item in items if item is not None]

    def get_source_metadata(self, canonical_id: str) -> SourceMetadata:
        info = self._extract(self._channel_url(canonical_id), playlist_end=1)
        return SourceMetadata(
            display_name=info.get("channel") or info.get("title") or canonical_id,
            description=info.get("description"),
            avatar_url=self._best_thumbnail(info),
            subscriber_count=info.get("channel_follower_count"),
            total_content_count=info.get("playlist_count"),
        )

    def _to_item(self, entry: Dict, channel_id: str) -> Optional[NormalizedItem]:
        video_id = entry.get("id")
        if not video_id or not entry.get("title"):
            return None

        published_at = _published_at(entry)
        if published_at is None:
            logger.warning(f"No date information for video {video_id}, using current time")
            published_at = datetime.utcnow()

        return NormalizedItem(
            provider_type=self.provider_type,
            original_id=video_id,
            source_external_id=channel_id,
            title=entry["title"],
            description=entry.get("description"),
            thumbnail_url=self._best_thumbnail(entry),
            url=entry.get("webpage_url") or f"https://www.youtube.com/watch?v={video_id}",
            duration=parse_clock_duration(entry.get("duration")),
            published_at=published_at,
        )

    @staticmethod
    def _best_thumbnail(info: Dict) -> Optional[str]:
        if info.get("thumbnail"):
            return info["thumbnail"]
        thumbnails = info.get("thumbnails") or []
        if not thumbnails:
            return None
        return max(thumbnails, key=lambda t: t.get("height") or 0).get("url")
