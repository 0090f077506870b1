"""
Provider type to adapter mapping.

Built once at startup (FastAPI lifespan, Celery worker) from settings.
Provider types without an entry (currently TWITCH) surface as
UnsupportedProviderError during ingestion and source creation.
"""

import logging
from typing import Dict

from ..config import Settings
from ..models import ProviderType
from .base import ContentAdapter
from .rss import RssAdapter, PodcastAdapter
from .youtube import YouTubeAdapter, YouTubeClient
from .ytdlp import YtDlpAdapter

logger = logging.getLogger(__name__)

AdapterRegistry = Dict[ProviderType, ContentAdapter]


def build_adapter_registry(settings: Settings) -> AdapterRegistry:
    timeout = settings.provider_request_timeout_seconds

    if settings.youtube_api_key and not settings.use_yt_dlp:
        youtube = YouTubeAdapter(
            YouTubeClient(settings.youtube_api_key, timeout=timeout),
            backlog_max_items=settings.backlog_max_items,
        )
    else:
        logger.info("YouTube API key not configured or yt-dlp requested; using yt-dlp adapter")
        youtube = YtDlpAdapter(timeout=timeout, backlog_max_items=settings.backlog_max_items)

    registry: AdapterRegistry = {
        ProviderType.YOUTUBE: youtube,
        ProviderType.RSS: RssAdapter(
            timeout=timeout,
            backlog_max_items=settings.backlog_max_items,
            user_agent=settings.user_agent,
        ),
        ProviderType.PODCAST: PodcastAdapter(
            timeout=timeout,
            backlog_max_items=settings.backlog_max_items,
            user_agent=settings.user_agent,
        ),
    }

    logger.info(f"Adapter registry: {', '.join(p.value for p in registry)}")
    return registry
