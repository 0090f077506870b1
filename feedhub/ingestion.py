"""
Ingestion Orchestrator.

Fetches sources through their adapters, stores new content via the
ContentStore and records the outcome on each source. Batch fetches run
on a bounded thread pool with one database session per source; a failing
source is counted and never stops its siblings.

Usage:
    service = IngestionService(SessionLocal, adapters, settings)
    stats = service.fetch_all_sources()
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from .adapters.base import ContentAdapter
from .adapters.registry import AdapterRegistry
from .config import Settings
from .content_store import ContentStore
from .db_models import DBSource
from .exceptions import NotFoundError, RateLimitedError, UnsupportedProviderError
from .models import FetchStats, FetchStatus, ProviderType

logger = logging.getLogger(__name__)


class IngestionService:
    """Per-source and batch content fetching."""

    def __init__(self, session_factory: Callable[[], Session], adapters: AdapterRegistry, settings: Settings):
        self.session_factory = session_factory
        self.adapters = adapters
        self.settings = settings

    # =========================================================================
    # Single source
    # =========================================================================

    def fetch_source(self, source_id: str, force_backlog: bool = False) -> int:
        """
        Fetch one source and store its new content.

        Returns:
            Number of newly inserted content items

        Raises:
            NotFoundError: source does not exist
            UnsupportedProviderError: no adapter for the source's provider type
            RateLimitedError: provider still throttling after retries
            ProviderError: any other adapter failure
        """
        db = self.session_factory()
        try:
            source = db.query(DBSource).filter(DBSource.id == source_id).first()
            if source is None:
                raise NotFoundError("Source", source_id)

            external_id = source.external_id
            provider_type = source.provider_type
            now = datetime.utcnow()
            logger.info(f"Fetching source {source_id} ({provider_type}:{external_id})")

            try:
                adapter = self._resolve_adapter(provider_type)
                items = self._call_provider(adapter.fetch_recent, external_id, self.settings.fetch_recent_days)
                if self._needs_backlog(source, force_backlog, now):
                    logger.info(f"Fetching backlog for source {source_id}")
                    items = items + self._call_provider(adapter.fetch_backlog, external_id)

                result = ContentStore(db).upsert_items(items, now=now)
            except RateLimitedError as e:
                db.rollback()
                self._record_rate_limited(db, source_id, str(e), now)
                raise
            except Exception as e:
                db.rollback()
                self._record_failure(db, source_id, str(e), now)
                raise

            source.last_fetch_status = FetchStatus.SUCCESS.value
            source.last_fetch_at = now
            source.error_message = None
            source.consecutive_rate_limits = 0
            db.commit()

            logger.info(
                f"Fetched source {source_id}: {len(items)} items, "
                f"{result.new_count} new, {result.touched_count} already known"
            )
            return result.new_count
        finally:
            db.close()

    def _resolve_adapter(self, provider_type: str) -> ContentAdapter:
        try:
            adapter = self.adapters.get(ProviderType(provider_type))
        except ValueError:
            adapter = None
        if adapter is None:
            raise UnsupportedProviderError(provider_type)
        return adapter

    def _needs_backlog(self, source: DBSource, force_backlog: bool, now: datetime) -> bool:
        if force_backlog or source.last_fetch_at is None:
            return True
        return now - source.last_fetch_at > timedelta(days=self.settings.backlog_refresh_days)

    def _call_provider(self, fn, *args):
        """Call an adapter method, backing off while the provider throttles."""
        retryer = Retrying(
            stop=stop_after_attempt(self.settings.rate_limit_max_attempts),
            wait=wait_exponential(multiplier=self.settings.rate_limit_backoff_seconds, max=60),
            retry=retry_if_exception_type(RateLimitedError),
            reraise=True,
        )
        return retryer(fn, *args)

    def _record_failure(self, db: Session, source_id: str, message: str, now: datetime):
        source = db.query(DBSource).filter(DBSource.id == source_id).first()
        source.last_fetch_status = FetchStatus.ERROR.value
        source.error_message = message
        source.last_fetch_at = now
        db.commit()
        logger.error(f"Failed to fetch source {source_id}: {message}")

    def _record_rate_limited(self, db: Session, source_id: str, message: str, now: datetime):
        source = db.query(DBSource).filter(DBSource.id == source_id).first()
        source.consecutive_rate_limits = (source.consecutive_rate_limits or 0) + 1
        source.error_message = message
        source.last_fetch_at = now

        # Transient throttling only becomes an error once it keeps happening
        if source.consecutive_rate_limits >= self.settings.rate_limit_error_threshold:
            source.last_fetch_status = FetchStatus.ERROR.value
        else:
            source.last_fetch_status = FetchStatus.RATE_LIMITED.value
        db.commit()
        logger.warning(
            f"Source {source_id} rate limited ({source.consecutive_rate_limits} in a row): {message}"
        )

    # =========================================================================
    # Batch
    # =========================================================================

    def fetch_all_sources(self) -> FetchStats:
        """Fetch every non-muted source. Always returns stats, never raises for a source failure."""
        return self._fetch_many(self._active_source_ids(), force_backlog=False)

    def fetch_user_sources(self, user_id: str, force_backlog: bool = False) -> FetchStats:
        return self._fetch_many(self._active_source_ids(user_id), force_backlog=force_backlog)

    def _active_source_ids(self, user_id: Optional[str] = None) -> List[str]:
        db = self.session_factory()
        try:
            query = db.query(DBSource.id).filter(DBSource.is_muted.is_(False))
            if user_id is not None:
                query = query.filter(DBSource.user_id == user_id)
            return [row.id for row in query.order_by(DBSource.added_at).all()]
        finally:
            db.close()

    def _fetch_many(self, source_ids: List[str], force_backlog: bool) -> FetchStats:
        started = time.monotonic()
        stats = FetchStats(total_sources=len(source_ids))

        if source_ids:
            workers = min(self.settings.ingestion_max_workers, len(source_ids))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ingest") as pool:
                futures = {
                    pool.submit(self.fetch_source, source_id, force_backlog): source_id
                    for source_id in source_ids
                }
                for future in as_completed(futures):
                    source_id = futures[future]
                    try:
                        stats.new_items_count += future.result()
                        stats.success_count += 1
                    except RateLimitedError:
                        stats.error_count += 1
                        stats.rate_limited_count += 1
                    except Exception as e:
                        stats.error_count += 1
                        logger.warning(f"Source {source_id} failed during batch fetch: {e}")

        stats.duration = round(time.monotonic() - started, 3)
        logger.info(
            f"Batch fetch complete: {stats.success_count}/{stats.total_sources} succeeded, "
            f"{stats.error_count} failed ({stats.rate_limited_count} rate limited), "
            f"{stats.new_items_count} new items in {stats.duration:.1f}s"
        )
        return stats
