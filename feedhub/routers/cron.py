"""
Cron Router.

Endpoints:
- POST /cron/fetch-content - Scheduler entry point; fetches all sources

When CRON_SECRET is configured the caller must send
'Authorization: Bearer <CRON_SECRET>'.
"""

import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..config import Settings, get_settings
from ..dependencies import get_ingestion_service
from ..exceptions import ConfigurationError
from ..ingestion import IngestionService
from ..models import FetchStats

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/cron",
    tags=["cron"],
)


def verify_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
):
    if not settings.cron_secret:
        if settings.is_production:
            raise ConfigurationError("CRON_SECRET", "required in production")
        return
    expected = f"Bearer {settings.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        logger.warning("Rejected cron request with invalid secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


@router.post("/fetch-content", response_model=FetchStats, dependencies=[Depends(verify_cron_secret)])
def fetch_content(ingestion: IngestionService = Depends(get_ingestion_service)):
    """
    Fetch every non-muted source.

    Always returns aggregate stats, even when every source fails.
    """
    return ingestion.fetch_all_sources()
