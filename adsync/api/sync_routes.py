"""ADSYNC — Sync API Routes."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from adsync.config import settings
from adsync.connectors.meta.client import MetaClient
from adsync.core.dates import DateWindow
from adsync.core.logging import get_logger
from adsync.database import get_session
from adsync.models.sync_models import MediaSyncResult, MetricsSyncResult
from adsync.sync.accounts import load_access_token
from adsync.sync.errors import (
    ConnectionMissingError,
    SourceUnavailableError,
    TokenExpiredError,
)
from adsync.sync.media_sync import get_cooldown_record, hours_since_last_sync, sync_media
from adsync.sync.metrics_sync import sync_metrics

logger = get_logger("api.sync")

router = APIRouter(prefix="/sync", tags=["Sync"])


# ── Request Models ──


class MetricsSyncRequest(BaseModel):
    """Request body for POST /sync/metrics."""

    owner_id: str
    ad_account_id: str
    """Either spelling: "act_123" or "123"."""
    date_preset: Optional[str] = None
    """e.g. "last_7d", "last_30d", "this_month". Defaults to the configured preset."""
    custom_start_date: Optional[str] = None
    """YYYY-MM-DD. Used together with custom_end_date, overrides the preset."""
    custom_end_date: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"owner_id": "user-1", "ad_account_id": "act_123", "date_preset": "last_7d"},
                {
                    "owner_id": "user-1",
                    "ad_account_id": "123",
                    "custom_start_date": "2026-02-01",
                    "custom_end_date": "2026-02-18",
                },
            ]
        }
    }


class MediaSyncRequest(BaseModel):
    """Request body for POST /sync/media."""

    owner_id: str
    ad_account_id: str
    force: bool = False
    """Bypass the cooldown and push URLs for the whole catalog."""
    mode: str = "delta"
    """"delta" fetches details for unseen media only; "full" re-lists everything."""

    model_config = {
        "json_schema_extra": {
            "examples": [
                {"owner_id": "user-1", "ad_account_id": "act_123"},
                {"owner_id": "user-1", "ad_account_id": "act_123", "force": True, "mode": "full"},
            ]
        }
    }


def _client_for(session: Session, owner_id: str) -> MetaClient:
    try:
        return MetaClient(access_token=load_access_token(session, owner_id))
    except (ConnectionMissingError, TokenExpiredError) as e:
        raise HTTPException(status_code=401, detail=str(e))


# ── Endpoints ──


@router.post("/metrics", response_model=MetricsSyncResult)
async def trigger_metrics_sync(
    request: MetricsSyncRequest,
    session: Session = Depends(get_session),
):
    """Replace the account's metric rows with a fresh pull from Meta."""
    client = _client_for(session, request.owner_id)
    window = DateWindow.build(
        request.date_preset or settings.default_date_preset,
        request.custom_start_date,
        request.custom_end_date,
    )
    try:
        return await sync_metrics(
            session, client, request.owner_id, request.ad_account_id, window
        )
    except SourceUnavailableError as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch insights: {e}")
    except Exception as e:
        logger.error(f"Sync failed: {e}")
        raise HTTPException(status_code=500, detail="Sync failed")
    finally:
        await client.close()


@router.post("/media", response_model=MediaSyncResult)
async def trigger_media_sync(
    request: MediaSyncRequest,
    session: Session = Depends(get_session),
):
    """Sync the media catalog, resolve derivatives, push URLs to metric rows."""
    if request.mode not in ("delta", "full"):
        raise HTTPException(status_code=422, detail="mode must be 'delta' or 'full'")

    client = _client_for(session, request.owner_id)
    try:
        return await sync_media(
            session,
            client,
            request.owner_id,
            request.ad_account_id,
            force=request.force,
            mode=request.mode,
        )
    except SourceUnavailableError as e:
        raise HTTPException(status_code=400, detail=f"Failed to fetch media: {e}")
    except Exception as e:
        logger.error(f"Media sync failed: {e}")
        raise HTTPException(status_code=500, detail="Media sync failed")
    finally:
        await client.close()


@router.get("/media/status")
async def get_media_sync_status(
    owner_id: str = Query(..., description="Account owner"),
    ad_account_id: str = Query(..., description="Ad account id, either spelling"),
    session: Session = Depends(get_session),
):
    """Last media sync for the account and whether the cooldown is active."""
    record = get_cooldown_record(session, owner_id, ad_account_id)
    if not record:
        return {"status": "never_synced", "cooldown_active": False}

    hours = hours_since_last_sync(session, owner_id, ad_account_id)
    return {
        "status": "success",
        "synced_at": record.synced_at.isoformat(),
        "hours_since_last_sync": round(hours, 2) if hours is not None else None,
        "cooldown_active": hours is not None and hours < settings.media_cooldown_hours,
        "image_count": record.image_count,
        "video_count": record.video_count,
        "new_images": record.new_images,
        "new_videos": record.new_videos,
    }
