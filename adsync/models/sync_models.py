"""ADSYNC — Sync Output Models."""

from typing import List, Optional
from pydantic import BaseModel


class MetricsSyncResult(BaseModel):
    """Outcome of one metrics sync."""

    status: str = "success"  # "success" | "partial" | "empty"
    inserted_count: int = 0
    ads_with_activity: int = 0
    ads_without_activity: int = 0
    hierarchy_source: str = "entity_listings"
    truncated_listings: List[str] = []
    date_start: str = ""
    date_end: str = ""


class MediaSyncResult(BaseModel):
    """Outcome of one media inventory sync."""

    skipped: bool = False
    reason: Optional[str] = None
    hours_since_last_sync: Optional[float] = None
    mode: str = "delta"  # "delta" | "full"
    image_count: int = 0
    video_count: int = 0
    new_image_count: int = 0
    new_video_count: int = 0
    new_asset_count: int = 0
    upsert_errors: int = 0
    derivatives_total: int = 0
    resolved_derivative_count: int = 0
    image_urls_updated: int = 0
    video_thumbnails_updated: int = 0
