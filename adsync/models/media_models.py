"""ADSYNC — Media Catalog Models."""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class CatalogAsset(SQLModel, table=True):
    """Canonical media library item (image hash or video id).

    Unique on (owner_id, ad_account_id, media_hash) so repeated syncs upsert
    instead of duplicating. The sync engine never deletes these rows.
    """

    __tablename__ = "catalog_assets"
    __table_args__ = (
        UniqueConstraint(
            "owner_id",
            "ad_account_id",
            "media_hash",
            name="uq_catalog_asset",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)
    ad_account_id: str = Field(index=True, description="Normalized, without act_")
    media_hash: str = Field(index=True, description="Image hash or video id")
    media_type: str = Field(index=True, description="image | video")
    name: str = Field(default="")
    url: Optional[str] = Field(default=None, description="Image URL")
    video_thumbnail_url: Optional[str] = None
    width: int = 0
    height: int = 0
    duration_seconds: float = Field(default=0.0, description="Video length; 0 if unknown")
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class SyncCooldownRecord(SQLModel, table=True):
    """Last media sync per account. Gates automatic (non-forced) syncs."""

    __tablename__ = "sync_cooldown_records"
    __table_args__ = (
        UniqueConstraint("owner_id", "ad_account_id", name="uq_sync_cooldown"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)
    ad_account_id: str = Field(index=True)
    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    image_count: int = 0
    video_count: int = 0
    new_images: int = 0
    new_videos: int = 0
