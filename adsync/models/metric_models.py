"""ADSYNC — Metric Row Model.

One row per campaign × ad set × ad × day. Rows are never updated by the
metrics sync: each sync replaces the account's whole window.
"""

from datetime import datetime, timezone
from typing import Optional
from sqlmodel import SQLModel, Field


class MetricRow(SQLModel, table=True):
    """Daily ad-level performance row with resolved hierarchy and attribution."""

    __tablename__ = "metric_rows"

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True, description="Account owner (platform user)")
    ad_account_id: str = Field(index=True, description="Ad account id as supplied")
    source: str = Field(default="meta_api", description="Data source")
    date_start: str = Field(index=True, description="YYYY-MM-DD")
    date_end: str = Field(description="YYYY-MM-DD")

    # ── Hierarchy ──
    campaign_id: str = Field(default="", index=True)
    campaign_name: str = Field(default="")
    adset_id: str = Field(default="", index=True)
    adset_name: str = Field(default="")
    ad_id: str = Field(default="", index=True)
    ad_name: str = Field(default="")
    status: str = Field(default="UNKNOWN", description="Ad status")
    adset_status: str = Field(default="UNKNOWN")
    campaign_status: str = Field(default="UNKNOWN")
    hierarchy_source: str = Field(
        default="entity_listings",
        description="entity_listings (authoritative) | metric_fallback (inferred)",
    )

    # ── Budgets (currency units) ──
    campaign_daily_budget: Optional[float] = None
    campaign_lifetime_budget: Optional[float] = None
    adset_daily_budget: Optional[float] = None
    adset_lifetime_budget: Optional[float] = None

    # ── Delivery ──
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    purchases: int = 0
    revenue: float = 0.0

    # ── Attribution ──
    result_count: int = 0
    result_type: Optional[str] = None
    result_value: Optional[float] = Field(
        default=None, description="Null means unknown, never 'no value'"
    )

    # ── Creative ──
    media_hash: Optional[str] = Field(default=None, index=True)
    media_type: Optional[str] = Field(default=None, description="image | video")
    image_url: Optional[str] = None
    thumbnail_url: Optional[str] = None

    synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
