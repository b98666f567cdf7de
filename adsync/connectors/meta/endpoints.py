"""ADSYNC — Meta API Endpoints.

Fetch functions for each Meta Marketing API resource used by the sync engine.
Listings return a PageWalk; batch lookups return parsed bodies.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

from adsync.config import settings
from adsync.connectors.meta.client import MetaAPIError, MetaClient, PageWalk
from adsync.core.accounts import graph_account_id
from adsync.core.dates import DateWindow
from adsync.core.logging import get_logger

logger = get_logger("meta.endpoints")

# Default fields requested from Meta
INSIGHT_FIELDS = (
    "campaign_name,campaign_id,adset_name,adset_id,ad_name,ad_id,"
    "impressions,clicks,spend,actions,action_values,date_start,date_stop"
)

CAMPAIGN_FIELDS = "id,name,effective_status,daily_budget,lifetime_budget"
ADSET_FIELDS = "id,name,campaign_id,effective_status,daily_budget,lifetime_budget"
AD_FIELDS = (
    "id,name,adset_id,campaign_id,effective_status,"
    "creative{id,image_hash,video_id,thumbnail_url,object_story_spec}"
)

IMAGE_FIELDS = "hash,name,url,width,height"
VIDEO_FIELDS = "id,title,thumbnails,length"
DERIVATIVE_FIELDS = "id,title,length"


class MetaEndpoints:
    """Fetch raw listings and batch lookups for one ad account."""

    def __init__(
        self,
        client: MetaClient,
        ad_account_id: str,
        batch_size: int | None = None,
        batch_delay: float | None = None,
        page_delay: float | None = None,
    ):
        self.client = client
        self.account_path = graph_account_id(ad_account_id)
        self.batch_size = batch_size or settings.batch_size
        self.batch_delay = settings.batch_delay if batch_delay is None else batch_delay
        self.page_delay = (
            settings.inventory_page_delay if page_delay is None else page_delay
        )

    def _listing_params(self, fields: str) -> Dict[str, Any]:
        return {"fields": fields, "limit": settings.listing_page_limit}

    # ── Insights ──

    async def fetch_ad_insights(self, window: DateWindow) -> PageWalk:
        """Fetch ad-level insights broken down by day."""
        params = self._listing_params(INSIGHT_FIELDS)
        params["level"] = "ad"
        params["time_increment"] = "1"
        params.update(window.query_params())
        walk = await self.client.paginate(
            self.client.url(f"{self.account_path}/insights"),
            params,
            max_pages=settings.insights_max_pages,
        )
        logger.info(f"Fetched {len(walk.items)} ad insight records")
        return walk

    # ── Structure Endpoints (Campaigns, Adsets, Ads) ──

    async def fetch_campaigns(self) -> PageWalk:
        """Fetch campaign structure."""
        return await self.client.paginate(
            self.client.url(f"{self.account_path}/campaigns"),
            self._listing_params(CAMPAIGN_FIELDS),
            max_pages=settings.listing_max_pages,
        )

    async def fetch_adsets(self) -> PageWalk:
        """Fetch ad set structure."""
        return await self.client.paginate(
            self.client.url(f"{self.account_path}/adsets"),
            self._listing_params(ADSET_FIELDS),
            max_pages=settings.listing_max_pages,
        )

    async def fetch_ads(self) -> PageWalk:
        """Fetch ad structure with creative media references."""
        return await self.client.paginate(
            self.client.url(f"{self.account_path}/ads"),
            self._listing_params(AD_FIELDS),
            max_pages=settings.listing_max_pages,
        )

    # ── Media Library ──

    async def fetch_image_inventory(self) -> PageWalk:
        """Lightweight image listing: hashes only."""
        return await self.client.paginate(
            self.client.url(f"{self.account_path}/adimages"),
            self._listing_params("hash"),
            max_pages=settings.listing_max_pages,
            page_delay=self.page_delay,
        )

    async def fetch_video_inventory(self) -> PageWalk:
        """Lightweight video listing: ids only."""
        return await self.client.paginate(
            self.client.url(f"{self.account_path}/advideos"),
            self._listing_params("id"),
            max_pages=settings.listing_max_pages,
            page_delay=self.page_delay,
        )

    async def fetch_images(self) -> PageWalk:
        """Full image listing for a complete sync."""
        return await self.client.paginate(
            self.client.url(f"{self.account_path}/adimages"),
            self._listing_params(IMAGE_FIELDS),
            max_pages=settings.listing_max_pages,
            page_delay=self.page_delay,
        )

    async def fetch_videos(self) -> PageWalk:
        """Full video listing for a complete sync."""
        return await self.client.paginate(
            self.client.url(f"{self.account_path}/advideos"),
            self._listing_params(VIDEO_FIELDS),
            max_pages=settings.listing_max_pages,
            page_delay=self.page_delay,
        )

    # ── Batch Lookups ──

    async def _batched(self, relative_urls: List[str]) -> List[Dict[str, Any]]:
        """Run GET sub-requests in fixed-size chunks with a delay between chunks.

        A failed chunk is logged and skipped; the remaining chunks still run.
        """
        bodies: List[Dict[str, Any]] = []
        for i in range(0, len(relative_urls), self.batch_size):
            chunk = relative_urls[i : i + self.batch_size]
            requests = [{"method": "GET", "relative_url": url} for url in chunk]
            try:
                results = await self.client.batch(requests)
                bodies.extend(body for body in results if body)
            except MetaAPIError as e:
                logger.error(f"Batch fetch error (chunk starting at {i}): {e}")

            if i + self.batch_size < len(relative_urls) and self.batch_delay:
                await asyncio.sleep(self.batch_delay)
        return bodies

    async def fetch_image_details(self, hashes: List[str]) -> List[Dict[str, Any]]:
        """Full image records for the given hashes."""
        urls = [
            f"{self.account_path}/adimages?fields={IMAGE_FIELDS}&hashes={json.dumps([h])}"
            for h in hashes
        ]
        images: List[Dict[str, Any]] = []
        for body in await self._batched(urls):
            data = body.get("data")
            if isinstance(data, list):
                images.extend(img for img in data if isinstance(img, dict))
        return images

    async def fetch_video_details(self, video_ids: List[str]) -> List[Dict[str, Any]]:
        """Full video records (title, thumbnails, length) for the given ids."""
        urls = [f"{vid}?fields={VIDEO_FIELDS}" for vid in video_ids]
        return [body for body in await self._batched(urls) if body.get("id")]

    async def fetch_video_metadata(
        self, video_ids: List[str]
    ) -> Dict[str, Dict[str, Any]]:
        """Title and duration keyed by video id (used for derivative matching)."""
        urls = [f"{vid}?fields={DERIVATIVE_FIELDS}" for vid in video_ids]
        metadata: Dict[str, Dict[str, Any]] = {}
        for body in await self._batched(urls):
            vid: Optional[str] = body.get("id")
            if not vid:
                continue
            try:
                length = float(body.get("length") or 0)
            except (TypeError, ValueError):
                length = 0.0
            metadata[str(vid)] = {"title": body.get("title") or "", "length": length}
        return metadata
