"""ADSYNC — Hierarchy Resolver.

Builds campaign / ad set / ad lookup tables from the three entity listings,
falling back to the metric rows themselves when a listing is empty or broke
mid-walk. The result is a value passed through the sync, never module state.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from adsync.core.logging import get_logger

logger = get_logger("sync.hierarchy")


class EntityStatus(str, Enum):
    """Normalized delivery status at any hierarchy level."""

    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    DELETED = "DELETED"
    UNKNOWN = "UNKNOWN"


class HierarchySource(str, Enum):
    """Whether statuses came from the listings or were inferred from metrics."""

    ENTITY_LISTINGS = "entity_listings"
    METRIC_FALLBACK = "metric_fallback"


# Meta effective_status → normalized status
_STATUS_MAP = {
    "ACTIVE": EntityStatus.ACTIVE,
    "IN_PROCESS": EntityStatus.ACTIVE,
    "WITH_ISSUES": EntityStatus.ACTIVE,
    "PENDING_REVIEW": EntityStatus.ACTIVE,
    "PREAPPROVED": EntityStatus.ACTIVE,
    "PENDING_BILLING_INFO": EntityStatus.ACTIVE,
    "PAUSED": EntityStatus.PAUSED,
    "CAMPAIGN_PAUSED": EntityStatus.PAUSED,
    "ADSET_PAUSED": EntityStatus.PAUSED,
    "DISAPPROVED": EntityStatus.PAUSED,
    "DELETED": EntityStatus.DELETED,
    "ARCHIVED": EntityStatus.DELETED,
}


def normalize_status(raw: Optional[str]) -> EntityStatus:
    if not raw:
        return EntityStatus.UNKNOWN
    return _STATUS_MAP.get(str(raw).upper(), EntityStatus.UNKNOWN)


def parse_budget(value: Any) -> Optional[float]:
    """Minor currency units (cents) → currency units; missing stays None."""
    if value is None or value == "":
        return None
    try:
        return int(value) / 100
    except (TypeError, ValueError):
        try:
            return float(value) / 100
        except (TypeError, ValueError):
            return None


class HierarchyEntity(BaseModel):
    """A campaign, ad set or ad as seen during one sync pass."""

    id: str
    name: str = ""
    status: EntityStatus = EntityStatus.UNKNOWN
    daily_budget: Optional[float] = None
    lifetime_budget: Optional[float] = None
    parent_id: str = ""


class HierarchyPath(BaseModel):
    """Cached ad → ad set → campaign join."""

    ad_id: str
    ad_name: str = ""
    adset_id: str
    adset_name: str = ""
    campaign_id: str
    campaign_name: str = ""
    media_hash: Optional[str] = None
    media_type: Optional[str] = None


class ResolvedStatus(BaseModel):
    """Status and budgets for one metric row at all three levels."""

    ad_status: EntityStatus
    adset_status: EntityStatus
    campaign_status: EntityStatus
    campaign_daily_budget: Optional[float] = None
    campaign_lifetime_budget: Optional[float] = None
    adset_daily_budget: Optional[float] = None
    adset_lifetime_budget: Optional[float] = None


class Hierarchy(BaseModel):
    """Lookup tables produced by the resolver, tagged with their source."""

    source: HierarchySource = HierarchySource.ENTITY_LISTINGS
    campaigns: Dict[str, HierarchyEntity] = {}
    adsets: Dict[str, HierarchyEntity] = {}
    ads: Dict[str, HierarchyEntity] = {}
    paths: Dict[str, HierarchyPath] = {}

    @property
    def is_authoritative(self) -> bool:
        return self.source == HierarchySource.ENTITY_LISTINGS

    def resolve(self, row: Dict[str, Any]) -> ResolvedStatus:
        """Resolve status and budgets for a metric row.

        An id missing from its listing means the entity was removed
        (campaign / ad set → DELETED); an ad that reports metrics is
        inferred ACTIVE. UNKNOWN only when the row carries no id.
        """
        ad_id = str(row.get("ad_id") or "")
        adset_id = str(row.get("adset_id") or "")
        campaign_id = str(row.get("campaign_id") or "")

        ad = self.ads.get(ad_id)
        adset = self.adsets.get(adset_id)
        campaign = self.campaigns.get(campaign_id)

        if ad is not None:
            ad_status = ad.status
        else:
            ad_status = EntityStatus.ACTIVE if ad_id else EntityStatus.UNKNOWN

        if adset is not None:
            adset_status = adset.status
        else:
            adset_status = EntityStatus.DELETED if adset_id else EntityStatus.UNKNOWN

        if campaign is not None:
            campaign_status = campaign.status
        else:
            campaign_status = (
                EntityStatus.DELETED if campaign_id else EntityStatus.UNKNOWN
            )

        return ResolvedStatus(
            ad_status=ad_status,
            adset_status=adset_status,
            campaign_status=campaign_status,
            campaign_daily_budget=campaign.daily_budget if campaign else None,
            campaign_lifetime_budget=campaign.lifetime_budget if campaign else None,
            adset_daily_budget=adset.daily_budget if adset else None,
            adset_lifetime_budget=adset.lifetime_budget if adset else None,
        )


# ── Creative media ──


def extract_media(creative: Optional[Dict[str, Any]]) -> tuple[Optional[str], Optional[str]]:
    """(media_hash, media_type) from an ad creative, preferring video."""
    if not isinstance(creative, dict):
        return None, None
    if creative.get("video_id"):
        return str(creative["video_id"]), "video"
    if creative.get("image_hash"):
        return str(creative["image_hash"]), "image"
    spec = creative.get("object_story_spec") or {}
    video_data = spec.get("video_data") or {}
    if video_data.get("video_id"):
        return str(video_data["video_id"]), "video"
    link_data = spec.get("link_data") or {}
    if link_data.get("image_hash"):
        return str(link_data["image_hash"]), "image"
    return None, None


# ── Builders ──


def _campaign_entities(campaigns: List[Dict[str, Any]]) -> Dict[str, HierarchyEntity]:
    entities: Dict[str, HierarchyEntity] = {}
    for c in campaigns:
        if not c.get("id"):
            continue
        entities[str(c["id"])] = HierarchyEntity(
            id=str(c["id"]),
            name=c.get("name") or "",
            status=normalize_status(c.get("effective_status") or c.get("status")),
            daily_budget=parse_budget(c.get("daily_budget")),
            lifetime_budget=parse_budget(c.get("lifetime_budget")),
        )
    return entities


def _adset_entities(adsets: List[Dict[str, Any]]) -> Dict[str, HierarchyEntity]:
    entities: Dict[str, HierarchyEntity] = {}
    for a in adsets:
        if not a.get("id"):
            continue
        entities[str(a["id"])] = HierarchyEntity(
            id=str(a["id"]),
            name=a.get("name") or "",
            status=normalize_status(a.get("effective_status") or a.get("status")),
            daily_budget=parse_budget(a.get("daily_budget")),
            lifetime_budget=parse_budget(a.get("lifetime_budget")),
            parent_id=str(a.get("campaign_id") or ""),
        )
    return entities


def _join_ads(
    ads: List[Dict[str, Any]],
    adsets: Dict[str, HierarchyEntity],
    campaigns: Dict[str, HierarchyEntity],
) -> tuple[Dict[str, HierarchyEntity], Dict[str, HierarchyPath]]:
    """Ad status map plus the ad → ad set → campaign cache."""
    entities: Dict[str, HierarchyEntity] = {}
    paths: Dict[str, HierarchyPath] = {}
    skipped = 0

    for ad in ads:
        if not ad.get("id"):
            continue
        ad_id = str(ad["id"])
        adset_id = str(ad.get("adset_id") or "")
        entities[ad_id] = HierarchyEntity(
            id=ad_id,
            name=ad.get("name") or "",
            status=normalize_status(ad.get("effective_status") or ad.get("status")),
            parent_id=adset_id,
        )

        adset = adsets.get(adset_id)
        campaign = campaigns.get(adset.parent_id) if adset else None
        if adset is None or campaign is None:
            skipped += 1
            continue

        media_hash, media_type = extract_media(ad.get("creative"))
        paths[ad_id] = HierarchyPath(
            ad_id=ad_id,
            ad_name=ad.get("name") or "",
            adset_id=adset.id,
            adset_name=adset.name,
            campaign_id=campaign.id,
            campaign_name=campaign.name,
            media_hash=media_hash,
            media_type=media_type,
        )

    if skipped:
        logger.info(f"Skipped {skipped} ads whose ad set or campaign is not listed")
    return entities, paths


def _fallback_from_metrics(
    insights: List[Dict[str, Any]],
    campaigns: Dict[str, HierarchyEntity],
    adsets: Dict[str, HierarchyEntity],
) -> tuple[Dict[str, HierarchyEntity], Dict[str, HierarchyEntity], Dict[str, HierarchyPath]]:
    """Rebuild campaign / ad set maps and the path cache from metric rows.

    Entities with metrics are assumed ACTIVE; anything the listings did
    return keeps its listed status and budget.
    """
    inferred_campaigns: Dict[str, HierarchyEntity] = {}
    inferred_adsets: Dict[str, HierarchyEntity] = {}
    paths: Dict[str, HierarchyPath] = {}

    for row in insights:
        campaign_id = str(row.get("campaign_id") or "")
        adset_id = str(row.get("adset_id") or "")
        ad_id = str(row.get("ad_id") or "")

        if campaign_id and campaign_id not in inferred_campaigns:
            inferred_campaigns[campaign_id] = HierarchyEntity(
                id=campaign_id,
                name=row.get("campaign_name") or "",
                status=EntityStatus.ACTIVE,
            )
        if adset_id and adset_id not in inferred_adsets:
            inferred_adsets[adset_id] = HierarchyEntity(
                id=adset_id,
                name=row.get("adset_name") or "",
                status=EntityStatus.ACTIVE,
                parent_id=campaign_id,
            )
        if ad_id and adset_id and campaign_id and ad_id not in paths:
            paths[ad_id] = HierarchyPath(
                ad_id=ad_id,
                ad_name=row.get("ad_name") or "",
                adset_id=adset_id,
                adset_name=row.get("adset_name") or "",
                campaign_id=campaign_id,
                campaign_name=row.get("campaign_name") or "",
            )

    inferred_campaigns.update(campaigns)
    inferred_adsets.update(adsets)
    return inferred_campaigns, inferred_adsets, paths


def needs_fallback(
    adsets: List[Dict[str, Any]],
    ads: List[Dict[str, Any]],
    listings_complete: bool = True,
) -> bool:
    """Listings cannot be trusted as the source of truth."""
    return not adsets or not ads or not listings_complete


def build_hierarchy(
    campaigns: List[Dict[str, Any]],
    adsets: List[Dict[str, Any]],
    ads: List[Dict[str, Any]],
    insights: List[Dict[str, Any]],
    listings_complete: bool = True,
) -> Hierarchy:
    """Resolve the three listings (and metric rows) into lookup tables."""
    campaign_map = _campaign_entities(campaigns)
    adset_map = _adset_entities(adsets)
    ad_map, paths = _join_ads(ads, adset_map, campaign_map)

    if not needs_fallback(adsets, ads, listings_complete):
        logger.info(
            f"Hierarchy from listings: {len(campaign_map)} campaigns, "
            f"{len(adset_map)} adsets, {len(ad_map)} ads"
        )
        return Hierarchy(
            source=HierarchySource.ENTITY_LISTINGS,
            campaigns=campaign_map,
            adsets=adset_map,
            ads=ad_map,
            paths=paths,
        )

    logger.warning(
        f"Entity listings incomplete (adsets={len(adsets)}, ads={len(ads)}, "
        f"complete={listings_complete}); rebuilding hierarchy from {len(insights)} metric rows"
    )
    campaign_map, adset_map, metric_paths = _fallback_from_metrics(
        insights, campaign_map, adset_map
    )
    # Listed ads whose ad set is now known still join the cache
    _, listed_paths = _join_ads(ads, adset_map, campaign_map)
    metric_paths.update(listed_paths)

    return Hierarchy(
        source=HierarchySource.METRIC_FALLBACK,
        campaigns=campaign_map,
        adsets=adset_map,
        ads=ad_map,
        paths=metric_paths,
    )
