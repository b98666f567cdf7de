"""ADSYNC — Meta Insight → MetricRow Transformer.

Decorates raw insight rows with resolved hierarchy status, budgets, creative
media and attribution, and fabricates zero-activity rows for listed ads that
reported nothing in the window.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from adsync.core.attribution import resolve_attribution
from adsync.core.logging import get_logger
from adsync.models.metric_models import MetricRow
from adsync.sync.hierarchy import Hierarchy, HierarchyPath, ResolvedStatus

logger = get_logger("meta.transformer")


def _safe_int(value: Any) -> int:
    """Safely convert a value to int."""
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def _safe_float(value: Any) -> float:
    """Safely convert a value to float."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _status_fields(resolved: ResolvedStatus) -> Dict[str, Any]:
    return {
        "status": resolved.ad_status.value,
        "adset_status": resolved.adset_status.value,
        "campaign_status": resolved.campaign_status.value,
        "campaign_daily_budget": resolved.campaign_daily_budget,
        "campaign_lifetime_budget": resolved.campaign_lifetime_budget,
        "adset_daily_budget": resolved.adset_daily_budget,
        "adset_lifetime_budget": resolved.adset_lifetime_budget,
    }


def transform_insight(
    row: Dict[str, Any],
    hierarchy: Hierarchy,
    owner_id: str,
    ad_account_id: str,
    event_values: Optional[Dict[str, float]] = None,
    synced_at: Optional[datetime] = None,
) -> MetricRow:
    """Build one MetricRow from a daily ad-level insight."""
    resolved = hierarchy.resolve(row)
    attribution = resolve_attribution(
        row.get("actions"), row.get("action_values"), event_values
    )
    path = hierarchy.paths.get(str(row.get("ad_id") or ""))

    return MetricRow(
        owner_id=owner_id,
        ad_account_id=ad_account_id,
        date_start=row.get("date_start", ""),
        date_end=row.get("date_stop") or row.get("date_start", ""),
        campaign_id=str(row.get("campaign_id") or ""),
        campaign_name=row.get("campaign_name") or "",
        adset_id=str(row.get("adset_id") or ""),
        adset_name=row.get("adset_name") or "",
        ad_id=str(row.get("ad_id") or ""),
        ad_name=row.get("ad_name") or "",
        hierarchy_source=hierarchy.source.value,
        impressions=_safe_int(row.get("impressions")),
        clicks=_safe_int(row.get("clicks")),
        spend=_safe_float(row.get("spend")),
        purchases=attribution.purchases,
        revenue=attribution.revenue,
        result_count=attribution.result_count,
        result_type=attribution.result_type,
        result_value=attribution.result_value,
        media_hash=path.media_hash if path else None,
        media_type=path.media_type if path else None,
        synced_at=synced_at or datetime.now(timezone.utc),
        **_status_fields(resolved),
    )


def zero_activity_row(
    path: HierarchyPath,
    hierarchy: Hierarchy,
    owner_id: str,
    ad_account_id: str,
    date_start: str,
    date_end: str,
    synced_at: Optional[datetime] = None,
) -> MetricRow:
    """Placeholder row so an ad with no delivery is still visible downstream."""
    resolved = hierarchy.resolve(
        {"ad_id": path.ad_id, "adset_id": path.adset_id, "campaign_id": path.campaign_id}
    )
    return MetricRow(
        owner_id=owner_id,
        ad_account_id=ad_account_id,
        date_start=date_start,
        date_end=date_end,
        campaign_id=path.campaign_id,
        campaign_name=path.campaign_name,
        adset_id=path.adset_id,
        adset_name=path.adset_name,
        ad_id=path.ad_id,
        ad_name=path.ad_name,
        hierarchy_source=hierarchy.source.value,
        media_hash=path.media_hash,
        media_type=path.media_type,
        synced_at=synced_at or datetime.now(timezone.utc),
        **_status_fields(resolved),
    )


def transform_insights(
    insights: List[Dict[str, Any]],
    hierarchy: Hierarchy,
    owner_id: str,
    ad_account_id: str,
    date_start: str,
    date_end: str,
    event_values: Optional[Dict[str, float]] = None,
) -> tuple[List[MetricRow], List[MetricRow]]:
    """Return (rows with activity, zero-activity rows)."""
    synced_at = datetime.now(timezone.utc)
    active_ads: Set[str] = set()
    rows: List[MetricRow] = []

    for insight in insights:
        rows.append(
            transform_insight(
                insight, hierarchy, owner_id, ad_account_id, event_values, synced_at
            )
        )
        if insight.get("ad_id"):
            active_ads.add(str(insight["ad_id"]))

    zero_rows = [
        zero_activity_row(
            path, hierarchy, owner_id, ad_account_id, date_start, date_end, synced_at
        )
        for ad_id, path in hierarchy.paths.items()
        if ad_id not in active_ads
    ]

    logger.info(
        f"Transformed {len(rows)} insight rows, fabricated {len(zero_rows)} zero-activity rows"
    )
    return rows, zero_rows
