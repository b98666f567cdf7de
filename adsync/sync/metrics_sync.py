"""ADSYNC — Metrics Sync Orchestrator.

Runs the full data flow for one ad account:
  fetch ×4 (concurrent) → resolve hierarchy → attribute + transform
  → replace the account's rows in one transaction → trigger alerts

Partial source data is accepted: only a failed first page of the insights
listing aborts the sync, and it does so before any write.
"""

import asyncio
from typing import List, Optional

from sqlalchemy import delete
from sqlmodel import Session

from adsync.config import settings
from adsync.connectors.meta.client import MetaClient, PageWalk
from adsync.connectors.meta.endpoints import MetaEndpoints
from adsync.connectors.meta.transformer import transform_insights
from adsync.core.accounts import account_id_variants
from adsync.core.dates import DateWindow
from adsync.core.logging import get_logger
from adsync.models.metric_models import MetricRow
from adsync.models.sync_models import MetricsSyncResult
from adsync.sync.accounts import load_event_values, mark_synced
from adsync.sync.alerts import trigger_alert_generation
from adsync.sync.errors import PersistenceError, SourceUnavailableError
from adsync.sync.hierarchy import build_hierarchy

logger = get_logger("sync.metrics")


def replace_account_rows(
    session: Session,
    owner_id: str,
    ad_account_id: str,
    rows: List[MetricRow],
    batch_size: int | None = None,
) -> int:
    """Delete the account's rows (every id spelling) and insert ``rows``.

    Delete and all insert batches share one transaction: a failure rolls
    everything back, leaving the previous rows in place.
    """
    batch_size = batch_size or settings.insert_batch_size
    try:
        deleted = session.execute(
            delete(MetricRow).where(
                MetricRow.owner_id == owner_id,
                MetricRow.ad_account_id.in_(account_id_variants(ad_account_id)),  # type: ignore[attr-defined]
            )
        )
        logger.info(
            f"Deleted {deleted.rowcount} existing rows",
            extra={"owner_id": owner_id, "ad_account_id": ad_account_id},
        )

        for i in range(0, len(rows), batch_size):
            batch = rows[i : i + batch_size]
            session.add_all(batch)
            session.flush()
            logger.info(f"Inserted batch {i // batch_size + 1} ({len(batch)} rows)")

        session.commit()
    except Exception as e:
        session.rollback()
        logger.error(
            f"Persist failed, rolled back: {e}",
            extra={"owner_id": owner_id, "ad_account_id": ad_account_id},
        )
        raise PersistenceError(f"Failed to save ad data: {e}") from e

    return len(rows)


async def fetch_sources(
    endpoints: MetaEndpoints, window: DateWindow
) -> tuple[PageWalk, PageWalk, PageWalk, PageWalk]:
    """Fetch campaigns, ad sets, ads and insights concurrently."""
    campaigns, adsets, ads, insights = await asyncio.gather(
        endpoints.fetch_campaigns(),
        endpoints.fetch_adsets(),
        endpoints.fetch_ads(),
        endpoints.fetch_ad_insights(window),
    )
    return campaigns, adsets, ads, insights


async def sync_metrics(
    session: Session,
    client: MetaClient,
    owner_id: str,
    ad_account_id: str,
    window: Optional[DateWindow] = None,
) -> MetricsSyncResult:
    """Replace the account's metric rows with a fresh pull of ``window``."""
    window = window or DateWindow.build(settings.default_date_preset)
    date_start, date_end = window.resolve()
    log_extra = {"owner_id": owner_id, "ad_account_id": ad_account_id}
    logger.info(
        f"Starting metrics sync: {date_start} → {date_end} ({window.preset})",
        extra=log_extra,
    )

    endpoints = MetaEndpoints(client, ad_account_id)
    campaigns, adsets, ads, insights = await fetch_sources(endpoints, window)

    if insights.first_page_failed:
        logger.error(f"Insights unavailable: {insights.error}", extra=log_extra)
        raise SourceUnavailableError(insights.error or "Insights request failed")

    listings = {"campaigns": campaigns, "adsets": adsets, "ads": ads, "insights": insights}
    truncated = [name for name, walk in listings.items() if not walk.complete]

    hierarchy = build_hierarchy(
        campaigns.items,
        adsets.items,
        ads.items,
        insights.items,
        listings_complete=campaigns.complete and adsets.complete and ads.complete,
    )

    event_values = load_event_values(session, owner_id, ad_account_id)
    rows, zero_rows = transform_insights(
        insights.items,
        hierarchy,
        owner_id,
        ad_account_id,
        date_start,
        date_end,
        event_values,
    )
    all_rows = rows + zero_rows

    if not all_rows:
        logger.info("No ads found in this account", extra=log_extra)
        return MetricsSyncResult(
            status="empty",
            hierarchy_source=hierarchy.source.value,
            truncated_listings=truncated,
            date_start=date_start,
            date_end=date_end,
        )

    inserted = replace_account_rows(session, owner_id, ad_account_id, all_rows)
    mark_synced(session, owner_id)
    trigger_alert_generation(owner_id)

    result = MetricsSyncResult(
        status="partial" if truncated else "success",
        inserted_count=inserted,
        ads_with_activity=len(rows),
        ads_without_activity=len(zero_rows),
        hierarchy_source=hierarchy.source.value,
        truncated_listings=truncated,
        date_start=date_start,
        date_end=date_end,
    )
    logger.info(
        f"Sync complete: {inserted} rows ({len(rows)} with activity, "
        f"{len(zero_rows)} without), status={result.status}",
        extra=log_extra,
    )
    return result
