"""ADSYNC — Scheduler Jobs.

APScheduler daily job: for every stored connection and each of its ad
accounts, a metrics sync followed by an automatic (cooldown-gated) delta
media sync.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session, select

from adsync.config import settings
from adsync.connectors.meta.client import MetaClient
from adsync.core.dates import DateWindow
from adsync.core.logging import get_logger
from adsync.database import engine
from adsync.models.account_models import MetaConnection
from adsync.sync.accounts import load_access_token
from adsync.sync.media_sync import sync_media
from adsync.sync.metrics_sync import sync_metrics

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


async def sync_account(session: Session, owner_id: str, ad_account_id: str) -> None:
    """Metrics then media for one account. Raises on failure."""
    client = MetaClient(access_token=load_access_token(session, owner_id))
    try:
        window = DateWindow.build(settings.default_date_preset)
        metrics = await sync_metrics(session, client, owner_id, ad_account_id, window)
        media = await sync_media(session, client, owner_id, ad_account_id)
        logger.info(
            f"Scheduled sync done: metrics={metrics.status}, "
            f"media={'skipped' if media.skipped else media.new_asset_count}",
            extra={"owner_id": owner_id, "ad_account_id": ad_account_id},
        )
    finally:
        await client.close()


async def daily_sync_job(bind=None):
    """Sync every connected account. One account failing never stops the loop."""
    logger.info("Scheduled daily sync starting...")
    with Session(bind or engine) as session:
        connections = session.exec(select(MetaConnection).order_by(MetaConnection.id)).all()
        targets = [(c.owner_id, c.ad_account_ids) for c in connections]

        synced = 0
        failed = 0
        for owner_id, account_ids in targets:
            for ad_account_id in account_ids:
                try:
                    await sync_account(session, owner_id, ad_account_id)
                    synced += 1
                except Exception as e:
                    session.rollback()
                    failed += 1
                    logger.error(
                        f"Scheduled sync failed: {e}",
                        extra={"owner_id": owner_id, "ad_account_id": ad_account_id},
                    )

    logger.info(f"Scheduled daily sync complete: {synced} ok, {failed} failed")
    return synced, failed


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_sync_job,
        "cron",
        hour=settings.sync_hour,
        minute=0,
        id="daily_sync",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(f"Scheduler started. Daily sync at {settings.sync_hour}:00 UTC")


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
