"""ADSYNC — Media Inventory Synchronizer.

Keeps the catalog of images and videos for an ad account current:

  cooldown gate → inventory (delta) or full listing → upsert catalog
  → resolve video derivatives → push URLs into metric rows → cooldown record

Automatic runs are skipped inside the cooldown window without touching the
network; ``force=True`` always runs.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import update
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import Session, select

from adsync.config import settings
from adsync.connectors.meta.client import MetaClient, PageWalk
from adsync.connectors.meta.endpoints import MetaEndpoints
from adsync.core.accounts import account_id_variants, normalize_account_id
from adsync.core.dates import as_utc
from adsync.core.logging import get_logger
from adsync.models.media_models import CatalogAsset, SyncCooldownRecord
from adsync.models.metric_models import MetricRow
from adsync.models.sync_models import MediaSyncResult
from adsync.sync.derivatives import CatalogVideo, resolve_derivatives
from adsync.sync.errors import SourceUnavailableError

logger = get_logger("sync.media")

UPSERT_KEYS = ["owner_id", "ad_account_id", "media_hash"]
UPSERT_COLUMNS = [
    "media_type",
    "name",
    "url",
    "video_thumbnail_url",
    "width",
    "height",
    "duration_seconds",
    "synced_at",
]


def _safe_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _safe_float(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


# ── Cooldown ──


def get_cooldown_record(
    session: Session, owner_id: str, ad_account_id: str
) -> Optional[SyncCooldownRecord]:
    return session.exec(
        select(SyncCooldownRecord).where(
            SyncCooldownRecord.owner_id == owner_id,
            SyncCooldownRecord.ad_account_id == normalize_account_id(ad_account_id),
        )
    ).first()


def hours_since_last_sync(
    session: Session, owner_id: str, ad_account_id: str
) -> Optional[float]:
    record = get_cooldown_record(session, owner_id, ad_account_id)
    if record is None or record.synced_at is None:
        return None
    delta = datetime.now(timezone.utc) - as_utc(record.synced_at)
    return delta.total_seconds() / 3600


def _save_cooldown_record(
    session: Session,
    owner_id: str,
    ad_account_id: str,
    synced_at: datetime,
    result: MediaSyncResult,
) -> None:
    record = get_cooldown_record(session, owner_id, ad_account_id)
    if record is None:
        record = SyncCooldownRecord(
            owner_id=owner_id, ad_account_id=normalize_account_id(ad_account_id)
        )
    record.synced_at = synced_at
    record.image_count = result.image_count
    record.video_count = result.video_count
    record.new_images = result.new_image_count
    record.new_videos = result.new_video_count
    session.add(record)
    session.commit()


# ── Catalog rows ──


def image_asset_row(
    image: Dict[str, Any], owner_id: str, account: str, now: datetime
) -> Dict[str, Any]:
    return {
        "owner_id": owner_id,
        "ad_account_id": account,
        "media_hash": str(image.get("hash")),
        "media_type": "image",
        "name": image.get("name") or "Untitled",
        "url": image.get("url") or "",
        "video_thumbnail_url": None,
        "width": _safe_int(image.get("width")),
        "height": _safe_int(image.get("height")),
        "duration_seconds": 0.0,
        "synced_at": now,
    }


def video_asset_row(
    video: Dict[str, Any], owner_id: str, account: str, now: datetime
) -> Dict[str, Any]:
    """Keep the widest thumbnail as the asset's preview."""
    thumbs = (video.get("thumbnails") or {}).get("data") or []
    best: Dict[str, Any] = {}
    if thumbs:
        best = sorted(thumbs, key=lambda t: _safe_int(t.get("width")), reverse=True)[0]
    return {
        "owner_id": owner_id,
        "ad_account_id": account,
        "media_hash": str(video.get("id")),
        "media_type": "video",
        "name": video.get("title") or "Untitled Video",
        "url": None,
        "video_thumbnail_url": best.get("uri") or "",
        "width": _safe_int(best.get("width")),
        "height": _safe_int(best.get("height")),
        "duration_seconds": _safe_float(video.get("length")),
        "synced_at": now,
    }


def dedupe_asset_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """One row per upsert key, the last listed winning."""
    by_key: Dict[tuple, Dict[str, Any]] = {}
    for row in rows:
        by_key[tuple(row[k] for k in UPSERT_KEYS)] = row
    return list(by_key.values())


def upsert_assets(
    session: Session, rows: List[Dict[str, Any]], batch_size: int | None = None
) -> int:
    """INSERT … ON CONFLICT DO UPDATE in batches. Returns failed batch count.

    PostgreSQL rejects a statement that touches the same key twice, so
    repeated listing entries are collapsed first.
    """
    batch_size = batch_size or settings.upsert_batch_size
    rows = dedupe_asset_rows(rows)
    dialect = session.get_bind().dialect.name
    insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
    errors = 0

    for i in range(0, len(rows), batch_size):
        batch = rows[i : i + batch_size]
        stmt = insert(CatalogAsset).values(batch)
        stmt = stmt.on_conflict_do_update(
            index_elements=UPSERT_KEYS,
            set_={col: stmt.excluded[col] for col in UPSERT_COLUMNS},
        )
        try:
            session.execute(stmt)
            session.commit()
        except Exception as e:
            session.rollback()
            errors += 1
            logger.error(f"Upsert error (batch starting at index {i}): {e}")

    logger.info(f"Upserted {len(rows)} media rows ({errors} batch errors)")
    return errors


def known_hashes(
    session: Session, owner_id: str, ad_account_id: str, media_type: str
) -> Set[str]:
    return set(
        session.exec(
            select(CatalogAsset.media_hash).where(
                CatalogAsset.owner_id == owner_id,
                CatalogAsset.ad_account_id == normalize_account_id(ad_account_id),
                CatalogAsset.media_type == media_type,
            )
        ).all()
    )


def catalog_videos(
    session: Session, owner_id: str, ad_account_id: str
) -> List[CatalogVideo]:
    assets = session.exec(
        select(CatalogAsset).where(
            CatalogAsset.owner_id == owner_id,
            CatalogAsset.ad_account_id == normalize_account_id(ad_account_id),
            CatalogAsset.media_type == "video",
        )
    ).all()
    return [
        CatalogVideo(id=a.media_hash, title=a.name or "", length=a.duration_seconds or 0.0)
        for a in assets
    ]


# ── URL push ──


def push_media_urls(
    session: Session,
    owner_id: str,
    ad_account_id: str,
    hashes: Optional[Set[str]] = None,
) -> tuple[int, int]:
    """Copy image URLs / video thumbnails onto metric rows sharing the hash.

    ``hashes=None`` pushes every catalog asset. Returns
    (image rows updated, video rows updated).
    """
    query = select(CatalogAsset).where(
        CatalogAsset.owner_id == owner_id,
        CatalogAsset.ad_account_id == normalize_account_id(ad_account_id),
    )
    if hashes is not None:
        if not hashes:
            return 0, 0
        query = query.where(CatalogAsset.media_hash.in_(sorted(hashes)))  # type: ignore[attr-defined]
    assets = session.exec(query).all()

    image_updates = 0
    video_updates = 0
    variants = account_id_variants(ad_account_id)

    for asset in assets:
        if asset.media_type == "image" and asset.url:
            values = {"image_url": asset.url}
        elif asset.media_type == "video" and asset.video_thumbnail_url:
            values = {"thumbnail_url": asset.video_thumbnail_url}
        else:
            continue

        try:
            result = session.execute(
                update(MetricRow)
                .where(
                    MetricRow.owner_id == owner_id,
                    MetricRow.ad_account_id.in_(variants),  # type: ignore[attr-defined]
                    MetricRow.media_hash == asset.media_hash,
                )
                .values(**values)
            )
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to push URL for hash {asset.media_hash}: {e}")
            continue

        if asset.media_type == "image":
            image_updates += result.rowcount or 0
        else:
            video_updates += result.rowcount or 0

    logger.info(
        f"Updated metric rows: {image_updates} image URLs, {video_updates} video thumbnails"
    )
    return image_updates, video_updates


# ── Inventory ──


def _unique(values: List[str], exclude: Set[str]) -> List[str]:
    seen: Set[str] = set()
    result: List[str] = []
    for value in values:
        if value and value not in exclude and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def _check_walks(image_walk: PageWalk, video_walk: PageWalk) -> None:
    """Raise when neither listing returned a single page."""
    if image_walk.first_page_failed and video_walk.first_page_failed:
        raise SourceUnavailableError(image_walk.error or "Media listings unavailable")
    for walk in (image_walk, video_walk):
        if not walk.complete:
            logger.warning(
                f"{walk.endpoint} listing incomplete after {walk.pages} pages: "
                f"{walk.error or 'page limit reached'}"
            )


async def _delta_inventory(
    endpoints: MetaEndpoints,
    existing_images: Set[str],
    existing_videos: Set[str],
    result: MediaSyncResult,
) -> tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Id-only inventories, then full details for unseen ids only."""
    image_walk = await endpoints.fetch_image_inventory()
    video_walk = await endpoints.fetch_video_inventory()
    _check_walks(image_walk, video_walk)

    all_hashes = [str(img["hash"]) for img in image_walk.items if img.get("hash")]
    new_hashes = _unique(all_hashes, existing_images)
    result.image_count = len(set(all_hashes))
    logger.info(f"Image inventory: {len(all_hashes)} total, {len(new_hashes)} new")
    new_images = await endpoints.fetch_image_details(new_hashes) if new_hashes else []

    all_ids = [str(vid["id"]) for vid in video_walk.items if vid.get("id")]
    new_ids = _unique(all_ids, existing_videos)
    result.video_count = len(set(all_ids))
    logger.info(f"Video inventory: {len(all_ids)} total, {len(new_ids)} new")
    new_videos = await endpoints.fetch_video_details(new_ids) if new_ids else []

    return new_images, new_videos


async def _full_inventory(
    endpoints: MetaEndpoints, result: MediaSyncResult
) -> tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Complete listings with every field."""
    image_walk = await endpoints.fetch_images()
    video_walk = await endpoints.fetch_videos()
    _check_walks(image_walk, video_walk)
    images = [img for img in image_walk.items if img.get("hash")]
    videos = [vid for vid in video_walk.items if vid.get("id")]
    result.image_count = len({str(img["hash"]) for img in images})
    result.video_count = len({str(vid["id"]) for vid in videos})
    return images, videos


# ── Entry Point ──


async def sync_media(
    session: Session,
    client: MetaClient,
    owner_id: str,
    ad_account_id: str,
    force: bool = False,
    mode: str = "delta",
    endpoints: Optional[MetaEndpoints] = None,
) -> MediaSyncResult:
    """Sync the account's media catalog; see module docstring for the flow."""
    log_extra = {"owner_id": owner_id, "ad_account_id": ad_account_id}
    result = MediaSyncResult(mode=mode)

    if not force:
        hours = hours_since_last_sync(session, owner_id, ad_account_id)
        if hours is not None and hours < settings.media_cooldown_hours:
            logger.info(
                f"Skipped — cooldown active ({hours:.1f}h since last sync)",
                extra=log_extra,
            )
            return MediaSyncResult(
                skipped=True, reason="cooldown", hours_since_last_sync=hours, mode=mode
            )

    account = normalize_account_id(ad_account_id)
    endpoints = endpoints or MetaEndpoints(client, ad_account_id)
    existing_images = known_hashes(session, owner_id, account, "image")
    existing_videos = known_hashes(session, owner_id, account, "video")

    if mode == "full":
        images, videos = await _full_inventory(endpoints, result)
    else:
        images, videos = await _delta_inventory(
            endpoints, existing_images, existing_videos, result
        )

    now = datetime.now(timezone.utc)
    new_image_hashes = {str(i["hash"]) for i in images if i.get("hash")} - existing_images
    new_video_ids = {str(v["id"]) for v in videos if v.get("id")} - existing_videos
    result.new_image_count = len(new_image_hashes)
    result.new_video_count = len(new_video_ids)

    rows = [image_asset_row(i, owner_id, account, now) for i in images if i.get("hash")]
    rows += [video_asset_row(v, owner_id, account, now) for v in videos if v.get("id")]
    if rows:
        result.upsert_errors = upsert_assets(session, rows)
    result.new_asset_count = result.new_image_count + result.new_video_count

    # Catalog videos that derivative rows were just rewritten to
    matched_ids: Set[str] = set()
    if result.new_video_count > 0 or force:
        catalog = catalog_videos(session, owner_id, account)
        resolution = await resolve_derivatives(
            session, endpoints, owner_id, ad_account_id, catalog
        )
        result.derivatives_total = resolution.total
        result.resolved_derivative_count = resolution.resolved
        matched_ids = {
            r.catalog_id for r in resolution.results if r.matched and r.catalog_id
        }
    else:
        logger.info("Skipping derivative resolution (no new videos and not forced)")

    if result.new_asset_count > 0 or matched_ids or force:
        hashes = None if force else new_image_hashes | new_video_ids | matched_ids
        (
            result.image_urls_updated,
            result.video_thumbnails_updated,
        ) = push_media_urls(session, owner_id, ad_account_id, hashes)
    else:
        logger.info("No new media — skipping metric row URL push")

    _save_cooldown_record(session, owner_id, ad_account_id, now, result)

    logger.info(
        f"Media sync ({mode}): {result.new_image_count} new images, "
        f"{result.new_video_count} new videos out of "
        f"{result.image_count + result.video_count} total",
        extra=log_extra,
    )
    return result
