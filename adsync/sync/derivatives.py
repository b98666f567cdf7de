"""ADSYNC — Derivative Resolution Matcher.

The platform re-encodes an uploaded video per placement / aspect ratio and
reports metrics against those derivative ids. This module maps a derivative
back to its catalog video using title and duration, then rewrites the
metric rows that carry it.

Tiers, first hit wins:
  a. exact raw title (lowercased, trimmed)
  b. exact normalized title (extension and auto-crop prefix stripped)
  c. substring containment between normalized titles
Several candidates under one key are disambiguated by duration (< 1 s).
"""

import re
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from pydantic import BaseModel
from sqlalchemy import update
from sqlmodel import Session, select

from adsync.connectors.meta.endpoints import MetaEndpoints
from adsync.core.accounts import account_id_variants
from adsync.core.logging import get_logger
from adsync.models.metric_models import MetricRow

logger = get_logger("sync.derivatives")

DURATION_TOLERANCE = 1.0  # seconds

_EXTENSION_RE = re.compile(r"\.(mp4|mov|avi|mkv|webm|m4v|wmv)$", re.IGNORECASE)
_AUTO_CROP_RE = re.compile(r"^auto_cropped_ar_\d+_x_\d+_dco_", re.IGNORECASE)

# Base confidence for a tier; duration evidence adjusts it
TIER_CONFIDENCE = {
    "raw_title": 0.95,
    "normalized_title": 0.85,
    "substring": 0.6,
}


def normalize_title(title: str) -> str:
    """Lowercase, trim, and strip file extension and auto-crop prefix."""
    value = (title or "").lower().strip()
    value = _EXTENSION_RE.sub("", value)
    value = _AUTO_CROP_RE.sub("", value)
    return value.strip()


class MatchTier(str, Enum):
    RAW_TITLE = "raw_title"
    NORMALIZED_TITLE = "normalized_title"
    SUBSTRING = "substring"


class CatalogVideo(BaseModel):
    """A canonical library video as seen by the matcher."""

    id: str
    title: str = ""
    length: float = 0.0  # 0 when unknown


class MatchResult(BaseModel):
    """Outcome for one derivative: Matched{tier, confidence} or Unmatched{reason}."""

    derivative_id: str
    matched: bool = False
    catalog_id: Optional[str] = None
    tier: Optional[MatchTier] = None
    confidence: float = 0.0
    reason: Optional[str] = None  # set when unmatched


class DerivativeResolution(BaseModel):
    """Summary of one resolution pass."""

    total: int = 0
    resolved: int = 0
    rows_updated: int = 0
    results: List[MatchResult] = []


def _within_tolerance(a: float, b: float) -> bool:
    return abs(a - b) < DURATION_TOLERANCE


class DerivativeMatcher:
    """Title / duration index over the catalog's videos."""

    def __init__(self, catalog: Iterable[CatalogVideo]):
        self.raw_index: Dict[str, List[CatalogVideo]] = {}
        self.norm_index: Dict[str, List[CatalogVideo]] = {}
        for video in catalog:
            raw = (video.title or "").lower().strip()
            norm = normalize_title(video.title or "")
            if raw:
                self.raw_index.setdefault(raw, []).append(video)
            if norm:
                self.norm_index.setdefault(norm, []).append(video)

    @staticmethod
    def _pick(
        candidates: List[CatalogVideo], duration: float
    ) -> Optional[CatalogVideo]:
        """Sole candidate, else the first within duration tolerance."""
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1 and duration > 0:
            for candidate in candidates:
                if _within_tolerance(candidate.length, duration):
                    return candidate
        return None

    @staticmethod
    def _confidence(tier: MatchTier, video: CatalogVideo, duration: float) -> float:
        score = TIER_CONFIDENCE[tier.value]
        if duration > 0 and video.length > 0:
            if _within_tolerance(video.length, duration):
                score += 0.05
            else:
                score -= 0.25
        return round(max(0.0, min(score, 1.0)), 2)

    def _matched(
        self, derivative_id: str, tier: MatchTier, video: CatalogVideo, duration: float
    ) -> MatchResult:
        return MatchResult(
            derivative_id=derivative_id,
            matched=True,
            catalog_id=video.id,
            tier=tier,
            confidence=self._confidence(tier, video, duration),
        )

    def match(self, derivative_id: str, title: str, duration: float = 0.0) -> MatchResult:
        """Try each tier in order; an unmatched result says why."""
        raw = (title or "").lower().strip()
        if not raw:
            return MatchResult(derivative_id=derivative_id, reason="no_title")

        ambiguous = False

        candidates = self.raw_index.get(raw, [])
        video = self._pick(candidates, duration)
        if video:
            return self._matched(derivative_id, MatchTier.RAW_TITLE, video, duration)
        ambiguous = ambiguous or len(candidates) > 1

        norm = normalize_title(title)
        if not norm:
            return MatchResult(derivative_id=derivative_id, reason="no_title")

        candidates = self.norm_index.get(norm, [])
        video = self._pick(candidates, duration)
        if video:
            return self._matched(derivative_id, MatchTier.NORMALIZED_TITLE, video, duration)
        ambiguous = ambiguous or len(candidates) > 1

        for catalog_norm, videos in self.norm_index.items():
            if norm in catalog_norm or catalog_norm in norm:
                video = self._pick(videos, duration)
                if video:
                    return self._matched(derivative_id, MatchTier.SUBSTRING, video, duration)
                ambiguous = ambiguous or len(videos) > 1

        return MatchResult(
            derivative_id=derivative_id,
            reason="ambiguous" if ambiguous else "no_candidates",
        )


# ── Persistence-side steps ──


def find_unresolved_hashes(
    session: Session,
    owner_id: str,
    ad_account_id: str,
    catalog_ids: Set[str],
) -> List[str]:
    """Video hashes in metric rows that are not catalog video ids."""
    hashes = session.exec(
        select(MetricRow.media_hash)
        .where(
            MetricRow.owner_id == owner_id,
            MetricRow.ad_account_id.in_(account_id_variants(ad_account_id)),  # type: ignore[attr-defined]
            MetricRow.media_type == "video",
            MetricRow.media_hash.is_not(None),  # type: ignore[union-attr]
        )
        .distinct()
    ).all()
    return sorted(h for h in hashes if h and h not in catalog_ids)


def rewrite_media_hash(
    session: Session,
    owner_id: str,
    ad_account_id: str,
    derivative_id: str,
    catalog_id: str,
) -> int:
    """Point every row carrying the derivative at the catalog id."""
    result = session.execute(
        update(MetricRow)
        .where(
            MetricRow.owner_id == owner_id,
            MetricRow.ad_account_id.in_(account_id_variants(ad_account_id)),  # type: ignore[attr-defined]
            MetricRow.media_hash == derivative_id,
        )
        .values(media_hash=catalog_id)
    )
    return result.rowcount or 0


async def resolve_derivatives(
    session: Session,
    endpoints: MetaEndpoints,
    owner_id: str,
    ad_account_id: str,
    catalog: List[CatalogVideo],
) -> DerivativeResolution:
    """Resolve every unresolved derivative hash for the account.

    Unmatched derivatives are left as they are and retried next sync.
    """
    catalog_ids = {v.id for v in catalog}
    unresolved = find_unresolved_hashes(session, owner_id, ad_account_id, catalog_ids)
    resolution = DerivativeResolution(total=len(unresolved))
    if not unresolved or not catalog:
        return resolution

    logger.info(
        f"Resolving {len(unresolved)} video derivatives to originals",
        extra={"owner_id": owner_id, "ad_account_id": ad_account_id},
    )
    metadata = await endpoints.fetch_video_metadata(unresolved)
    matcher = DerivativeMatcher(catalog)

    for derivative_id in unresolved:
        meta = metadata.get(derivative_id)
        if meta is None:
            resolution.results.append(
                MatchResult(derivative_id=derivative_id, reason="no_metadata")
            )
            continue

        result = matcher.match(derivative_id, meta["title"], meta["length"])
        resolution.results.append(result)
        if not result.matched or not result.catalog_id:
            logger.info(f"Derivative {derivative_id} unresolved ({result.reason})")
            continue

        try:
            updated = rewrite_media_hash(
                session, owner_id, ad_account_id, derivative_id, result.catalog_id
            )
            session.commit()
        except Exception as e:
            session.rollback()
            logger.error(f"Failed to update derivative {derivative_id}: {e}")
            continue

        resolution.resolved += 1
        resolution.rows_updated += updated
        if result.confidence < 0.7:
            logger.warning(
                f"Low-confidence match {derivative_id} → {result.catalog_id} "
                f"({result.tier.value if result.tier else ''}, {result.confidence})"
            )

    logger.info(f"Resolved {resolution.resolved}/{resolution.total} video derivatives")
    return resolution
