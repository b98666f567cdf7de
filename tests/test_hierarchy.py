from adsync.sync.hierarchy import (
    EntityStatus,
    HierarchySource,
    build_hierarchy,
    extract_media,
    normalize_status,
    parse_budget,
)

from conftest import ADS, ADSETS, CAMPAIGNS, INSIGHTS


def test_normalize_status():
    assert normalize_status("ACTIVE") == EntityStatus.ACTIVE
    assert normalize_status("campaign_paused") == EntityStatus.PAUSED
    assert normalize_status("ARCHIVED") == EntityStatus.DELETED
    assert normalize_status(None) == EntityStatus.UNKNOWN
    assert normalize_status("SOMETHING_NEW") == EntityStatus.UNKNOWN


def test_parse_budget_converts_minor_units():
    assert parse_budget("5000") == 50.0
    assert parse_budget(1999) == 19.99
    assert parse_budget(None) is None
    assert parse_budget("") is None


def test_hierarchy_from_listings():
    hierarchy = build_hierarchy(CAMPAIGNS, ADSETS, ADS, INSIGHTS)

    assert hierarchy.source == HierarchySource.ENTITY_LISTINGS
    assert hierarchy.is_authoritative
    assert hierarchy.campaigns["c1"].daily_budget == 50.0
    assert hierarchy.campaigns["c2"].lifetime_budget == 1000.0
    assert hierarchy.adsets["s1"].parent_id == "c1"

    path = hierarchy.paths["a2"]
    assert (path.adset_id, path.campaign_id) == ("s2", "c2")
    assert (path.campaign_name, path.adset_name) == ("Retargeting", "Visitors 30d")
    assert (path.media_hash, path.media_type) == ("vid-derivative", "video")


def test_resolve_uses_listed_status_and_budgets():
    hierarchy = build_hierarchy(CAMPAIGNS, ADSETS, ADS, INSIGHTS)

    resolved = hierarchy.resolve({"ad_id": "a2", "adset_id": "s2", "campaign_id": "c2"})

    assert resolved.ad_status == EntityStatus.PAUSED
    assert resolved.adset_status == EntityStatus.PAUSED
    assert resolved.campaign_status == EntityStatus.PAUSED
    assert resolved.campaign_lifetime_budget == 1000.0
    assert resolved.adset_daily_budget is None


def test_unlisted_entities_resolve_deleted_and_ads_inferred_active():
    hierarchy = build_hierarchy(CAMPAIGNS, ADSETS, ADS, INSIGHTS)

    resolved = hierarchy.resolve({"ad_id": "a9", "adset_id": "s9", "campaign_id": "c9"})

    assert resolved.ad_status == EntityStatus.ACTIVE
    assert resolved.adset_status == EntityStatus.DELETED
    assert resolved.campaign_status == EntityStatus.DELETED
    assert resolved.campaign_daily_budget is None


def test_missing_ids_resolve_unknown():
    hierarchy = build_hierarchy(CAMPAIGNS, ADSETS, ADS, INSIGHTS)

    resolved = hierarchy.resolve({})

    assert resolved.ad_status == EntityStatus.UNKNOWN
    assert resolved.adset_status == EntityStatus.UNKNOWN
    assert resolved.campaign_status == EntityStatus.UNKNOWN


def test_ads_with_unlisted_parents_are_not_cached():
    ads = ADS + [{"id": "a3", "name": "Orphan", "adset_id": "s404", "effective_status": "ACTIVE"}]

    hierarchy = build_hierarchy(CAMPAIGNS, ADSETS, ads, INSIGHTS)

    assert "a3" in hierarchy.ads
    assert "a3" not in hierarchy.paths


def test_fallback_when_ad_listing_empty():
    hierarchy = build_hierarchy(CAMPAIGNS, ADSETS, [], INSIGHTS)

    assert hierarchy.source == HierarchySource.METRIC_FALLBACK
    assert not hierarchy.is_authoritative
    assert set(hierarchy.paths) == {"a1"}
    # Listed entities keep their listed status over the inferred one
    assert hierarchy.campaigns["c1"].daily_budget == 50.0
    assert hierarchy.campaigns["c2"].status == EntityStatus.PAUSED


def test_fallback_infers_active_entities_from_metrics():
    hierarchy = build_hierarchy([], [], [], INSIGHTS)

    assert hierarchy.campaigns["c1"].status == EntityStatus.ACTIVE
    assert hierarchy.adsets["s1"].status == EntityStatus.ACTIVE
    assert hierarchy.adsets["s1"].parent_id == "c1"

    resolved = hierarchy.resolve(INSIGHTS[0])
    assert resolved.ad_status == EntityStatus.ACTIVE
    assert resolved.adset_status == EntityStatus.ACTIVE
    assert resolved.campaign_status == EntityStatus.ACTIVE


def test_fallback_when_a_listing_walk_was_incomplete():
    hierarchy = build_hierarchy(CAMPAIGNS, ADSETS, ADS, INSIGHTS, listings_complete=False)

    assert hierarchy.source == HierarchySource.METRIC_FALLBACK
    # Listed ads still join the cache alongside metric-derived paths
    assert set(hierarchy.paths) == {"a1", "a2"}
    assert hierarchy.paths["a1"].media_hash == "img1"


def test_every_status_is_one_of_four_values():
    rows = INSIGHTS + [{"ad_id": "a9", "adset_id": "s1"}, {"campaign_id": "c1"}, {}]
    valid = {s.value for s in EntityStatus}

    for hierarchy in (
        build_hierarchy(CAMPAIGNS, ADSETS, ADS, rows),
        build_hierarchy([], [], [], rows),
    ):
        for row in rows:
            resolved = hierarchy.resolve(row)
            assert resolved.ad_status.value in valid
            assert resolved.adset_status.value in valid
            assert resolved.campaign_status.value in valid


def test_extract_media_prefers_video():
    assert extract_media({"video_id": "v1", "image_hash": "h1"}) == ("v1", "video")
    assert extract_media({"image_hash": "h1"}) == ("h1", "image")
    assert extract_media(
        {"object_story_spec": {"video_data": {"video_id": "v2", "image_hash": "h2"}}}
    ) == ("v2", "video")
    assert extract_media({"object_story_spec": {"link_data": {"image_hash": "h3"}}}) == (
        "h3",
        "image",
    )
    assert extract_media(None) == (None, None)
