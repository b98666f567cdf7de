from adsync.core.attribution import (
    ConversionFamily,
    normalize_event_type,
    resolve_attribution,
)


def test_purchase_prefers_reported_value():
    result = resolve_attribution(
        [{"action_type": "purchase", "value": "2"}],
        [{"action_type": "purchase", "value": "99.999"}],
        {"purchase": 10},
    )

    assert result.result_type == "purchase"
    assert result.result_count == 2
    assert result.result_value == 100.0
    assert result.value_source == "reported"
    assert result.family == ConversionFamily.PURCHASE


def test_purchase_value_from_sibling_purchase_tag():
    result = resolve_attribution(
        [{"action_type": "omni_purchase", "value": "1"}],
        [{"action_type": "offsite_conversion.fb_pixel_purchase", "value": "80"}],
    )

    assert result.action_type == "omni_purchase"
    assert result.result_value == 80.0


def test_priority_order_wins_over_list_order():
    result = resolve_attribution(
        [
            {"action_type": "link_click", "value": "40"},
            {"action_type": "lead", "value": "3"},
        ]
    )

    assert result.result_type == "lead"
    assert result.result_count == 3


def test_zero_counts_are_skipped():
    result = resolve_attribution(
        [
            {"action_type": "purchase", "value": "0"},
            {"action_type": "onsite_conversion.lead_grouped", "value": "2"},
        ]
    )

    assert result.result_type == "lead"
    assert result.action_type == "onsite_conversion.lead_grouped"


def test_configured_value_multiplies_count():
    result = resolve_attribution(
        [{"action_type": "lead", "value": "3"}], event_values={"lead": 25}
    )

    assert result.result_value == 75.0
    assert result.value_source == "configured"


def test_registration_accepts_camel_case_event_key():
    result = resolve_attribution(
        [{"action_type": "complete_registration", "value": "2"}],
        event_values={"CompleteRegistration": 4.5},
    )

    assert result.result_type == "registration"
    assert result.result_value == 9.0


def test_install_aliases():
    result = resolve_attribution(
        [{"action_type": "mobile_app_install", "value": "4"}],
        event_values={"app_install": 2},
    )

    assert result.result_type == "install"
    assert result.result_value == 8.0


def test_custom_conversion_when_no_standard_tag():
    result = resolve_attribution(
        [
            {"action_type": "offsite_conversion.custom.999", "value": "0"},
            {"action_type": "offsite_conversion.custom.12345", "value": "3"},
        ],
        event_values={"12345": 10},
    )

    assert result.family == ConversionFamily.CUSTOM
    assert result.result_type == "offsite_conversion.custom.12345"
    assert result.result_value == 30.0


def test_engagement_display_names():
    result = resolve_attribution(
        [{"action_type": "onsite_conversion.messaging_conversation_started_7d", "value": "5"}]
    )

    assert result.result_type == "messaging_conversation"
    assert result.family == ConversionFamily.ENGAGEMENT


def test_missing_value_is_none_not_zero():
    result = resolve_attribution([{"action_type": "lead", "value": "3"}])

    assert result.result_count == 3
    assert result.result_value is None
    assert result.value_source is None


def test_no_actions():
    result = resolve_attribution(None)

    assert result.result_count == 0
    assert result.result_type is None
    assert result.result_value is None


def test_legacy_purchase_columns():
    result = resolve_attribution(
        [{"action_type": "lead", "value": "1"}, {"action_type": "omni_purchase", "value": "0"}],
        [{"action_type": "omni_purchase", "value": "12.5"}],
    )

    assert result.purchases == 0
    assert result.revenue == 12.5


def test_resolution_is_pure():
    actions = [{"action_type": "lead", "value": "3"}]
    values = {"lead": 25}

    assert resolve_attribution(actions, None, values) == resolve_attribution(actions, None, values)
    assert actions == [{"action_type": "lead", "value": "3"}]
    assert values == {"lead": 25}


def test_normalize_event_type():
    assert normalize_event_type("CompleteRegistration") == "complete_registration"
    assert normalize_event_type("lead") == "lead"
    assert normalize_event_type("app_install") == "app_install"
