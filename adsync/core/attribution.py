"""ADSYNC — Conversion Registry & Attribution Resolver.

Defines the priority-ordered conversion taxonomy and the pure function that
picks one result per metric row. Add new action types to the registry so
every row is attributed the same way.
"""

import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel


class ConversionFamily(str, Enum):
    """How an action type is categorised."""

    PURCHASE = "purchase"
    LEAD = "lead"
    REGISTRATION = "registration"
    INSTALL = "install"
    ENGAGEMENT = "engagement"
    CUSTOM = "custom"


class ConversionDefinition:
    """Describes a single standard action type."""

    def __init__(self, action_type: str, family: ConversionFamily, result_type: str):
        self.action_type = action_type
        self.family = family
        self.result_type = result_type

    def __repr__(self) -> str:
        return f"<Conversion {self.action_type} ({self.family.value})>"


# ─────────────────────────────────────────────
# Standard conversions, in priority order
# ─────────────────────────────────────────────

STANDARD_CONVERSIONS: List[ConversionDefinition] = [
    # Purchase
    ConversionDefinition("purchase", ConversionFamily.PURCHASE, "purchase"),
    ConversionDefinition("omni_purchase", ConversionFamily.PURCHASE, "purchase"),
    ConversionDefinition(
        "offsite_conversion.fb_pixel_purchase", ConversionFamily.PURCHASE, "purchase"
    ),
    ConversionDefinition("onsite_web_purchase", ConversionFamily.PURCHASE, "purchase"),
    ConversionDefinition(
        "app_custom_event.fb_mobile_purchase", ConversionFamily.PURCHASE, "purchase"
    ),
    # Lead
    ConversionDefinition("lead", ConversionFamily.LEAD, "lead"),
    ConversionDefinition("onsite_conversion.lead_grouped", ConversionFamily.LEAD, "lead"),
    ConversionDefinition("offsite_conversion.fb_pixel_lead", ConversionFamily.LEAD, "lead"),
    ConversionDefinition("leadgen.other", ConversionFamily.LEAD, "lead"),
    # Registration
    ConversionDefinition(
        "complete_registration", ConversionFamily.REGISTRATION, "registration"
    ),
    ConversionDefinition(
        "omni_complete_registration", ConversionFamily.REGISTRATION, "registration"
    ),
    ConversionDefinition(
        "offsite_conversion.fb_pixel_complete_registration",
        ConversionFamily.REGISTRATION,
        "registration",
    ),
    ConversionDefinition(
        "app_custom_event.fb_mobile_complete_registration",
        ConversionFamily.REGISTRATION,
        "registration",
    ),
    # Install
    ConversionDefinition("mobile_app_install", ConversionFamily.INSTALL, "install"),
    ConversionDefinition("app_install", ConversionFamily.INSTALL, "install"),
    ConversionDefinition("omni_app_install", ConversionFamily.INSTALL, "install"),
    # Engagement (lowest priority)
    ConversionDefinition(
        "onsite_conversion.messaging_conversation_started_7d",
        ConversionFamily.ENGAGEMENT,
        "messaging_conversation",
    ),
    ConversionDefinition(
        "landing_page_view", ConversionFamily.ENGAGEMENT, "landing_page_view"
    ),
    ConversionDefinition("link_click", ConversionFamily.ENGAGEMENT, "link_click"),
    ConversionDefinition("video_view", ConversionFamily.ENGAGEMENT, "video_view"),
    ConversionDefinition("post_engagement", ConversionFamily.ENGAGEMENT, "post_engagement"),
]

CUSTOM_CONVERSION_PREFIX = "offsite_conversion.custom."

PURCHASE_ACTIONS = {
    d.action_type for d in STANDARD_CONVERSIONS if d.family == ConversionFamily.PURCHASE
}

# Alternative event-value keys tried for each display type, in order
EVENT_VALUE_ALIASES: Dict[str, List[str]] = {
    "purchase": ["purchase"],
    "lead": ["lead"],
    "registration": ["registration", "complete_registration"],
    "install": ["install", "app_install", "mobile_app_install"],
}


class Attribution(BaseModel):
    """Resolved result for one metric row."""

    result_count: int = 0
    result_type: Optional[str] = None
    result_value: Optional[float] = None
    action_type: Optional[str] = None
    family: Optional[ConversionFamily] = None
    value_source: Optional[str] = None  # "reported" | "configured"
    purchases: int = 0
    revenue: float = 0.0


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────


def _safe_float(value: Any) -> float:
    """Safely convert a value to float."""
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def normalize_event_type(event_type: str) -> str:
    """CompleteRegistration → complete_registration; snake_case passes through."""
    value = re.sub(r"([A-Z])", r"_\1", event_type.strip())
    value = value.lower().lstrip("_")
    return re.sub(r"__+", "_", value)


def _action_totals(entries: Optional[Iterable[Dict[str, Any]]]) -> Dict[str, float]:
    """Sum action values by action type, preserving first-seen order."""
    totals: Dict[str, float] = {}
    for entry in entries or []:
        if not isinstance(entry, dict):
            continue
        action_type = entry.get("action_type")
        if not action_type:
            continue
        totals[action_type] = totals.get(action_type, 0.0) + _safe_float(
            entry.get("value")
        )
    return totals


def _event_value_keys(result_type: str, family: ConversionFamily) -> List[str]:
    if family == ConversionFamily.CUSTOM:
        keys = [result_type]
        suffix = result_type[len(CUSTOM_CONVERSION_PREFIX):]
        if suffix:
            keys.append(suffix)
        return keys
    return EVENT_VALUE_ALIASES.get(result_type, [result_type])


def _configured_value(
    result_type: str, family: ConversionFamily, event_values: Dict[str, float]
) -> Optional[float]:
    """Look up a per-event multiplier, tolerant of CamelCase / snake_case keys."""
    if not event_values:
        return None
    normalized = {normalize_event_type(k): v for k, v in event_values.items()}
    for key in _event_value_keys(result_type, family):
        for lookup, table in ((key, event_values), (normalize_event_type(key), normalized)):
            if lookup in table and table[lookup] is not None:
                return _safe_float(table[lookup])
    return None


# ─────────────────────────────────────────────
# RESOLVER
# ─────────────────────────────────────────────


def resolve_attribution(
    actions: Optional[List[Dict[str, Any]]],
    action_values: Optional[List[Dict[str, Any]]] = None,
    event_values: Optional[Dict[str, float]] = None,
) -> Attribution:
    """Pick the most relevant conversion and compute its monetary value.

    Pure: the same inputs always produce the same Attribution. A missing
    value stays ``None``; it is never fabricated as zero.
    """
    counts = _action_totals(actions)
    values = _action_totals(action_values)
    event_values = event_values or {}

    # Legacy purchase columns
    purchases = int(counts.get("purchase", 0) or counts.get("omni_purchase", 0))
    revenue = values.get("purchase", 0.0) or values.get("omni_purchase", 0.0)

    matched: Optional[ConversionDefinition] = None
    for definition in STANDARD_CONVERSIONS:
        if counts.get(definition.action_type, 0) > 0:
            matched = definition
            break

    if matched is not None:
        action_type = matched.action_type
        family = matched.family
        result_type = matched.result_type
    else:
        custom = next(
            (
                t
                for t, v in counts.items()
                if t.startswith(CUSTOM_CONVERSION_PREFIX) and v > 0
            ),
            None,
        )
        if custom is None:
            return Attribution(purchases=purchases, revenue=revenue)
        action_type = custom
        family = ConversionFamily.CUSTOM
        result_type = custom

    result_count = int(counts[action_type])
    result_value: Optional[float] = None
    value_source: Optional[str] = None

    if family == ConversionFamily.PURCHASE:
        reported = values.get(action_type, 0.0)
        if reported <= 0:
            reported = next((values[t] for t in values if t in PURCHASE_ACTIONS and values[t] > 0), 0.0)
        if reported > 0:
            result_value = round(reported, 2)
            value_source = "reported"

    if result_value is None and result_count > 0:
        multiplier = _configured_value(result_type, family, event_values)
        if multiplier is not None:
            result_value = round(result_count * multiplier, 2)
            value_source = "configured"

    return Attribution(
        result_count=result_count,
        result_type=result_type,
        result_value=result_value,
        action_type=action_type,
        family=family,
        value_source=value_source,
        purchases=purchases,
        revenue=revenue,
    )
