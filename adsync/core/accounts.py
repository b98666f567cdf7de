"""ADSYNC — Ad Account Id Spellings.

The platform addresses accounts as ``act_<digits>`` but stored rows have used
both the prefixed and the bare form over time.
"""

from typing import List

ACCOUNT_PREFIX = "act_"


def normalize_account_id(ad_account_id: str) -> str:
    """Bare numeric form, e.g. ``act_123`` → ``123``."""
    value = (ad_account_id or "").strip()
    if value.startswith(ACCOUNT_PREFIX):
        value = value[len(ACCOUNT_PREFIX):]
    return value


def graph_account_id(ad_account_id: str) -> str:
    """Form used in Graph API paths, e.g. ``123`` → ``act_123``."""
    return f"{ACCOUNT_PREFIX}{normalize_account_id(ad_account_id)}"


def account_id_variants(ad_account_id: str) -> List[str]:
    """Every spelling a stored row may carry for this account."""
    clean = normalize_account_id(ad_account_id)
    return [f"{ACCOUNT_PREFIX}{clean}", clean]
