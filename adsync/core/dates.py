"""ADSYNC — Reporting Date Windows.

A window is either one of the source platform's named presets or a custom
since/until pair. Zero-activity rows need concrete dates, so every window
also resolves to a (since, until) tuple.
"""

import json
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel

VALID_PRESETS = (
    "today",
    "yesterday",
    "last_7d",
    "last_14d",
    "last_30d",
    "last_90d",
    "this_month",
    "last_month",
    "maximum",
)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _validate_date(d: Optional[str]) -> Optional[str]:
    """Return the date string if valid YYYY-MM-DD, else None."""
    if not d:
        return None
    try:
        datetime.strptime(d, "%Y-%m-%d")
        return d
    except ValueError:
        return None


def _preset_range(preset: str, today: date) -> tuple[date, date]:
    if preset == "today":
        return today, today
    if preset == "yesterday":
        y = today - timedelta(days=1)
        return y, y
    days = {"last_7d": 7, "last_14d": 14, "last_30d": 30, "last_90d": 90}
    if preset in days:
        return today - timedelta(days=days[preset] - 1), today
    if preset == "this_month":
        return today.replace(day=1), today
    if preset == "last_month":
        end = today.replace(day=1) - timedelta(days=1)
        return end.replace(day=1), end
    # "maximum" and anything unrecognised: last 30 days
    return today - timedelta(days=29), today


class DateWindow(BaseModel):
    """Requested reporting window."""

    preset: str = "last_30d"
    since: Optional[str] = None
    until: Optional[str] = None

    @classmethod
    def build(
        cls,
        date_preset: Optional[str] = None,
        custom_start_date: Optional[str] = None,
        custom_end_date: Optional[str] = None,
    ) -> "DateWindow":
        """Custom dates win when both are valid; unknown presets become last_30d."""
        since = _validate_date(custom_start_date)
        until = _validate_date(custom_end_date)
        if since and until:
            if since > until:
                since, until = until, since
            return cls(preset="custom", since=since, until=until)
        preset = date_preset if date_preset in VALID_PRESETS else "last_30d"
        return cls(preset=preset)

    @property
    def is_custom(self) -> bool:
        return self.preset == "custom" and bool(self.since and self.until)

    def resolve(self, today: Optional[date] = None) -> tuple[str, str]:
        """Concrete (since, until) strings for this window."""
        if self.is_custom:
            return self.since, self.until  # type: ignore[return-value]
        today = today or datetime.now(timezone.utc).date()
        s, e = _preset_range(self.preset, today)
        return s.strftime("%Y-%m-%d"), e.strftime("%Y-%m-%d")

    def query_params(self) -> Dict[str, Any]:
        """Source API params selecting this window."""
        if self.is_custom:
            return {"time_range": json.dumps({"since": self.since, "until": self.until})}
        return {"date_preset": self.preset}
