"""ADSYNC — Account Connection & Rules Models."""

import json
from datetime import datetime
from typing import Dict, List, Optional
from sqlmodel import SQLModel, Field, UniqueConstraint


class MetaConnection(SQLModel, table=True):
    """Stored platform credential for an account owner.

    Written by the auth layer; this service only reads it.
    """

    __tablename__ = "meta_connections"

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True, unique=True)
    access_token: str = Field(description="Long-lived Graph API token")
    token_expires_at: Optional[datetime] = None
    ad_account_ids_json: str = Field(default="[]", description="JSON list of ad account ids")
    last_sync_at: Optional[datetime] = None

    @property
    def ad_account_ids(self) -> List[str]:
        try:
            ids = json.loads(self.ad_account_ids_json or "[]")
        except ValueError:
            return []
        return [str(i) for i in ids if i]


class AccountRules(SQLModel, table=True):
    """Per-account conversion settings.

    ``event_values_json`` maps a conversion tag to a monetary multiplier,
    e.g. ``{"lead": 25, "complete_registration": 4.5}``.
    """

    __tablename__ = "account_rules"
    __table_args__ = (
        UniqueConstraint("owner_id", "ad_account_id", name="uq_account_rules"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: str = Field(index=True)
    ad_account_id: str = Field(index=True, description="Normalized, without act_")
    event_values_json: str = Field(default="{}")

    @property
    def event_values(self) -> Dict[str, float]:
        try:
            raw = json.loads(self.event_values_json or "{}")
        except ValueError:
            return {}
        if not isinstance(raw, dict):
            return {}
        values: Dict[str, float] = {}
        for key, value in raw.items():
            try:
                values[str(key)] = float(value)
            except (TypeError, ValueError):
                continue
        return values
