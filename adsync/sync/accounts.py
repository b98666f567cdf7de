"""ADSYNC — Account Credentials & Rules Lookup."""

from datetime import datetime, timezone
from typing import Dict, Optional

from sqlmodel import Session, select

from adsync.config import settings
from adsync.core.accounts import normalize_account_id
from adsync.core.dates import as_utc
from adsync.models.account_models import AccountRules, MetaConnection
from adsync.sync.errors import ConnectionMissingError, TokenExpiredError


def get_connection(session: Session, owner_id: str) -> Optional[MetaConnection]:
    return session.exec(
        select(MetaConnection).where(MetaConnection.owner_id == owner_id)
    ).first()


def load_access_token(session: Session, owner_id: str) -> str:
    """Token for the owner's stored connection.

    Falls back to the configured token when no connection is stored;
    raises when neither exists or the stored token has expired.
    """
    connection = get_connection(session, owner_id)
    if connection is None:
        if settings.meta_access_token:
            return settings.meta_access_token
        raise ConnectionMissingError("Meta account not connected")

    if connection.token_expires_at and as_utc(
        connection.token_expires_at
    ) < datetime.now(timezone.utc):
        raise TokenExpiredError("Token expired, please reconnect")

    return connection.access_token


def load_event_values(
    session: Session, owner_id: str, ad_account_id: str
) -> Dict[str, float]:
    """Configured per-event monetary values for the account (may be empty)."""
    rules = session.exec(
        select(AccountRules).where(
            AccountRules.owner_id == owner_id,
            AccountRules.ad_account_id == normalize_account_id(ad_account_id),
        )
    ).first()
    return rules.event_values if rules else {}


def mark_synced(session: Session, owner_id: str) -> None:
    """Record the last successful metrics sync on the connection."""
    connection = get_connection(session, owner_id)
    if connection is None:
        return
    connection.last_sync_at = datetime.now(timezone.utc)
    session.add(connection)
    session.commit()
