from datetime import date, datetime, timedelta, timezone

import pytest

from adsync.core.accounts import account_id_variants, graph_account_id, normalize_account_id
from adsync.core.dates import DateWindow, as_utc
from adsync.models.account_models import AccountRules, MetaConnection
from adsync.sync.accounts import load_access_token, load_event_values
from adsync.sync.errors import ConnectionMissingError, TokenExpiredError


def test_account_id_spellings():
    assert normalize_account_id("act_123") == "123"
    assert normalize_account_id(" 123 ") == "123"
    assert graph_account_id("123") == "act_123"
    assert account_id_variants("act_123") == ["act_123", "123"]
    assert account_id_variants("123") == ["act_123", "123"]


def test_custom_window_wins_and_is_ordered():
    window = DateWindow.build("last_7d", "2026-02-10", "2026-02-01")

    assert window.is_custom
    assert window.resolve() == ("2026-02-01", "2026-02-10")
    assert "time_range" in window.query_params()


def test_invalid_custom_dates_fall_back_to_preset():
    window = DateWindow.build("last_7d", "2026-02-31", "2026-03-01")

    assert window.preset == "last_7d"
    assert window.query_params() == {"date_preset": "last_7d"}
    assert window.resolve(today=date(2026, 3, 10)) == ("2026-03-04", "2026-03-10")


def test_unknown_preset_becomes_last_30d():
    window = DateWindow.build("last_century")

    assert window.preset == "last_30d"
    assert window.resolve(today=date(2026, 3, 30)) == ("2026-03-01", "2026-03-30")


def test_last_month_window():
    window = DateWindow.build("last_month")

    assert window.resolve(today=date(2026, 3, 15)) == ("2026-02-01", "2026-02-28")


def test_naive_datetimes_are_read_as_utc():
    naive = datetime(2026, 2, 1, 9, 30)
    aware = datetime(2026, 2, 1, 9, 30, tzinfo=timezone(timedelta(hours=5)))

    assert as_utc(naive) == datetime(2026, 2, 1, 9, 30, tzinfo=timezone.utc)
    assert as_utc(aware) is aware


def test_stored_token_preferred(session):
    session.add(MetaConnection(owner_id="u1", access_token="stored"))
    session.commit()

    assert load_access_token(session, "u1") == "stored"
    assert load_access_token(session, "someone-else") == "env-token"


def test_missing_connection_without_fallback(session, monkeypatch):
    from adsync.config import settings

    monkeypatch.setattr(settings, "meta_access_token", "")

    with pytest.raises(ConnectionMissingError):
        load_access_token(session, "u1")


def test_expired_token(session):
    session.add(
        MetaConnection(
            owner_id="u1",
            access_token="old",
            token_expires_at=datetime.now(timezone.utc) - timedelta(minutes=5),
        )
    )
    session.commit()

    with pytest.raises(TokenExpiredError):
        load_access_token(session, "u1")


def test_event_values_lookup(session):
    session.add(
        AccountRules(
            owner_id="u1",
            ad_account_id="123",
            event_values_json='{"lead": "25", "CompleteRegistration": 4.5, "bad": "x"}',
        )
    )
    session.commit()

    assert load_event_values(session, "u1", "act_123") == {"lead": 25.0, "CompleteRegistration": 4.5}
    assert load_event_values(session, "u1", "act_999") == {}


def test_connection_account_ids():
    connection = MetaConnection(owner_id="u1", access_token="t", ad_account_ids_json='["act_1", 2, ""]')

    assert connection.ad_account_ids == ["act_1", "2"]
    assert MetaConnection(owner_id="u2", access_token="t", ad_account_ids_json="oops").ad_account_ids == []
