"""Tests for the SQLAlchemy-backed store upserts."""

from datetime import datetime


def test_relink_updates_account_in_place(store):
    user = store.upsert_user("tester@local.mock", "tester")
    first = store.upsert_account(user.id, "ig-1", "tester", "old-short", "old-long", datetime(2020, 1, 1))

    relinked = store.upsert_account(user.id, "ig-1", "renamed", "new-short", "new-long", datetime(2030, 1, 1))

    assert relinked.id == first.id
    account = store.get_account_for_user(user.id)
    assert account.username == "renamed"
    assert account.long_lived_token == "new-long"
    assert account.token_expires_at == datetime(2030, 1, 1)


def test_relink_moves_account_to_new_user(store):
    old = store.upsert_user("old@local.mock", "old")
    new = store.upsert_user("new@local.mock", "new")
    store.upsert_account(old.id, "ig-1", "tester", "a", "b")

    store.upsert_account(new.id, "ig-1", "tester", "c", "d")

    assert store.get_account_for_user(old.id) is None
    assert store.get_account_for_user(new.id).access_token == "c"


def test_unparseable_timestamp_is_stored_as_none(store, owner_id):
    account = store.get_account_for_user(owner_id)
    store.upsert_media(account.id, [
        {"id": "m-1", "timestamp": "not-a-date", "like_count": 3},
        {"id": "m-2", "timestamp": "2025-03-01T09:00:00+0000"},
    ])

    rows = {m.media_id: m for m in store.list_media(account.id)}
    assert rows["m-1"].timestamp is None
    assert rows["m-1"].like_count == 3
    assert rows["m-2"].timestamp.month == 3


def test_report_upsert_keeps_one_row_per_year(store, owner_id):
    first = store.upsert_report(owner_id, 2025, "t", "s", [{"title": "a"}], None)
    second = store.upsert_report(owner_id, 2025, "t2", "s2", [{"title": "b"}], "img")

    assert second.id == first.id
    assert store.get_report(owner_id, 2025).slides_json == [{"title": "b"}]
