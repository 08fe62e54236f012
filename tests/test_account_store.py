from __future__ import annotations

import threading

import allure
import pytest

from feed_archive.errors import CacheValidationError
from feed_archive.models import AccountPatch
from feed_archive.stores import CacheStores

pytestmark = [
    allure.epic("Feed Archive Cache"),
    allure.feature("Account Aggregates"),
]


def test_upsert_sync_creates_missing_account_with_supplied_fields(stores: CacheStores) -> None:
    created = stores.accounts.upsert_sync(
        AccountPatch(account_id="acct-1", count=3, articles=5, total_count=40, nickname="Daily"),
    )

    assert created.count == 3
    assert created.articles == 5
    assert created.total_count == 40
    assert created.nickname == "Daily"
    assert created.avatar is None
    assert created.completed is False
    assert created.create_time is not None
    assert created.create_time == created.update_time
    assert stores.accounts.get("acct-1") == created


def test_upsert_sync_accumulates_counters_and_keeps_latest_identity(stores: CacheStores) -> None:
    stores.accounts.upsert_sync(
        AccountPatch(account_id="acct-1", count=2, articles=4, total_count=10, nickname="Old"),
    )
    stores.accounts.upsert_sync(
        AccountPatch(account_id="acct-1", count=3, articles=6, total_count=12, nickname="New"),
    )
    merged = stores.accounts.upsert_sync(
        AccountPatch(account_id="acct-1", count=1, articles=1, total_count=13, avatar="a.png"),
    )

    assert merged.count == 6
    assert merged.articles == 11
    assert merged.total_count == 13
    assert merged.nickname == "New"
    assert merged.avatar == "a.png"


def test_completed_flag_is_never_unset_by_sync(stores: CacheStores) -> None:
    stores.accounts.upsert_sync(AccountPatch(account_id="acct-1", completed=True))
    after = stores.accounts.upsert_sync(AccountPatch(account_id="acct-1", count=1))

    assert after.completed is True


def test_import_identity_resets_progress_and_timestamps(stores: CacheStores) -> None:
    stores.accounts.upsert_sync(
        AccountPatch(account_id="acct-1", completed=True, count=7, articles=9, total_count=50),
    )
    stores.accounts.touch_last_update("acct-1")

    imported = stores.accounts.import_identity(
        AccountPatch(account_id="acct-1", nickname="Imported", avatar="i.png"),
    )

    assert imported.nickname == "Imported"
    assert imported.avatar == "i.png"
    assert imported.completed is False
    assert (imported.count, imported.articles, imported.total_count) == (0, 0, 0)
    assert imported.create_time is None
    assert imported.update_time is None
    assert imported.last_update_time is None


def test_touch_last_update_is_noop_for_unknown_account(stores: CacheStores) -> None:
    assert stores.accounts.touch_last_update("missing") is None
    assert stores.accounts.get("missing") is None

    stores.accounts.upsert_sync(AccountPatch(account_id="acct-1"))
    touched = stores.accounts.touch_last_update("acct-1")
    assert touched is not None
    assert touched.last_update_time is not None


def test_list_all_returns_accounts_ordered_by_id(stores: CacheStores) -> None:
    stores.accounts.upsert_sync(AccountPatch(account_id="b"))
    stores.accounts.upsert_sync(AccountPatch(account_id="a"))

    assert [account.account_id for account in stores.accounts.list_all()] == ["a", "b"]


def test_upsert_sync_requires_account_id(stores: CacheStores) -> None:
    with pytest.raises(CacheValidationError, match="account_id is required"):
        stores.accounts.upsert_sync(AccountPatch(account_id=""))


def test_repeated_sync_pass_doubles_counters_and_keeps_total(stores: CacheStores) -> None:
    patch = AccountPatch(account_id="acct1", count=5, articles=5, total_count=5)

    stores.accounts.upsert_sync(patch)
    after = stores.accounts.upsert_sync(patch)

    assert after.count == 10
    assert after.articles == 10
    assert after.total_count == 5


def test_concurrent_sync_passes_lose_no_increments(stores: CacheStores) -> None:
    errors: list[BaseException] = []
    start = threading.Barrier(8)

    def _sync() -> None:
        start.wait()
        try:
            for _ in range(20):
                stores.accounts.upsert_sync(
                    AccountPatch(account_id="acct-1", count=1, articles=1, total_count=7),
                )
        except Exception as exc:  # noqa: BLE001
            errors.append(exc)

    threads = [threading.Thread(target=_sync) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert errors == []
    account = stores.accounts.get("acct-1")
    assert account is not None
    assert account.count == 160
    assert account.articles == 160
    assert account.total_count == 7
