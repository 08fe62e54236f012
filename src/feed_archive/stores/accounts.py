"""Per-account crawl progress with merge-on-write semantics."""

from __future__ import annotations

import logging

from sqlmodel import Session, col, select

from feed_archive.errors import CacheValidationError
from feed_archive.models import AccountAggregate, AccountPatch
from feed_archive.storage.common import epoch_now
from feed_archive.storage.database import CacheDatabase
from feed_archive.storage.sqlmodel_models import AccountInfo

logger = logging.getLogger(__name__)


class AccountStore:
    """Sole owner of the per-account roll-up counters."""

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def get(self, account_id: str) -> AccountAggregate | None:
        with self.database.read() as session:
            row = session.get(AccountInfo, account_id)
            return _to_aggregate(row) if row is not None else None

    def list_all(self) -> list[AccountAggregate]:
        with self.database.read() as session:
            rows = session.exec(select(AccountInfo).order_by(col(AccountInfo.account_id))).all()
            return [_to_aggregate(row) for row in rows]

    def upsert_sync(self, patch: AccountPatch) -> AccountAggregate:
        """Fold one sync pass into the aggregate.

        count/articles accumulate; total_count is replaced; nickname/avatar
        are replaced only by non-empty values; completed is sticky.
        """

        _require_account_id(patch.account_id)
        with self.database.transaction() as session:
            return _to_aggregate(apply_sync_patch(session, patch))

    def import_identity(self, patch: AccountPatch) -> AccountAggregate:
        """Take identity fields from an imported account list and restart progress."""

        _require_account_id(patch.account_id)
        with self.database.transaction() as session:
            return _to_aggregate(apply_identity_patch(session, patch))

    def touch_last_update(self, account_id: str) -> AccountAggregate | None:
        _require_account_id(account_id)
        with self.database.transaction() as session:
            row = session.get(AccountInfo, account_id)
            if row is None:
                return None
            row.last_update_time = epoch_now()
            session.add(row)
            session.flush()
            return _to_aggregate(row)


def apply_sync_patch(session: Session, patch: AccountPatch) -> AccountInfo:
    """Merge a sync patch inside the caller's transaction."""

    now = epoch_now()
    row = session.get(AccountInfo, patch.account_id)
    if row is None:
        row = AccountInfo(
            account_id=patch.account_id,
            completed=patch.completed,
            count=patch.count,
            articles=patch.articles,
            total_count=patch.total_count,
            nickname=patch.nickname or None,
            avatar=patch.avatar or None,
            create_time=now,
            update_time=now,
        )
    else:
        if patch.completed:
            row.completed = True
        row.count += patch.count
        row.articles += patch.articles
        row.total_count = patch.total_count
        if patch.nickname:
            row.nickname = patch.nickname
        if patch.avatar:
            row.avatar = patch.avatar
        row.update_time = now
    session.add(row)
    session.flush()
    return row


def apply_identity_patch(session: Session, patch: AccountPatch) -> AccountInfo:
    row = session.get(AccountInfo, patch.account_id)
    if row is None:
        row = AccountInfo(account_id=patch.account_id)
    if patch.nickname:
        row.nickname = patch.nickname
    if patch.avatar:
        row.avatar = patch.avatar
    row.completed = False
    row.count = 0
    row.articles = 0
    row.total_count = 0
    row.create_time = None
    row.update_time = None
    row.last_update_time = None
    session.add(row)
    session.flush()
    return row


def _require_account_id(account_id: str | None) -> None:
    if not account_id:
        raise CacheValidationError("account_id is required")


def _to_aggregate(row: AccountInfo) -> AccountAggregate:
    return AccountAggregate(
        account_id=row.account_id,
        completed=row.completed,
        count=row.count,
        articles=row.articles,
        total_count=row.total_count,
        nickname=row.nickname,
        avatar=row.avatar,
        create_time=row.create_time,
        update_time=row.update_time,
        last_update_time=row.last_update_time,
    )
