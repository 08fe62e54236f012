"""Bulk operations behind the admin surface: wipe, import, purge, migrate."""

from __future__ import annotations

import base64
import binascii
import logging
from collections.abc import Callable, Iterable, Mapping, Sequence

from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, col, select

from feed_archive.errors import CacheValidationError
from feed_archive.models import (
    AccountPatch,
    ArticleWrite,
    MigrationResult,
    WipeResult,
    article_key,
)
from feed_archive.storage.common import dump_json
from feed_archive.storage.database import CacheDatabase
from feed_archive.storage.sqlmodel_models import (
    CACHE_TABLES,
    AccountInfo,
    ArticleRow,
    AssetRow,
    CommentReplyRow,
    CommentRow,
    HtmlSnapshotRow,
    MetadataRow,
    ResourceMapRow,
    ResourceRow,
)
from feed_archive.stores.accounts import apply_identity_patch
from feed_archive.stores.articles import put_article
from feed_archive.stores.side_channel import comment_reply_key

logger = logging.getLogger(__name__)

_ACCOUNT_SCOPED_TABLES = (
    ArticleRow,
    AssetRow,
    CommentRow,
    CommentReplyRow,
    HtmlSnapshotRow,
    AccountInfo,
    MetadataRow,
    ResourceRow,
    ResourceMapRow,
)

RowMigrator = Callable[[Session, Mapping[str, object]], None]


class CacheMaintenance:
    """Operations that touch many rows and must commit as one unit."""

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def wipe_all(self) -> WipeResult:
        """Delete every row of every cache table in one transaction."""

        deleted: dict[str, int] = {}
        with self.database.transaction() as session:
            for table in CACHE_TABLES:
                name = str(table.__tablename__)
                deleted[name] = int(
                    session.exec(select(func.count()).select_from(table)).one(),
                )
                session.exec(sa_delete(table))  # type: ignore[call-overload]
        logger.info("Wiped cache database: %d rows removed", sum(deleted.values()))
        return WipeResult(deleted=deleted)

    def import_accounts(self, patches: Iterable[AccountPatch]) -> int:
        """Apply an imported account list; progress of every listed account restarts."""

        items = list(patches)
        for patch in items:
            if not patch.account_id:
                raise CacheValidationError("account_id is required for every imported account")
        with self.database.transaction() as session:
            for patch in items:
                apply_identity_patch(session, patch)
        logger.info("Imported %d accounts", len(items))
        return len(items)

    def delete_accounts(self, account_ids: Sequence[str]) -> int:
        """Purge every cached row owned by the given accounts."""

        ids = [account_id for account_id in account_ids if account_id]
        if not ids:
            return 0
        removed = 0
        with self.database.transaction() as session:
            for table in _ACCOUNT_SCOPED_TABLES:
                account_column = col(table.account_id)  # type: ignore[attr-defined]
                removed += int(
                    session.exec(
                        select(func.count()).select_from(table).where(account_column.in_(ids)),
                    ).one(),
                )
                session.exec(sa_delete(table).where(account_column.in_(ids)))  # type: ignore[call-overload]
        logger.info("Deleted %d rows for accounts %s", removed, ", ".join(ids))
        return removed

    def migrate_rows(self, table: str, rows: Sequence[Mapping[str, object]]) -> MigrationResult:
        """Bulk import rows exported by an older cache, one table at a time.

        Malformed rows are counted as failed and skipped; the remaining rows
        commit together.
        """

        migrator = _MIGRATORS.get(table)
        if migrator is None:
            raise CacheValidationError(
                f"Unsupported table {table!r}; expected one of: {', '.join(sorted(_MIGRATORS))}",
            )

        imported = 0
        failed = 0
        with self.database.transaction() as session:
            for index, row in enumerate(rows):
                savepoint = session.begin_nested()
                try:
                    migrator(session, row)
                    session.flush()
                except (KeyError, TypeError, ValueError, binascii.Error, SQLAlchemyError) as error:
                    savepoint.rollback()
                    failed += 1
                    logger.warning("Skipped %s row #%d: %s", table, index, error)
                    continue
                savepoint.commit()
                imported += 1

        logger.info("Migrated %s rows: imported=%d failed=%d", table, imported, failed)
        return MigrationResult(imported=imported, failed=failed)


def _migrate_article(session: Session, row: Mapping[str, object]) -> None:
    payload = {
        name: value
        for name, value in row.items()
        if name not in {"id", "account_id", "article_id", "link", "create_time"}
    }
    article = ArticleWrite(
        account_id=_required_str(row, "account_id"),
        article_id=_required_str(row, "article_id"),
        link=_required_str(row, "link"),
        create_time=int(row["create_time"]),  # type: ignore[call-overload]
        payload=payload,
    )
    key = str(row.get("id") or article_key(article.account_id, article.article_id))
    put_article(session, key, article)


def _migrate_account(session: Session, row: Mapping[str, object]) -> None:
    account_id = _required_str(row, "account_id")
    info = session.get(AccountInfo, account_id) or AccountInfo(account_id=account_id)
    info.completed = bool(row.get("completed", False))
    info.count = int(row.get("count", 0))  # type: ignore[call-overload]
    info.articles = int(row.get("articles", 0))  # type: ignore[call-overload]
    info.total_count = int(row.get("total_count", 0))  # type: ignore[call-overload]
    info.nickname = _optional_str(row, "nickname")
    info.avatar = _optional_str(row, "avatar")
    info.create_time = _optional_int(row, "create_time")
    info.update_time = _optional_int(row, "update_time")
    info.last_update_time = _optional_int(row, "last_update_time")
    session.add(info)


def _migrate_html(session: Session, row: Mapping[str, object]) -> None:
    session.merge(
        HtmlSnapshotRow(
            url=_required_str(row, "url"),
            account_id=_required_str(row, "account_id"),
            title=str(row.get("title") or ""),
            file=_decode_file(row),
            comment_id=_optional_str(row, "comment_id"),
        ),
    )


def _migrate_asset(session: Session, row: Mapping[str, object]) -> None:
    session.merge(
        AssetRow(
            url=_required_str(row, "url"),
            account_id=_required_str(row, "account_id"),
            file=_decode_file(row),
        ),
    )


def _migrate_resource(session: Session, row: Mapping[str, object]) -> None:
    session.merge(
        ResourceRow(
            url=_required_str(row, "url"),
            account_id=_required_str(row, "account_id"),
            file=_decode_file(row),
        ),
    )


def _migrate_resource_map(session: Session, row: Mapping[str, object]) -> None:
    resources = row["resources"]
    if not isinstance(resources, list):
        raise TypeError("resources must be a list of URLs")
    session.merge(
        ResourceMapRow(
            url=_required_str(row, "url"),
            account_id=_required_str(row, "account_id"),
            resources=dump_json([str(item) for item in resources]),
        ),
    )


def _migrate_comment(session: Session, row: Mapping[str, object]) -> None:
    session.merge(
        CommentRow(
            url=_required_str(row, "url"),
            account_id=_required_str(row, "account_id"),
            title=str(row.get("title") or ""),
            data=dump_json(row["data"]),
        ),
    )


def _migrate_comment_reply(session: Session, row: Mapping[str, object]) -> None:
    url = _required_str(row, "url")
    content_id = _required_str(row, "content_id")
    session.merge(
        CommentReplyRow(
            id=comment_reply_key(url, content_id),
            url=url,
            account_id=_required_str(row, "account_id"),
            title=str(row.get("title") or ""),
            data=dump_json(row["data"]),
            content_id=content_id,
        ),
    )


def _migrate_metadata(session: Session, row: Mapping[str, object]) -> None:
    data = row.get("data")
    if data is None:
        data = {
            name: value
            for name, value in row.items()
            if name not in {"url", "account_id", "title"}
        }
    session.merge(
        MetadataRow(
            url=_required_str(row, "url"),
            account_id=_required_str(row, "account_id"),
            title=str(row.get("title") or ""),
            data=dump_json(data),
        ),
    )


_MIGRATORS: dict[str, RowMigrator] = {
    "account_info": _migrate_account,
    "articles": _migrate_article,
    "html_snapshots": _migrate_html,
    "assets": _migrate_asset,
    "resources": _migrate_resource,
    "resource_maps": _migrate_resource_map,
    "comments": _migrate_comment,
    "comment_replies": _migrate_comment_reply,
    "article_metadata": _migrate_metadata,
}

MIGRATABLE_TABLES = tuple(sorted(_MIGRATORS))


def _decode_file(row: Mapping[str, object]) -> bytes:
    return base64.b64decode(_required_str(row, "file"), validate=True)


def _required_str(row: Mapping[str, object], name: str) -> str:
    value = row[name]
    if value is None or str(value) == "":
        raise ValueError(f"{name} is required")
    return str(value)


def _optional_str(row: Mapping[str, object], name: str) -> str | None:
    value = row.get(name)
    return str(value) if value not in (None, "") else None


def _optional_int(row: Mapping[str, object], name: str) -> int | None:
    value = row.get(name)
    return int(value) if value is not None else None  # type: ignore[call-overload]
