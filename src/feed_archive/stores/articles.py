"""Article content storage, cursor pagination and provisional identity remap."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from sqlalchemy import func
from sqlmodel import Session, col, select

from feed_archive.errors import CacheValidationError
from feed_archive.models import (
    PROVISIONAL_ORIGIN_FLAG,
    SENTINEL_ACCOUNT_ID,
    AccountPatch,
    ArticleRecord,
    ArticleWrite,
    PublishPageResult,
    article_key,
    split_article_key,
)
from feed_archive.storage.common import dump_json
from feed_archive.storage.database import CacheDatabase
from feed_archive.storage.sqlmodel_models import ArticleRow
from feed_archive.stores.accounts import apply_sync_patch

logger = logging.getLogger(__name__)

# Payload fields mirrored into dedicated columns.
_COLUMN_FIELDS = ("account_id", "article_id", "link", "create_time")


class ArticleStore:
    """Sole source of truth for the article payload to link mapping.

    A link identifies at most one live record. Records owned by
    ``SENTINEL_ACCOUNT_ID`` are provisional and get folded into the real
    account namespace by ``remap_identity``.
    """

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def put(self, key: str, article: ArticleWrite) -> ArticleRecord:
        """Replace the record stored under ``key``.

        Another record holding the same link is removed in the same
        transaction.
        """

        _validate_write(key, article)
        with self.database.transaction() as session:
            return _to_record(put_article(session, key, article))

    def get(self, key: str) -> ArticleRecord | None:
        with self.database.read() as session:
            row = session.get(ArticleRow, key)
            return _to_record(row) if row is not None else None

    def delete(self, key: str) -> bool:
        with self.database.transaction() as session:
            row = session.get(ArticleRow, key)
            if row is None:
                return False
            session.delete(row)
            return True

    def get_by_link(self, link: str) -> ArticleRecord | None:
        if not link:
            return None
        with self.database.read() as session:
            row = _row_by_link(session, link)
            return _to_record(row) if row is not None else None

    def get_provisional_by_link(self, link: str) -> ArticleRecord | None:
        if not link:
            return None
        with self.database.read() as session:
            row = _provisional_row(session, link)
            return _to_record(row) if row is not None else None

    def cursor_page(self, account_id: str, before_create_time: int | None) -> list[ArticleRecord]:
        """Records of ``account_id`` strictly older than the cursor, newest first.

        Equal create_time values are ordered by key descending.
        """

        _validate_cursor(account_id, before_create_time)
        with self.database.read() as session:
            rows = session.exec(
                select(ArticleRow)
                .where(
                    ArticleRow.account_id == account_id,
                    col(ArticleRow.create_time) < before_create_time,
                )
                .order_by(col(ArticleRow.create_time).desc(), col(ArticleRow.id).desc()),
            ).all()
            return [_to_record(row) for row in rows]

    def exists_before(self, account_id: str, before_create_time: int | None) -> bool:
        _validate_cursor(account_id, before_create_time)
        with self.database.read() as session:
            count = session.exec(
                select(func.count())
                .select_from(ArticleRow)
                .where(
                    ArticleRow.account_id == account_id,
                    col(ArticleRow.create_time) < before_create_time,
                ),
            ).one()
        return int(count) > 0

    def remap_identity(self, link: str, resolved_account_id: str) -> ArticleRecord | None:
        """Move the provisional record for ``link`` under ``resolved_account_id``.

        Delete and insert commit together or not at all. Without a
        provisional record the store is left untouched and the current
        record for the link (if any) is returned, which makes repeated calls
        idempotent.
        """

        if not link:
            raise CacheValidationError("link is required")
        if not resolved_account_id or resolved_account_id == SENTINEL_ACCOUNT_ID:
            raise CacheValidationError("a resolved account_id is required")

        with self.database.transaction() as session:
            provisional = _provisional_row(session, link)
            if provisional is None:
                current = _row_by_link(session, link)
                return _to_record(current) if current is not None else None

            provisional_key = provisional.id
            canonical_key = article_key(resolved_account_id, provisional.article_id)
            session.delete(provisional)
            displaced = session.get(ArticleRow, canonical_key)
            if displaced is not None:
                session.delete(displaced)
            session.flush()
            canonical = _canonical_row(provisional, resolved_account_id)
            session.add(canonical)
            session.flush()
            logger.info(
                "Remapped provisional article %s to %s (link=%s)",
                provisional_key,
                canonical.id,
                link,
            )
            return _to_record(canonical)

    def mark_deleted(self, link: str, *, is_deleted: bool = True) -> bool:
        """Flag the article for ``link`` as removed upstream."""

        return self._update_payload(link, {"is_deleted": is_deleted})

    def update_status(self, link: str, status: str) -> bool:
        return self._update_payload(link, {"_status": status})

    def ingest_publish_page(
        self,
        account: AccountPatch,
        messages: Sequence[Sequence[ArticleWrite]],
        *,
        total_count: int,
    ) -> PublishPageResult:
        """Cache one crawled publish page and fold its counters into the account.

        A message counts once when at least one of its articles was not
        cached before. An empty page means the crawl reached the end of the
        feed.
        """

        if not account.account_id:
            raise CacheValidationError("account_id is required")
        owned = [
            [
                ArticleWrite(
                    account_id=account.account_id,
                    article_id=article.article_id,
                    link=article.link,
                    create_time=article.create_time,
                    payload={**article.payload, "_status": ""},
                )
                for article in message
            ]
            for message in messages
        ]
        for message in owned:
            for article in message:
                _validate_write(article_key(article.account_id, article.article_id), article)

        with self.database.transaction() as session:
            existing_keys = set(
                session.exec(
                    select(ArticleRow.id).where(ArticleRow.account_id == account.account_id),
                ).all(),
            )
            messages_added = 0
            articles_added = 0
            for message in owned:
                new_entries = 0
                for article in message:
                    key = article_key(article.account_id, article.article_id)
                    put_article(session, key, article)
                    if key not in existing_keys:
                        existing_keys.add(key)
                        new_entries += 1
                articles_added += new_entries
                if new_entries > 0:
                    messages_added += 1

            completed = len(messages) == 0
            apply_sync_patch(
                session,
                AccountPatch(
                    account_id=account.account_id,
                    completed=completed,
                    count=messages_added,
                    articles=articles_added,
                    total_count=total_count,
                    nickname=account.nickname,
                    avatar=account.avatar,
                ),
            )

        logger.info(
            "Cached publish page for %s: messages=%d articles=%d completed=%s",
            account.account_id,
            messages_added,
            articles_added,
            completed,
        )
        return PublishPageResult(
            messages_added=messages_added,
            articles_added=articles_added,
            completed=completed,
        )

    def _update_payload(self, link: str, changes: dict[str, object]) -> bool:
        if not link:
            raise CacheValidationError("link is required")
        with self.database.transaction() as session:
            row = _row_by_link(session, link)
            if row is None:
                return False
            data = json.loads(row.data)
            data.update(changes)
            row.data = dump_json(data)
            session.add(row)
            return True


def put_article(session: Session, key: str, article: ArticleWrite) -> ArticleRow:
    """Insert-or-replace inside the caller's transaction."""

    data = dump_json(_payload_document(article))
    holder = _row_by_link(session, article.link)
    if holder is not None and holder.id != key:
        session.delete(holder)
        session.flush()

    row = session.get(ArticleRow, key)
    if row is None:
        row = ArticleRow(
            id=key,
            account_id=article.account_id,
            article_id=article.article_id,
            link=article.link,
            create_time=article.create_time,
            data=data,
        )
    else:
        row.account_id = article.account_id
        row.article_id = article.article_id
        row.link = article.link
        row.create_time = article.create_time
        row.data = data
    session.add(row)
    session.flush()
    return row


def _canonical_row(provisional: ArticleRow, resolved_account_id: str) -> ArticleRow:
    data = json.loads(provisional.data)
    data["account_id"] = resolved_account_id
    data[PROVISIONAL_ORIGIN_FLAG] = True
    return ArticleRow(
        id=article_key(resolved_account_id, provisional.article_id),
        account_id=resolved_account_id,
        article_id=provisional.article_id,
        link=provisional.link,
        create_time=provisional.create_time,
        data=dump_json(data),
    )


def _row_by_link(session: Session, link: str) -> ArticleRow | None:
    return session.exec(select(ArticleRow).where(ArticleRow.link == link)).one_or_none()


def _provisional_row(session: Session, link: str) -> ArticleRow | None:
    return session.exec(
        select(ArticleRow).where(
            ArticleRow.link == link,
            ArticleRow.account_id == SENTINEL_ACCOUNT_ID,
        ),
    ).one_or_none()


def _payload_document(article: ArticleWrite) -> dict[str, object]:
    return {
        **article.payload,
        "account_id": article.account_id,
        "article_id": article.article_id,
        "link": article.link,
        "create_time": article.create_time,
    }


def _to_record(row: ArticleRow) -> ArticleRecord:
    data = json.loads(row.data)
    payload = {name: value for name, value in data.items() if name not in _COLUMN_FIELDS}
    return ArticleRecord(
        key=row.id,
        account_id=row.account_id,
        article_id=row.article_id,
        link=row.link,
        create_time=row.create_time,
        payload=payload,
    )


def _validate_write(key: str, article: ArticleWrite) -> None:
    if not key:
        raise CacheValidationError("article key is required")
    if not article.account_id:
        raise CacheValidationError("account_id is required")
    if not article.article_id:
        raise CacheValidationError("article_id is required")
    if not article.link:
        raise CacheValidationError("link is required")
    try:
        key_account_id, key_article_id = split_article_key(key)
    except ValueError as error:
        raise CacheValidationError(str(error)) from error
    if key_account_id != article.account_id or key_article_id != article.article_id:
        raise CacheValidationError(
            f"Article key {key!r} does not match account_id={article.account_id!r} "
            f"article_id={article.article_id!r}",
        )


def _validate_cursor(account_id: str | None, before_create_time: int | None) -> None:
    if not account_id:
        raise CacheValidationError("account_id is required")
    if before_create_time is None:
        raise CacheValidationError("before_create_time is required")
