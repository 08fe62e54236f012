"""JSON payload caches keyed by article URL (or URL plus content id)."""

from __future__ import annotations

import json

from feed_archive.errors import CacheValidationError
from feed_archive.models import (
    REPLY_KEY_SEPARATOR,
    ArticleMetadata,
    CommentRecord,
    CommentReplyRecord,
    ResourceMap,
)
from feed_archive.storage.common import dump_json
from feed_archive.storage.database import CacheDatabase
from feed_archive.storage.sqlmodel_models import (
    CommentReplyRow,
    CommentRow,
    MetadataRow,
    ResourceMapRow,
)


def comment_reply_key(url: str, content_id: str) -> str:
    """Composite key; rejects components that contain the separator."""

    if not url or not content_id:
        raise CacheValidationError("url and content_id are required")
    if REPLY_KEY_SEPARATOR in url or REPLY_KEY_SEPARATOR in content_id:
        raise CacheValidationError("url and content_id must not contain the key separator")
    return f"{url}{REPLY_KEY_SEPARATOR}{content_id}"


class ResourceMapStore:
    """Ordered list of resource URLs an archived page depends on."""

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def put(self, url: str, account_id: str, resources: list[str]) -> None:
        _require_url(url)
        with self.database.transaction() as session:
            row = session.get(ResourceMapRow, url)
            if row is None:
                row = ResourceMapRow(url=url, account_id=account_id, resources="[]")
            row.account_id = account_id
            row.resources = dump_json(list(resources))
            session.add(row)

    def get(self, url: str) -> ResourceMap | None:
        if not url:
            return None
        with self.database.read() as session:
            row = session.get(ResourceMapRow, url)
            if row is None:
                return None
            return ResourceMap(
                url=row.url,
                account_id=row.account_id,
                resources=list(json.loads(row.resources)),
            )


class CommentStore:
    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def put(self, url: str, account_id: str, data: object, *, title: str = "") -> None:
        _require_url(url)
        with self.database.transaction() as session:
            row = session.get(CommentRow, url)
            if row is None:
                row = CommentRow(url=url, account_id=account_id, title=title, data="null")
            row.account_id = account_id
            row.title = title
            row.data = dump_json(data)
            session.add(row)

    def get(self, url: str) -> CommentRecord | None:
        if not url:
            return None
        with self.database.read() as session:
            row = session.get(CommentRow, url)
            if row is None:
                return None
            return CommentRecord(
                url=row.url,
                account_id=row.account_id,
                title=row.title,
                data=json.loads(row.data),
            )


class CommentReplyStore:
    """Replies to one comment, addressed by article URL and comment content id."""

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def put(
        self,
        url: str,
        content_id: str,
        account_id: str,
        data: object,
        *,
        title: str = "",
    ) -> None:
        key = comment_reply_key(url, content_id)
        with self.database.transaction() as session:
            row = session.get(CommentReplyRow, key)
            if row is None:
                row = CommentReplyRow(
                    id=key,
                    url=url,
                    account_id=account_id,
                    title=title,
                    data="null",
                    content_id=content_id,
                )
            row.account_id = account_id
            row.title = title
            row.data = dump_json(data)
            session.add(row)

    def get(self, url: str, content_id: str) -> CommentReplyRecord | None:
        if not url or not content_id:
            return None
        key = comment_reply_key(url, content_id)
        with self.database.read() as session:
            row = session.get(CommentReplyRow, key)
            if row is None:
                return None
            return CommentReplyRecord(
                url=row.url,
                content_id=row.content_id,
                account_id=row.account_id,
                title=row.title,
                data=json.loads(row.data),
            )


class MetadataStore:
    """Engagement counters (reads, likes, shares) captured per article URL."""

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def put(self, url: str, account_id: str, data: dict[str, object], *, title: str = "") -> None:
        _require_url(url)
        with self.database.transaction() as session:
            row = session.get(MetadataRow, url)
            if row is None:
                row = MetadataRow(url=url, account_id=account_id, title=title, data="{}")
            row.account_id = account_id
            row.title = title
            row.data = dump_json(dict(data))
            session.add(row)

    def get(self, url: str) -> ArticleMetadata | None:
        if not url:
            return None
        with self.database.read() as session:
            row = session.get(MetadataRow, url)
            if row is None:
                return None
            return ArticleMetadata(
                url=row.url,
                account_id=row.account_id,
                title=row.title,
                data=dict(json.loads(row.data)),
            )


def _require_url(url: str) -> None:
    if not url:
        raise CacheValidationError("url is required")
