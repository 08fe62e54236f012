"""Binary snapshot caches keyed by canonical URL.

Payloads are opaque: stored and returned byte for byte, never inspected.
"""

from __future__ import annotations

from sqlmodel import SQLModel

from feed_archive.errors import CacheValidationError
from feed_archive.models import BinaryBlob, HtmlSnapshot
from feed_archive.storage.database import CacheDatabase
from feed_archive.storage.sqlmodel_models import AssetRow, HtmlSnapshotRow, ResourceRow


class HtmlSnapshotStore:
    """Rendered article HTML with the comment id needed to fetch its comments."""

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def put(
        self,
        url: str,
        account_id: str,
        file: bytes,
        *,
        title: str = "",
        comment_id: str | None = None,
    ) -> None:
        _require_url(url)
        with self.database.transaction() as session:
            row = session.get(HtmlSnapshotRow, url)
            if row is None:
                row = HtmlSnapshotRow(url=url, account_id=account_id, title=title, file=file)
            row.account_id = account_id
            row.title = title
            row.file = bytes(file)
            row.comment_id = comment_id
            session.add(row)

    def get(self, url: str) -> HtmlSnapshot | None:
        if not url:
            return None
        with self.database.read() as session:
            row = session.get(HtmlSnapshotRow, url)
            if row is None:
                return None
            return HtmlSnapshot(
                url=row.url,
                account_id=row.account_id,
                title=row.title,
                file=bytes(row.file),
                comment_id=row.comment_id,
            )

    def delete(self, url: str) -> None:
        _delete_by_url(self.database, HtmlSnapshotRow, url)


class _BinaryBlobStore:
    row_type: type[AssetRow] | type[ResourceRow]

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def put(self, url: str, account_id: str, file: bytes) -> None:
        _require_url(url)
        with self.database.transaction() as session:
            row = session.get(self.row_type, url)
            if row is None:
                row = self.row_type(url=url, account_id=account_id, file=file)
            row.account_id = account_id
            row.file = bytes(file)
            session.add(row)

    def get(self, url: str) -> BinaryBlob | None:
        if not url:
            return None
        with self.database.read() as session:
            row = session.get(self.row_type, url)
            if row is None:
                return None
            return BinaryBlob(url=row.url, account_id=row.account_id, file=bytes(row.file))

    def delete(self, url: str) -> None:
        _delete_by_url(self.database, self.row_type, url)


class AssetStore(_BinaryBlobStore):
    """Standalone assets (images, media) referenced by articles."""

    row_type = AssetRow


class ResourceStore(_BinaryBlobStore):
    """Page resources (stylesheets, scripts) listed in resource maps."""

    row_type = ResourceRow


def _delete_by_url(database: CacheDatabase, row_type: type[SQLModel], url: str) -> None:
    if not url:
        return
    with database.transaction() as session:
        row = session.get(row_type, url)
        if row is not None:
            session.delete(row)


def _require_url(url: str) -> None:
    if not url:
        raise CacheValidationError("url is required")
