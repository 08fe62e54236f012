"""Per-entity stores sharing one cache database handle."""

from __future__ import annotations

from dataclasses import dataclass

from feed_archive.storage.database import CacheDatabase
from feed_archive.stores.accounts import AccountStore
from feed_archive.stores.articles import ArticleStore
from feed_archive.stores.blobs import AssetStore, HtmlSnapshotStore, ResourceStore
from feed_archive.stores.maintenance import CacheMaintenance
from feed_archive.stores.side_channel import (
    CommentReplyStore,
    CommentStore,
    MetadataStore,
    ResourceMapStore,
)


@dataclass(slots=True)
class CacheStores:
    """Every store wired to the same database."""

    database: CacheDatabase
    accounts: AccountStore
    articles: ArticleStore
    html: HtmlSnapshotStore
    assets: AssetStore
    resources: ResourceStore
    resource_maps: ResourceMapStore
    comments: CommentStore
    comment_replies: CommentReplyStore
    metadata: MetadataStore
    maintenance: CacheMaintenance

    @classmethod
    def for_database(cls, database: CacheDatabase) -> CacheStores:
        return cls(
            database=database,
            accounts=AccountStore(database),
            articles=ArticleStore(database),
            html=HtmlSnapshotStore(database),
            assets=AssetStore(database),
            resources=ResourceStore(database),
            resource_maps=ResourceMapStore(database),
            comments=CommentStore(database),
            comment_replies=CommentReplyStore(database),
            metadata=MetadataStore(database),
            maintenance=CacheMaintenance(database),
        )


__all__ = [
    "AccountStore",
    "ArticleStore",
    "AssetStore",
    "CacheMaintenance",
    "CacheStores",
    "CommentReplyStore",
    "CommentStore",
    "HtmlSnapshotStore",
    "MetadataStore",
    "ResourceMapStore",
    "ResourceStore",
]
