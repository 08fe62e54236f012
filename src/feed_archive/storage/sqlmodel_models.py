"""SQLModel ORM tables for the feed archive cache."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, LargeBinary, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class AccountInfo(SQLModel, table=True):
    __tablename__ = "account_info"  # type: ignore[bad-override]

    account_id: str = Field(primary_key=True)
    completed: bool = False
    count: int = 0
    articles: int = 0
    total_count: int = 0
    nickname: str | None = None
    avatar: str | None = None
    create_time: int | None = None
    update_time: int | None = None
    last_update_time: int | None = None


class ArticleRow(SQLModel, table=True):
    __tablename__ = "articles"  # type: ignore[bad-override]
    __table_args__ = (
        UniqueConstraint("link", name="uq_articles_link"),
        Index("idx_articles_account_create_time", "account_id", "create_time"),
    )

    id: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    article_id: str
    link: str
    create_time: int = Field(index=True)
    data: str = Field(sa_column=Column(Text, nullable=False))


class HtmlSnapshotRow(SQLModel, table=True):
    __tablename__ = "html_snapshots"  # type: ignore[bad-override]

    url: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    title: str
    file: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    comment_id: str | None = None


class AssetRow(SQLModel, table=True):
    __tablename__ = "assets"  # type: ignore[bad-override]

    url: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    file: bytes = Field(sa_column=Column(LargeBinary, nullable=False))


class ResourceRow(SQLModel, table=True):
    __tablename__ = "resources"  # type: ignore[bad-override]

    url: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    file: bytes = Field(sa_column=Column(LargeBinary, nullable=False))


class ResourceMapRow(SQLModel, table=True):
    __tablename__ = "resource_maps"  # type: ignore[bad-override]

    url: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    resources: str = Field(sa_column=Column(Text, nullable=False))


class CommentRow(SQLModel, table=True):
    __tablename__ = "comments"  # type: ignore[bad-override]

    url: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    title: str
    data: str = Field(sa_column=Column(Text, nullable=False))


class CommentReplyRow(SQLModel, table=True):
    __tablename__ = "comment_replies"  # type: ignore[bad-override]

    id: str = Field(primary_key=True)
    url: str = Field(index=True)
    account_id: str = Field(index=True)
    title: str
    data: str = Field(sa_column=Column(Text, nullable=False))
    content_id: str = Field(index=True)


class MetadataRow(SQLModel, table=True):
    __tablename__ = "article_metadata"  # type: ignore[bad-override]

    url: str = Field(primary_key=True)
    account_id: str = Field(index=True)
    title: str
    data: str = Field(sa_column=Column(Text, nullable=False))


class ExportJobRow(SQLModel, table=True):
    __tablename__ = "export_jobs"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    format: str
    account_id: str | None = None
    article_links: str = Field(sa_column=Column(Text, nullable=False))
    total: int = 0
    progress: int = 0
    status: str = Field(index=True)
    file_path: str | None = None
    file_size: int | None = None
    error: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    expires_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))


# Every cache table, in the order bulk wipes delete them.
CACHE_TABLES: tuple[type[SQLModel], ...] = (
    ArticleRow,
    HtmlSnapshotRow,
    AssetRow,
    ResourceRow,
    ResourceMapRow,
    CommentRow,
    CommentReplyRow,
    MetadataRow,
    AccountInfo,
    ExportJobRow,
)
