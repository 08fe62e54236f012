"""Domain models exchanged with the cache stores and the export boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Placeholder owner for articles first seen through a direct link.
SENTINEL_ACCOUNT_ID = "SINGLE_ARTICLE_FAKEID"
# ASCII unit separator: never valid inside a URL or a content id.
REPLY_KEY_SEPARATOR = "\x1f"
# Payload flag kept on articles that were migrated out of the sentinel namespace.
PROVISIONAL_ORIGIN_FLAG = "_single"


def article_key(account_id: str, article_id: str) -> str:
    """Primary key of an article inside an account namespace."""

    return f"{account_id}:{article_id}"


def split_article_key(key: str) -> tuple[str, str]:
    account_id, separator, article_id = key.partition(":")
    if not separator or not account_id or not article_id:
        raise ValueError(f"Malformed article key: {key!r}")
    return account_id, article_id


@dataclass(slots=True)
class AccountPatch:
    """Crawl progress reported for one account after a sync pass."""

    account_id: str
    completed: bool = False
    count: int = 0
    articles: int = 0
    total_count: int = 0
    nickname: str | None = None
    avatar: str | None = None


@dataclass(slots=True)
class AccountAggregate:
    """Accumulated crawl progress and identity of a tracked account."""

    account_id: str
    completed: bool
    count: int
    articles: int
    total_count: int
    nickname: str | None
    avatar: str | None
    create_time: int | None
    update_time: int | None
    last_update_time: int | None = None


@dataclass(slots=True)
class ArticleWrite:
    """Article payload submitted by the crawler."""

    account_id: str
    article_id: str
    link: str
    create_time: int
    payload: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class ArticleRecord:
    """Article as stored in the cache."""

    key: str
    account_id: str
    article_id: str
    link: str
    create_time: int
    payload: dict[str, object] = field(default_factory=dict)

    @property
    def is_provisional(self) -> bool:
        return self.account_id == SENTINEL_ACCOUNT_ID

    @property
    def is_deleted(self) -> bool:
        return bool(self.payload.get("is_deleted", False))


@dataclass(slots=True)
class PublishPageResult:
    """Counters produced by caching one crawled publish page."""

    messages_added: int
    articles_added: int
    completed: bool


@dataclass(slots=True)
class HtmlSnapshot:
    url: str
    account_id: str
    title: str
    file: bytes
    comment_id: str | None = None


@dataclass(slots=True)
class BinaryBlob:
    """Asset or resource payload keyed by URL."""

    url: str
    account_id: str
    file: bytes


@dataclass(slots=True)
class ResourceMap:
    url: str
    account_id: str
    resources: list[str]


@dataclass(slots=True)
class CommentRecord:
    url: str
    account_id: str
    title: str
    data: object


@dataclass(slots=True)
class CommentReplyRecord:
    url: str
    content_id: str
    account_id: str
    title: str
    data: object


@dataclass(slots=True)
class ArticleMetadata:
    """Engagement statistics captured for an article URL."""

    url: str
    account_id: str
    title: str
    data: dict[str, object] = field(default_factory=dict)


@dataclass(slots=True)
class WipeResult:
    """Rows removed per table by a full store wipe."""

    deleted: dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.deleted.values())


@dataclass(slots=True)
class MigrationResult:
    imported: int
    failed: int


class ExportFormat(str, Enum):
    """Deliverable formats the export pipeline can render."""

    HTML = "html"
    EXCEL = "excel"
    JSON = "json"
    TXT = "txt"
    MARKDOWN = "markdown"
    WORD = "word"


class ExportJobStatus(str, Enum):
    """Lifecycle states for export jobs."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


@dataclass(slots=True)
class ExportJobView:
    job_id: int
    user_id: str
    format: ExportFormat
    account_id: str | None
    article_links: list[str]
    total: int
    progress: int
    status: ExportJobStatus
    file_path: str | None
    file_size: int | None
    error: str | None
    created_at: datetime
    completed_at: datetime | None
    expires_at: datetime | None


@dataclass(slots=True)
class ExportItem:
    """Everything the cache holds for one requested link."""

    link: str
    article: ArticleRecord
    html: HtmlSnapshot | None = None
    metadata: ArticleMetadata | None = None
    comment: CommentRecord | None = None


@dataclass(slots=True)
class ExportBundle:
    """Resolved input of one export job."""

    job_id: int
    format: ExportFormat
    items: list[ExportItem]
    missing_links: list[str] = field(default_factory=list)
