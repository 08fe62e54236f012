"""Runtime configuration for the cache and the export pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class StorageSettings:
    """SQLite storage settings."""

    db_path: Path = Path(".data/feed_archive.sqlite")
    busy_timeout_ms: int = 5_000


@dataclass(slots=True)
class ExportSettings:
    """Export job settings."""

    export_dir: Path = Path(".data/exports")
    max_links: int = 1_000
    expiry_hours: int = 24


@dataclass(slots=True)
class UserContextSettings:
    """Identity used for export jobs started from the CLI."""

    user_id: str = "default_user"


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    storage: StorageSettings = field(default_factory=StorageSettings)
    export: ExportSettings = field(default_factory=ExportSettings)
    user_context: UserContextSettings = field(default_factory=UserContextSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        return cls(
            storage=StorageSettings(
                db_path=db_path
                or Path(os.getenv("FEED_ARCHIVE_DB_PATH", ".data/feed_archive.sqlite")),
                busy_timeout_ms=_env_int("FEED_ARCHIVE_SQLITE_BUSY_TIMEOUT_MS", 5_000),
            ),
            export=ExportSettings(
                export_dir=Path(os.getenv("FEED_ARCHIVE_EXPORT_DIR", ".data/exports")),
                max_links=_env_int("FEED_ARCHIVE_EXPORT_MAX_LINKS", 1_000),
                expiry_hours=_env_int("FEED_ARCHIVE_EXPORT_EXPIRY_HOURS", 24),
            ),
            user_context=UserContextSettings(
                user_id=os.getenv("FEED_ARCHIVE_USER_ID", "default_user"),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for values the storage or export layer cannot use."""

        if self.storage.busy_timeout_ms <= 0:
            raise ValueError("FEED_ARCHIVE_SQLITE_BUSY_TIMEOUT_MS must be > 0.")
        if self.export.max_links <= 0:
            raise ValueError("FEED_ARCHIVE_EXPORT_MAX_LINKS must be > 0.")
        if self.export.expiry_hours <= 0:
            raise ValueError("FEED_ARCHIVE_EXPORT_EXPIRY_HOURS must be > 0.")
        if not self.user_context.user_id.strip():
            raise ValueError("FEED_ARCHIVE_USER_ID must not be empty.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error
