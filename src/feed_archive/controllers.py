"""Controllers for cache and export CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from feed_archive.config import Settings
from feed_archive.export.service import ExportService
from feed_archive.models import AccountPatch, ExportJobView
from feed_archive.storage.database import CacheDatabase
from feed_archive.stores import CacheStores


@dataclass(slots=True)
class StoreResetCommand:
    """CLI inputs for the full-store wipe."""

    db_path: Path | None


@dataclass(slots=True)
class ImportAccountsCommand:
    """CLI inputs for bulk account-list import."""

    db_path: Path | None
    source_file: Path


@dataclass(slots=True)
class DeleteAccountsCommand:
    db_path: Path | None
    account_ids: tuple[str, ...]


@dataclass(slots=True)
class MigrateTableCommand:
    """CLI inputs for legacy table import."""

    db_path: Path | None
    table: str
    source_file: Path


@dataclass(slots=True)
class ShowAccountCommand:
    db_path: Path | None
    account_id: str


@dataclass(slots=True)
class RemapArticleCommand:
    db_path: Path | None
    link: str
    account_id: str


@dataclass(slots=True)
class ExportCreateCommand:
    """CLI inputs for export job creation."""

    db_path: Path | None
    export_format: str
    links: tuple[str, ...]
    account_id: str | None


@dataclass(slots=True)
class ExportListCommand:
    db_path: Path | None


@dataclass(slots=True)
class ExportCleanExpiredCommand:
    db_path: Path | None


@dataclass(slots=True)
class ExportDeleteCommand:
    db_path: Path | None
    job_id: int


class CacheCliController:
    """Coordinates admin commands against the cache stores."""

    def reset(self, command: StoreResetCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _stores(settings) as stores:
            result = stores.maintenance.wipe_all()
        lines = [f"Cache wiped: rows_deleted={result.total}"]
        lines.extend(
            f"  {table}={count}" for table, count in sorted(result.deleted.items()) if count
        )
        return lines

    def import_accounts(self, command: ImportAccountsCommand) -> list[str]:
        settings = _settings(command.db_path)
        entries = _read_json_list(command.source_file)
        patches = [
            AccountPatch(
                account_id=str(entry.get("account_id") or ""),
                nickname=_optional_text(entry.get("nickname")),
                avatar=_optional_text(entry.get("avatar")),
            )
            for entry in entries
        ]
        with _stores(settings) as stores:
            imported = stores.maintenance.import_accounts(patches)
        return [f"Accounts imported: {imported}"]

    def delete_accounts(self, command: DeleteAccountsCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _stores(settings) as stores:
            removed = stores.maintenance.delete_accounts(command.account_ids)
        return [f"Accounts purged: ids={len(command.account_ids)} rows_deleted={removed}"]

    def migrate(self, command: MigrateTableCommand) -> list[str]:
        settings = _settings(command.db_path)
        rows = _read_json_list(command.source_file)
        with _stores(settings) as stores:
            result = stores.maintenance.migrate_rows(command.table, rows)
        return [
            f"Migrated table {command.table}: imported={result.imported} failed={result.failed}",
        ]

    def show_account(self, command: ShowAccountCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _stores(settings) as stores:
            account = stores.accounts.get(command.account_id)
        if account is None:
            return [f"Account not found: {command.account_id}"]
        return [
            f"Account {account.account_id}",
            f"  Nickname:    {account.nickname or '-'}",
            f"  Completed:   {'yes' if account.completed else 'no'}",
            f"  Messages:    {account.count}",
            f"  Articles:    {account.articles}",
            f"  Total count: {account.total_count}",
            f"  Updated:     {account.update_time if account.update_time is not None else '-'}",
        ]

    def remap(self, command: RemapArticleCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _stores(settings) as stores:
            record = stores.articles.remap_identity(command.link, command.account_id)
        if record is None:
            return [f"No article cached for link: {command.link}"]
        return [f"Article {record.key} owned by {record.account_id}"]


class ExportCliController:
    """Coordinates export job commands for the configured CLI user."""

    def create(self, command: ExportCreateCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _export_service(settings) as service:
            job_id = service.create_job(
                settings.user_context.user_id,
                command.export_format,
                command.links,
                command.account_id,
            )
            lines = [f"Export job created: id={job_id}"]
            service.wait(job_id)
            job = service.get_job(settings.user_context.user_id, job_id)
        if job is not None:
            lines.append(_format_job(job))
        return lines

    def list_jobs(self, command: ExportListCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _export_service(settings) as service:
            jobs = service.list_jobs(settings.user_context.user_id)
        if not jobs:
            return ["No export jobs found."]
        return [_format_job(job) for job in jobs]

    def clean_expired(self, command: ExportCleanExpiredCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _export_service(settings) as service:
            removed = service.clean_expired_jobs()
        return [f"Expired export jobs removed: {removed}"]

    def delete(self, command: ExportDeleteCommand) -> list[str]:
        settings = _settings(command.db_path)
        with _export_service(settings) as service:
            deleted = service.delete_job(settings.user_context.user_id, command.job_id)
        if not deleted:
            return [f"Export job {command.job_id} not found"]
        return [f"Export job {command.job_id} deleted"]


def _format_job(job: ExportJobView) -> str:
    return (
        f"job={job.job_id} format={job.format.value} status={job.status.value} "
        f"progress={job.progress}/{job.total} "
        f"file={job.file_path or '-'} error={job.error or '-'}"
    )


def _settings(db_path: Path | None) -> Settings:
    settings = Settings.from_env(db_path=db_path)
    settings.validate()
    return settings


@contextmanager
def _stores(settings: Settings) -> Iterator[CacheStores]:
    database = CacheDatabase(
        settings.storage.db_path,
        busy_timeout_ms=settings.storage.busy_timeout_ms,
    )
    database.open()
    try:
        yield CacheStores.for_database(database)
    finally:
        database.close()


@contextmanager
def _export_service(settings: Settings) -> Iterator[ExportService]:
    with _stores(settings) as stores:
        service = ExportService(stores=stores, settings=settings.export)
        try:
            yield service
        except BaseException:
            service.runner.shutdown()
            raise
        # Jobs started by this command finish before the database closes.
        service.runner.shutdown(cancel=False, timeout=None)


def _read_json_list(path: Path) -> list[dict[str, object]]:
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict) and isinstance(payload.get("accounts"), list):
        payload = payload["accounts"]
    if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
        raise ValueError(f"Expected a JSON list of objects in {path}")
    return payload


def _optional_text(value: object) -> str | None:
    return str(value) if value not in (None, "") else None
