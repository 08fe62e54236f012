"""CLI entrypoint for feed-archive."""

from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from feed_archive import __version__
from feed_archive.controllers import (
    CacheCliController,
    DeleteAccountsCommand,
    ExportCleanExpiredCommand,
    ExportCliController,
    ExportCreateCommand,
    ExportDeleteCommand,
    ExportListCommand,
    ImportAccountsCommand,
    MigrateTableCommand,
    RemapArticleCommand,
    ShowAccountCommand,
    StoreResetCommand,
)
from feed_archive.errors import JobOwnershipError, TransactionFailure
from feed_archive.models import ExportFormat

click.rich_click.USE_MARKDOWN = True
CACHE_CONTROLLER = CacheCliController()
EXPORT_CONTROLLER = ExportCliController()

_CommandT = TypeVar("_CommandT")


@click.group()
@click.version_option(version=__version__, prog_name="feed-archive")
def feed_archive() -> None:
    """Local cache of archived account feeds."""


@feed_archive.group()
def store() -> None:
    """Cache store maintenance commands."""


@store.command("reset")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--yes", is_flag=True, default=False, help="Skip the confirmation prompt.")
def store_reset(db_path: Path | None, yes: bool) -> None:
    """Delete every cached record in one transaction."""

    if not yes:
        click.confirm("Wipe every cached account, article and blob?", abort=True)
    _emit_lines(_invoke(CACHE_CONTROLLER.reset, StoreResetCommand(db_path=db_path)))


@store.command("import-accounts")
@click.argument("source_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def store_import_accounts(source_file: Path, db_path: Path | None) -> None:
    """Import an account list from a JSON file.

    The file holds a list of objects with `account_id`, `nickname` and `avatar`.
    Imported accounts start with zeroed counters.
    """

    _emit_lines(
        _invoke(
            CACHE_CONTROLLER.import_accounts,
            ImportAccountsCommand(db_path=db_path, source_file=source_file),
        ),
    )


@store.command("delete-accounts")
@click.argument("account_ids", nargs=-1, required=True)
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def store_delete_accounts(account_ids: tuple[str, ...], db_path: Path | None) -> None:
    """Purge accounts together with their articles, blobs and side-channel data."""

    _emit_lines(
        _invoke(
            CACHE_CONTROLLER.delete_accounts,
            DeleteAccountsCommand(db_path=db_path, account_ids=account_ids),
        ),
    )


@store.command("migrate")
@click.argument("table")
@click.argument("source_file", type=click.Path(path_type=Path, exists=True, dir_okay=False))
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def store_migrate(table: str, source_file: Path, db_path: Path | None) -> None:
    """Import legacy rows for one cache table from a JSON dump.

    Blob rows carry their bytes base64-encoded in the `file` field.
    """

    _emit_lines(
        _invoke(
            CACHE_CONTROLLER.migrate,
            MigrateTableCommand(db_path=db_path, table=table, source_file=source_file),
        ),
    )


@store.command("account")
@click.argument("account_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def store_account(account_id: str, db_path: Path | None) -> None:
    """Show the sync aggregate of one account."""

    _emit_lines(
        _invoke(
            CACHE_CONTROLLER.show_account,
            ShowAccountCommand(db_path=db_path, account_id=account_id),
        ),
    )


@store.command("remap")
@click.argument("link")
@click.argument("account_id")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def store_remap(link: str, account_id: str, db_path: Path | None) -> None:
    """Move a single-article fetch under its resolved account."""

    _emit_lines(
        _invoke(
            CACHE_CONTROLLER.remap,
            RemapArticleCommand(db_path=db_path, link=link, account_id=account_id),
        ),
    )


@feed_archive.group()
def export() -> None:
    """Export job commands."""


@export.command("create")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--format",
    "export_format",
    type=click.Choice([export_format.value for export_format in ExportFormat]),
    required=True,
    help="Output format of the export.",
)
@click.option(
    "--link",
    "links",
    multiple=True,
    required=True,
    help="Article link to export. Can be repeated.",
)
@click.option("--account-id", default=None, help="Optional owning account of the links.")
def export_create(
    db_path: Path | None,
    export_format: str,
    links: tuple[str, ...],
    account_id: str | None,
) -> None:
    """Create an export job for cached articles.

    The job renders in the background; the command reports its final status
    once it has finished.
    """

    _emit_lines(
        _invoke(
            EXPORT_CONTROLLER.create,
            ExportCreateCommand(
                db_path=db_path,
                export_format=export_format,
                links=links,
                account_id=account_id,
            ),
        ),
    )


@export.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def export_list(db_path: Path | None) -> None:
    """List export jobs of the configured user, newest first."""

    _emit_lines(_invoke(EXPORT_CONTROLLER.list_jobs, ExportListCommand(db_path=db_path)))


@export.command("clean-expired")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def export_clean_expired(db_path: Path | None) -> None:
    """Remove export jobs past their expiry together with their files."""

    _emit_lines(
        _invoke(EXPORT_CONTROLLER.clean_expired, ExportCleanExpiredCommand(db_path=db_path)),
    )


@export.command("delete")
@click.argument("job_id", type=int)
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def export_delete(job_id: int, db_path: Path | None) -> None:
    """Cancel an export job and remove its output file."""

    _emit_lines(
        _invoke(EXPORT_CONTROLLER.delete, ExportDeleteCommand(db_path=db_path, job_id=job_id)),
    )


def _invoke(action: Callable[[_CommandT], list[str]], command: _CommandT) -> list[str]:
    try:
        return action(command)
    except (ValueError, JobOwnershipError, TransactionFailure) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    feed_archive()
