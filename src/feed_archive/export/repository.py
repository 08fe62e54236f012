"""Persistence of export job records."""

from __future__ import annotations

import json
from datetime import datetime, timedelta

from sqlmodel import col, select

from feed_archive.models import ExportFormat, ExportJobStatus, ExportJobView
from feed_archive.storage.common import dump_json, to_utc_aware_datetime, utc_now
from feed_archive.storage.database import CacheDatabase
from feed_archive.storage.sqlmodel_models import ExportJobRow


class ExportJobRepository:
    """Job rows; every state transition is its own short transaction."""

    def __init__(self, database: CacheDatabase) -> None:
        self.database = database

    def insert_job(
        self,
        *,
        user_id: str,
        export_format: ExportFormat,
        article_links: list[str],
        account_id: str | None,
        expires_after: timedelta,
    ) -> int:
        now = utc_now()
        with self.database.transaction() as session:
            row = ExportJobRow(
                user_id=user_id,
                format=export_format.value,
                account_id=account_id,
                article_links=dump_json(article_links),
                total=len(article_links),
                progress=0,
                status=ExportJobStatus.PENDING.value,
                created_at=now,
                expires_at=now + expires_after,
            )
            session.add(row)
            session.flush()
            if row.id is None:
                raise RuntimeError("Export job id was not assigned")
            return row.id

    def find_job(self, job_id: int) -> ExportJobView | None:
        """Job by id regardless of owner; ownership checks belong to the caller."""

        with self.database.read() as session:
            row = session.get(ExportJobRow, job_id)
            return _to_view(row) if row is not None else None

    def list_jobs(self, user_id: str, *, limit: int = 50) -> list[ExportJobView]:
        with self.database.read() as session:
            rows = session.exec(
                select(ExportJobRow)
                .where(ExportJobRow.user_id == user_id)
                .order_by(col(ExportJobRow.created_at).desc(), col(ExportJobRow.id).desc())
                .limit(max(1, limit)),
            ).all()
            return [_to_view(row) for row in rows]

    def delete_job(self, job_id: int) -> ExportJobView | None:
        """Delete the row and return it as it was at deletion time."""

        with self.database.transaction() as session:
            row = session.get(ExportJobRow, job_id)
            if row is None:
                return None
            deleted = _to_view(row)
            session.delete(row)
            return deleted

    def expired_jobs(self, now: datetime) -> list[ExportJobView]:
        with self.database.read() as session:
            rows = session.exec(
                select(ExportJobRow)
                .where(col(ExportJobRow.expires_at) < now)
                .order_by(col(ExportJobRow.id)),
            ).all()
            return [_to_view(row) for row in rows]

    def delete_jobs(self, job_ids: list[int]) -> int:
        if not job_ids:
            return 0
        with self.database.transaction() as session:
            rows = session.exec(
                select(ExportJobRow).where(col(ExportJobRow.id).in_(job_ids)),
            ).all()
            for row in rows:
                session.delete(row)
            return len(rows)

    def mark_processing(self, job_id: int) -> ExportJobView | None:
        with self.database.transaction() as session:
            row = session.get(ExportJobRow, job_id)
            if row is None:
                return None
            row.status = ExportJobStatus.PROCESSING.value
            session.add(row)
            session.flush()
            return _to_view(row)

    def update_progress(self, job_id: int, progress: int) -> bool:
        with self.database.transaction() as session:
            row = session.get(ExportJobRow, job_id)
            if row is None:
                return False
            row.progress = progress
            session.add(row)
            return True

    def mark_completed(self, job_id: int, *, file_path: str, file_size: int) -> bool:
        with self.database.transaction() as session:
            row = session.get(ExportJobRow, job_id)
            if row is None:
                return False
            row.status = ExportJobStatus.COMPLETED.value
            row.file_path = file_path
            row.file_size = file_size
            row.progress = row.total
            row.completed_at = utc_now()
            session.add(row)
            return True

    def mark_failed(self, job_id: int, error: str) -> bool:
        return self._finish(job_id, ExportJobStatus.FAILED, error=error)

    def mark_canceled(self, job_id: int) -> bool:
        return self._finish(job_id, ExportJobStatus.CANCELED, error=None)

    def _finish(self, job_id: int, status: ExportJobStatus, *, error: str | None) -> bool:
        with self.database.transaction() as session:
            row = session.get(ExportJobRow, job_id)
            if row is None:
                return False
            row.status = status.value
            row.error = error
            row.completed_at = utc_now()
            session.add(row)
            return True


def _to_view(row: ExportJobRow) -> ExportJobView:
    if row.id is None:
        raise RuntimeError("Export job row has no id")
    return ExportJobView(
        job_id=row.id,
        user_id=row.user_id,
        format=ExportFormat(row.format),
        account_id=row.account_id,
        article_links=[str(link) for link in json.loads(row.article_links)],
        total=row.total,
        progress=row.progress,
        status=ExportJobStatus(row.status),
        file_path=row.file_path,
        file_size=row.file_size,
        error=row.error,
        created_at=to_utc_aware_datetime(row.created_at),
        completed_at=_optional_datetime(row.completed_at),
        expires_at=_optional_datetime(row.expires_at),
    )


def _optional_datetime(value: datetime | None) -> datetime | None:
    return to_utc_aware_datetime(value) if value is not None else None
