"""Export job boundary: validate, record, run out-of-band, resolve cached content."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from pathlib import Path
from urllib.parse import urlparse

from feed_archive.config import ExportSettings
from feed_archive.errors import CacheValidationError, JobOwnershipError
from feed_archive.export.renderers import ExportRenderer, default_renderers
from feed_archive.export.repository import ExportJobRepository
from feed_archive.export.runner import BackgroundJobRunner, JobCanceled, JobHandle
from feed_archive.models import (
    ExportBundle,
    ExportFormat,
    ExportItem,
    ExportJobView,
)
from feed_archive.storage.common import utc_now
from feed_archive.stores import CacheStores

logger = logging.getLogger(__name__)

_PROGRESS_EVERY = 10


class ExportService:
    """Creates export jobs and runs them without blocking the caller.

    Every requested link is resolved from the cache; nothing is fetched
    from the publishing platform.
    """

    def __init__(
        self,
        *,
        stores: CacheStores,
        settings: ExportSettings,
        runner: BackgroundJobRunner | None = None,
        renderers: Mapping[ExportFormat, ExportRenderer] | None = None,
    ) -> None:
        self.stores = stores
        self.settings = settings
        self.jobs = ExportJobRepository(stores.database)
        self.runner = runner or BackgroundJobRunner()
        self.renderers = dict(renderers) if renderers is not None else default_renderers()

    def create_job(
        self,
        user_id: str,
        export_format: ExportFormat | str,
        article_links: Sequence[str],
        account_id: str | None = None,
    ) -> int:
        """Record a pending job, start it in the background and return its id."""

        resolved_format = _parse_format(export_format)
        links = self._validate_links(article_links)
        if not user_id:
            raise CacheValidationError("user_id is required")

        job_id = self.jobs.insert_job(
            user_id=user_id,
            export_format=resolved_format,
            article_links=links,
            account_id=account_id,
            expires_after=timedelta(hours=self.settings.expiry_hours),
        )
        logger.info(
            "Created export job %s (user=%s format=%s links=%d)",
            job_id,
            user_id,
            resolved_format.value,
            len(links),
        )
        self.runner.submit(job_id, self._process_job)
        return job_id

    def get_job(self, user_id: str, job_id: int) -> ExportJobView | None:
        job = self.jobs.find_job(job_id)
        if job is None or job.user_id != user_id:
            return None
        return job

    def list_jobs(self, user_id: str, *, limit: int = 50) -> list[ExportJobView]:
        return self.jobs.list_jobs(user_id, limit=limit)

    def delete_job(self, user_id: str, job_id: int) -> bool:
        """Cancel and remove a job with its file. Deleting a missing job is a no-op."""

        job = self.jobs.find_job(job_id)
        if job is None:
            return False
        if job.user_id != user_id:
            raise JobOwnershipError(f"Export job {job_id} belongs to another user")

        self.runner.cancel(job_id)
        # The file path is taken from the row at deletion time; the job may
        # have completed after the ownership check.
        deleted = self.jobs.delete_job(job_id)
        if deleted is None:
            return False
        if deleted.file_path:
            Path(deleted.file_path).unlink(missing_ok=True)
        logger.info("Deleted export job %s (user=%s)", job_id, user_id)
        return True

    def clean_expired_jobs(self, now: datetime | None = None) -> int:
        """Remove every job past its expiry together with its output file."""

        expired = self.jobs.expired_jobs(now or utc_now())
        for job in expired:
            self.runner.cancel(job.job_id)
            if job.file_path:
                Path(job.file_path).unlink(missing_ok=True)
        removed = self.jobs.delete_jobs([job.job_id for job in expired])
        if removed:
            logger.info("Cleaned %d expired export jobs", removed)
        return removed

    def wait(self, job_id: int, timeout: float | None = None) -> bool:
        """Block until a job started by this service finishes; for CLI and tests."""

        handle = self.runner.get(job_id)
        if handle is None:
            return True
        return handle.wait(timeout)

    def resolve_bundle(
        self,
        job_id: int,
        export_format: ExportFormat,
        links: Sequence[str],
        *,
        handle: JobHandle | None = None,
    ) -> ExportBundle:
        """Collect every cached piece of content for ``links``.

        Links without a cached article land in ``missing_links``.
        """

        items: list[ExportItem] = []
        missing: list[str] = []
        for link in links:
            if handle is not None:
                handle.raise_if_canceled()
            article = self.stores.articles.get_by_link(link)
            if article is None:
                missing.append(link)
                continue
            items.append(
                ExportItem(
                    link=link,
                    article=article,
                    html=self.stores.html.get(link),
                    metadata=self.stores.metadata.get(link),
                    comment=self.stores.comments.get(link),
                ),
            )
        return ExportBundle(
            job_id=job_id,
            format=export_format,
            items=items,
            missing_links=missing,
        )

    def _process_job(self, handle: JobHandle) -> None:
        job_id = handle.job_id
        job = self.jobs.mark_processing(job_id)
        if job is None:
            return

        export_dir = self.settings.export_dir
        export_dir.mkdir(parents=True, exist_ok=True)
        destination = export_dir / f"export_{job_id}_{int(utc_now().timestamp())}.zip"

        def _on_progress(done: int) -> None:
            if done % _PROGRESS_EVERY == 0:
                self.jobs.update_progress(job_id, done)

        try:
            bundle = self.resolve_bundle(job_id, job.format, job.article_links, handle=handle)
            if bundle.missing_links:
                logger.warning(
                    "Export job %s: %d links have no cached article",
                    job_id,
                    len(bundle.missing_links),
                )
            renderer = self.renderers.get(job.format)
            if renderer is None:
                raise RuntimeError(f"No renderer registered for format {job.format.value!r}")
            renderer.render(bundle, destination, handle=handle, on_progress=_on_progress)
            handle.raise_if_canceled()
        except JobCanceled:
            destination.unlink(missing_ok=True)
            self.jobs.mark_canceled(job_id)
            raise
        except Exception as exc:
            destination.unlink(missing_ok=True)
            self.jobs.mark_failed(job_id, str(exc) or type(exc).__name__)
            raise

        if not self.jobs.mark_completed(
            job_id,
            file_path=str(destination),
            file_size=destination.stat().st_size,
        ):
            # The job was deleted while rendering.
            destination.unlink(missing_ok=True)
            return
        logger.info("Export job %s completed: %s", job_id, destination)

    def _validate_links(self, article_links: Sequence[str]) -> list[str]:
        links = [link.strip() for link in article_links]
        if not links:
            raise CacheValidationError("At least one article link is required")
        if len(links) > self.settings.max_links:
            raise CacheValidationError(
                f"At most {self.settings.max_links} article links can be exported at once",
            )
        for link in links:
            parsed = urlparse(link)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                raise CacheValidationError(f"Invalid article link: {link!r}")
        return links


def _parse_format(value: ExportFormat | str) -> ExportFormat:
    try:
        return ExportFormat(value)
    except ValueError as error:
        supported = ", ".join(export_format.value for export_format in ExportFormat)
        raise CacheValidationError(
            f"Unsupported export format {value!r}; expected one of: {supported}",
        ) from error
