from __future__ import annotations

import dataclasses
import logging
import threading
import zipfile
from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

import allure
import pytest

from feed_archive.config import ExportSettings
from feed_archive.errors import CacheValidationError, JobOwnershipError
from feed_archive.export import ExportService, JobHandle
from feed_archive.export.renderers import ProgressCallback
from feed_archive.models import (
    ArticleWrite,
    ExportBundle,
    ExportFormat,
    ExportJobStatus,
    ExportJobView,
)
from feed_archive.storage.common import utc_now
from feed_archive.storage.database import CacheDatabase
from feed_archive.storage.sqlmodel_models import ExportJobRow
from feed_archive.stores import CacheStores

pytestmark = [
    allure.epic("Feed Archive Export"),
    allure.feature("Export Jobs"),
]

LINK = "https://mp.example.com/s/article-a1"
MISSING_LINK = "https://mp.example.com/s/not-cached"


class _FailingRenderer:
    def render(
        self,
        bundle: ExportBundle,
        destination: Path,
        *,
        handle: JobHandle,
        on_progress: ProgressCallback,
    ) -> None:
        raise RuntimeError("renderer exploded")


class _BlockingRenderer:
    def __init__(self) -> None:
        self.started = threading.Event()

    def render(
        self,
        bundle: ExportBundle,
        destination: Path,
        *,
        handle: JobHandle,
        on_progress: ProgressCallback,
    ) -> None:
        self.started.set()
        handle.cancel_event.wait(10)
        handle.raise_if_canceled()


@pytest.fixture()
def export_dir(tmp_path: Path) -> Path:
    return tmp_path / "exports"


@pytest.fixture()
def service(stores: CacheStores, export_dir: Path) -> Iterator[ExportService]:
    export_service = ExportService(stores=stores, settings=ExportSettings(export_dir=export_dir))
    yield export_service
    export_service.runner.shutdown()


def _cache_article(stores: CacheStores) -> None:
    stores.articles.put(
        "acct-1:a1",
        ArticleWrite(
            account_id="acct-1",
            article_id="a1",
            link=LINK,
            create_time=1700000000,
            payload={"title": "Launch notes"},
        ),
    )
    stores.html.put(LINK, "acct-1", b"<html>launch</html>", title="Launch notes")
    stores.metadata.put(LINK, "acct-1", {"read_num": 10})


def test_create_job_rejects_unsupported_format_before_recording(service: ExportService) -> None:
    with pytest.raises(CacheValidationError, match="Unsupported export format"):
        service.create_job("user-1", "pdf", [LINK])

    assert service.list_jobs("user-1") == []


@pytest.mark.parametrize(
    ("links", "message"),
    [
        ([], "At least one article link"),
        (["ftp://example.com/a"], "Invalid article link"),
        ([f"https://mp.example.com/s/{index}" for index in range(1001)], "At most 1000"),
    ],
)
def test_create_job_validates_links(
    service: ExportService,
    links: list[str],
    message: str,
) -> None:
    with pytest.raises(CacheValidationError, match=message):
        service.create_job("user-1", ExportFormat.JSON, links)

    assert service.list_jobs("user-1") == []


def test_html_job_completes_with_archive_of_cached_content(
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)

    job_id = service.create_job("user-1", "html", [LINK, MISSING_LINK], account_id="acct-1")
    assert service.wait(job_id, timeout=10)

    job = service.get_job("user-1", job_id)
    assert job is not None
    assert job.status is ExportJobStatus.COMPLETED
    assert job.progress == job.total == 2
    assert job.account_id == "acct-1"
    assert job.file_path is not None
    with zipfile.ZipFile(job.file_path) as archive:
        assert sorted(archive.namelist()) == ["Launch notes.html", "missing_links.txt"]
        assert archive.read("Launch notes.html") == b"<html>launch</html>"
        assert archive.read("missing_links.txt").decode() == f"{MISSING_LINK}\n"
    assert job.file_size == Path(job.file_path).stat().st_size


def test_resolve_bundle_reports_links_without_cached_article(
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)

    bundle = service.resolve_bundle(1, ExportFormat.JSON, [LINK, MISSING_LINK])

    assert [item.link for item in bundle.items] == [LINK]
    assert bundle.items[0].metadata is not None
    assert bundle.items[0].metadata.data == {"read_num": 10}
    assert bundle.items[0].comment is None
    assert bundle.missing_links == [MISSING_LINK]


def _backdate_expiry(database: CacheDatabase, job_id: int) -> None:
    with database.transaction() as session:
        row = session.get(ExportJobRow, job_id)
        assert row is not None
        row.expires_at = utc_now() - timedelta(hours=1)
        session.add(row)


def test_renderer_failure_marks_job_failed_without_reaching_caller(
    stores: CacheStores,
    export_dir: Path,
    caplog: pytest.LogCaptureFixture,
) -> None:
    _cache_article(stores)
    service = ExportService(
        stores=stores,
        settings=ExportSettings(export_dir=export_dir),
        renderers={export_format: _FailingRenderer() for export_format in ExportFormat},
    )

    with caplog.at_level(logging.ERROR, logger="feed_archive.export.runner"):
        job_id = service.create_job("user-1", "excel", [LINK])
        assert service.wait(job_id, timeout=10)
        service.runner.shutdown(cancel=False, timeout=10)

    job = service.get_job("user-1", job_id)
    assert job is not None
    assert job.status is ExportJobStatus.FAILED
    assert job.error == "renderer exploded"
    assert f"Export job {job_id} failed" in caplog.text
    assert "renderer exploded" in caplog.text
    assert list(export_dir.iterdir()) == []


def test_finished_job_leaves_runner_registry(
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)
    job_ids = [service.create_job("user-1", "json", [LINK]) for _ in range(3)]
    for job_id in job_ids:
        assert service.wait(job_id, timeout=10)
    service.runner.shutdown(cancel=False, timeout=10)

    assert all(service.runner.get(job_id) is None for job_id in job_ids)
    assert service.wait(job_ids[0]) is True


def test_delete_job_cancels_running_job(stores: CacheStores, export_dir: Path) -> None:
    _cache_article(stores)
    renderer = _BlockingRenderer()
    service = ExportService(
        stores=stores,
        settings=ExportSettings(export_dir=export_dir),
        renderers={export_format: renderer for export_format in ExportFormat},
    )

    job_id = service.create_job("user-1", "word", [LINK])
    assert renderer.started.wait(10)
    handle = service.runner.get(job_id)
    assert handle is not None

    assert service.delete_job("user-1", job_id) is True
    assert handle.wait(10)
    assert handle.canceled
    assert handle.error is None
    assert service.get_job("user-1", job_id) is None
    assert list(export_dir.iterdir()) == []
    service.runner.shutdown()


def test_delete_job_removes_file_recorded_after_lookup(
    stores: CacheStores,
    service: ExportService,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    _cache_article(stores)
    job_id = service.create_job("user-1", "json", [LINK])
    assert service.wait(job_id, timeout=10)
    job = service.get_job("user-1", job_id)
    assert job is not None and job.file_path is not None

    # Lookup sees the row as it was before the job completed.
    find_job = service.jobs.find_job

    def _find_before_completion(lookup_id: int) -> ExportJobView | None:
        found = find_job(lookup_id)
        if found is None:
            return None
        return dataclasses.replace(found, file_path=None, status=ExportJobStatus.PROCESSING)

    monkeypatch.setattr(service.jobs, "find_job", _find_before_completion)

    assert service.delete_job("user-1", job_id) is True
    assert not Path(job.file_path).exists()


def test_clean_expired_jobs_removes_rows_and_files(
    database: CacheDatabase,
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)
    expired_id = service.create_job("user-1", "json", [LINK])
    fresh_id = service.create_job("user-1", "txt", [LINK])
    for job_id in (expired_id, fresh_id):
        assert service.wait(job_id, timeout=10)
    expired = service.get_job("user-1", expired_id)
    fresh = service.get_job("user-1", fresh_id)
    assert expired is not None and expired.file_path is not None
    assert fresh is not None and fresh.file_path is not None
    _backdate_expiry(database, expired_id)

    assert service.clean_expired_jobs() == 1

    assert service.get_job("user-1", expired_id) is None
    assert not Path(expired.file_path).exists()
    assert service.get_job("user-1", fresh_id) is not None
    assert Path(fresh.file_path).exists()
    assert service.clean_expired_jobs() == 0


def test_clean_expired_jobs_honours_explicit_clock(
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)
    job_id = service.create_job("user-1", "markdown", [LINK])
    assert service.wait(job_id, timeout=10)

    assert service.clean_expired_jobs(now=utc_now() + timedelta(hours=1)) == 0
    assert service.clean_expired_jobs(now=utc_now() + timedelta(hours=25)) == 1
    assert service.list_jobs("user-1") == []


def test_delete_job_is_idempotent_and_removes_file(
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)
    job_id = service.create_job("user-1", "json", [LINK])
    assert service.wait(job_id, timeout=10)
    job = service.get_job("user-1", job_id)
    assert job is not None and job.file_path is not None

    assert service.delete_job("user-1", job_id) is True
    assert service.delete_job("user-1", job_id) is False
    assert not Path(job.file_path).exists()


def test_delete_job_of_another_user_is_rejected(
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)
    job_id = service.create_job("owner", "txt", [LINK])
    assert service.wait(job_id, timeout=10)

    with pytest.raises(JobOwnershipError):
        service.delete_job("intruder", job_id)

    assert service.get_job("intruder", job_id) is None
    assert service.get_job("owner", job_id) is not None


def test_list_jobs_returns_newest_first_for_user_only(
    stores: CacheStores,
    service: ExportService,
) -> None:
    _cache_article(stores)
    first = service.create_job("user-1", "markdown", [LINK])
    second = service.create_job("user-1", "json", [LINK])
    other = service.create_job("user-2", "json", [LINK])
    for job_id in (first, second, other):
        assert service.wait(job_id, timeout=10)

    assert [job.job_id for job in service.list_jobs("user-1")] == [second, first]
