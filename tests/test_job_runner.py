from __future__ import annotations

import logging
import threading

import allure
import pytest

from feed_archive.export.runner import BackgroundJobRunner, JobHandle

pytestmark = [
    allure.epic("Feed Archive Export"),
    allure.feature("Background Execution"),
]


def test_submit_returns_before_job_finishes() -> None:
    runner = BackgroundJobRunner()
    release = threading.Event()

    handle = runner.submit(1, lambda _handle: release.wait(10))

    assert handle.done is False
    release.set()
    assert handle.wait(10)
    assert handle.error is None
    assert handle.thread is not None
    assert handle.thread.name == "export-job-1"


def test_job_failure_is_kept_on_handle_and_logged(caplog: pytest.LogCaptureFixture) -> None:
    runner = BackgroundJobRunner()

    def _body(_handle: JobHandle) -> None:
        raise ValueError("bad bundle")

    with caplog.at_level(logging.ERROR, logger="feed_archive.export.runner"):
        handle = runner.submit(7, _body)
        assert handle.wait(10)

    assert isinstance(handle.error, ValueError)
    assert "Export job 7 failed" in caplog.text


def test_cancel_sets_token_observed_by_job() -> None:
    runner = BackgroundJobRunner()
    started = threading.Event()

    def _body(handle: JobHandle) -> None:
        started.set()
        handle.cancel_event.wait(10)
        handle.raise_if_canceled()

    handle = runner.submit(3, _body)
    assert started.wait(10)

    assert runner.cancel(3) is True
    assert handle.wait(10)
    assert handle.canceled
    assert handle.error is None
    assert runner.cancel(3) is False
    assert runner.cancel(99) is False


def test_shutdown_cancels_and_joins_running_jobs() -> None:
    runner = BackgroundJobRunner()

    handle = runner.submit(5, lambda job: job.cancel_event.wait(10))
    runner.shutdown(timeout=10)

    assert handle.done
    assert handle.canceled


def test_shutdown_without_cancel_drains_running_jobs() -> None:
    runner = BackgroundJobRunner()
    started = threading.Event()
    finished: list[int] = []

    def _body(handle: JobHandle) -> None:
        started.set()
        # Finishes on its own unless the token is set first.
        if handle.cancel_event.wait(0.2):
            handle.raise_if_canceled()
        finished.append(handle.job_id)

    handle = runner.submit(11, _body)
    assert started.wait(10)
    runner.shutdown(cancel=False, timeout=10)

    assert handle.done
    assert not handle.canceled
    assert handle.error is None
    assert finished == [11]


def test_finished_jobs_are_dropped_from_registry() -> None:
    runner = BackgroundJobRunner()

    handles = [runner.submit(job_id, lambda _handle: None) for job_id in range(20)]
    for handle in handles:
        assert handle.wait(10)

    assert all(runner.get(job_id) is None for job_id in range(20))
    assert runner.cancel(0) is False
