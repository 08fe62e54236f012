"""Fire-and-forget execution of export jobs on background threads."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


class JobCanceled(Exception):
    """Raised inside a job body once its cancellation token is set."""


@dataclass(slots=True)
class JobHandle:
    """Completion and failure channel plus cancellation token of one job."""

    job_id: int
    cancel_event: threading.Event = field(default_factory=threading.Event)
    done_event: threading.Event = field(default_factory=threading.Event)
    error: BaseException | None = None
    thread: threading.Thread | None = None

    @property
    def done(self) -> bool:
        return self.done_event.is_set()

    @property
    def canceled(self) -> bool:
        return self.cancel_event.is_set()

    def cancel(self) -> None:
        self.cancel_event.set()

    def raise_if_canceled(self) -> None:
        if self.cancel_event.is_set():
            raise JobCanceled(f"Export job {self.job_id} was canceled")

    def wait(self, timeout: float | None = None) -> bool:
        return self.done_event.wait(timeout)


JobBody = Callable[[JobHandle], None]


class BackgroundJobRunner:
    """Runs each job on its own daemon thread, detached from the caller.

    ``submit`` returns immediately. Exceptions escaping a job body are
    logged and kept on the handle; they never reach the submitting thread.
    A finished job leaves the registry, so only the handle returned by
    ``submit`` outlives it.
    """

    def __init__(self, *, thread_name_prefix: str = "export-job") -> None:
        self._thread_name_prefix = thread_name_prefix
        self._handles: dict[int, JobHandle] = {}
        self._lock = threading.Lock()

    def submit(self, job_id: int, body: JobBody) -> JobHandle:
        handle = JobHandle(job_id=job_id)
        thread = threading.Thread(
            target=self._run,
            args=(handle, body),
            daemon=True,
            name=f"{self._thread_name_prefix}-{job_id}",
        )
        handle.thread = thread
        with self._lock:
            self._handles[job_id] = handle
        thread.start()
        logger.info("Export job %s started in background", job_id)
        return handle

    def get(self, job_id: int) -> JobHandle | None:
        with self._lock:
            return self._handles.get(job_id)

    def cancel(self, job_id: int) -> bool:
        handle = self.get(job_id)
        if handle is None or handle.done:
            return False
        handle.cancel()
        return True

    def shutdown(self, *, cancel: bool = True, timeout: float | None = 15.0) -> None:
        """Join every live job.

        With ``cancel=False`` the jobs are drained: each one runs to its end
        before this returns.
        """

        with self._lock:
            handles = list(self._handles.values())
        if cancel:
            for handle in handles:
                handle.cancel()
        for handle in handles:
            if handle.thread is not None:
                handle.thread.join(timeout=timeout)

    def _run(self, handle: JobHandle, body: JobBody) -> None:
        try:
            body(handle)
        except JobCanceled:
            logger.info("Export job %s canceled", handle.job_id)
        except Exception as exc:
            handle.error = exc
            logger.exception("Export job %s failed", handle.job_id)
        finally:
            with self._lock:
                if self._handles.get(handle.job_id) is handle:
                    del self._handles[handle.job_id]
            handle.done_event.set()
