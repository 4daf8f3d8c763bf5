from __future__ import annotations

import sys
import threading
from concurrent.futures import Future
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import ContextManager
from typing import TYPE_CHECKING

from folio.exception import PhaseOrderError
from folio.jobs import get_ctx
from folio.jobs import Job
from folio.jobs import JobContext
from folio.jobs import JobResult
from folio.jobs import JobTransaction
from folio.reporter import reporter

if TYPE_CHECKING:
    from _typeshed import Unused

    from folio.buildfailures import FailureController
    from folio.reporter import Reporter
    from folio.tracker import ChangeTracker


DEFAULT_CONCURRENCY = 30


def run_job(
    job: Job,
    tracker: ChangeTracker,
    failure_controller: FailureController | None = None,
) -> JobResult:
    """Run a single job in the current thread.

    The job's recorded dependencies are committed to the tracker only if the
    job executed without error.  Exceptions are captured in the result;
    ``BaseException``s which are not ``Exception``s (e.g. ``KeyboardInterrupt``)
    are re-raised after being reported.
    """
    with reporter.run_job(job), JobTransaction(tracker, job.id) as txn:
        try:
            with JobContext(txn, job):
                executed = bool(job.func())
            if executed:
                txn.commit()
        except BaseException as exc:
            exc_info = sys.exc_info()
            assert exc_info[1] is not None
            reporter.report_failure(job, exc_info)  # type: ignore[arg-type]
            if failure_controller is not None:
                failure_controller.store_failure(job.id, exc_info)  # type: ignore[arg-type]
            if not isinstance(exc, Exception):
                raise
            return JobResult(job, executed=False, exc_info=exc_info)  # type: ignore[arg-type]

        if failure_controller is not None:
            failure_controller.clear_failure(job.id)
        reporter.report_job_result(job, executed)
        return JobResult(job, executed=executed)


class WorkerPool(ContextManager["WorkerPool"]):
    """A fixed number of worker threads draining the jobs of one phase.

    Jobs are submitted by the driver only.  :meth:`wait` is the phase
    barrier: it blocks until every job submitted since the previous barrier
    has finished, then readies the pool for the next phase.
    """

    def __init__(
        self,
        tracker: ChangeTracker,
        failure_controller: FailureController | None = None,
        concurrency: int | None = None,
    ):
        if concurrency is None:
            concurrency = DEFAULT_CONCURRENCY
        self.tracker = tracker
        self.failure_controller = failure_controller
        self.concurrency = max(1, concurrency)
        self._executor = ThreadPoolExecutor(
            max_workers=self.concurrency, thread_name_prefix="folio-worker"
        )
        self._pending: list[Future[JobResult]] = []
        self._lock = threading.Lock()
        self.results: list[JobResult] = []

    def submit(self, job: Job) -> None:
        ctx = get_ctx()
        if ctx is not None and ctx.in_job:
            raise PhaseOrderError(
                f"Job {ctx.job_id!r} tried to submit {job.id!r}; "
                "jobs may only be submitted between phase barriers."
            )

        # The reporter stack is thread-local, so each job runs with a copy
        # of the submitting thread's reporter.
        reporter_copy = reporter.copy()
        future = self._executor.submit(self._run_in_thread, job, reporter_copy)
        with self._lock:
            self._pending.append(future)

    def _run_in_thread(self, job: Job, reporter_copy: Reporter) -> JobResult:
        with reporter_copy:
            return run_job(job, self.tracker, self.failure_controller)

    def wait(self) -> bool:
        """Block until all submitted jobs are done.

        Returns ``False`` if any of them failed.  The results, in submission
        order, are available as :attr:`results` until the next call.
        """
        with self._lock:
            pending, self._pending = self._pending, []
        wait_futures(pending)
        self.results = [future.result() for future in pending]
        return all(result.ok for result in self.results)

    @property
    def failures(self) -> list[JobResult]:
        return [result for result in self.results if not result.ok]

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __exit__(self, exc_type: Unused, exc_value: Unused, tb: Unused) -> None:
        self.close()
