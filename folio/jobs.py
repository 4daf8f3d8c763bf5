from __future__ import annotations

import dataclasses
import sys
from typing import Callable
from typing import TYPE_CHECKING

from werkzeug.local import LocalStack

from folio.reporter import reporter

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if TYPE_CHECKING:
    from _typeshed import StrPath
    from _typeshed import Unused

    from folio.tracker import ChangeTracker
    from folio.tracker import FileInfo
    from folio.tracker import SourceId
    from folio.typing import ExcInfo


_ctx_stack = LocalStack["JobContext"]()

JobFunc = Callable[[], bool]


@dataclasses.dataclass(frozen=True, eq=False)
class Job:
    """A deferred unit of work.

    ``func`` returns whether it executed (``False`` meaning it found nothing
    to do and skipped).  Raising signals failure.

    ``id`` names the job in reports and owns the job's change-tracking
    records.  ``group`` is an optional tag the driver uses to fold results
    of related jobs (e.g. "did any article render?").
    """

    id: str
    func: JobFunc
    group: str | None = None


@dataclasses.dataclass(frozen=True)
class JobResult:
    job: Job
    executed: bool
    exc_info: ExcInfo | None = None

    @property
    def ok(self) -> bool:
        return self.exc_info is None

    @property
    def error(self) -> BaseException | None:
        if self.exc_info is None:
            return None
        return self.exc_info[1]


class JobTransaction:
    """Collects the fingerprints of the resources a job consults.

    Nothing reaches the tracker until :meth:`commit`.  The worker pool
    commits only after the job executed without error and discards the
    collected fingerprints otherwise.
    """

    def __init__(self, tracker: ChangeTracker, job_id: str):
        self.tracker = tracker
        self.job_id = job_id
        self._dependencies: dict[SourceId, FileInfo] = {}

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: Unused, exc_value: Unused, tb: Unused) -> None:
        self.discard()

    @property
    def dependencies(self) -> list[FileInfo]:
        return list(self._dependencies.values())

    def record_dependency(self, filename: StrPath) -> FileInfo:
        tracker = self.tracker
        source_id = tracker.to_source_id(filename)
        info = self._dependencies.get(source_id)
        if info is None:
            info = self._dependencies[source_id] = tracker.get_file_info(filename)
        return info

    def commit(self) -> None:
        self.tracker.record_success(self.job_id, self.dependencies)
        reporter.report_dependencies(self.tracker.iter_records(self.job_id))
        self._dependencies.clear()

    def discard(self) -> None:
        self._dependencies.clear()


def get_ctx() -> JobContext | None:
    """Returns the current job context."""
    return _ctx_stack.top


class JobContext:
    """The thread-local record of the job currently running.

    Anything which consults a resource on behalf of a job (the build
    context's change checks, the template loader) records it here.
    """

    def __init__(self, txn: JobTransaction, job: Job | None = None):
        self.txn = txn
        self.job = job

    @property
    def job_id(self) -> str:
        return self.txn.job_id

    @property
    def in_job(self) -> bool:
        return self.job is not None

    def push(self) -> None:
        _ctx_stack.push(self)

    @staticmethod
    def pop() -> None:
        _ctx_stack.pop()

    def __enter__(self) -> Self:
        self.push()
        return self

    def __exit__(self, exc_type: Unused, exc_value: Unused, tb: Unused) -> None:
        self.pop()

    def record_dependency(self, filename: StrPath) -> FileInfo:
        return self.txn.record_dependency(filename)
