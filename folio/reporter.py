"""Progress reporting.

The active :class:`Reporter` lives on a context-local stack and is reached
through the module-level :data:`reporter` proxy.  With nothing pushed, a
:class:`NullReporter` answers, which still turns job failures into warnings.
"""
from __future__ import annotations

import copy
import dataclasses
import enum
import sys
import threading
import time
import traceback
import warnings
from contextlib import contextmanager
from traceback import TracebackException
from typing import Any
from typing import Callable
from typing import Iterable
from typing import Iterator
from typing import NamedTuple
from typing import TYPE_CHECKING
from typing import TypedDict

import click
from werkzeug.local import LocalProxy
from werkzeug.local import LocalStack

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if sys.version_info >= (3, 12):
    from typing import Unpack
else:
    from typing_extensions import Unpack

if TYPE_CHECKING:
    from _typeshed import Unused

    from folio.builder import Builder
    from folio.jobs import Job
    from folio.tracker import FingerprintRow
    from folio.typing import ExcInfo


class Verbosity(enum.IntEnum):
    SUMMARY = 0
    BUILD_INFO = 1  # also tracebacks
    SKIPPED_JOBS = 2
    JOB_INTERNALS = 3
    DEBUG = 4


class JobExceptionWarning(UserWarning):
    """Issued for a failed job by reporters which do not display failures."""

    def __init__(self, *args: Any, tb_exc: TracebackException, job: Job):
        super().__init__(*args)
        self.tb_exc = tb_exc
        self.job = job


JobChangeCallback = Callable[["Job"], None]


@dataclasses.dataclass(frozen=True)
class ReportScope:
    """What the reporting thread is currently working on."""

    builder: Builder | None = None
    phase: str | None = None
    job: Job | None = None


_reporter_stack: LocalStack[Reporter] = LocalStack()


class Reporter:
    # Shared by all reporters (and their per-thread copies).
    _change_callbacks: set[JobChangeCallback] = set()

    def __init__(self, verbosity: int = 0):
        self.verbosity = verbosity
        self.scope = ReportScope()

    def copy(self) -> Self:
        """A shallow copy for use by another thread.

        The scope is immutable, so the copy can move in and out of jobs
        without disturbing the original.
        """
        return copy.copy(self)

    def push(self) -> None:
        _reporter_stack.push(self)

    @staticmethod
    def pop() -> None:
        _reporter_stack.pop()

    def __enter__(self) -> Self:
        self.push()
        return self

    def __exit__(self, exc_type: Unused, exc_value: Unused, tb: Unused) -> None:
        self.pop()

    @contextmanager
    def _scoped(self, **changes: Any) -> Iterator[float]:
        outer = self.scope
        self.scope = dataclasses.replace(outer, **changes)
        try:
            yield time.monotonic()
        finally:
            self.scope = outer

    @property
    def builder(self) -> Builder | None:
        return self.scope.builder

    @property
    def current_phase(self) -> str | None:
        return self.scope.phase

    @property
    def current_job(self) -> Job | None:
        return self.scope.job

    @property
    def show_build_info(self) -> bool:
        return self.verbosity >= Verbosity.BUILD_INFO

    @property
    def show_tracebacks(self) -> bool:
        return self.verbosity >= Verbosity.BUILD_INFO

    @property
    def show_skipped_jobs(self) -> bool:
        return self.verbosity >= Verbosity.SKIPPED_JOBS

    @property
    def show_job_internals(self) -> bool:
        return self.verbosity >= Verbosity.JOB_INTERNALS

    @property
    def show_debug_info(self) -> bool:
        return self.verbosity >= Verbosity.DEBUG

    @contextmanager
    def build(self, activity: str, builder: Builder) -> Iterator[None]:
        with self._scoped(builder=builder) as start_time:
            self.start_build(activity)
            try:
                yield
            finally:
                self.finish_build(activity, start_time)

    @contextmanager
    def build_phase(self, name: str) -> Iterator[None]:
        with self._scoped(phase=name) as start_time:
            self.enter_phase()
            try:
                yield
            finally:
                self.leave_phase(start_time)

    @contextmanager
    def run_job(self, job: Job) -> Iterator[None]:
        with self._scoped(job=job) as start_time:
            self.start_job()
            try:
                yield
            finally:
                self.finish_job(start_time)

    @contextmanager
    def on_job_executed(self, callback: JobChangeCallback) -> Iterator[None]:
        """Call ``callback(job)`` for each job that executes while active."""
        self._change_callbacks.add(callback)
        try:
            yield
        finally:
            self._change_callbacks.discard(callback)

    def start_build(self, activity: str) -> None:
        pass

    def finish_build(self, activity: str, start_time: float) -> None:
        pass

    def enter_phase(self) -> None:
        pass

    def leave_phase(self, start_time: float) -> None:
        pass

    def start_job(self) -> None:
        pass

    def finish_job(self, start_time: float) -> None:
        pass

    def report_job_result(self, job: Job, executed: bool) -> None:
        if executed:
            for callback in list(self._change_callbacks):
                callback(job)

    def report_failure(self, job: Job, exc_info: ExcInfo) -> None:
        # A failure must surface somewhere, even in unit tests that run
        # jobs without a reporter.
        tb_exc = TracebackException(*exc_info, limit=-6, compact=True)
        summary = "".join(tb_exc.format_exception_only()).rstrip()
        details = "".join(tb_exc.format(chain=True)).rstrip()
        warnings.warn(
            JobExceptionWarning(
                f"{summary}, while running job {job.id!r}\n{details}",
                tb_exc=tb_exc,
                job=job,
            ),
            stacklevel=2,
        )

    def report_phase_failure(self, phase: str, failures: int) -> None:
        pass

    def report_build_failure(self, failures: int) -> None:
        pass

    def report_dependencies(self, dependencies: Iterable[FingerprintRow]) -> None:
        for row in dependencies:
            self.report_debug_info("dependency", row.source)

    def report_debug_info(self, key: str, value: object) -> None:
        pass

    def report_generic(self, message: str) -> None:
        pass


class NullReporter(Reporter):
    pass


class _ReportData(TypedDict, total=False):
    activity: str
    exc_info: ExcInfo
    executed: bool
    failures: int
    job: Job | None
    key: str
    message: str
    phase: str | None
    value: object


class _Report(NamedTuple):
    event: str
    data: _ReportData


class BufferReporter(Reporter):
    """Records every report as an ``(event, data)`` pair."""

    def __init__(self, verbosity: int = 0):
        super().__init__(verbosity)
        self.reports: list[_Report] = []
        self._lock = threading.Lock()

    def clear(self) -> None:
        with self._lock:
            self.reports.clear()

    def _emit(self, _event: str, **data: Unpack[_ReportData]) -> None:
        with self._lock:
            self.reports.append(_Report(_event, data))

    def _data(self, event: str) -> list[_ReportData]:
        with self._lock:
            return [data for e, data in self.reports if e == event]

    def get_major_events(self) -> list[_Report]:
        with self._lock:
            return [report for report in self.reports if report.event != "debug-info"]

    def get_recorded_dependencies(self) -> set[object]:
        return {
            data["value"]
            for data in self._data("debug-info")
            if data["key"] == "dependency"
        }

    def get_failures(self) -> list[_ReportData]:
        return self._data("failure")

    def get_job_results(self) -> dict[str, bool]:
        """Map of job id to whether the job executed."""
        results = {}
        for data in self._data("job-result"):
            job = data["job"]
            assert job is not None
            results[job.id] = data["executed"]
        return results

    def get_executed_jobs(self) -> set[str]:
        return {job_id for job_id, executed in self.get_job_results().items() if executed}

    def start_build(self, activity: str) -> None:
        self._emit("start-build", activity=activity)

    def finish_build(self, activity: str, start_time: float) -> None:
        self._emit("finish-build", activity=activity)

    def enter_phase(self) -> None:
        self._emit("enter-phase", phase=self.current_phase)

    def leave_phase(self, start_time: float) -> None:
        self._emit("leave-phase", phase=self.current_phase)

    def start_job(self) -> None:
        self._emit("start-job", job=self.current_job)

    def finish_job(self, start_time: float) -> None:
        self._emit("finish-job", job=self.current_job)

    def report_job_result(self, job: Job, executed: bool) -> None:
        self._emit("job-result", job=job, executed=executed)
        super().report_job_result(job, executed)

    def report_failure(self, job: Job, exc_info: ExcInfo) -> None:
        self._emit("failure", job=job, exc_info=exc_info)

    def report_phase_failure(self, phase: str, failures: int) -> None:
        self._emit("phase-failure", phase=phase, failures=failures)

    def report_build_failure(self, failures: int) -> None:
        self._emit("build-failure", failures=failures)

    def report_debug_info(self, key: str, value: object) -> None:
        self._emit("debug-info", key=key, value=value)

    def report_generic(self, message: str) -> None:
        self._emit("generic", message=message)


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


class CliReporter(Reporter):
    """Writes one line per event to the terminal.

    Lines written from worker threads are tagged with the id of the job
    being run.
    """

    # Status letters for job lines.
    EXECUTED = click.style("U", fg="green")
    SKIPPED = click.style("X", fg="cyan")
    FAILED = click.style("E", fg="red")

    def _echo(self, text: str, **style: Any) -> None:
        if style:
            text = click.style(text, **style)
        job = self.current_job
        if job is not None and threading.current_thread() is not threading.main_thread():
            text += click.style(f" [{job.id}]", fg="cyan")
        click.echo(text)

    def start_build(self, activity: str) -> None:
        self._echo(f"Started {activity}", fg="cyan")
        builder = self.builder
        if self.show_build_info and builder is not None:
            self._echo(f"  Tree: {builder.source_dir}", fg="cyan")
            self._echo(f"  Output path: {builder.target_dir}", fg="cyan")

    def finish_build(self, activity: str, start_time: float) -> None:
        elapsed = time.monotonic() - start_time
        self._echo(f"Finished {activity} in {elapsed:.2f} sec", fg="cyan")

    def enter_phase(self) -> None:
        if self.show_build_info:
            self._echo(f"Phase {self.current_phase}", fg="magenta")

    def report_job_result(self, job: Job, executed: bool) -> None:
        if executed:
            self._echo(f" {self.EXECUTED} {job.id}")
        elif self.show_skipped_jobs:
            self._echo(f" {self.SKIPPED} {job.id}")
        super().report_job_result(job, executed)

    def report_failure(self, job: Job, exc_info: ExcInfo) -> None:
        summary = " ".join(
            "".join(traceback.format_exception_only(exc_info[0], exc_info[1])).split()
        )
        self._echo(f" {self.FAILED} {job.id} ({summary})")
        if not self.show_tracebacks:
            return
        for line in "".join(traceback.format_exception(*exc_info)).splitlines():
            if line.startswith("  File "):
                self._echo("   " + line, fg="yellow")
            elif line.startswith("    "):
                self._echo("   " + line)
            else:
                self._echo("   " + line, fg="red")

    def report_phase_failure(self, phase: str, failures: int) -> None:
        self._echo(
            f"Phase {phase} had {_plural(failures, 'failed job')}; "
            "skipping the remaining phases.",
            fg="red",
        )

    def report_build_failure(self, failures: int) -> None:
        self._echo(f"Error: Build failed with {_plural(failures, 'failure')}.", fg="red")

    def report_dependencies(self, dependencies: Iterable[FingerprintRow]) -> None:
        if self.show_job_internals:
            for row in dependencies:
                self._echo(f"  recorded: {click.style(row.source, fg='yellow')}")

    def report_debug_info(self, key: str, value: object) -> None:
        if self.show_debug_info:
            self._echo(f"  {key}: {click.style(str(value), fg='yellow')}")

    def report_generic(self, message: str) -> None:
        self._echo(str(message), fg="cyan")


null_reporter = NullReporter()


reporter: Reporter  # lie about the type


@LocalProxy  # type: ignore[no-redef]
def reporter() -> Reporter:
    rv = _reporter_stack.top
    if rv is None:
        rv = null_reporter
    return rv
