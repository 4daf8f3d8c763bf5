from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Iterable
from typing import TYPE_CHECKING

from folio.jobs import get_ctx
from folio.jobs import Job
from folio.jobs import JobContext
from folio.jobs import JobFunc

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.environment import Environment
    from folio.environment.config import Config
    from folio.pool import WorkerPool
    from folio.tracker import ChangeTracker


@dataclasses.dataclass(frozen=True)
class BuildContext:
    """Per-run state threaded through every job.

    The context is an immutable value.  Derived contexts (see
    :meth:`forced_context`) are copies; deriving one never affects the
    context it came from.

    Change checks are made on behalf of the job currently running in this
    thread (or, outside of jobs, on behalf of the driver), and every
    resource checked is recorded as a dependency of that job.
    """

    source_dir: Path
    target_dir: Path
    config: Config
    env: Environment
    tracker: ChangeTracker
    pool: WorkerPool
    force: bool = False
    run_number: int = 1

    @property
    def forced(self) -> bool:
        """Whether skip-if-unchanged checks are disabled."""
        return self.force

    @property
    def first_run(self) -> bool:
        """Whether this is the first build in this process."""
        return self.run_number == 1

    def forced_context(self) -> BuildContext:
        return dataclasses.replace(self, force=True)

    def content_path(self, *parts: str) -> Path:
        return self.source_dir.joinpath("content", *parts)

    def target_path(self, *parts: str) -> Path:
        return self.target_dir.joinpath(*parts)

    @staticmethod
    def _job_ctx() -> JobContext:
        job_ctx = get_ctx()
        if job_ctx is None:
            raise RuntimeError("Change checks require a job context")
        return job_ctx

    def changed(self, path: StrPath) -> bool:
        job_ctx = self._job_ctx()
        job_ctx.record_dependency(path)
        return self.tracker.changed(job_ctx.job_id, path)

    def changed_any(self, paths: Iterable[StrPath]) -> bool:
        """Whether any of ``paths`` changed.

        Every path is recorded as a dependency, but comparison stops at the
        first change.
        """
        job_ctx = self._job_ctx()
        paths = list(paths)
        for path in paths:
            job_ctx.record_dependency(path)
        return self.tracker.changed_any(job_ctx.job_id, paths)

    def dependencies_changed(self) -> bool:
        """Whether anything the current job consulted last time has changed."""
        return self.tracker.dependencies_changed(self._job_ctx().job_id)

    def record_dependency(self, path: StrPath) -> None:
        self._job_ctx().record_dependency(path)

    def submit(self, job_id: str, func: JobFunc, group: str | None = None) -> None:
        """Submit a job to the worker pool.

        Every job depends on the project file, so editing the project
        configuration invalidates everything.
        """
        project_file = self.env.project_file

        def run() -> bool:
            if os.path.isfile(project_file):
                self.record_dependency(project_file)
            return func()

        self.pool.submit(Job(job_id, run, group))
