from __future__ import annotations

import dataclasses
import os
import threading
from pathlib import Path
from typing import Callable
from typing import ContextManager
from typing import Generic
from typing import Iterable
from typing import Protocol
from typing import Sequence
from typing import TYPE_CHECKING
from typing import TypeVar

from folio.buildfailures import FailureController
from folio.context import BuildContext
from folio.environment import Environment
from folio.environment import PROJECT_FILENAME
from folio.environment.config import Config
from folio.exception import FolioException
from folio.exception import PhaseOrderError
from folio.jobs import JobContext
from folio.jobs import JobTransaction
from folio.pool import WorkerPool
from folio.reporter import reporter
from folio.tracker import ChangeTracker

if TYPE_CHECKING:
    from _typeshed import StrPath
    from _typeshed import Unused

    from folio.jobs import JobResult

_T = TypeVar("_T")

# The owner of the change-tracking records of checks made by the driver
# itself, outside of any job.
DRIVER_JOB_ID = "<build>"

META_DIR = ".folio"


@dataclasses.dataclass(frozen=True)
class Phase:
    """A set of jobs separated from the next phase by a barrier.

    ``enqueue`` submits the phase's jobs.  ``finish``, if given, is called
    with the phase's results once all of them completed successfully.
    """

    name: str
    enqueue: Callable[[BuildContext], None]
    finish: Callable[[Sequence[JobResult]], None] | None = None


def run_phases(ctx: BuildContext, phases: Iterable[Phase]) -> int:
    """Run phases in order, stopping at the first one with a failed job.

    Returns the number of failed jobs (zero on success).
    """
    pool = ctx.pool
    for phase in phases:
        with reporter.build_phase(phase.name):
            try:
                phase.enqueue(ctx)
            finally:
                # Anything already submitted must finish before we leave.
                ok = pool.wait()
            if not ok:
                failures = len(pool.failures)
                reporter.report_phase_failure(phase.name, failures)
                return failures
            if phase.finish is not None:
                phase.finish(pool.results)
    return 0


def fold_changed(results: Iterable[JobResult]) -> dict[str, bool]:
    """Map each job group to whether any job of the group executed."""
    changed: dict[str, bool] = {}
    for result in results:
        group = result.job.group
        if group is not None:
            changed[group] = changed.get(group, False) or result.executed
    return changed


class Aggregate(Generic[_T]):
    """The items produced by the jobs of one phase, for the next phase.

    Jobs :meth:`add` concurrently, each with the item's discovery order.
    After the barrier the driver calls :meth:`close`, which puts the items
    back into discovery order; only then may they be read.
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._entries: list[tuple[int, _T]] = []
        self._closed = False

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{self.__class__.__name__} {self.name!r} {state}>"

    @property
    def closed(self) -> bool:
        return self._closed

    def add(self, item: _T, order: int) -> None:
        with self._lock:
            if self._closed:
                raise PhaseOrderError(f"Aggregate {self.name!r} is already closed")
            self._entries.append((order, item))

    def close(self) -> None:
        with self._lock:
            self._entries.sort(key=lambda entry: entry[0])
            self._closed = True

    @property
    def items(self) -> list[_T]:
        if not self._closed:
            raise PhaseOrderError(
                f"Aggregate {self.name!r} read before its phase completed"
            )
        return [item for _, item in self._entries]

    def __len__(self) -> int:
        return len(self.items)


class BuildPlan(Protocol):
    def setup(self, ctx: BuildContext) -> None:
        """Prepare the target tree.  Must not submit jobs."""

    def phases(self) -> list[Phase]:
        ...


class Builder(ContextManager["Builder"]):
    """Builds a site from ``source_dir`` into ``target_dir``.

    The builder owns the state which outlives a single build: the change
    tracking database, the failure store and the worker pool.  Each call to
    :meth:`build` loads the configuration afresh and runs the site's phases.
    """

    def __init__(
        self,
        source_dir: StrPath,
        target_dir: StrPath | None = None,
        config: Config | None = None,
        concurrency: int | None = None,
        plan_factory: Callable[[], BuildPlan] | None = None,
    ):
        self.source_dir = Path(source_dir).resolve()
        self._config = config
        if target_dir is None:
            target_dir = self.load_config().target_dir
        self.target_dir = Path(os.path.join(self.source_dir, target_dir)).resolve()
        self.concurrency = concurrency

        if plan_factory is None:
            from folio.site import SiteBuild

            plan_factory = SiteBuild
        self.plan_factory = plan_factory

        self.meta_path = self.target_dir / META_DIR
        self.failure_controller = FailureController(self.target_dir)
        self.tracker = ChangeTracker(self.buildstate_database_filename, self.source_dir)
        self._pool: WorkerPool | None = None
        self.run_number = 0

    @property
    def buildstate_database_filename(self) -> Path:
        """The filename for the build state database."""
        return self.meta_path / "buildstate"

    @property
    def project_file(self) -> Path:
        return self.source_dir / PROJECT_FILENAME

    def load_config(self) -> Config:
        if self._config is not None:
            return self._config
        return Config(self.project_file)

    def get_pool(self, config: Config) -> WorkerPool:
        if self._pool is None:
            concurrency = self.concurrency
            if concurrency is None:
                concurrency = config.concurrency
            self._pool = WorkerPool(self.tracker, self.failure_controller, concurrency)
        return self._pool

    def new_context(self, config: Config, force: bool = False) -> BuildContext:
        return BuildContext(
            source_dir=self.source_dir,
            target_dir=self.target_dir,
            config=config,
            env=Environment(self.source_dir, config),
            tracker=self.tracker,
            pool=self.get_pool(config),
            force=force,
            run_number=self.run_number,
        )

    def build(self, force: bool = False) -> bool:
        """Run one build.  Returns ``False`` if anything failed."""
        self.run_number += 1
        self.tracker.new_build()
        with reporter.build("build", self):
            failures = self._build(force)
            if failures:
                reporter.report_build_failure(failures)
        return not failures

    def _build(self, force: bool) -> int:
        # Checks made by the driver itself are recorded under their own id
        # and committed only if the whole build succeeds.
        with JobTransaction(self.tracker, DRIVER_JOB_ID) as txn, JobContext(txn):
            plan = self.plan_factory()
            with reporter.build_phase("setup"):
                try:
                    config = self.load_config()
                    config.validate()
                    ctx = self.new_context(config, force)
                    plan.setup(ctx)
                except (FolioException, OSError) as exc:
                    reporter.report_generic(f"Build setup failed: {exc}")
                    return 1

            try:
                failures = run_phases(ctx, plan.phases())
            except (FolioException, OSError) as exc:
                # Raised by the driver while enqueuing, not by a job.
                reporter.report_generic(f"Build aborted: {exc}")
                return 1
            if not failures:
                txn.commit()
            return failures

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        self.tracker.close()

    def __exit__(self, exc_type: Unused, exc_value: Unused, tb: Unused) -> None:
        self.close()
