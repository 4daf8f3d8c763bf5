from __future__ import annotations

import dataclasses
import hashlib
import json
import sys
from pathlib import Path
from traceback import TracebackException
from typing import TYPE_CHECKING

from marshmallow_dataclass import class_schema

from folio.utils import atomic_write

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

if TYPE_CHECKING:
    from _typeshed import StrPath
    from folio.typing import ExcInfo


@dataclasses.dataclass
class BuildFailure:
    job: str  # id of the failed job
    exception: str  # formatted exception name
    traceback: str  # formatted traceback

    @classmethod
    def from_exc_info(cls: type[Self], job_id: str, exc_info: ExcInfo) -> Self:
        te = TracebackException(*exc_info)
        return cls(
            job_id,
            exception="".join(te.format_exception_only()).strip(),
            traceback="".join(te.format()).strip(),
        )

    def to_json(self) -> dict[str, str]:
        return dataclasses.asdict(self)


BuildFailureSchema = class_schema(BuildFailure)


class FailureController:
    """Persists the most recent failure of each job.

    A failure stays on disk until the same job next succeeds, so the
    failures of a build can be inspected after the process has exited.
    """

    def __init__(self, target_dir: StrPath):
        self.path = Path(target_dir).resolve() / ".folio/failures"

    def get_path(self, job_id: str) -> Path:
        namehash = hashlib.md5(job_id.encode("utf-8")).hexdigest()
        return self.path / f"{namehash}.json"

    def lookup_failure(self, job_id: str) -> BuildFailure | None:
        """Looks up the stored failure for the given job."""
        try:
            with self.get_path(job_id).open(encoding="utf-8") as f:
                schema = BuildFailureSchema()
                return schema.load(json.load(f))  # type: ignore[no-any-return]
        except FileNotFoundError:
            return None

    def iter_failures(self) -> list[BuildFailure]:
        schema = BuildFailureSchema()
        if not self.path.is_dir():
            return []
        failures = []
        for path in sorted(self.path.glob("*.json")):
            with path.open(encoding="utf-8") as f:
                failures.append(schema.load(json.load(f)))
        return sorted(failures, key=lambda failure: failure.job)

    def clear_failure(self, job_id: str) -> None:
        self.get_path(job_id).unlink(missing_ok=True)

    def store_failure(self, job_id: str, exc_info: ExcInfo) -> None:
        """Stores a failure from an exception info tuple."""
        failure = BuildFailure.from_exc_info(job_id, exc_info)
        with atomic_write(self.get_path(job_id)) as fp:
            print(json.dumps(failure.to_json()), file=fp)
