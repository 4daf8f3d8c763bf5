"""Persistent fingerprints of the resources each job consults.

The tracker answers a single question for a job: "has anything you looked
at last time changed since you last ran successfully?"  Fingerprints are
kept in a small sqlite database, keyed by the id of the job which consulted
the resource and the resource's source id.
"""
from __future__ import annotations

import hashlib
import os
import re
import sqlite3
import stat
import sys
import threading
from functools import cached_property
from importlib import resources
from pathlib import Path
from types import TracebackType
from typing import Any
from typing import ContextManager
from typing import Iterable
from typing import Iterator
from typing import Mapping
from typing import NamedTuple
from typing import NewType
from typing import Sequence
from typing import TYPE_CHECKING
from typing import Union

from folio.exception import ChangeTrackerError
from folio.utils import is_uninteresting_source_name

if sys.version_info >= (3, 10):
    from typing import TypeAlias
else:
    from typing_extensions import TypeAlias

if TYPE_CHECKING:
    from _typeshed import StrPath


# Key used for a resource in the build state database.
#
# This is the path of the resource relative to the source directory, with
# path separators converted to forward slashes.  Resources outside of the
# source directory are keyed by their normalized absolute path.
SourceId = NewType("SourceId", str)

_BUILDSTATE_SCHEMA = (resources.files("folio") / "buildstate_schema.sql").read_text()
if sqlite3.sqlite_version_info < (3, 8, 2):
    # old versions of libsqlite3 do not support WITHOUT ROWID
    _BUILDSTATE_SCHEMA = re.sub(r"(?i)\s+WITHOUT ROWID\b", "", _BUILDSTATE_SCHEMA)

_SqlParameters: TypeAlias = Union[Sequence[Any], Mapping[str, Any]]


class SqliteConnectionPool(ContextManager[sqlite3.Connection]):
    """One sqlite3 connection per thread.

    Used as a context manager the pool runs a transaction on the current
    thread's connection, committing on success and rolling back if the
    body raises::

        with pool as con:
            con.execute("INSERT INTO ...", data)

    :meth:`close` closes the connections of all threads.
    """

    def __init__(self, database: StrPath, timeout: float = 10.0):
        self.database = os.fspath(database)
        self.timeout = timeout
        self._local = threading.local()
        self._lock = threading.Lock()
        self._connections: list[sqlite3.Connection] = []

    def connect(self) -> sqlite3.Connection:
        con: sqlite3.Connection | None = getattr(self._local, "con", None)
        if con is None:
            # Each connection is only used by the thread that opened it, but
            # close() may run elsewhere.
            con = sqlite3.connect(
                self.database, timeout=self.timeout, check_same_thread=False
            )
            con.execute("PRAGMA journal_mode=WAL")
            con.execute("PRAGMA synchronous=NORMAL")
            self._local.con = con
            with self._lock:
                self._connections.append(con)
        return con

    def close(self) -> None:
        with self._lock:
            connections, self._connections = self._connections, []
            self._local = threading.local()
        for con in connections:
            con.close()

    def __enter__(self) -> sqlite3.Connection:
        return self.connect().__enter__()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.connect().__exit__(exc_type, exc_value, tb)

    def execute(self, sql: str, parameters: _SqlParameters = (), /) -> sqlite3.Cursor:
        return self.connect().execute(sql, parameters)

    def executescript(self, sql_script: str, /) -> sqlite3.Cursor:
        return self.connect().executescript(sql_script)


class FingerprintRow(NamedTuple):
    """A row in the fingerprints table."""

    job: str
    source: SourceId
    source_mtime: int
    source_size: int
    source_checksum: str
    is_dir: bool


class FileInfo:
    """Fingerprint of a file or directory.

    Values are computed lazily and then cached, so a ``FileInfo`` describes
    the resource as it was when first inspected.  If the resource can not be
    inspected, :class:`ChangeTrackerError` is raised.
    """

    def __init__(
        self,
        path: StrPath,
        mtime: int | None = None,
        size: int | None = None,
        checksum: str | None = None,
        is_dir: bool | None = None,
    ):
        self.path = Path(path)
        cache = self.__dict__
        if mtime is not None and size is not None and is_dir is not None:
            cache["_stat"] = mtime, size, is_dir
        if checksum is not None:
            cache["checksum"] = checksum

    def __repr__(self) -> str:
        return f"<FileInfo {os.fspath(self.path)!r}>"

    @property
    def filename(self) -> str:
        return os.fspath(self.path)

    @property
    def exists(self) -> bool:
        return os.path.lexists(self.path)

    @cached_property
    def _stat(self) -> tuple[int, int, bool]:
        try:
            st = self.path.stat()
            is_dir = stat.S_ISDIR(st.st_mode)
            if is_dir:
                size = sum(1 for _ in self._iter_dir())
            else:
                size = st.st_size
        except OSError as exc:
            raise ChangeTrackerError(
                f"Can not fingerprint {self.filename!r}: {exc.strerror}"
            ) from exc
        return st.st_mtime_ns, size, is_dir

    def _iter_dir(self) -> Iterator[Path]:
        return (
            path
            for path in sorted(self.path.iterdir())
            if not is_uninteresting_source_name(path.name)
        )

    @property
    def mtime(self) -> int:
        """Modification time in nanoseconds."""
        return self._stat[0]

    @property
    def size(self) -> int:
        """Size in bytes, or the number of entries for a directory."""
        return self._stat[1]

    @property
    def is_dir(self) -> bool:
        return self._stat[2]

    @cached_property
    def checksum(self) -> str:
        """SHA1 of the file contents, or of the directory listing."""
        h = hashlib.sha1()
        try:
            if self.is_dir:
                h.update(b"DIR\x00")
                for path in self._iter_dir():
                    h.update(path.name.encode("utf-8"))
                    h.update(b"\x01" if path.is_dir() else b"\x00")
            else:
                with self.path.open("rb") as f:
                    while chunk := f.read(16 * 1024):
                        h.update(chunk)
        except OSError as exc:
            raise ChangeTrackerError(
                f"Can not read {self.filename!r}: {exc.strerror}"
            ) from exc
        return h.hexdigest()

    def unchanged(self, other: FileInfo) -> bool:
        """Whether ``other`` describes the same content as we do.

        Modification times are not compared, so touching a file without
        altering it does not count as a change.
        """
        if not isinstance(other, FileInfo):
            raise TypeError("'other' must be a FileInfo, not %r" % other)
        return (
            self.is_dir == other.is_dir
            and self.size == other.size
            and self.checksum == other.checksum
        )


class PathCache:
    """Caches ``FileInfo``s and source ids for the duration of one build.

    Caching guarantees that the fingerprint a job is judged by is the same
    fingerprint that gets committed for it.
    """

    def __init__(self, source_dir: StrPath):
        self.root_path = Path(source_dir).resolve()
        self.file_info_cache: dict[SourceId, FileInfo] = {}
        self.source_id_cache: dict[StrPath, SourceId] = {}
        self._lock = threading.Lock()

    def to_source_id(self, filename: StrPath) -> SourceId:
        source_id = self.source_id_cache.get(filename)
        if source_id is None:
            path = Path(os.path.normpath(self.root_path / filename))
            try:
                source_id = SourceId(path.relative_to(self.root_path).as_posix())
            except ValueError:
                source_id = SourceId(path.as_posix())
            self.source_id_cache[filename] = source_id
        return source_id

    def to_path(self, source_id: SourceId) -> Path:
        return self.root_path / source_id

    def get_file_info(self, filename: StrPath) -> FileInfo:
        source_id = self.to_source_id(filename)
        with self._lock:
            file_info = self.file_info_cache.get(source_id)
            if file_info is None:
                file_info = FileInfo(self.to_path(source_id))
                self.file_info_cache[source_id] = file_info
        return file_info


class ChangeTracker:
    """Persistent map of (job, resource) to the resource's fingerprint.

    Queries never mutate the stored state.  Records are written only by
    :meth:`record_success`, which the worker pool calls after the owning job
    has executed without error.
    """

    def __init__(self, database: StrPath, source_dir: StrPath):
        self.database = os.fspath(database)
        self.source_dir = Path(source_dir)
        Path(self.database).parent.mkdir(parents=True, exist_ok=True)
        self.build_db = SqliteConnectionPool(self.database)
        self.build_db.executescript(_BUILDSTATE_SCHEMA)
        self.path_cache = PathCache(source_dir)
        self._write_lock = threading.Lock()

    def new_build(self) -> None:
        """Forget cached fingerprints; called at the start of each build."""
        self.path_cache = PathCache(self.source_dir)

    def to_source_id(self, filename: StrPath) -> SourceId:
        return self.path_cache.to_source_id(filename)

    def get_file_info(self, filename: StrPath) -> FileInfo:
        return self.path_cache.get_file_info(filename)

    def _get_record(self, owner: str, source_id: SourceId) -> FileInfo | None:
        row = self.build_db.execute(
            """
            SELECT source_mtime, source_size, source_checksum, is_dir
            FROM fingerprints WHERE job = ? AND source = ?
            """,
            [owner, source_id],
        ).fetchone()
        if row is None:
            return None
        mtime, size, checksum, is_dir = row
        return FileInfo(
            self.path_cache.to_path(source_id),
            mtime=mtime,
            size=size,
            checksum=checksum,
            is_dir=bool(is_dir),
        )

    def changed(self, owner: str, filename: StrPath) -> bool:
        """Has ``filename`` changed since ``owner`` last executed successfully?

        True if no record exists.
        """
        info = self.get_file_info(filename)
        # An unreadable resource is an error, even without a record.
        info.is_dir  # noqa: B018
        record = self._get_record(owner, self.to_source_id(filename))
        if record is None:
            return True
        return not info.unchanged(record)

    def changed_any(self, owner: str, filenames: Iterable[StrPath]) -> bool:
        return any(self.changed(owner, filename) for filename in filenames)

    def iter_records(self, owner: str) -> Iterator[FingerprintRow]:
        cur = self.build_db.execute(
            """
            SELECT job, source, source_mtime, source_size, source_checksum, is_dir
            FROM fingerprints WHERE job = ? ORDER BY source
            """,
            [owner],
        )
        for job, source, mtime, size, checksum, is_dir in cur:
            yield FingerprintRow(job, source, mtime, size, checksum, bool(is_dir))

    def dependencies_changed(self, owner: str) -> bool:
        """Has any resource ``owner`` consulted last time changed or vanished?

        True if ``owner`` has never executed successfully.
        """
        if not self.has_committed(owner):
            return True
        for row in self.iter_records(owner):
            path = self.path_cache.to_path(row.source)
            if not os.path.exists(path):
                return True
            stored = FileInfo(
                path,
                mtime=row.source_mtime,
                size=row.source_size,
                checksum=row.source_checksum,
                is_dir=row.is_dir,
            )
            if not self.get_file_info(path).unchanged(stored):
                return True
        return False

    def has_committed(self, owner: str) -> bool:
        cur = self.build_db.execute(
            "SELECT 1 FROM committed_jobs WHERE job = ?", [owner]
        )
        return cur.fetchone() is not None

    def record_success(self, owner: str, infos: Iterable[FileInfo]) -> None:
        """Replace the records of ``owner`` with the given fingerprints."""
        rows = [
            FingerprintRow(
                owner,
                self.to_source_id(info.path),
                info.mtime,
                info.size,
                info.checksum,
                info.is_dir,
            )
            for info in infos
        ]
        with self._write_lock, self.build_db as con:
            con.execute("DELETE FROM fingerprints WHERE job = ?", [owner])
            con.executemany(
                "INSERT OR REPLACE INTO fingerprints VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
            con.execute("INSERT OR IGNORE INTO committed_jobs VALUES (?)", [owner])

    def close(self) -> None:
        self.build_db.close()
