from __future__ import annotations

import datetime
import os
import tempfile
from contextlib import contextmanager
from contextlib import suppress
from pathlib import Path
from typing import Any
from typing import IO
from typing import Iterator
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from _typeshed import StrPath


_TRUE_STRINGS = {"true", "yes", "1", "on"}
_FALSE_STRINGS = {"false", "no", "0", "off", ""}


def bool_from_string(val: object, default: bool | None = None) -> bool | None:
    if val in (True, False, 1, 0):
        return bool(val)
    if isinstance(val, str):
        val = val.strip().lower()
        if val in _TRUE_STRINGS:
            return True
        if val in _FALSE_STRINGS:
            return False
    return default


def is_uninteresting_source_name(filename: str) -> bool:
    """Editor backups, dotfiles and the like which never count as sources."""
    if filename[:1] in (".", "#"):
        return True
    if filename.endswith("~") or filename.endswith((".swp", ".swx", ".tmp")):
        return True
    return False


def list_dir(path: StrPath) -> list[str]:
    """List the (non-hidden) entries of a content directory, sorted.

    Returns full paths.  The sort order is the *discovery order* of the
    content in the directory.
    """
    path = os.fspath(path)
    return [
        os.path.join(path, name)
        for name in sorted(os.listdir(path))
        if not is_uninteresting_source_name(name)
    ]


def list_files(path: StrPath, suffixes: tuple[str, ...] | None = None) -> list[str]:
    """Like :func:`list_dir`, but only regular files (optionally by suffix)."""
    return [
        filename
        for filename in list_dir(path)
        if os.path.isfile(filename)
        and (suffixes is None or filename.endswith(suffixes))
    ]


def ensure_dir(path: StrPath) -> None:
    Path(path).mkdir(parents=True, exist_ok=True)


def ensure_symlink(source: StrPath, link: StrPath) -> None:
    """Make ``link`` a symlink pointing at ``source``.

    An existing link pointing elsewhere is replaced.  An existing
    non-link file or directory is an error.
    """
    source = os.path.abspath(source)
    link = os.fspath(link)
    if os.path.islink(link):
        if os.readlink(link) == source:
            return
        os.unlink(link)
    os.symlink(source, link)


@contextmanager
def atomic_write(
    filename: StrPath, mode: str = "w", encoding: str | None = "utf-8"
) -> Iterator[IO[Any]]:
    """Open a temporary file which is renamed over ``filename`` on success.

    If the body of the ``with`` block raises, the temporary file is removed
    and ``filename`` is left untouched.
    """
    if "b" in mode:
        encoding = None
    dirname = os.path.dirname(os.path.abspath(filename))
    ensure_dir(dirname)
    fd, tmp_filename = tempfile.mkstemp(dir=dirname, prefix=".__trans")
    try:
        with open(fd, mode, encoding=encoding) as fp:
            yield fp
        os.replace(tmp_filename, filename)
    except BaseException:
        with suppress(OSError):
            os.remove(tmp_filename)
        raise


def slug_from_source(source: StrPath) -> str:
    return Path(source).stem


def is_draft_source(source: StrPath) -> bool:
    return "drafts" in Path(source).parent.name


def parse_timestamp(value: Any) -> datetime.datetime | None:
    """Coerce a YAML scalar into an aware datetime.

    YAML loaders hand back ``date`` or (possibly naive) ``datetime`` objects
    for unquoted timestamps, and strings for quoted ones.  Naive values are
    taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=datetime.timezone.utc)
        return value
    if isinstance(value, datetime.date):
        return datetime.datetime(
            value.year, value.month, value.day, tzinfo=datetime.timezone.utc
        )
    raise TypeError(f"not a timestamp: {value!r}")
