from __future__ import annotations

import os
from typing import Any
from typing import Generator
from typing import Iterable
from typing import TYPE_CHECKING

import watchfiles

from folio.imagetools import RESIZE_TARGETS
from folio.utils import is_uninteresting_source_name

if TYPE_CHECKING:
    from _typeshed import StrPath
    from watchfiles.main import FileChange

    from folio.builder import Builder

# Written into the source tree by the photo fetch jobs.
MARKER_SUFFIX = ".marker"
PHOTO_DIR = os.path.join("content", "photographs")


def watch_site(
    builder: Builder, ignore_paths: Iterable[StrPath] = (), **kwargs: Any
) -> Generator[set[FileChange], None, None]:
    """Watch site source files for changes.

    Returns a generator that yields sets of changes as they are noticed.

    Changes to files within the builder's target directory, within
    ``ignore_paths``, to files deemed not to be source files, and to
    resized photographs are ignored.
    """
    ignore = [os.path.abspath(p) for p in (builder.target_dir, *ignore_paths)]
    watch_filter = WatchFilter(
        ignore_paths=ignore, photo_dirs=[builder.source_dir / PHOTO_DIR]
    )
    return watchfiles.watch(
        os.fspath(builder.source_dir), watch_filter=watch_filter, **kwargs
    )


class WatchFilter(watchfiles.DefaultFilter):
    """Ignores editor droppings and the files the photo fetch jobs write.

    Within ``photo_dirs`` the resized versions of fetched photographs are
    ignored along with their markers.
    """

    def __init__(self, *, photo_dirs: Iterable[StrPath] = (), **kwargs: Any):
        super().__init__(**kwargs)
        self.photo_dirs = {os.path.abspath(p) for p in photo_dirs}

    def __call__(self, change: watchfiles.Change, path: str) -> bool:
        name = os.path.basename(path)
        if is_uninteresting_source_name(name) or name.endswith(MARKER_SUFFIX):
            return False
        if os.path.dirname(os.path.abspath(path)) in self.photo_dirs and any(
            name.endswith(target.suffix) for target in RESIZE_TARGETS
        ):
            return False
        return super().__call__(change, path)
