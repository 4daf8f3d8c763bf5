"""Free-form pages.

A page is a template under ``pages/`` which extends the main layout.  Its
title and body class come from ``pages/_meta.yaml``, keyed by the page path
without its extension (``about``, ``talks/index``, ...).
"""
from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from pathlib import PurePosixPath
from typing import Mapping
from typing import TYPE_CHECKING

from folio.environment import MAIN_LAYOUT
from folio.exception import ValidationError
from folio.metaformat import load_yaml_file
from folio.metaformat import optional_str
from folio.reporter import reporter
from folio.utils import ensure_dir
from folio.utils import is_uninteresting_source_name
from folio.views import PageView

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext

PAGES_DIR = "pages"
PAGE_SUFFIX = ".html"
META_FILENAME = "_meta.yaml"


@dataclasses.dataclass(frozen=True)
class PageMeta:
    title: str = "Untitled Page"
    body_class: str = ""


def load_pages_meta(source: StrPath) -> dict[str, PageMeta]:
    data = load_yaml_file(source)
    if data is None:
        return {}
    if not isinstance(data, dict):
        filename = os.fspath(source)
        raise ValidationError(f"Invalid page metadata: {filename}", source=filename)
    pages_meta = {}
    for page_path, entry in data.items():
        entry = entry or {}
        if not isinstance(entry, dict):
            filename = os.fspath(source)
            raise ValidationError(
                f"Invalid page metadata for {page_path}: {filename}", source=filename
            )
        pages_meta[str(page_path)] = PageMeta(
            title=optional_str(entry, "title") or PageMeta.title,
            body_class=optional_str(entry, "body_class"),
        )
    return pages_meta


def iter_page_sources(pages_dir: StrPath) -> list[str]:
    """All page templates below ``pages_dir``, sorted."""
    sources = []
    for dirpath, dirnames, filenames in os.walk(pages_dir):
        dirnames[:] = sorted(
            name for name in dirnames if not is_uninteresting_source_name(name)
        )
        sources.extend(
            os.path.join(dirpath, name)
            for name in sorted(filenames)
            if name.endswith(PAGE_SUFFIX) and not is_uninteresting_source_name(name)
        )
    return sources


def page_path_from_source(pages_dir: StrPath, source: StrPath) -> str:
    """The page path for ``source``, like ``about`` for ``pages/about.html``."""
    relpath = PurePosixPath(Path(source).relative_to(pages_dir).as_posix())
    return str(relpath.with_suffix(""))


def page_target(ctx: BuildContext, page_path: str) -> Path:
    target = ctx.target_path(*page_path.split("/"))
    # Index pages get an extension so they can be served at the
    # directory's URL.
    if PurePosixPath(page_path).name == "index":
        target = target.with_name("index.html")
    return target


def render_page(
    ctx: BuildContext, pages_meta: Mapping[str, PageMeta], source: StrPath
) -> bool:
    pages_dir = ctx.source_dir / PAGES_DIR
    page_path = page_path_from_source(pages_dir, source)
    target = page_target(ctx, page_path)

    meta = pages_meta.get(page_path)
    if meta is None:
        reporter.report_generic(f"No page meta information: {page_path}")
        meta = PageMeta()

    ensure_dir(target.parent)
    env = ctx.env
    view = PageView(base=env.base_view(meta.title, body_class=meta.body_class))
    template = Path(source).relative_to(ctx.source_dir).as_posix()
    changed = env.render_into(ctx, MAIN_LAYOUT, template, target, view)
    return changed or ctx.forced
