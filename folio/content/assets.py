"""Versioned static assets and ``robots.txt``."""
from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

from folio.utils import atomic_write
from folio.utils import list_files

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext

ROBOTS_DRAFTS = """\
User-agent: Twitterbot
Disallow:

User-agent: *
Disallow: /
"""

ROBOTS_PUBLIC = """\
User-agent: *
Disallow: /photographs/
Disallow: /photos
"""


def versioned_assets_dir(ctx: BuildContext) -> Path:
    """Compiled assets live under the release number so that bumping it
    invalidates every cached copy.
    """
    return ctx.target_path("assets", ctx.config.release)


def concatenate_assets(
    ctx: BuildContext, source_dir: StrPath, suffix: str, target: StrPath
) -> bool:
    """Concatenate every ``*<suffix>`` file of ``source_dir`` into ``target``."""
    if not os.path.isdir(source_dir):
        return False
    sources = list_files(source_dir, (suffix,))
    changed = ctx.changed_any(sources)
    # Catches removed sources.
    dependencies_changed = ctx.dependencies_changed()
    if not (changed or dependencies_changed or ctx.forced):
        return False

    with atomic_write(target) as out:
        for source in sources:
            with open(source, encoding="utf-8") as fp:
                out.write(f"/* {os.path.basename(source)} */\n")
                out.write(fp.read())
                out.write("\n")
    return True


def compile_javascripts(ctx: BuildContext) -> bool:
    return concatenate_assets(
        ctx,
        ctx.content_path("javascripts"),
        ".js",
        versioned_assets_dir(ctx) / "app.js",
    )


def compile_stylesheets(ctx: BuildContext) -> bool:
    return concatenate_assets(
        ctx,
        ctx.content_path("stylesheets"),
        ".css",
        versioned_assets_dir(ctx) / "app.css",
    )


def render_robots_txt(ctx: BuildContext) -> bool:
    if not ctx.first_run and not ctx.forced:
        return False
    content = ROBOTS_DRAFTS if ctx.config.drafts else ROBOTS_PUBLIC
    with atomic_write(ctx.target_path("robots.txt")) as fp:
        fp.write(content)
    return True
