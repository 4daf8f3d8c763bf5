"""Renderers for the individual content types.

Every renderer has the same shape: it takes the build context and a source
path, always parses and validates the source (the parsed item is needed by
the aggregate jobs of the next phase whether or not it is re-rendered), and
then either skips or renders.  It returns a :class:`Rendered` pairing the
item with whether anything was written.
"""
from __future__ import annotations

import dataclasses
from pathlib import Path
from typing import Generic
from typing import TYPE_CHECKING
from typing import TypeVar

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext

_T = TypeVar("_T")

IMAGE_FORMATS = ("jpg", "png")


@dataclasses.dataclass(frozen=True)
class Rendered(Generic[_T]):
    item: _T
    executed: bool


def needs_render(ctx: BuildContext, source: StrPath) -> bool:
    """Whether the current job must (re)render ``source``.

    True if the context is forced, if the source changed, or if anything
    recorded the last time the job rendered (templates, project file) has
    changed.
    """
    # Both checks run so that the source is always recorded.
    source_changed = ctx.changed(source)
    dependencies_changed = ctx.dependencies_changed()
    return source_changed or dependencies_changed or ctx.forced


def find_image(extensionless_path: StrPath) -> str | None:
    """Return the extension of ``<extensionless_path>.<ext>`` if such an
    image exists (``jpg`` or ``png``), or ``None``.
    """
    for fmt in IMAGE_FORMATS:
        if Path(f"{extensionless_path}.{fmt}").is_file():
            return fmt
    return None


def twitter_card_image_url(
    ctx: BuildContext, images_subpath: str
) -> str:
    """Absolute URL of the ``twitter@2x`` card image under ``content/images``."""
    base = ctx.content_path("images", images_subpath, "twitter@2x")
    fmt = find_image(base)
    if fmt is None:
        return ""
    return ctx.env.absolute_url(f"/images/{images_subpath}/twitter@2x.{fmt}")
