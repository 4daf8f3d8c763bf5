from __future__ import annotations

import dataclasses
import datetime
import os
from functools import cached_property
from typing import TYPE_CHECKING

from folio.content import needs_render
from folio.content import Rendered
from folio.environment import PASSAGE_LAYOUT
from folio.exception import ValidationError
from folio.markdown import render_markdown
from folio.markdown import RenderOptions
from folio.metaformat import load_frontmatter_file
from folio.metaformat import require
from folio.metaformat import require_timestamp
from folio.utils import is_draft_source
from folio.utils import slug_from_source
from folio.views import PassageView

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext

PASSAGE_RENDER_OPTIONS = RenderOptions(no_retina=True)


@dataclasses.dataclass
class Passage:
    """An issue of the Passages & Glass newsletter."""

    source: str
    slug: str
    issue: str
    title: str
    published_at: datetime.datetime
    body: str = dataclasses.field(default="", repr=False)
    draft: bool = False

    @cached_property
    def content(self) -> str:
        return render_markdown(self.body, PASSAGE_RENDER_OPTIONS)

    @property
    def url_path(self) -> str:
        return "/passages/" + self.slug


def issue_from_slug(slug: str, source: StrPath) -> str:
    """Passage slugs look like ``<issue>-<name>``."""
    issue, sep, name = slug.partition("-")
    if not (issue and sep and name):
        filename = os.fspath(source)
        raise ValidationError(
            f"Expected passage slug to contain issue number: {slug}", source=filename
        )
    return issue


def parse_passage(source: StrPath) -> Passage:
    meta, body = load_frontmatter_file(source)
    title = require(meta, "title", "passage", source)
    published_at = require_timestamp(meta, "published_at", "passage", source)
    slug = slug_from_source(source)
    return Passage(
        source=os.fspath(source),
        slug=slug,
        issue=issue_from_slug(slug, source),
        title=title,
        published_at=published_at,
        body=body,
        draft=is_draft_source(source),
    )


def render_passage(ctx: BuildContext, source: StrPath) -> Rendered[Passage]:
    passage = parse_passage(source)
    if not needs_render(ctx, source):
        return Rendered(passage, executed=False)

    env = ctx.env
    view = PassageView(base=env.base_view(passage.title), passage=passage)
    env.render_into(
        ctx.forced_context(),
        PASSAGE_LAYOUT,
        "views/passages/show.html",
        ctx.target_path("passages", passage.slug),
        view,
    )
    return Rendered(passage, executed=True)
