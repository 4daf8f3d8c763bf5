from __future__ import annotations

import dataclasses
import datetime
import os
from functools import cached_property
from typing import TYPE_CHECKING

from folio.content import needs_render
from folio.content import Rendered
from folio.environment import MAIN_LAYOUT
from folio.markdown import render_markdown
from folio.metaformat import load_frontmatter_file
from folio.metaformat import optional_str
from folio.metaformat import require
from folio.metaformat import require_timestamp
from folio.utils import is_draft_source
from folio.utils import slug_from_source
from folio.views import TalkView

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext


@dataclasses.dataclass
class Talk:
    source: str
    slug: str
    title: str
    published_at: datetime.datetime
    event: str
    body: str = dataclasses.field(default="", repr=False)
    location: str = ""
    subtitle: str = ""
    draft: bool = False

    @cached_property
    def content(self) -> str:
        return render_markdown(self.body)

    @property
    def url_path(self) -> str:
        return "/" + self.slug

    def publishing_info(self) -> str:
        info = (
            f"<p><strong>Talk</strong><br>{self.title}</p>"
            f"<p><strong>Event</strong><br>{self.event}</p>"
            f"<p><strong>Published</strong><br>{self.published_at:%B} "
            f"{self.published_at.day}, {self.published_at.year}</p>"
        )
        if self.location:
            info += f"<p><strong>Location</strong><br>{self.location}</p>"
        return info


def parse_talk(source: StrPath) -> Talk:
    meta, body = load_frontmatter_file(source)
    return Talk(
        source=os.fspath(source),
        slug=slug_from_source(source),
        title=require(meta, "title", "talk", source),
        published_at=require_timestamp(meta, "published_at", "talk", source),
        event=require(meta, "event", "talk", source),
        body=body,
        location=optional_str(meta, "location"),
        subtitle=optional_str(meta, "subtitle"),
        draft=is_draft_source(source),
    )


def render_talk(ctx: BuildContext, source: StrPath) -> Rendered[Talk]:
    talk = parse_talk(source)
    if not needs_render(ctx, source):
        return Rendered(talk, executed=False)

    env = ctx.env
    view = TalkView(
        base=env.base_view(talk.title, body_class="talk"),
        talk=talk,
        publishing_info=talk.publishing_info(),
    )
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/talks/show.html",
        ctx.target_path(talk.slug),
        view,
    )
    return Rendered(talk, executed=True)
