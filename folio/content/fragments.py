from __future__ import annotations

import dataclasses
import datetime
import os
from functools import cached_property
from typing import TYPE_CHECKING

from folio.content import needs_render
from folio.content import Rendered
from folio.content import twitter_card_image_url
from folio.environment import MAIN_LAYOUT
from folio.markdown import render_markdown
from folio.metaformat import load_frontmatter_file
from folio.metaformat import optional_str
from folio.metaformat import require
from folio.metaformat import require_timestamp
from folio.utils import is_draft_source
from folio.utils import slug_from_source
from folio.views import FragmentView
from folio.views import TwitterCard

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext


@dataclasses.dataclass
class Fragment:
    source: str
    slug: str
    title: str
    published_at: datetime.datetime
    body: str = dataclasses.field(default="", repr=False)
    location: str = ""
    hook: str = ""
    image: str = ""
    hn_link: str = ""
    attributions: str = ""
    draft: bool = False

    @cached_property
    def content(self) -> str:
        return render_markdown(self.body)

    @property
    def url_path(self) -> str:
        return "/fragments/" + self.slug

    def publishing_info(self) -> str:
        info = (
            f"<p><strong>Fragment</strong><br>{self.title}</p>"
            f"<p><strong>Published</strong><br>{self.published_at:%B} "
            f"{self.published_at.day}, {self.published_at.year}</p>"
        )
        if self.location:
            info += f"<p><strong>Location</strong><br>{self.location}</p>"
        return info


def parse_fragment(source: StrPath) -> Fragment:
    meta, body = load_frontmatter_file(source)
    return Fragment(
        source=os.fspath(source),
        slug=slug_from_source(source),
        title=require(meta, "title", "fragment", source),
        published_at=require_timestamp(meta, "published_at", "fragment", source),
        body=body,
        location=optional_str(meta, "location"),
        hook=optional_str(meta, "hook"),
        image=optional_str(meta, "image"),
        hn_link=optional_str(meta, "hn_link"),
        attributions=optional_str(meta, "attributions"),
        draft=is_draft_source(source),
    )


def render_fragment(ctx: BuildContext, source: StrPath) -> Rendered[Fragment]:
    fragment = parse_fragment(source)
    if not needs_render(ctx, source):
        return Rendered(fragment, executed=False)

    env = ctx.env
    card = TwitterCard(
        title=fragment.title,
        description=fragment.hook,
        image_url=twitter_card_image_url(ctx, f"fragments/{fragment.slug}"),
    )
    view = FragmentView(
        base=env.base_view(fragment.title, twitter_card=card),
        fragment=fragment,
        publishing_info=fragment.publishing_info(),
    )
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/fragments/show.html",
        ctx.target_path("fragments", fragment.slug),
        view,
    )
    return Rendered(fragment, executed=True)
