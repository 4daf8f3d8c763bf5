from __future__ import annotations

import dataclasses
import datetime
import os
from functools import cached_property
from typing import Any
from typing import Sequence
from typing import TYPE_CHECKING

from folio.content import find_image
from folio.content import needs_render
from folio.content import Rendered
from folio.content import twitter_card_image_url
from folio.environment import MAIN_LAYOUT
from folio.markdown import render_markdown_with_toc
from folio.metaformat import load_frontmatter_file
from folio.metaformat import optional_str
from folio.metaformat import require
from folio.metaformat import require_timestamp
from folio.utils import is_draft_source
from folio.utils import slug_from_source
from folio.views import ArticleView
from folio.views import TwitterCard

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext


@dataclasses.dataclass
class Article:
    source: str
    slug: str
    title: str
    published_at: datetime.datetime
    location: str
    body: str = dataclasses.field(default="", repr=False)
    hook: str = ""
    image: str = ""
    hn_link: str = ""
    attributions: str = ""
    tags: Sequence[str] = ()
    draft: bool = False
    hook_image_url: str = ""

    @cached_property
    def _rendered(self) -> tuple[str, str]:
        return render_markdown_with_toc(self.body)

    @property
    def content(self) -> str:
        """The article body as HTML."""
        return self._rendered[0]

    @property
    def toc(self) -> str:
        """The table of contents as HTML."""
        return self._rendered[1]

    @property
    def url_path(self) -> str:
        return "/" + self.slug

    def tagged_with(self, tag: str) -> bool:
        return tag in self.tags

    def publishing_info(self) -> str:
        return (
            f"<p><strong>Article</strong><br>{self.title}</p>"
            f"<p><strong>Published</strong><br>{self.published_at:%B} "
            f"{self.published_at.day}, {self.published_at.year}</p>"
            f"<p><strong>Location</strong><br>{self.location}</p>"
        )


def _tags(meta: dict[str, Any]) -> tuple[str, ...]:
    tags = meta.get("tags") or ()
    if isinstance(tags, str):
        tags = [tags]
    return tuple(str(tag) for tag in tags)


def parse_article(ctx: BuildContext, source: StrPath) -> Article:
    """Parse and validate an article source file."""
    meta, body = load_frontmatter_file(source)
    slug = slug_from_source(source)

    hook_image_url = ""
    fmt = find_image(ctx.content_path("images", slug, "hook"))
    if fmt is not None:
        hook_image_url = f"/images/{slug}/hook.{fmt}"

    return Article(
        source=os.fspath(source),
        slug=slug,
        title=require(meta, "title", "article", source),
        published_at=require_timestamp(meta, "published_at", "article", source),
        location=require(meta, "location", "article", source),
        body=body,
        hook=optional_str(meta, "hook"),
        image=optional_str(meta, "image"),
        hn_link=optional_str(meta, "hn_link"),
        attributions=optional_str(meta, "attributions"),
        tags=_tags(meta),
        draft=is_draft_source(source),
        hook_image_url=hook_image_url,
    )


def render_article(ctx: BuildContext, source: StrPath) -> Rendered[Article]:
    article = parse_article(ctx, source)
    if not needs_render(ctx, source):
        return Rendered(article, executed=False)

    env = ctx.env
    card = TwitterCard(
        title=article.title,
        description=article.hook,
        image_url=twitter_card_image_url(ctx, article.slug),
    )
    view = ArticleView(
        base=env.base_view(article.title, twitter_card=card),
        article=article,
        publishing_info=article.publishing_info(),
    )
    # We know the source changed, so the template must render.
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/articles/show.html",
        ctx.target_path(article.slug),
        view,
    )
    return Rendered(article, executed=True)
