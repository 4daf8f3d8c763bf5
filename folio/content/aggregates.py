"""Pages and feeds built from a whole collection of content items.

These run after the content phase, once every collection is complete.  The
collections handed in are already sorted newest first.  Every renderer
takes a ``changed`` flag saying whether any job of the collection it reads
executed; it renders if that is set, if any item source changed or
vanished since the aggregate last rendered, if any template it used
changed, or if the context is forced.
"""
from __future__ import annotations

import random
from typing import Iterable
from typing import Protocol
from typing import Sequence
from typing import TYPE_CHECKING

from folio.atom import Entry
from folio.atom import Feed
from folio.atom import Link
from folio.content.photos import select_random_photo
from folio.environment import MAIN_LAYOUT
from folio.environment import PASSAGE_LAYOUT
from folio.markdown import render_markdown
from folio.ordering import group_by_published_year
from folio.utils import atomic_write
from folio.views import ArticlesIndexView
from folio.views import FragmentsIndexView
from folio.views import HomeView
from folio.views import PassagesIndexView
from folio.views import PhotoIndexView
from folio.views import SequencePhotoView
from folio.views import TalksIndexView

if TYPE_CHECKING:
    import datetime

    from folio.content.articles import Article
    from folio.content.fragments import Fragment
    from folio.content.passages import Passage
    from folio.content.photos import Photo
    from folio.content.talks import Talk
    from folio.context import BuildContext

NUM_HOME_ARTICLES = 3
NUM_HOME_FRAGMENTS = 1

PHOTO_VIEWPORT_WIDTH = 600


class _HasSource(Protocol):
    source: str


class _FeedItem(Protocol):
    slug: str
    title: str
    content: str
    published_at: datetime.datetime


def aggregate_needs_render(
    ctx: BuildContext, changed: bool, items: Iterable[_HasSource]
) -> bool:
    # Every check runs so every source is recorded.
    sources = list(dict.fromkeys(item.source for item in items))
    sources_changed = ctx.changed_any(sources)
    dependencies_changed = ctx.dependencies_changed()
    return changed or sources_changed or dependencies_changed or ctx.forced


def render_articles_index(
    ctx: BuildContext, articles: Sequence[Article], changed: bool
) -> bool:
    if not aggregate_needs_render(ctx, changed, articles):
        return False
    env = ctx.env
    view = ArticlesIndexView(
        base=env.base_view("Articles"),
        articles_by_year=group_by_published_year(articles),
    )
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/articles/index.html",
        ctx.target_path("articles", "index.html"),
        view,
    )
    return True


def render_fragments_index(
    ctx: BuildContext, fragments: Sequence[Fragment], changed: bool
) -> bool:
    if not aggregate_needs_render(ctx, changed, fragments):
        return False
    env = ctx.env
    view = FragmentsIndexView(
        base=env.base_view("Fragments"),
        fragments_by_year=group_by_published_year(fragments),
    )
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/fragments/index.html",
        ctx.target_path("fragments", "index.html"),
        view,
    )
    return True


def render_passages_index(
    ctx: BuildContext, passages: Sequence[Passage], changed: bool
) -> bool:
    if not aggregate_needs_render(ctx, changed, passages):
        return False
    env = ctx.env
    view = PassagesIndexView(base=env.base_view("Passages"), passages=passages)
    env.render_into(
        ctx.forced_context(),
        PASSAGE_LAYOUT,
        "views/passages/index.html",
        ctx.target_path("passages", "index.html"),
        view,
    )
    return True


def render_talks_index(ctx: BuildContext, talks: Sequence[Talk], changed: bool) -> bool:
    if not aggregate_needs_render(ctx, changed, talks):
        return False
    env = ctx.env
    view = TalksIndexView(base=env.base_view("Talks"), talks=talks)
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/talks/index.html",
        ctx.target_path("talks", "index.html"),
        view,
    )
    return True


def render_photo_index(ctx: BuildContext, photos: Sequence[Photo], changed: bool) -> bool:
    if not aggregate_needs_render(ctx, changed, photos):
        return False
    env = ctx.env
    view = PhotoIndexView(
        base=env.base_view(
            "Photos", body_class="photos", viewport_width=PHOTO_VIEWPORT_WIDTH
        ),
        photos=photos,
    )
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/photos/index.html",
        ctx.target_path("photos", "index.html"),
        view,
    )
    return True


def render_home(
    ctx: BuildContext,
    articles: Sequence[Article],
    fragments: Sequence[Fragment],
    photos: Sequence[Photo],
    changed: bool,
    rng: random.Random | None = None,
) -> bool:
    items: list[_HasSource] = [*articles, *fragments, *photos]
    if not aggregate_needs_render(ctx, changed, items):
        return False
    env = ctx.env
    view = HomeView(
        base=env.base_view(ctx.config.site_name, body_class="index"),
        articles=articles[:NUM_HOME_ARTICLES],
        fragments=fragments[:NUM_HOME_FRAGMENTS],
        photo=select_random_photo(photos, rng),
    )
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/index.html",
        ctx.target_path("index.html"),
        view,
    )
    return True


def render_sequence_photo(
    ctx: BuildContext, sequence_name: str, photo: Photo, changed: bool
) -> bool:
    if not aggregate_needs_render(ctx, changed, [photo]):
        return False
    env = ctx.env
    view = SequencePhotoView(
        base=env.base_view(
            f"{photo.title} - {sequence_name}",
            body_class="sequences-photo",
            viewport_width=PHOTO_VIEWPORT_WIDTH,
        ),
        photo=photo,
        description=render_markdown(photo.description),
        sequence_name=sequence_name,
    )
    env.render_into(
        ctx.forced_context(),
        MAIN_LAYOUT,
        "views/sequences/photo.html",
        ctx.target_path("sequences", sequence_name, photo.slug),
        view,
    )
    return True


def _write_feed(
    ctx: BuildContext,
    name: str,
    title: str,
    items: Sequence[_FeedItem],
    path_prefix: str = "",
) -> None:
    config = ctx.config
    site_url = config.site_url
    host = config.site_host
    filename = name + ".atom"

    entries = []
    for item in items[: config.num_atom_entries]:
        path = path_prefix + item.slug
        entries.append(
            Entry(
                title=item.title,
                content=item.content,
                published=item.published_at,
                updated=item.published_at,
                link=Link(f"{site_url}/{path}"),
                id=f"tag:{host},{item.published_at:%Y-%m-%d}:{path}",
                author_name=config.author_name,
                author_uri=config.author_url,
            )
        )

    feed = Feed(
        title=f"{title} - {config.site_name}",
        id=f"tag:{host},2013:/{name}",
        links=[
            Link(f"{site_url}/{filename}", rel="self", type="application/atom+xml"),
            Link(site_url, rel="alternate", type="text/html"),
        ],
        updated=entries[0].updated if entries else None,
        entries=entries,
    )
    with atomic_write(ctx.target_path(filename)) as fp:
        feed.encode(fp, indent="  ")


def render_articles_feed(
    ctx: BuildContext,
    articles: Sequence[Article],
    changed: bool,
    tag: str | None = None,
) -> bool:
    """Write ``articles.atom``, or ``articles-<tag>.atom`` holding only the
    articles carrying ``tag``.
    """
    if tag is not None:
        articles = [article for article in articles if article.tagged_with(tag)]
    if not aggregate_needs_render(ctx, changed, articles):
        return False
    if tag is None:
        _write_feed(ctx, "articles", "Articles", articles)
    else:
        _write_feed(ctx, f"articles-{tag}", f"Articles ({tag})", articles)
    return True


def render_fragments_feed(
    ctx: BuildContext, fragments: Sequence[Fragment], changed: bool
) -> bool:
    if not aggregate_needs_render(ctx, changed, fragments):
        return False
    _write_feed(ctx, "fragments", "Fragments", fragments, path_prefix="fragments/")
    return True
