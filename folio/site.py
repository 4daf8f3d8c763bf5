"""The build plan of the site.

Phase 0 (:meth:`SiteBuild.setup`) prepares the target tree and runs the
checks the driver makes itself.  The ``content`` phase renders every
individual content item and collects the parsed items into aggregates.  The
``aggregates`` phase renders everything built from whole collections:
indices, feeds, the home page, photo pages, and the photo fetch jobs.
"""
from __future__ import annotations

import functools
import os
from pathlib import Path
from typing import Callable
from typing import Sequence
from typing import TYPE_CHECKING
from typing import TypeVar

from folio.builder import Aggregate
from folio.builder import fold_changed
from folio.builder import Phase
from folio.content import aggregates
from folio.content.articles import render_article
from folio.content.assets import compile_javascripts
from folio.content.assets import compile_stylesheets
from folio.content.assets import render_robots_txt
from folio.content.assets import versioned_assets_dir
from folio.content.fragments import render_fragment
from folio.content.pages import iter_page_sources
from folio.content.pages import load_pages_meta
from folio.content.pages import META_FILENAME
from folio.content.pages import PAGES_DIR
from folio.content.pages import PageMeta
from folio.content.pages import render_page
from folio.content.passages import render_passage
from folio.content.photos import MANIFEST_FILENAME
from folio.content.photos import read_photo_manifest
from folio.content.talks import render_talk
from folio.imagetools import fetch_and_resize_photo
from folio.ordering import sort_by_occurred
from folio.ordering import sort_by_published
from folio.utils import ensure_dir
from folio.utils import ensure_symlink
from folio.utils import list_dir
from folio.utils import list_files

if TYPE_CHECKING:
    from folio.content import Rendered
    from folio.content.articles import Article
    from folio.content.fragments import Fragment
    from folio.content.passages import Passage
    from folio.content.photos import Photo
    from folio.content.talks import Talk
    from folio.context import BuildContext
    from folio.jobs import JobResult

_T = TypeVar("_T")

CONTENT_SUFFIXES = (".md",)

# Job groups whose results are folded into "changed" flags.
ARTICLES = "articles"
FRAGMENTS = "fragments"
PASSAGES = "passages"
PHOTOS = "photos"
TALKS = "talks"
SEQUENCE_PREFIX = "sequence:"

# Content directory and drafts directory of each content type.
CONTENT_DIRS = {
    ARTICLES: ("articles", "drafts"),
    FRAGMENTS: ("fragments", "fragments-drafts"),
    PASSAGES: ("passages", "passages-drafts"),
    TALKS: ("talks", "talks-drafts"),
    "sequences": ("sequences", "sequences-drafts"),
}

TARGET_DIRS = ("articles", "fragments", "passages", "photos", "sequences", "talks")

# (content dir, target link name)
SYMLINKS = (
    ("fonts", "fonts"),
    ("images", "images"),
    ("photographs", "photographs"),
)


def _existing_dirs(ctx: BuildContext, kind: str) -> list[Path]:
    name, drafts_name = CONTENT_DIRS[kind]
    dirs = [ctx.content_path(name)]
    if ctx.config.drafts:
        dirs.append(ctx.content_path(drafts_name))
    return [path for path in dirs if path.is_dir()]


def content_sources(ctx: BuildContext, kind: str) -> list[str]:
    """Source files of a content type, drafts last when they are enabled."""
    sources: list[str] = []
    for path in _existing_dirs(ctx, kind):
        sources.extend(list_files(path, CONTENT_SUFFIXES))
    return sources


def _collect(
    ctx: BuildContext,
    render: Callable[[BuildContext, str], Rendered[_T]],
    aggregate: Aggregate[_T],
    source: str,
    order: int,
) -> bool:
    rendered = render(ctx, source)
    # Only reached on success: a failed item never joins the aggregate.
    aggregate.add(rendered.item, order)
    return rendered.executed


class SiteBuild:
    def __init__(self) -> None:
        self.articles: Aggregate[Article] = Aggregate(ARTICLES)
        self.fragments: Aggregate[Fragment] = Aggregate(FRAGMENTS)
        self.passages: Aggregate[Passage] = Aggregate(PASSAGES)
        self.talks: Aggregate[Talk] = Aggregate(TALKS)
        self.photos: Aggregate[Photo] = Aggregate(PHOTOS)
        self.sequences: dict[str, Aggregate[Photo]] = {}

        self.pages_meta: dict[str, PageMeta] = {}
        self.pages_forced = False
        self.changed: dict[str, bool] = {}

    def phases(self) -> list[Phase]:
        return [
            Phase("content", self.enqueue_content, self.finish_content),
            Phase("aggregates", self.enqueue_aggregates),
        ]

    #
    # Phase 0
    #

    def setup(self, ctx: BuildContext) -> None:
        for name in TARGET_DIRS:
            ensure_dir(ctx.target_path(name))
        ensure_dir(versioned_assets_dir(ctx))
        ensure_dir(self.temp_dir(ctx))
        ensure_dir(self.photo_dir(ctx))

        for content_name, link_name in SYMLINKS:
            content_dir = ctx.content_path(content_name)
            if content_dir.is_dir():
                ensure_symlink(content_dir, ctx.target_path(link_name))

        # Every page depends on the shared page metadata, so a change to it
        # forces every page to render.
        meta_file = ctx.source_dir / PAGES_DIR / META_FILENAME
        if meta_file.is_file():
            self.pages_meta = load_pages_meta(meta_file)
            self.pages_forced = ctx.changed(meta_file)

    @staticmethod
    def temp_dir(ctx: BuildContext) -> Path:
        return Path(os.path.join(ctx.source_dir, ctx.config.temp_dir))

    @staticmethod
    def photo_dir(ctx: BuildContext) -> Path:
        return ctx.content_path("photographs")

    #
    # Phase 1
    #

    def enqueue_content(self, ctx: BuildContext) -> None:
        self._enqueue_items(ctx, ARTICLES, render_article, self.articles)
        self._enqueue_items(ctx, FRAGMENTS, render_fragment, self.fragments)
        self._enqueue_items(ctx, PASSAGES, render_passage, self.passages)
        self._enqueue_items(ctx, TALKS, render_talk, self.talks)
        self._enqueue_pages(ctx)
        self._enqueue_photo_manifests(ctx)

        ctx.submit("assets/app.js", functools.partial(compile_javascripts, ctx))
        ctx.submit("assets/app.css", functools.partial(compile_stylesheets, ctx))
        ctx.submit("robots.txt", functools.partial(render_robots_txt, ctx))

    def _enqueue_items(
        self,
        ctx: BuildContext,
        group: str,
        render: Callable[[BuildContext, str], Rendered[_T]],
        aggregate: Aggregate[_T],
    ) -> None:
        for order, source in enumerate(content_sources(ctx, group)):
            ctx.submit(
                ctx.tracker.to_source_id(source),
                functools.partial(_collect, ctx, render, aggregate, source, order),
                group=group,
            )

    def _enqueue_pages(self, ctx: BuildContext) -> None:
        pages_dir = ctx.source_dir / PAGES_DIR
        if not pages_dir.is_dir():
            return
        page_ctx = ctx.forced_context() if self.pages_forced else ctx
        for source in iter_page_sources(pages_dir):
            ctx.submit(
                ctx.tracker.to_source_id(source),
                functools.partial(render_page, page_ctx, self.pages_meta, source),
            )

    def _enqueue_photo_manifests(self, ctx: BuildContext) -> None:
        manifest = self.photo_dir(ctx) / MANIFEST_FILENAME
        if manifest.is_file():
            ctx.submit(
                ctx.tracker.to_source_id(manifest),
                functools.partial(self._read_photos, ctx, manifest, self.photos),
                group=PHOTOS,
            )

        for sequence_dir in _existing_dirs(ctx, "sequences"):
            for path in list_dir(sequence_dir):
                manifest = Path(path, MANIFEST_FILENAME)
                if not manifest.is_file():
                    continue
                slug = os.path.basename(path)
                aggregate = self.sequences[slug] = Aggregate(SEQUENCE_PREFIX + slug)
                ctx.submit(
                    ctx.tracker.to_source_id(manifest),
                    functools.partial(self._read_photos, ctx, manifest, aggregate),
                    group=SEQUENCE_PREFIX + slug,
                )

    @staticmethod
    def _read_photos(
        ctx: BuildContext, manifest: Path, aggregate: Aggregate[Photo]
    ) -> bool:
        rendered = read_photo_manifest(ctx, manifest)
        for order, photo in enumerate(rendered.item):
            aggregate.add(photo, order)
        return rendered.executed

    def finish_content(self, results: Sequence[JobResult]) -> None:
        for aggregate in (
            self.articles,
            self.fragments,
            self.passages,
            self.talks,
            self.photos,
            *self.sequences.values(),
        ):
            aggregate.close()
        self.changed = fold_changed(results)

    #
    # Phase 2
    #

    def enqueue_aggregates(self, ctx: BuildContext) -> None:
        changed = self.changed.get
        articles = sort_by_published(self.articles.items)
        fragments = sort_by_published(self.fragments.items)
        passages = sort_by_published(self.passages.items)
        talks = sort_by_published(self.talks.items)
        photos = sort_by_occurred(self.photos.items)

        articles_changed = changed(ARTICLES, False)
        fragments_changed = changed(FRAGMENTS, False)
        photos_changed = changed(PHOTOS, False)

        if _existing_dirs(ctx, ARTICLES):
            ctx.submit(
                "articles/index",
                functools.partial(
                    aggregates.render_articles_index, ctx, articles, articles_changed
                ),
            )
            ctx.submit(
                "articles.atom",
                functools.partial(
                    aggregates.render_articles_feed, ctx, articles, articles_changed
                ),
            )
            for tag in ctx.config.feed_tags:
                ctx.submit(
                    f"articles-{tag}.atom",
                    functools.partial(
                        aggregates.render_articles_feed,
                        ctx,
                        articles,
                        articles_changed,
                        tag=tag,
                    ),
                )

        if _existing_dirs(ctx, FRAGMENTS):
            ctx.submit(
                "fragments/index",
                functools.partial(
                    aggregates.render_fragments_index, ctx, fragments, fragments_changed
                ),
            )
            ctx.submit(
                "fragments.atom",
                functools.partial(
                    aggregates.render_fragments_feed, ctx, fragments, fragments_changed
                ),
            )

        if _existing_dirs(ctx, PASSAGES):
            ctx.submit(
                "passages/index",
                functools.partial(
                    aggregates.render_passages_index,
                    ctx,
                    passages,
                    changed(PASSAGES, False),
                ),
            )

        if _existing_dirs(ctx, TALKS):
            ctx.submit(
                "talks/index",
                functools.partial(
                    aggregates.render_talks_index, ctx, talks, changed(TALKS, False)
                ),
            )

        ctx.submit(
            "home",
            functools.partial(
                aggregates.render_home,
                ctx,
                articles,
                fragments,
                photos,
                articles_changed or fragments_changed or photos_changed,
            ),
        )

        self._enqueue_photos(ctx, photos, photos_changed)
        self._enqueue_sequences(ctx)

    def _enqueue_photos(
        self, ctx: BuildContext, photos: list[Photo], photos_changed: bool
    ) -> None:
        photo_dir = self.photo_dir(ctx)
        if not (photo_dir / MANIFEST_FILENAME).is_file():
            return
        ctx.submit(
            "photos/index",
            functools.partial(aggregates.render_photo_index, ctx, photos, photos_changed),
        )
        for photo in photos:
            ctx.submit(
                f"photos/fetch/{photo.slug}",
                functools.partial(
                    fetch_and_resize_photo,
                    ctx.config,
                    self.temp_dir(ctx),
                    photo_dir,
                    photo,
                ),
            )

    def _enqueue_sequences(self, ctx: BuildContext) -> None:
        for slug, aggregate in self.sequences.items():
            sequence_changed = self.changed.get(SEQUENCE_PREFIX + slug, False)
            photo_dir = self.photo_dir(ctx) / "sequences" / slug
            ensure_dir(ctx.target_path("sequences", slug))
            ensure_dir(photo_dir)
            for photo in aggregate.items:
                ctx.submit(
                    f"sequences/{slug}/{photo.slug}",
                    functools.partial(
                        aggregates.render_sequence_photo,
                        ctx,
                        slug,
                        photo,
                        sequence_changed,
                    ),
                )
                ctx.submit(
                    f"sequences/{slug}/fetch/{photo.slug}",
                    functools.partial(
                        fetch_and_resize_photo,
                        ctx.config,
                        self.temp_dir(ctx),
                        photo_dir,
                        photo,
                    ),
                )
