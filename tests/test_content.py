from __future__ import annotations

import datetime
import random
import textwrap

import pytest

from folio.content import find_image
from folio.content import twitter_card_image_url
from folio.content.articles import parse_article
from folio.content.articles import render_article
from folio.content.assets import compile_stylesheets
from folio.content.assets import render_robots_txt
from folio.content.assets import ROBOTS_PUBLIC
from folio.content.fragments import parse_fragment
from folio.content.pages import iter_page_sources
from folio.content.pages import load_pages_meta
from folio.content.pages import page_path_from_source
from folio.content.pages import page_target
from folio.content.pages import PageMeta
from folio.content.passages import issue_from_slug
from folio.content.passages import parse_passage
from folio.content.passages import render_passage
from folio.content.photos import load_photo_manifest
from folio.content.photos import NUM_RECENT_PHOTOS
from folio.content.photos import Photo
from folio.content.photos import read_photo_manifest
from folio.content.photos import select_random_photo
from folio.content.talks import parse_talk
from folio.exception import ValidationError


@pytest.fixture
def write(scratch_site):
    def write(name, content, mode="w"):
        path = scratch_site / name
        path.parent.mkdir(parents=True, exist_ok=True)
        if "b" in mode:
            path.write_bytes(content)
        else:
            path.write_text(textwrap.dedent(content), encoding="utf-8")
        return path

    return write


class TestArticles:
    def test_parse(self, ctx, scratch_site):
        article = parse_article(ctx, scratch_site / "content/articles/first.md")
        assert article.slug == "first"
        assert article.title == "First Article"
        assert article.location == "Berlin"
        assert article.tags == ("postgres",)
        assert article.tagged_with("postgres")
        assert not article.draft
        assert article.url_path == "/first"
        assert article.hook_image_url == ""
        assert 'id="introduction"' in article.content
        assert 'href="#introduction"' in article.toc

    def test_hook_image(self, ctx, scratch_site, write):
        write("content/images/first/hook.png", b"", mode="wb")
        article = parse_article(ctx, scratch_site / "content/articles/first.md")
        assert article.hook_image_url == "/images/first/hook.png"

    def test_single_tag(self, ctx, write):
        source = write(
            "content/articles/one-tag.md",
            """\
            ---
            title: One Tag
            published_at: 2020-01-01
            location: Paris
            tags: ruby
            ---
            """,
        )
        assert parse_article(ctx, source).tags == ("ruby",)

    def test_missing_location(self, ctx, write):
        source = write(
            "content/articles/nowhere.md",
            "---\ntitle: Nowhere\npublished_at: 2020-01-01\n---\n\nBody\n",
        )
        with pytest.raises(ValidationError, match="No location for article"):
            parse_article(ctx, source)

    def test_drafts(self, ctx, write):
        source = write(
            "content/drafts/wip.md",
            "---\ntitle: WIP\npublished_at: 2020-01-01\nlocation: Home\n---\n",
        )
        assert parse_article(ctx, source).draft

    def test_publishing_info(self, ctx, scratch_site):
        article = parse_article(ctx, scratch_site / "content/articles/second.md")
        info = article.publishing_info()
        assert "June 1, 2021" in info
        assert "San Francisco" in info

    def test_render_then_skip(self, ctx, job_ctx, scratch_site):
        source = scratch_site / "content/articles/first.md"
        rendered = render_article(ctx, source)
        assert rendered.executed
        assert "<h1>First Article</h1>" in (scratch_site / "public/first").read_text()

        job_ctx.txn.commit()
        rendered = render_article(ctx, source)
        assert not rendered.executed
        assert rendered.item.title == "First Article"


def test_find_image(scratch_site, write):
    write("content/images/a/twitter@2x.jpg", b"", mode="wb")
    write("content/images/a/twitter@2x.png", b"", mode="wb")
    assert find_image(scratch_site / "content/images/a/twitter@2x") == "jpg"
    assert find_image(scratch_site / "content/images/a/missing") is None


def test_twitter_card_image_url(ctx, write):
    assert twitter_card_image_url(ctx, "fragments/hello") == ""
    write("content/images/fragments/hello/twitter@2x.png", b"", mode="wb")
    assert (
        twitter_card_image_url(ctx, "fragments/hello")
        == "https://example.com/images/fragments/hello/twitter@2x.png"
    )


def test_parse_fragment(scratch_site):
    fragment = parse_fragment(scratch_site / "content/fragments/hello.md")
    assert fragment.title == "Hello"
    assert fragment.url_path == "/fragments/hello"
    assert fragment.content == "<p>A short fragment.</p>\n"


def test_parse_talk_requires_event(write):
    source = write(
        "content/talks/untitled.md", "---\ntitle: T\npublished_at: 2020-01-01\n---\n"
    )
    with pytest.raises(ValidationError, match="No event for talk"):
        parse_talk(source)


class TestPassages:
    @pytest.mark.parametrize(
        "slug, issue",
        [("001-beginnings", "001"), ("012-the-long-one", "012")],
    )
    def test_issue_from_slug(self, slug, issue):
        assert issue_from_slug(slug, "x.md") == issue

    @pytest.mark.parametrize("slug", ["beginnings", "001-", "-beginnings"])
    def test_issue_from_slug_invalid(self, slug):
        with pytest.raises(
            ValidationError, match="Expected passage slug to contain issue number"
        ):
            issue_from_slug(slug, "x.md")

    def test_parse(self, scratch_site):
        passage = parse_passage(scratch_site / "content/passages/001-beginnings.md")
        assert passage.issue == "001"
        assert passage.title == "Beginnings"
        assert passage.url_path == "/passages/001-beginnings"

    def test_images_have_no_srcset(self, write):
        source = write(
            "content/passages/002-pictures.md",
            "---\ntitle: Pictures\npublished_at: 2021-04-01\n---\n\n"
            "![A view](/assets/images/passages/view.jpg)\n",
        )
        assert "srcset" not in parse_passage(source).content

    def test_render(self, ctx, job_ctx, scratch_site):
        rendered = render_passage(ctx, scratch_site / "content/passages/001-beginnings.md")
        assert rendered.executed
        html = (scratch_site / "public/passages/001-beginnings").read_text()
        assert "<h1>001: Beginnings</h1>" in html


def make_photo(n, keep=False):
    return Photo(
        source="_meta.yaml",
        slug=f"photo-{n}",
        title=f"Photo {n}",
        occurred_at=datetime.datetime(2000, 1, 1, tzinfo=datetime.timezone.utc)
        + datetime.timedelta(days=n),
        keep_in_home_rotation=keep,
    )


class TestPhotos:
    def test_load_manifest(self, scratch_site):
        (photo,) = load_photo_manifest(scratch_site / "content/photographs/_meta.yaml")
        assert photo.slug == "sunset"
        assert photo.title == "Sunset"
        assert photo.description == "Over the bay."
        assert photo.occurred_at.year == 2021
        assert not photo.keep_in_home_rotation

    def test_load_empty_manifest(self, write):
        assert load_photo_manifest(write("content/photographs/_meta.yaml", "")) == []

    def test_manifest_requires_slug(self, write):
        source = write(
            "content/photographs/_meta.yaml",
            """\
            photographs:
              - title: Nameless
                occurred_at: 2021-01-01
            """,
        )
        with pytest.raises(ValidationError, match="No slug for photo"):
            load_photo_manifest(source)

    def test_invalid_manifest(self, write):
        source = write("content/photographs/_meta.yaml", "- just\n- a list\n")
        with pytest.raises(ValidationError, match="Invalid photo manifest"):
            load_photo_manifest(source)

    def test_read_manifest_executed_only_when_changed(self, ctx, job_ctx, scratch_site):
        source = scratch_site / "content/photographs/_meta.yaml"
        assert read_photo_manifest(ctx, source).executed
        job_ctx.txn.commit()
        rendered = read_photo_manifest(ctx, source)
        assert not rendered.executed
        assert len(rendered.item) == 1
        assert read_photo_manifest(ctx.forced_context(), source).executed

    def test_select_random_photo_empty(self):
        assert select_random_photo([]) is None

    def test_select_random_photo_candidates(self):
        photos = [make_photo(n) for n in range(40, 0, -1)]
        photos[30] = make_photo(10, keep=True)
        candidates = set(photos[:NUM_RECENT_PHOTOS]) | {photos[30]}

        rng = random.Random(1234)
        seen = {select_random_photo(photos, rng) for _ in range(500)}
        assert seen <= candidates
        assert photos[30] in seen
        assert photos[35] not in seen


class TestPages:
    def test_load_pages_meta(self, write):
        source = write(
            "pages/_meta.yaml",
            """\
            about:
              title: About
              body_class: about
            talks/index:
            """,
        )
        assert load_pages_meta(source) == {
            "about": PageMeta(title="About", body_class="about"),
            "talks/index": PageMeta(),
        }

    @pytest.mark.parametrize("text", ["about: About\n", "about: [1, 2]\n", "- about\n"])
    def test_invalid_pages_meta(self, write, text):
        source = write("pages/_meta.yaml", text)
        with pytest.raises(ValidationError, match="Invalid page metadata") as exc_info:
            load_pages_meta(source)
        assert exc_info.value.source == str(source)

    def test_default_title(self):
        assert PageMeta().title == "Untitled Page"

    def test_iter_page_sources(self, scratch_site, write):
        write("pages/talks/index.html", "")
        write("pages/.hidden.html", "")
        write("pages/notes.txt", "")
        pages_dir = scratch_site / "pages"
        assert [page_path_from_source(pages_dir, s) for s in iter_page_sources(pages_dir)] == [
            "about",
            "talks/index",
        ]

    @pytest.mark.parametrize(
        "page_path, expected",
        [
            ("about", "public/about"),
            ("talks/index", "public/talks/index.html"),
            ("index", "public/index.html"),
        ],
    )
    def test_page_target(self, ctx, scratch_site, page_path, expected):
        assert page_target(ctx, page_path) == scratch_site / expected


class TestAssets:
    def test_missing_directory(self, ctx, job_ctx):
        assert not compile_stylesheets(ctx)

    def test_concatenates_in_name_order(self, ctx, job_ctx, scratch_site, write):
        write("content/stylesheets/b.css", "b {}\n")
        write("content/stylesheets/a.css", "a {}\n")
        write("content/stylesheets/notes.txt", "ignored\n")
        assert compile_stylesheets(ctx)

        css = (scratch_site / "public/assets/1/app.css").read_text()
        assert css == "/* a.css */\na {}\n\n/* b.css */\nb {}\n\n"

        job_ctx.txn.commit()
        assert not compile_stylesheets(ctx)

    def test_removed_source_recompiles(self, ctx, job_ctx, scratch_site, write):
        write("content/stylesheets/a.css", "a {}\n")
        b = write("content/stylesheets/b.css", "b {}\n")
        assert compile_stylesheets(ctx)
        job_ctx.txn.commit()

        b.unlink()
        assert compile_stylesheets(ctx)
        assert "b.css" not in (scratch_site / "public/assets/1/app.css").read_text()

    def test_robots_txt(self, ctx, scratch_site):
        assert render_robots_txt(ctx)
        assert (scratch_site / "public/robots.txt").read_text() == ROBOTS_PUBLIC
