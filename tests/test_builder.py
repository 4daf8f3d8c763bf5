from __future__ import annotations

import os
import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from folio.atom import ATOM_NS
from folio.builder import Aggregate
from folio.builder import Builder
from folio.builder import DRIVER_JOB_ID
from folio.builder import fold_changed
from folio.builder import Phase
from folio.content.assets import ROBOTS_PUBLIC
from folio.exception import PhaseOrderError
from folio.jobs import Job
from folio.jobs import JobResult

NS = {"atom": ATOM_NS}


def snapshot(target_dir: Path) -> dict[str, int]:
    """Modification times of every output file (not following symlinks)."""
    mtimes = {}
    for dirpath, dirnames, filenames in os.walk(target_dir):
        dirnames[:] = [name for name in dirnames if name != ".folio"]
        for name in filenames:
            path = os.path.join(dirpath, name)
            mtimes[os.path.relpath(path, target_dir)] = os.stat(path).st_mtime_ns
    return mtimes


@pytest.fixture
def public(scratch_site):
    return scratch_site / "public"


def test_basic_build(builder, public, reporter):
    assert builder.build()

    for name in (
        "first",
        "second",
        "fragments/hello",
        "passages/001-beginnings",
        "on-builds",
        "about",
        "index.html",
        "articles/index.html",
        "fragments/index.html",
        "passages/index.html",
        "talks/index.html",
        "photos/index.html",
        "articles.atom",
        "articles-postgres.atom",
        "fragments.atom",
    ):
        assert (public / name).is_file(), name

    assert (public / "robots.txt").read_text() == ROBOTS_PUBLIC
    assert (public / "photographs").is_symlink()
    assert not (public / "fonts").exists()
    assert reporter.get_failures() == []


def test_rendered_output(builder, public):
    assert builder.build()

    article = (public / "first").read_text()
    assert "<title>First Article</title>" in article
    assert '<h2 id="introduction">' in article
    assert 'href="#introduction"' in article

    about = (public / "about").read_text()
    assert "<title>About</title>" in about
    assert 'class="about"' in about

    passage = (public / "passages/001-beginnings").read_text()
    assert "001: Beginnings" in passage

    home = (public / "index.html").read_text()
    assert "Second Article" in home
    assert "Hello" in home
    assert "Sunset" in home


def test_articles_index_groups_by_year(builder, public):
    """Two articles from different years land in two groups, newest first."""
    assert builder.build()

    index = (public / "articles/index.html").read_text()
    assert index.count("<h2>") == 2
    assert index.index("<h2>2021</h2>") < index.index("<h2>2020</h2>")
    assert index.index("Second Article") < index.index("First Article")

    feed = ET.parse(public / "articles.atom").getroot()
    entries = feed.findall("atom:entry", NS)
    assert [entry.findtext("atom:title", namespaces=NS) for entry in entries] == [
        "Second Article",
        "First Article",
    ]
    assert entries[0].findtext("atom:id", namespaces=NS) == (
        "tag:example.com,2021-06-01:second"
    )
    assert feed.findtext("atom:updated", namespaces=NS).startswith("2021-06-01")


def test_tagged_feed_only_has_tagged_articles(builder, public):
    assert builder.build()

    feed = ET.parse(public / "articles-postgres.atom").getroot()
    assert feed.findtext("atom:title", namespaces=NS) == "Articles (postgres) - Example"
    entries = feed.findall("atom:entry", NS)
    assert [entry.findtext("atom:title", namespaces=NS) for entry in entries] == [
        "First Article"
    ]


def test_feed_entry_limit(scratch_site, public, reporter):
    ini = scratch_site / "folio.ini"
    ini.write_text(ini.read_text() + "\n[feeds]\nnum_entries = 1\n")
    with Builder(scratch_site) as builder:
        assert builder.build()

    feed = ET.parse(public / "articles.atom").getroot()
    assert len(feed.findall("atom:entry", NS)) == 1


def test_invalid_article_fails_build(builder, scratch_site, public, reporter):
    broken = scratch_site / "content/articles/broken.md"
    broken.write_text("---\nlocation: Nowhere\npublished_at: 2020-01-01\n---\nBody\n")

    assert not builder.build()

    (failure,) = reporter.get_failures()
    assert failure["job"].id == "content/articles/broken.md"
    assert "No title for article" in str(failure["exc_info"][1])
    assert ("phase-failure", {"phase": "content", "failures": 1}) in (
        reporter.get_major_events()
    )
    assert ("build-failure", {"failures": 1}) in reporter.get_major_events()

    # Siblings still rendered, but the aggregates phase never started.
    assert (public / "first").is_file()
    assert not (public / "articles/index.html").exists()
    assert builder.failure_controller.lookup_failure("content/articles/broken.md")

    # The failed job left no record, so fixing it makes it render.
    broken.write_text(
        "---\ntitle: Fixed\nlocation: Nowhere\npublished_at: 2020-01-01\n---\nBody\n"
    )
    reporter.clear()
    assert builder.build()
    assert "content/articles/broken.md" in reporter.get_executed_jobs()
    assert builder.failure_controller.lookup_failure("content/articles/broken.md") is None
    assert "Fixed" in (public / "articles/index.html").read_text()


def test_second_build_builds_nothing(builder, public, reporter):
    assert builder.build()
    before = snapshot(public)

    reporter.clear()
    assert builder.build()

    results = reporter.get_job_results()
    assert "content/articles/first.md" in results
    assert "articles/index" in results
    assert "home" in results
    assert [job_id for job_id, executed in results.items() if executed] == []
    assert snapshot(public) == before


def test_second_build_skips_aggregates_without_inputs(scratch_site, reporter):
    (scratch_site / "folio.ini").unlink()
    (scratch_site / "content/fragments/hello.md").unlink()
    with Builder(scratch_site) as builder:
        assert builder.build()
        assert "fragments.atom" in reporter.get_executed_jobs()

        reporter.clear()
        assert builder.build()
        assert reporter.get_executed_jobs() == set()


def test_touch_is_not_a_change(builder, scratch_site, reporter):
    assert builder.build()
    source = scratch_site / "content/articles/first.md"
    st = source.stat()
    os.utime(source, ns=(st.st_atime_ns, st.st_mtime_ns + 10**9))

    reporter.clear()
    assert builder.build()
    assert reporter.get_executed_jobs() == set()


def test_changed_article_rebuilds_article_and_aggregates(
    builder, scratch_site, reporter
):
    assert builder.build()
    source = scratch_site / "content/articles/first.md"
    source.write_text(source.read_text().replace("Hello, world.", "Hello again."))

    reporter.clear()
    assert builder.build()
    executed = reporter.get_executed_jobs()
    assert "content/articles/first.md" in executed
    assert {"articles/index", "articles.atom", "home"} <= executed
    assert "content/articles/second.md" not in executed
    assert "fragments/index" not in executed
    assert "content/fragments/hello.md" not in executed


def test_force_rebuilds_everything(builder, reporter):
    assert builder.build()

    reporter.clear()
    assert builder.build(force=True)
    executed = reporter.get_executed_jobs()
    assert "content/articles/first.md" in executed
    assert "pages/about.html" in executed
    assert "robots.txt" in executed
    # The marker still holds back the fetch.
    assert "photos/fetch/sunset" not in executed


def test_pages_meta_change_forces_every_page(builder, scratch_site, reporter):
    (scratch_site / "pages/contact.html").write_text(
        "{% extends layout %}{% block content %}Write.{% endblock %}"
    )
    assert builder.build()

    meta = scratch_site / "pages/_meta.yaml"
    meta.write_text(meta.read_text() + "contact:\n  title: Contact\n")

    reporter.clear()
    assert builder.build()
    executed = reporter.get_executed_jobs()
    assert {"pages/about.html", "pages/contact.html"} <= executed
    assert "content/articles/first.md" not in executed
    assert "<title>Contact</title>" in (scratch_site / "public/contact").read_text()


def test_missing_page_meta_is_reported(builder, scratch_site, reporter):
    (scratch_site / "pages/contact.html").write_text(
        "{% extends layout %}{% block content %}Write.{% endblock %}"
    )
    assert builder.build()
    assert ("generic", {"message": "No page meta information: contact"}) in (
        reporter.get_major_events()
    )
    assert "<title>Untitled Page</title>" in (
        scratch_site / "public/contact"
    ).read_text()


def test_template_change_rebuilds_its_users(builder, scratch_site, reporter):
    assert builder.build()
    template = scratch_site / "views/articles/show.html"
    template.write_text(template.read_text() + "\n<!-- changed -->\n")

    reporter.clear()
    assert builder.build()
    executed = reporter.get_executed_jobs()
    assert {"content/articles/first.md", "content/articles/second.md"} <= executed
    assert "content/fragments/hello.md" not in executed


def test_layout_change_rebuilds_everything_using_it(builder, scratch_site, reporter):
    assert builder.build()
    layout = scratch_site / "layouts/main.html"
    layout.write_text(layout.read_text().replace("<html>", '<html lang="en">'))

    reporter.clear()
    assert builder.build()
    executed = reporter.get_executed_jobs()
    assert {
        "content/articles/first.md",
        "content/fragments/hello.md",
        "pages/about.html",
        "home",
    } <= executed
    # Passages have their own layout.
    assert "content/passages/001-beginnings.md" not in executed


def test_project_file_change_rebuilds_everything(builder, scratch_site, reporter):
    assert builder.build()
    ini = scratch_site / "folio.ini"
    ini.write_text(ini.read_text().replace("name = Example", "name = Renamed"))

    reporter.clear()
    assert builder.build()
    executed = reporter.get_executed_jobs()
    assert {
        "content/articles/first.md",
        "content/passages/001-beginnings.md",
        "articles.atom",
    } <= executed


def test_deleted_article_rebuilds_index(builder, scratch_site, public, reporter):
    assert builder.build()
    (scratch_site / "content/articles/first.md").unlink()

    reporter.clear()
    assert builder.build()
    assert "articles/index" in reporter.get_executed_jobs()
    assert "First Article" not in (public / "articles/index.html").read_text()


def test_config_error_is_fatal(scratch_site, reporter):
    ini = scratch_site / "folio.ini"
    ini.write_text(ini.read_text().replace("concurrency = 4", "concurrency = lots"))
    with Builder(scratch_site, concurrency=2) as builder:
        assert not builder.build()

    assert reporter.get_job_results() == {}
    assert not (scratch_site / "public/first").exists()
    assert ("build-failure", {"failures": 1}) in reporter.get_major_events()


def test_malformed_pages_meta_fails_the_build(builder, scratch_site, reporter):
    (scratch_site / "pages/_meta.yaml").write_text("about: About\n")
    assert not builder.build()

    (message,) = [
        data["message"]
        for event, data in reporter.get_major_events()
        if event == "generic"
    ]
    assert message.startswith("Build setup failed: Invalid page metadata for about")
    assert ("build-failure", {"failures": 1}) in reporter.get_major_events()


def test_drafts(scratch_site, monkeypatch, reporter):
    drafts = scratch_site / "content/drafts"
    drafts.mkdir()
    (drafts / "wip.md").write_text(
        "---\ntitle: WIP\nlocation: Home\npublished_at: 2022-01-01\n---\nSoon.\n"
    )

    with Builder(scratch_site) as builder:
        assert builder.build()
    assert not (scratch_site / "public/wip").exists()

    monkeypatch.setenv("DRAFTS", "true")
    with Builder(scratch_site) as builder:
        assert builder.build()
    assert (scratch_site / "public/wip").is_file()
    assert "Disallow: /\n" in (scratch_site / "public/robots.txt").read_text()


def test_output_dir_override(scratch_site, tmp_path, reporter):
    output = tmp_path / "elsewhere"
    with Builder(scratch_site, output) as builder:
        assert builder.target_dir == output.resolve()
        assert builder.build()
    assert (output / "first").is_file()
    assert (output / ".folio/buildstate").is_file()


def test_driver_records_are_committed(builder):
    assert builder.build()
    sources = {row.source for row in builder.tracker.iter_records(DRIVER_JOB_ID)}
    assert sources == {"pages/_meta.yaml"}


class TestRunPhases:
    @staticmethod
    def plan(phases):
        class Plan:
            def setup(self, ctx):
                pass

            def phases(self):
                return phases

        return Plan

    def test_phase_failure_stops_later_phases(self, scratch_site, reporter):
        ran = []

        def fail(ctx):
            ctx.submit("bad", lambda: 1 / 0)
            ctx.submit("good", lambda: True)

        def never(ctx):
            ran.append("never")

        phases = [Phase("one", fail), Phase("two", never)]
        with Builder(scratch_site, plan_factory=self.plan(phases)) as builder:
            assert not builder.build()

        assert ran == []
        assert reporter.get_job_results() == {"good": True}
        assert ("phase-failure", {"phase": "one", "failures": 1}) in (
            reporter.get_major_events()
        )

    def test_finish_sees_results(self, scratch_site, reporter):
        seen = []

        def enqueue(ctx):
            ctx.submit("a", lambda: True, group="g")
            ctx.submit("b", lambda: False, group="g")

        def finish(results):
            seen.extend((result.job.id, result.executed) for result in results)

        phases = [Phase("one", enqueue, finish)]
        with Builder(scratch_site, plan_factory=self.plan(phases)) as builder:
            assert builder.build()
        assert seen == [("a", True), ("b", False)]

    def test_enqueue_error_waits_for_submitted_jobs(self, scratch_site, reporter):
        def enqueue(ctx):
            ctx.submit("a", lambda: True)
            raise OSError("listing failed")

        phases = [Phase("one", enqueue)]
        with Builder(scratch_site, plan_factory=self.plan(phases)) as builder:
            assert not builder.build()
        assert reporter.get_job_results() == {"a": True}


def test_aggregate_is_sorted_on_close():
    aggregate = Aggregate("things")
    aggregate.add("c", 2)
    aggregate.add("a", 0)
    aggregate.add("b", 1)
    aggregate.close()
    assert aggregate.items == ["a", "b", "c"]
    assert len(aggregate) == 3


def test_aggregate_read_before_close():
    aggregate = Aggregate("things")
    aggregate.add("a", 0)
    with pytest.raises(PhaseOrderError):
        aggregate.items


def test_aggregate_add_after_close():
    aggregate = Aggregate("things")
    aggregate.close()
    with pytest.raises(PhaseOrderError):
        aggregate.add("a", 0)


def test_fold_changed():
    def result(group, executed):
        return JobResult(Job("job", lambda: True, group), executed)

    results = [
        result("articles", False),
        result("articles", True),
        result("fragments", False),
        result(None, True),
    ]
    assert fold_changed(results) == {"articles": True, "fragments": False}
