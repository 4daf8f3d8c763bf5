from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from folio.builder import Builder
from folio.context import BuildContext
from folio.environment import Environment
from folio.environment.config import Config
from folio.environment.config import ENVIRONMENT_OVERRIDES
from folio.jobs import JobContext
from folio.jobs import JobTransaction
from folio.pool import WorkerPool
from folio.reporter import BufferReporter
from folio.tracker import ChangeTracker

LAYOUT = """\
<!doctype html>
<html>
<head><title>{{ title }}</title></head>
<body class="{{ body_class }}">{% block content %}{% endblock %}</body>
</html>
"""

TEMPLATES = {
    "layouts/main.html": LAYOUT,
    "layouts/passages.html": LAYOUT,
    "views/articles/show.html": """\
        {% extends layout %}
        {% block content %}<h1>{{ article.title }}</h1>
        {{ article.toc|safe }}{{ article.content|safe }}{% endblock %}
        """,
    "views/articles/index.html": """\
        {% extends layout %}
        {% block content %}
        {% for group in articles_by_year %}<h2>{{ group.year }}</h2>
        {% for article in group.items %}<a href="{{ article.url_path }}">{{ article.title }}</a>
        {% endfor %}{% endfor %}
        {% endblock %}
        """,
    "views/fragments/show.html": """\
        {% extends layout %}
        {% block content %}<h1>{{ fragment.title }}</h1>{{ fragment.content|safe }}{% endblock %}
        """,
    "views/fragments/index.html": """\
        {% extends layout %}
        {% block content %}
        {% for group in fragments_by_year %}<h2>{{ group.year }}</h2>
        {% for fragment in group.items %}{{ fragment.title }}
        {% endfor %}{% endfor %}
        {% endblock %}
        """,
    "views/passages/show.html": """\
        {% extends layout %}
        {% block content %}<h1>{{ passage.issue }}: {{ passage.title }}</h1>
        {{ passage.content|safe }}{% endblock %}
        """,
    "views/passages/index.html": """\
        {% extends layout %}
        {% block content %}{% for passage in passages %}{{ passage.title }}
        {% endfor %}{% endblock %}
        """,
    "views/talks/show.html": """\
        {% extends layout %}
        {% block content %}<h1>{{ talk.title }}</h1>{{ talk.content|safe }}{% endblock %}
        """,
    "views/talks/index.html": """\
        {% extends layout %}
        {% block content %}{% for talk in talks %}{{ talk.title }}
        {% endfor %}{% endblock %}
        """,
    "views/photos/index.html": """\
        {% extends layout %}
        {% block content %}{% for photo in photos %}{{ photo.title }}
        {% endfor %}{% endblock %}
        """,
    "views/sequences/photo.html": """\
        {% extends layout %}
        {% block content %}<h1>{{ photo.title }}</h1>{{ description|safe }}{% endblock %}
        """,
    "views/index.html": """\
        {% extends layout %}
        {% block content %}
        {% for article in articles %}{{ article.title }}
        {% endfor %}{% for fragment in fragments %}{{ fragment.title }}
        {% endfor %}{% if photo %}{{ photo.title }}{% endif %}
        {% endblock %}
        """,
    "pages/about.html": """\
        {% extends layout %}
        {% block content %}About this site.{% endblock %}
        """,
}

CONTENT = {
    "folio.ini": """\
        [site]
        url = https://example.com/
        name = Example
        author_name = Jane Doe

        [build]
        concurrency = 4
        target_dir = public
        """,
    "pages/_meta.yaml": """\
        about:
          title: About
          body_class: about
        """,
    "content/articles/first.md": """\
        ---
        title: First Article
        published_at: 2020-01-01T00:00:00Z
        location: Berlin
        tags: [postgres]
        ---

        ## Introduction

        Hello, world.
        """,
    "content/articles/second.md": """\
        ---
        title: Second Article
        published_at: 2021-06-01T00:00:00Z
        location: San Francisco
        hook: The second one.
        ---

        Some *more* text.
        """,
    "content/fragments/hello.md": """\
        ---
        title: Hello
        published_at: 2021-02-03T00:00:00Z
        ---

        A short fragment.
        """,
    "content/passages/001-beginnings.md": """\
        ---
        title: Beginnings
        published_at: 2021-03-01T00:00:00Z
        ---

        The first issue.
        """,
    "content/talks/on-builds.md": """\
        ---
        title: On Builds
        published_at: 2019-05-01T00:00:00Z
        event: BuildConf
        ---

        Slides and notes.
        """,
    "content/photographs/_meta.yaml": """\
        photographs:
          - slug: sunset
            title: Sunset
            description: Over the bay.
            original_image_url: https://images.example.com/sunset.jpg
            occurred_at: 2021-07-01T19:00:00Z
        """,
    # Already fetched, so no build ever touches the network.
    "content/photographs/sunset.marker": "",
}


def write_files(root: Path, files: dict[str, str]) -> None:
    for name, content in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(content), encoding="utf-8")


@pytest.fixture(autouse=True)
def isolated_environ(monkeypatch):
    for var in ENVIRONMENT_OVERRIDES:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def scratch_site_data():
    return {**TEMPLATES, **CONTENT}


@pytest.fixture
def scratch_site(tmp_path, scratch_site_data):
    source_dir = tmp_path / "site"
    write_files(source_dir, scratch_site_data)
    return source_dir


@pytest.fixture
def reporter():
    with BufferReporter() as reporter:
        yield reporter


@pytest.fixture
def builder(scratch_site, reporter):
    with Builder(scratch_site) as builder:
        yield builder


@pytest.fixture
def tracker(scratch_site, tmp_path):
    tracker = ChangeTracker(tmp_path / "buildstate", scratch_site)
    yield tracker
    tracker.close()


@pytest.fixture
def ctx(scratch_site, tracker):
    config = Config(scratch_site / "folio.ini", environ={})
    with WorkerPool(tracker, concurrency=2) as pool:
        yield BuildContext(
            source_dir=scratch_site,
            target_dir=scratch_site / "public",
            config=config,
            env=Environment(scratch_site, config),
            tracker=tracker,
            pool=pool,
        )


@pytest.fixture
def job_ctx(tracker):
    with JobTransaction(tracker, "job") as txn, JobContext(txn) as job_ctx:
        yield job_ctx
