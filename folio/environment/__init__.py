from __future__ import annotations

import datetime
import os
from pathlib import Path
from typing import Any
from typing import MutableMapping
from typing import TYPE_CHECKING

import jinja2

from folio.environment.config import Config
from folio.jobs import get_ctx
from folio.utils import atomic_write
from folio.views import BaseView
from folio.views import template_values

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext
    from folio.views import View


MAIN_LAYOUT = "layouts/main.html"
PASSAGE_LAYOUT = "layouts/passages.html"
VIEWS_DIR = "views"

PROJECT_FILENAME = "folio.ini"


def format_date(value: datetime.date | None) -> str:
    """Format like "January 2, 2006"."""
    if value is None:
        return ""
    return f"{value:%B} {value.day}, {value.year}"


def format_iso(value: datetime.datetime | None) -> str:
    if value is None:
        return ""
    return value.isoformat()


class CustomJinjaEnvironment(jinja2.Environment):
    def _load_template(
        self, name: str, globals: MutableMapping[str, Any] | None
    ) -> jinja2.Template:
        # Layouts and includes are recorded as dependencies of the current
        # job on every load, including loads served from the cache.
        rv = super()._load_template(name, globals)
        ctx = get_ctx()
        if ctx is not None and rv.filename is not None:
            ctx.record_dependency(rv.filename)
        return rv


class Environment:
    """Templates and site-wide values for one source tree."""

    def __init__(self, source_dir: StrPath, config: Config | None = None):
        self.source_dir = Path(source_dir).resolve()
        if config is None:
            config = Config(self.project_file)
        self.config = config

        self.jinja_env = CustomJinjaEnvironment(
            loader=jinja2.FileSystemLoader(os.fspath(self.source_dir)),
            autoescape=jinja2.select_autoescape(["html", "xml"]),
            keep_trailing_newline=True,
        )
        self.jinja_env.filters.update(
            format_date=format_date,
            format_iso=format_iso,
            absolute_url=self.absolute_url,
        )
        self.jinja_env.globals.update(
            site_url=config.site_url,
            site_name=config.site_name,
            author_name=config.author_name,
        )

    @property
    def project_file(self) -> Path:
        return self.source_dir / PROJECT_FILENAME

    def absolute_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return self.config.site_url + "/" + path.lstrip("/")

    def template_path(self, name: str) -> Path:
        return self.source_dir / name

    def base_view(self, title: str, **kwargs: Any) -> BaseView:
        config = self.config
        return BaseView(
            title=title,
            release=config.release,
            google_analytics_id=config.google_analytics_id,
            local_fonts=config.local_fonts,
            **kwargs,
        )

    def render_template(self, name: str, values: dict[str, Any]) -> str:
        return self.jinja_env.get_template(name).render(values)

    def render_into(
        self,
        ctx: BuildContext,
        layout: str,
        view: str,
        target: StrPath,
        view_model: View,
    ) -> bool:
        """Render ``view`` within ``layout`` to ``target``.

        The view template is expected to extend the template named by its
        ``layout`` variable.  Rendering is skipped (returning ``False``) when
        the context is not forced and neither the layout, the view, nor any
        template recorded on a previous render has changed.
        """
        templates_changed = ctx.changed_any(
            [self.template_path(layout), self.template_path(view)]
        )
        dependencies_changed = ctx.dependencies_changed()
        if not (templates_changed or dependencies_changed or ctx.forced):
            return False

        values = template_values(view_model)
        values["layout"] = layout
        html = self.render_template(view, values)
        with atomic_write(target) as fp:
            fp.write(html)
        return True
