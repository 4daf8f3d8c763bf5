from __future__ import annotations

import dataclasses
import re
from typing import Any
from typing import TYPE_CHECKING

import mistune
from mistune.toc import add_toc_hook
from mistune.toc import render_toc_ul

if TYPE_CHECKING:
    from mistune.core import BaseRenderer


_RETINA_SUFFIXES = (".jpg", ".png")
_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_DASH_RE = re.compile(r"[\s_-]+")


@dataclasses.dataclass(frozen=True)
class RenderOptions:
    """Tweaks to the HTML produced from Markdown.

    The defaults render for the web site.  Rendering for other media (e.g.
    email) wants absolute URLs and none of the in-page navigation links.
    """

    absolute_urls: bool = False
    no_footnote_links: bool = False
    no_header_links: bool = False
    no_retina: bool = False
    site_url: str = ""


DEFAULT_OPTIONS = RenderOptions()


def slugify(text: str) -> str:
    text = _SLUG_STRIP_RE.sub("", text).strip().lower()
    return _SLUG_DASH_RE.sub("-", text)


def _heading_id(token: dict[str, Any], index: int) -> str:
    return slugify(token.get("text", "")) or f"section-{index + 1}"


class SiteRenderer(mistune.HTMLRenderer):
    def __init__(self, options: RenderOptions):
        super().__init__(escape=False)
        self.options = options

    def _url(self, url: str) -> str:
        if self.options.absolute_urls and url.startswith("/"):
            return self.options.site_url + url
        return url

    def heading(self, text: str, level: int, **attrs: Any) -> str:
        tag = f"h{level}"
        heading_id = attrs.get("id")
        if not heading_id:
            return f"<{tag}>{text}</{tag}>\n"
        if self.options.no_header_links:
            return f'<{tag} id="{heading_id}">{text}</{tag}>\n'
        return f'<{tag} id="{heading_id}"><a href="#{heading_id}">{text}</a></{tag}>\n'

    def link(self, text: str, url: str, title: str | None = None) -> str:
        return super().link(text, self._url(url), title)

    def image(self, text: str, url: str, title: str | None = None) -> str:
        src = self._url(url)
        html = f'<img src="{mistune.escape(src)}" alt="{mistune.escape(text)}"'
        if not self.options.no_retina and url.startswith("/") and url.endswith(
            _RETINA_SUFFIXES
        ):
            stem, dot, ext = src.rpartition(".")
            srcset = f"{stem}@2x{dot}{ext} 2x, {src} 1x"
            html += f' srcset="{mistune.escape(srcset)}"'
        if title:
            html += f' title="{mistune.escape(title)}"'
        return html + " />"


def _render_plain_footnote_ref(renderer: BaseRenderer, key: str, index: int) -> str:
    return f'<sup class="footnote-ref">{index}</sup>'


def create_markdown(options: RenderOptions = DEFAULT_OPTIONS) -> mistune.Markdown:
    md = mistune.create_markdown(
        renderer=SiteRenderer(options),
        plugins=["footnotes", "table", "strikethrough"],
    )
    if options.no_footnote_links:
        md.renderer.register("footnote_ref", _render_plain_footnote_ref)
    add_toc_hook(md, min_level=2, max_level=3, heading_id=_heading_id)
    return md


def render_markdown(source: str, options: RenderOptions = DEFAULT_OPTIONS) -> str:
    """Render Markdown to HTML."""
    html, _state = create_markdown(options).parse(source)
    return str(html)


def render_markdown_with_toc(
    source: str, options: RenderOptions = DEFAULT_OPTIONS
) -> tuple[str, str]:
    """Render Markdown to HTML along with a table of contents.

    The table of contents is a nested ``<ul>`` linking to the second and
    third level headings of the document.  It is empty if there are none.
    """
    html, state = create_markdown(options).parse(source)
    toc_items = state.env.get("toc_items") or []
    return str(html), render_toc_ul(toc_items)
