"""View models handed to templates.

Each view is a dataclass with a ``base`` field holding the values every
layout needs.  :func:`template_values` flattens a view into the mapping the
template sees, with the view's own fields overriding the base fields.
"""
from __future__ import annotations

import dataclasses
from typing import Any
from typing import Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from folio.content.articles import Article
    from folio.content.fragments import Fragment
    from folio.content.passages import Passage
    from folio.content.photos import Photo
    from folio.content.talks import Talk
    from folio.ordering import YearGroup


@dataclasses.dataclass(frozen=True)
class TwitterCard:
    title: str
    description: str = ""
    # Absolute, since Twitter fetches it from our servers.
    image_url: str = ""


@dataclasses.dataclass(frozen=True)
class BaseView:
    title: str
    body_class: str = ""
    release: str = ""
    google_analytics_id: str | None = None
    local_fonts: bool = False
    twitter_card: TwitterCard | None = None
    viewport_width: str | int = "device-width"


@dataclasses.dataclass(frozen=True)
class View:
    base: BaseView


@dataclasses.dataclass(frozen=True)
class PageView(View):
    pass


@dataclasses.dataclass(frozen=True)
class ArticleView(View):
    article: Article
    publishing_info: str


@dataclasses.dataclass(frozen=True)
class ArticlesIndexView(View):
    articles_by_year: Sequence[YearGroup[Article]]


@dataclasses.dataclass(frozen=True)
class FragmentView(View):
    fragment: Fragment
    publishing_info: str


@dataclasses.dataclass(frozen=True)
class FragmentsIndexView(View):
    fragments_by_year: Sequence[YearGroup[Fragment]]


@dataclasses.dataclass(frozen=True)
class PassageView(View):
    passage: Passage
    in_email: bool = False


@dataclasses.dataclass(frozen=True)
class PassagesIndexView(View):
    passages: Sequence[Passage]


@dataclasses.dataclass(frozen=True)
class TalkView(View):
    talk: Talk
    publishing_info: str


@dataclasses.dataclass(frozen=True)
class TalksIndexView(View):
    talks: Sequence[Talk]


@dataclasses.dataclass(frozen=True)
class HomeView(View):
    articles: Sequence[Article]
    fragments: Sequence[Fragment]
    photo: Photo | None


@dataclasses.dataclass(frozen=True)
class PhotoIndexView(View):
    photos: Sequence[Photo]


@dataclasses.dataclass(frozen=True)
class SequencePhotoView(View):
    photo: Photo
    description: str
    sequence_name: str


def template_values(view: View) -> dict[str, Any]:
    # Content items pass through as objects; templates read their
    # lazily rendered properties.
    values = {
        field.name: getattr(view.base, field.name)
        for field in dataclasses.fields(view.base)
    }
    values.update(
        (field.name, getattr(view, field.name))
        for field in dataclasses.fields(view)
        if field.name != "base"
    )
    return values
