from __future__ import annotations

import dataclasses
import datetime
from typing import Callable
from typing import Generic
from typing import Iterable
from typing import TypeVar

from folio.typing import SupportsOccurredAt
from folio.typing import SupportsPublishedAt

_T = TypeVar("_T")
_P = TypeVar("_P", bound=SupportsPublishedAt)
_O = TypeVar("_O", bound=SupportsOccurredAt)


@dataclasses.dataclass
class YearGroup(Generic[_T]):
    year: int
    items: list[_T] = dataclasses.field(default_factory=list)


def sort_by_published(items: Iterable[_P]) -> list[_P]:
    """Newest first.  Items published at the same time keep their order."""
    return sorted(items, key=lambda item: item.published_at, reverse=True)


def sort_by_occurred(items: Iterable[_O]) -> list[_O]:
    """Newest first.  Items which occurred at the same time keep their order."""
    return sorted(items, key=lambda item: item.occurred_at, reverse=True)


def group_by_year(
    items: Iterable[_T], key: Callable[[_T], datetime.datetime]
) -> list[YearGroup[_T]]:
    """Group consecutive items by the year of ``key(item)``.

    This walks the items once, opening a new group whenever the year
    differs from that of the previous item, so ``items`` must already be
    sorted for each year to land in a single group.
    """
    groups: list[YearGroup[_T]] = []
    for item in items:
        year = key(item).year
        if not groups or groups[-1].year != year:
            groups.append(YearGroup(year))
        groups[-1].items.append(item)
    return groups


def group_by_published_year(items: Iterable[_P]) -> list[YearGroup[_P]]:
    return group_by_year(items, lambda item: item.published_at)
