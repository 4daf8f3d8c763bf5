from __future__ import annotations

import datetime
from types import TracebackType
from typing import Protocol
from typing import Tuple
from typing import Type

ExcInfo = Tuple[Type[BaseException], BaseException, TracebackType]


class SupportsPublishedAt(Protocol):
    """Content items that carry a publication timestamp.

    Articles, fragments, passages and talks all have one.  Indices and feeds
    are ordered by it.
    """

    @property
    def published_at(self) -> datetime.datetime:
        ...


class SupportsOccurredAt(Protocol):
    @property
    def occurred_at(self) -> datetime.datetime:
        ...
