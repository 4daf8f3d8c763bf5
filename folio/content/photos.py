from __future__ import annotations

import dataclasses
import datetime
import os
import random
from typing import Any
from typing import Sequence
from typing import TYPE_CHECKING

from folio.content import Rendered
from folio.exception import ValidationError
from folio.metaformat import load_yaml_file
from folio.metaformat import optional_str
from folio.metaformat import require
from folio.metaformat import require_timestamp
from folio.utils import bool_from_string

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.context import BuildContext

# The home page picks from the most recent photos, plus any older ones
# flagged to stay in rotation.
NUM_RECENT_PHOTOS = 20

MANIFEST_FILENAME = "_meta.yaml"


@dataclasses.dataclass(frozen=True)
class Photo:
    source: str
    slug: str
    title: str
    occurred_at: datetime.datetime
    description: str = ""
    original_image_url: str = ""
    keep_in_home_rotation: bool = False


def _photo_from_entry(entry: Any, source: StrPath) -> Photo:
    filename = os.fspath(source)
    if not isinstance(entry, dict):
        raise ValidationError(f"Invalid photograph entry in {filename}", source=filename)
    return Photo(
        source=filename,
        slug=str(require(entry, "slug", "photo", source)),
        title=str(require(entry, "title", "photo", source)),
        occurred_at=require_timestamp(entry, "occurred_at", "photo", source),
        description=optional_str(entry, "description"),
        original_image_url=optional_str(entry, "original_image_url"),
        keep_in_home_rotation=bool(
            bool_from_string(entry.get("keep_in_home_rotation"), default=False)
        ),
    )


def load_photo_manifest(source: StrPath) -> list[Photo]:
    """Read the ``photographs`` list of a photo manifest.

    An empty manifest holds no photos.  Entries keep their manifest order.
    """
    data = load_yaml_file(source)
    if data is None:
        return []
    if not isinstance(data, dict):
        filename = os.fspath(source)
        raise ValidationError(f"Invalid photo manifest: {filename}", source=filename)
    entries = data.get("photographs") or []
    return [_photo_from_entry(entry, source) for entry in entries]


def read_photo_manifest(ctx: BuildContext, source: StrPath) -> Rendered[list[Photo]]:
    """Parse a manifest; *executed* means the manifest changed since the
    last successful build.
    """
    photos = load_photo_manifest(source)
    changed = ctx.changed(source)
    return Rendered(photos, executed=changed or ctx.forced)


def select_random_photo(
    photos: Sequence[Photo], rng: random.Random | None = None
) -> Photo | None:
    """Pick a photo for the home page.

    ``photos`` must be sorted newest first.
    """
    if not photos:
        return None
    candidates = list(photos[:NUM_RECENT_PHOTOS])
    candidates.extend(
        photo for photo in photos[NUM_RECENT_PHOTOS:] if photo.keep_in_home_rotation
    )
    if rng is None:
        rng = random.Random()
    return rng.choice(candidates)
