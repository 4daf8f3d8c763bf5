"""Fetching original photographs and resizing them."""
from __future__ import annotations

import os
import subprocess
import threading
from pathlib import Path
from typing import NamedTuple
from typing import TYPE_CHECKING

import requests

from folio.exception import FetchError
from folio.exception import ResizeError
from folio.reporter import reporter
from folio.utils import atomic_write
from folio.utils import ensure_dir

if TYPE_CHECKING:
    from _typeshed import StrPath

    from folio.content.photos import Photo
    from folio.environment.config import Config


class ResizeTarget(NamedTuple):
    suffix: str
    width: int


RESIZE_TARGETS = (
    ResizeTarget(".jpg", 333),
    ResizeTarget("@2x.jpg", 667),
    ResizeTarget("_large.jpg", 1500),
    ResizeTarget("_large@2x.jpg", 3000),
)

_session = threading.local()


def get_session() -> requests.Session:
    """A ``requests.Session`` for the current thread."""
    session: requests.Session | None = getattr(_session, "value", None)
    if session is None:
        session = _session.value = requests.Session()
    return session


def marker_path(photo_dir: StrPath, slug: str) -> Path:
    """An empty file recording that the photo was fetched and resized."""
    return Path(photo_dir, f"{slug}.marker")


def fetch_url(url: str, target: StrPath, timeout: float) -> None:
    """Download ``url`` to ``target``."""
    reporter.report_debug_info("fetching", url)
    try:
        with get_session().get(url, stream=True, timeout=timeout) as resp:
            if resp.status_code != 200:
                raise FetchError(
                    f"Unexpected status code fetching {url!r}: {resp.status_code}"
                )
            with atomic_write(target, mode="wb") as fp:
                for chunk in resp.iter_content(chunk_size=64 * 1024):
                    fp.write(chunk)
    except requests.RequestException as exc:
        raise FetchError(f"Error fetching {url!r}: {exc}") from exc


def resize_image(
    source: StrPath,
    target: StrPath,
    width: int,
    *,
    command: str = "gm",
    quality: int = 85,
    timeout: float | None = None,
) -> None:
    args = [
        command,
        "convert",
        os.fspath(source),
        "-auto-orient",
        "-resize",
        f"{width}x",
        "-quality",
        str(quality),
        os.fspath(target),
    ]
    try:
        subprocess.run(
            args, check=True, capture_output=True, text=True, timeout=timeout
        )
    except subprocess.CalledProcessError as exc:
        raise ResizeError(
            f"Error resizing {source} to {target} (stderr: {exc.stderr.strip()})"
        ) from exc
    except subprocess.TimeoutExpired as exc:
        raise ResizeError(
            f"Timed out after {timeout}s resizing {source} to {target}"
        ) from exc
    except OSError as exc:
        raise ResizeError(f"Can not run {command!r}: {exc}") from exc


def fetch_and_resize_photo(
    config: Config, temp_dir: StrPath, photo_dir: StrPath, photo: Photo
) -> bool:
    """Fetch a photo's original and write all of its resized versions.

    Returns ``False`` without doing anything if the photo's marker file
    exists, even if the resized versions are not present locally.
    """
    marker = marker_path(photo_dir, photo.slug)
    if marker.exists():
        reporter.report_debug_info("marker exists", marker)
        return False

    ensure_dir(temp_dir)
    original = Path(temp_dir, f"{photo.slug}_original.jpg")
    try:
        fetch_url(photo.original_image_url, original, timeout=config.fetch_timeout)
    except FetchError as exc:
        raise FetchError(f"Error fetching photograph {photo.slug}: {exc}") from exc

    ensure_dir(photo_dir)
    for target in RESIZE_TARGETS:
        resize_image(
            original,
            Path(photo_dir, photo.slug + target.suffix),
            target.width,
            command=config.image_command,
            quality=config.image_quality,
            timeout=config.process_timeout,
        )

    marker.touch()
    return True
