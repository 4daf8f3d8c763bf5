"""Reading content source files.

Content files are Markdown with a YAML frontmatter block; manifests
(``_meta.yaml``) are plain YAML.
"""
from __future__ import annotations

import os
from typing import Any
from typing import Mapping
from typing import TYPE_CHECKING

import frontmatter
import yaml

from folio.exception import ValidationError
from folio.utils import parse_timestamp

if TYPE_CHECKING:
    import datetime

    from _typeshed import StrPath


def load_frontmatter_file(source: StrPath) -> tuple[dict[str, Any], str]:
    """Split a content file into its metadata and its Markdown body."""
    filename = os.fspath(source)
    try:
        post = frontmatter.load(filename)
    except yaml.YAMLError as exc:
        raise ValidationError(
            f"Invalid frontmatter in {filename}: {exc}", source=filename
        ) from exc
    return dict(post.metadata), post.content


def load_yaml_file(source: StrPath) -> Any:
    filename = os.fspath(source)
    try:
        with open(filename, encoding="utf-8") as fp:
            return yaml.safe_load(fp)
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML in {filename}: {exc}", source=filename) from exc


def require(meta: Mapping[str, Any], key: str, kind: str, source: StrPath) -> Any:
    """Return ``meta[key]``, raising ``ValidationError`` if it is missing or empty."""
    value = meta.get(key)
    if value is None or value == "":
        filename = os.fspath(source)
        raise ValidationError(
            f"No {key.replace('_', ' ')} for {kind}: {filename}", source=filename
        )
    return value


def require_timestamp(
    meta: Mapping[str, Any], key: str, kind: str, source: StrPath
) -> datetime.datetime:
    value = require(meta, key, kind, source)
    try:
        timestamp = parse_timestamp(value)
    except (TypeError, ValueError) as exc:
        filename = os.fspath(source)
        raise ValidationError(
            f"Invalid {key.replace('_', ' ')} {value!r} for {kind}: {filename}",
            source=filename,
        ) from exc
    assert timestamp is not None
    return timestamp


def optional_str(meta: Mapping[str, Any], key: str) -> str:
    value = meta.get(key)
    if value is None:
        return ""
    return str(value)
