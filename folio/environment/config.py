from __future__ import annotations

import copy
import os
from functools import cached_property
from typing import Any
from typing import Literal
from typing import Mapping
from typing import overload
from typing import TYPE_CHECKING
from typing import TypedDict
from urllib.parse import urlsplit

from inifile import IniFile

from folio.exception import ConfigError
from folio.utils import bool_from_string

if TYPE_CHECKING:
    from _typeshed import StrPath


class SiteConfig(TypedDict):
    url: str
    name: str | None
    author_name: str
    author_url: str | None
    google_analytics_id: str | None
    local_fonts: str | bool
    release: str


class BuildConfig(TypedDict):
    target_dir: str
    concurrency: str | int
    drafts: str | bool
    temp_dir: str
    image_command: str
    image_quality: str | int
    process_timeout: str | int
    fetch_timeout: str | int


class FeedsConfig(TypedDict):
    num_entries: str | int
    tags: str


DEFAULT_CONFIG = {
    "SITE": {
        "url": "https://example.com",
        "name": None,
        "author_name": "Anonymous",
        "author_url": None,
        "google_analytics_id": None,
        "local_fonts": False,
        "release": "1",
    },
    "BUILD": {
        "target_dir": "public",
        "concurrency": 30,
        "drafts": False,
        "temp_dir": "tmp",
        "image_command": "gm",
        "image_quality": 85,
        "process_timeout": 300,
        "fetch_timeout": 60,
    },
    "FEEDS": {
        "num_entries": 20,
        "tags": "postgres",
    },
}

# (section, key) for each environment variable which overrides a setting.
ENVIRONMENT_OVERRIDES = {
    "SITE_URL": ("SITE", "url"),
    "SITE_NAME": ("SITE", "name"),
    "AUTHOR_NAME": ("SITE", "author_name"),
    "AUTHOR_URL": ("SITE", "author_url"),
    "GOOGLE_ANALYTICS_ID": ("SITE", "google_analytics_id"),
    "LOCAL_FONTS": ("SITE", "local_fonts"),
    "RELEASE": ("SITE", "release"),
    "TARGET_DIR": ("BUILD", "target_dir"),
    "CONCURRENCY": ("BUILD", "concurrency"),
    "DRAFTS": ("BUILD", "drafts"),
    "TEMP_DIR": ("BUILD", "temp_dir"),
    "IMAGE_COMMAND": ("BUILD", "image_command"),
    "IMAGE_QUALITY": ("BUILD", "image_quality"),
    "PROCESS_TIMEOUT": ("BUILD", "process_timeout"),
    "FETCH_TIMEOUT": ("BUILD", "fetch_timeout"),
    "NUM_ATOM_ENTRIES": ("FEEDS", "num_entries"),
    "FEED_TAGS": ("FEEDS", "tags"),
}


def update_config_from_ini(config: dict[str, Any], inifile: IniFile) -> None:
    for section_name in ("SITE", "BUILD", "FEEDS"):
        config[section_name].update(inifile.section_as_dict(section_name.lower()))


def update_config_from_environ(
    config: dict[str, Any], environ: Mapping[str, str]
) -> None:
    for var, (section_name, key) in ENVIRONMENT_OVERRIDES.items():
        value = environ.get(var)
        if value is not None and value != "":
            config[section_name][key] = value


class Config:
    """Site configuration.

    Defaults are overridden by ``folio.ini`` (if it exists), which is in
    turn overridden by the process environment.  Values are decoded lazily
    by the typed accessors, which raise :class:`ConfigError` on bad input.
    """

    def __init__(
        self,
        filename: StrPath | None = None,
        environ: Mapping[str, str] | None = None,
    ):
        self.filename = filename
        self.values = copy.deepcopy(DEFAULT_CONFIG)

        if filename is not None and os.path.isfile(filename):
            inifile = IniFile(os.fspath(filename))
            update_config_from_ini(self.values, inifile)
        if environ is None:
            environ = os.environ
        update_config_from_environ(self.values, environ)

    @overload
    def __getitem__(self, name: Literal["SITE"]) -> SiteConfig:
        ...

    @overload
    def __getitem__(self, name: Literal["BUILD"]) -> BuildConfig:
        ...

    @overload
    def __getitem__(self, name: Literal["FEEDS"]) -> FeedsConfig:
        ...

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def validate(self) -> None:
        """Decode every setting, raising ``ConfigError`` on the first bad one."""
        for name in (
            "site_url",
            "site_host",
            "concurrency",
            "drafts",
            "local_fonts",
            "image_quality",
            "process_timeout",
            "fetch_timeout",
            "num_atom_entries",
        ):
            getattr(self, name)

    def _get_int(self, section: str, key: str, minimum: int = 0) -> int:
        raw = self.values[section][key]
        try:
            value = int(raw)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"{section.lower()}.{key} must be an integer, not {raw!r}"
            ) from exc
        if value < minimum:
            raise ConfigError(f"{section.lower()}.{key} must be at least {minimum}")
        return value

    def _get_bool(self, section: str, key: str) -> bool:
        raw = self.values[section][key]
        value = bool_from_string(raw)
        if value is None:
            raise ConfigError(f"{section.lower()}.{key} must be a boolean, not {raw!r}")
        return value

    @cached_property
    def site_url(self) -> str:
        """The external base URL, without a trailing slash."""
        url = self["SITE"]["url"]
        if not url or not urlsplit(url).scheme or not urlsplit(url).netloc:
            raise ConfigError(f"site.url must be an absolute URL, not {url!r}")
        return url.rstrip("/")

    @cached_property
    def site_host(self) -> str:
        return urlsplit(self.site_url).netloc

    @property
    def site_name(self) -> str:
        return self["SITE"]["name"] or self.site_host

    @property
    def author_name(self) -> str:
        return self["SITE"]["author_name"]

    @property
    def author_url(self) -> str:
        return self["SITE"]["author_url"] or self.site_url

    @property
    def google_analytics_id(self) -> str | None:
        return self["SITE"]["google_analytics_id"] or None

    @cached_property
    def local_fonts(self) -> bool:
        return self._get_bool("SITE", "local_fonts")

    @property
    def release(self) -> str:
        return str(self["SITE"]["release"])

    @property
    def target_dir(self) -> str:
        return self["BUILD"]["target_dir"]

    @property
    def temp_dir(self) -> str:
        return self["BUILD"]["temp_dir"]

    @cached_property
    def concurrency(self) -> int:
        return self._get_int("BUILD", "concurrency", minimum=1)

    @cached_property
    def drafts(self) -> bool:
        return self._get_bool("BUILD", "drafts")

    @property
    def image_command(self) -> str:
        return self["BUILD"]["image_command"]

    @cached_property
    def image_quality(self) -> int:
        quality = self._get_int("BUILD", "image_quality", minimum=1)
        if quality > 100:
            raise ConfigError("build.image_quality must be at most 100")
        return quality

    @cached_property
    def process_timeout(self) -> int:
        return self._get_int("BUILD", "process_timeout", minimum=1)

    @cached_property
    def fetch_timeout(self) -> int:
        return self._get_int("BUILD", "fetch_timeout", minimum=1)

    @cached_property
    def num_atom_entries(self) -> int:
        return self._get_int("FEEDS", "num_entries", minimum=1)

    @cached_property
    def feed_tags(self) -> list[str]:
        return [tag.strip() for tag in self["FEEDS"]["tags"].split(",") if tag.strip()]
