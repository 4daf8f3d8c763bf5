from __future__ import annotations

from typing import cast


class FolioException(Exception):
    def __init__(self, message: str | None = None):
        super().__init__(message)

    @property
    def message(self) -> str:
        return cast(str, self.args[0])

    def to_json(self) -> dict[str, str]:
        return {
            "type": self.__class__.__name__,
            "message": self.message,
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


class ConfigError(FolioException):
    """The project configuration could not be decoded."""


class ValidationError(FolioException):
    """Content metadata is missing a required field."""

    def __init__(self, message: str, source: str | None = None):
        super().__init__(message)
        self.source = source


class ChangeTrackerError(FolioException):
    """A resource could not be fingerprinted."""


class FetchError(FolioException):
    pass


class ResizeError(FolioException):
    pass


class PhaseOrderError(FolioException):
    """Raised when work crosses a phase barrier in the wrong direction."""
