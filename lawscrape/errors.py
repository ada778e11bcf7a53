"""Error taxonomy and the Outcome type returned by pipeline stages."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(enum.Enum):
    NAVIGATION_TIMEOUT = "navigation_timeout"
    EXTRACTION_MISMATCH = "extraction_mismatch"
    DOWNLOAD_FAILURE = "download_failure"
    PARSE_FAILURE = "parse_failure"
    PERSISTENCE_FAILURE = "persistence_failure"


class ScrapeError(Exception):
    """Base class for every failure the pipeline knows how to classify."""

    kind: ErrorKind

    def __init__(self, message: str, *, context: str = ""):
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} [{self.context}]"
        return self.message


class NavigationTimeout(ScrapeError):
    """The expected selector did not appear on the page in time."""

    kind = ErrorKind.NAVIGATION_TIMEOUT


class ExtractionMismatch(ScrapeError):
    """A DOM node required on a leaf page was absent."""

    kind = ErrorKind.EXTRACTION_MISMATCH


class DownloadFailure(ScrapeError):
    """A binary asset (PDF, zip) or HTTP document could not be fetched."""

    kind = ErrorKind.DOWNLOAD_FAILURE


class ParseFailure(ScrapeError):
    """A downloaded asset could not be parsed into text."""

    kind = ErrorKind.PARSE_FAILURE


class PersistenceFailure(ScrapeError):
    """The output store could not be read, parsed or rewritten.

    Unlike the other kinds this one is raised, never returned: losing a
    write silently is worse than stopping.
    """

    kind = ErrorKind.PERSISTENCE_FAILURE


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or a classified error, never both."""

    value: Optional[T] = None
    error: Optional[ScrapeError] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ScrapeError) -> "Outcome[T]":
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None
