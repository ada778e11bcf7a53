"""Base ingestor and the data structures shared by every source."""

from __future__ import annotations

import abc
import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Optional

from ..errors import Outcome, ScrapeError
from ..normalization.text_cleaner import derive_number
from ..utils.browser import PageDriver
from ..utils.cache import HttpCache
from ..utils.rate_limiter import NavigationDelays

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceSpec:
    """One jurisdiction/code collection to scrape, fixed at startup."""

    jurisdiction: str
    name: str
    code: str
    kind: str
    config: dict = field(default_factory=dict, compare=False, hash=False, repr=False)

    @property
    def label(self) -> str:
        return f"{self.name} ({self.code})"


@dataclass(frozen=True)
class SelectorMap:
    """CSS selectors describing a list page."""

    container: str
    link: str
    name: str = ""
    description: str = ""

    @classmethod
    def from_config(cls, config: dict) -> "SelectorMap":
        return cls(
            container=config["container"],
            link=config["link"],
            name=config.get("name", ""),
            description=config.get("description", ""),
        )


@dataclass(frozen=True)
class LinkRecord:
    """A child link discovered on a list page."""

    url: str
    name: str
    description: str = ""


@dataclass(frozen=True)
class LevelSpec:
    """How to label one level of a drill-down hierarchy."""

    level: str
    prefix: str = ""


@dataclass(frozen=True)
class PathLabel:
    """One ancestor of a leaf page, e.g. ARTICLE 2 of a code."""

    level: str
    label: str
    number: str
    description: str = ""

    @classmethod
    def from_link(cls, link: LinkRecord, level: LevelSpec) -> "PathLabel":
        return cls(
            level=level.level,
            label=link.name,
            number=derive_number(link.name, level.prefix),
            description=link.description,
        )


@dataclass(frozen=True)
class ExtractedDocument:
    """A terminal record; created once per leaf and never mutated."""

    source: str
    source_name: str
    jurisdiction: str
    url: str
    path: tuple[PathLabel, ...] = ()
    fields: dict[str, str] = field(default_factory=dict, hash=False)

    @classmethod
    def for_spec(
        cls,
        spec: SourceSpec,
        url: str,
        fields: dict[str, str],
        path: tuple[PathLabel, ...] = (),
    ) -> "ExtractedDocument":
        return cls(
            source=spec.code,
            source_name=spec.name,
            jurisdiction=spec.jurisdiction,
            url=url,
            path=path,
            fields=dict(fields),
        )

    @property
    def content(self) -> str:
        return self.fields.get("content", "")

    def to_dict(self) -> dict[str, str]:
        """Flatten into the JSON object written to the output store."""
        record = {
            "source": self.source,
            "source_name": self.source_name,
            "jurisdiction": self.jurisdiction,
            "url": self.url,
        }
        for label in self.path:
            record[f"{label.level}_number"] = label.number
            record[f"{label.level}_name"] = label.label
            if label.description:
                record[f"{label.level}_description"] = label.description
        for key, value in self.fields.items():
            record[key] = "" if value is None else str(value)
        return record


class SourceState(enum.Enum):
    NOT_STARTED = "not_started"
    LIST_LOADED = "list_loaded"
    DRILLING_DOWN = "drilling_down"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class FailureRecord:
    """A skipped item and why."""

    kind: str
    context: str
    message: str

    @classmethod
    def from_error(cls, error: ScrapeError, context: str = "") -> "FailureRecord":
        return cls(kind=error.kind.value, context=context or error.context, message=error.message)


@dataclass
class SourceReport:
    """Progress of one SourceSpec within a run."""

    spec: SourceSpec
    state: SourceState = SourceState.NOT_STARTED
    documents: list[ExtractedDocument] = field(default_factory=list)
    failures: list[FailureRecord] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class RunResult:
    """Accumulates everything a run produced; owned by the caller."""

    reports: list[SourceReport] = field(default_factory=list)
    outputs: dict[str, Path] = field(default_factory=dict)

    def start(self, spec: SourceSpec) -> SourceReport:
        report = SourceReport(spec=spec)
        self.reports.append(report)
        return report

    @property
    def documents(self) -> list[ExtractedDocument]:
        return [doc for report in self.reports for doc in report.documents]

    @property
    def failed_sources(self) -> list[SourceReport]:
        return [r for r in self.reports if r.state is SourceState.FAILED]


RecordSink = Callable[[ExtractedDocument], None]


@dataclass
class IngestContext:
    """Collaborators handed to an ingestor for one SourceSpec."""

    report: SourceReport
    emit: RecordSink
    page: Optional[PageDriver] = None
    http: Optional[HttpCache] = None
    delays: NavigationDelays = field(default_factory=NavigationDelays)
    navigation_timeout_ms: int = 10000

    def accept(self, document: ExtractedDocument) -> None:
        """Persist a document, then count it. Persistence errors propagate."""
        self.emit(document)
        self.report.documents.append(document)

    def skip(self, error: ScrapeError, context: str = "") -> None:
        failure = FailureRecord.from_error(error, context)
        self.report.failures.append(failure)
        logger.warning("Skipping %s: %s", failure.context or "item", failure.message)

    def require_page(self) -> PageDriver:
        if self.page is None:
            raise RuntimeError("This source needs a browser page")
        return self.page

    def require_http(self) -> HttpCache:
        if self.http is None:
            raise RuntimeError("This source needs an HTTP client")
        return self.http


class BaseIngestor(abc.ABC):
    """Abstract base class for all source ingestors.

    Subclasses implement ingest(), which walks one SourceSpec and hands every
    document to ``ctx.accept``. Item-level failures are recorded with
    ``ctx.skip``; a failure that makes the whole source unusable comes back
    as a failed Outcome so the driver can mark the source FAILED.
    """

    needs_browser = True

    def __init__(self, spec: SourceSpec):
        self.spec = spec
        self.config = spec.config
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abc.abstractmethod
    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        """Scrape the source.

        Returns:
            The number of documents accepted, or the error that prevented
            the source's root listing from loading.
        """

    def source_url(self) -> str:
        return self.config["url"].format(code=self.spec.code)
