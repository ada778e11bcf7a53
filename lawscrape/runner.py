"""Main driver: runs every selected source in order against one browser page.

Each SourceSpec moves NOT_STARTED -> LIST_LOADED -> DRILLING_DOWN and ends
DONE or FAILED. A failed source is logged (and screenshotted when a page is
open) and the run moves on; a PersistenceFailure stops the run.
"""

from __future__ import annotations

import copy
import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Callable, ContextManager, Iterable, Optional

import yaml

from .errors import PersistenceFailure
from .ingestion.base import BaseIngestor, IngestContext, RunResult, SourceReport, SourceSpec, SourceState
from .ingestion.california import PagedSearchIngestor
from .ingestion.court_listener import CourtListenerIngestor
from .ingestion.delaware import DelawarePdfIngestor
from .ingestion.drilldown import DrillDownIngestor
from .ingestion.govinfo import GovInfoBulkIngestor
from .ingestion.texas import TexasDropdownIngestor
from .ingestion.us_code import UsCodeIngestor
from .storage.sink import open_sink
from .utils.browser import PageDriver, browser_session
from .utils.cache import DEFAULT_USER_AGENT, HttpCache
from .utils.rate_limiter import NavigationDelays, RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = Path(__file__).resolve().parent / "config" / "sources.yaml"

INGESTORS: dict[str, type[BaseIngestor]] = {
    "drilldown": DrillDownIngestor,
    "texas_dropdown": TexasDropdownIngestor,
    "delaware_pdf": DelawarePdfIngestor,
    "paged_search": PagedSearchIngestor,
    "court_listener": CourtListenerIngestor,
    "us_code": UsCodeIngestor,
    "govinfo_bulk": GovInfoBulkIngestor,
}

PageFactory = Callable[[], ContextManager[PageDriver]]

# Defaults a jurisdiction may override for its own sources.
SOURCE_DEFAULTS = ("navigation_timeout_ms", "delays")


def load_sources(path: Optional[Path] = None) -> dict:
    with open(path or DEFAULT_CONFIG, encoding="utf-8") as f:
        return yaml.safe_load(f)


def _merge(base: dict, override: dict) -> dict:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def build_specs(config: dict, selected: Iterable[str] = ()) -> list[SourceSpec]:
    """Expand the jurisdictions table into one SourceSpec per code.

    Each spec carries its jurisdiction's config with the run defaults for
    navigation timeout and delays merged underneath.

    Raises:
        KeyError: A selected slug is not configured.
    """
    jurisdictions = config["jurisdictions"]
    selected = list(selected)
    unknown = [slug for slug in selected if slug not in jurisdictions]
    if unknown:
        raise KeyError(f"Unknown source(s): {', '.join(unknown)}")

    defaults = config.get("defaults") or {}
    inherited = {key: defaults[key] for key in SOURCE_DEFAULTS if key in defaults}

    specs = []
    for slug, jurisdiction in jurisdictions.items():
        if selected and slug not in selected:
            continue
        merged = _merge(inherited, jurisdiction)
        codes = jurisdiction.get("codes") or [{"code": slug}]
        for entry in codes:
            if not isinstance(entry, dict):
                entry = {"code": entry}
            specs.append(SourceSpec(
                jurisdiction=slug,
                name=entry.get("name", jurisdiction["name"]),
                code=str(entry["code"]),
                kind=jurisdiction["kind"],
                config=merged,
            ))
    return specs


def get_ingestor(spec: SourceSpec) -> BaseIngestor:
    cls = INGESTORS.get(spec.kind)
    if cls is None:
        raise ValueError(f"Unknown source kind: {spec.kind}")
    return cls(spec)


@dataclass
class RunSettings:
    """Run-wide options resolved from the config defaults and CLI flags."""

    output_dir: Path = Path("data")
    output_format: str = "json"
    navigation_timeout_ms: int = 10000
    delays: NavigationDelays = field(default_factory=NavigationDelays)
    headless: bool = True
    user_agent: str = DEFAULT_USER_AGENT
    screenshot_on_error: bool = True
    cache_dir: Path = Path("cache")
    requests_per_second: float = 2.0
    no_delay: bool = False

    @classmethod
    def from_config(
        cls,
        config: dict,
        output_dir: Optional[Path] = None,
        no_delay: bool = False,
        headful: bool = False,
    ) -> "RunSettings":
        defaults = _merge({"output": {}, "delays": {}}, config.get("defaults") or {})
        output = defaults["output"]
        return cls(
            output_dir=output_dir or Path(output.get("dir", "data")),
            output_format=output.get("format", "json"),
            navigation_timeout_ms=int(defaults.get("navigation_timeout_ms", 10000)),
            delays=NavigationDelays.none() if no_delay else NavigationDelays.from_config(defaults["delays"]),
            headless=not headful and bool(defaults.get("headless", True)),
            user_agent=defaults.get("user_agent", DEFAULT_USER_AGENT),
            screenshot_on_error=bool(defaults.get("screenshot_on_error", True)),
            cache_dir=Path(defaults.get("cache_dir", "cache")),
            requests_per_second=float(defaults.get("requests_per_second", 2.0)),
            no_delay=no_delay,
        )

    def delays_for(self, spec: SourceSpec) -> NavigationDelays:
        """The source's own delays, unless the run was started with no delays."""
        if self.no_delay:
            return NavigationDelays.none()
        if "delays" in spec.config:
            return NavigationDelays.from_config(spec.config["delays"])
        return self.delays

    def timeout_for(self, spec: SourceSpec) -> int:
        return int(spec.config.get("navigation_timeout_ms", self.navigation_timeout_ms))


def output_filename(spec: SourceSpec) -> str:
    return spec.config.get("output", f"{spec.jurisdiction}.json")


def run(
    specs: list[SourceSpec],
    settings: RunSettings,
    page_factory: Optional[PageFactory] = None,
    http: Optional[HttpCache] = None,
) -> RunResult:
    """Scrape every SourceSpec in order and return what was produced.

    The browser is only launched when a selected source needs one, and is
    closed on every exit path.

    Raises:
        PersistenceFailure: An output store could not be written.
    """
    result = RunResult()
    ingestors = [(spec, get_ingestor(spec)) for spec in specs]
    if page_factory is None:
        page_factory = partial(browser_session, headless=settings.headless, user_agent=settings.user_agent)

    with ExitStack() as stack:
        page = None
        if any(ingestor.needs_browser for _, ingestor in ingestors):
            page = stack.enter_context(page_factory())
        if http is None:
            http = HttpCache(
                cache_dir=settings.cache_dir / "http",
                rate_limiter=RateLimiter(requests_per_second=settings.requests_per_second),
                user_agent=settings.user_agent,
            )
            stack.callback(http.close)

        sinks = {}
        for spec, ingestor in ingestors:
            if spec.jurisdiction not in sinks:
                sinks[spec.jurisdiction] = open_sink(
                    settings.output_dir, output_filename(spec), settings.output_format
                )
            sink = sinks[spec.jurisdiction]
            ctx = IngestContext(
                report=result.start(spec),
                emit=lambda doc, sink=sink: sink.append(doc.to_dict()),
                page=page,
                http=http,
                delays=settings.delays_for(spec),
                navigation_timeout_ms=settings.timeout_for(spec),
            )
            _run_source(ingestor, ctx, settings)

        for slug, sink in sinks.items():
            result.outputs[slug] = sink.finalize()

    logger.info(
        "Run finished: %d documents, %d failed sources",
        len(result.documents), len(result.failed_sources),
    )
    return result


def _run_source(ingestor: BaseIngestor, ctx: IngestContext, settings: RunSettings) -> None:
    report = ctx.report
    spec = report.spec
    logger.info("Starting %s", spec.label)
    try:
        outcome = ingestor.ingest(ctx)
    except PersistenceFailure as e:
        _fail(report, str(e))
        logger.error("Aborting run, cannot persist %s: %s", spec.label, e)
        raise
    except Exception as e:
        _fail(report, str(e))
        logger.exception("Failed to ingest %s", spec.label)
        _screenshot(ctx, settings)
        return

    if outcome.ok:
        report.state = SourceState.DONE
        logger.info(
            "Finished %s: %d documents, %d skipped",
            spec.label, outcome.value, len(report.failures),
        )
    else:
        _fail(report, str(outcome.error))
        logger.error("Failed to load %s: %s", spec.label, outcome.error)
        _screenshot(ctx, settings)


def _fail(report: SourceReport, error: str) -> None:
    report.state = SourceState.FAILED
    report.error = error


def _screenshot(ctx: IngestContext, settings: RunSettings) -> None:
    if ctx.page is None or not settings.screenshot_on_error:
        return
    settings.output_dir.mkdir(parents=True, exist_ok=True)
    path = settings.output_dir / f"error_{ctx.report.spec.code}_{int(time.time() * 1000)}.png"
    try:
        ctx.page.screenshot(path)
    except Exception as e:
        logger.warning("Could not save screenshot %s: %s", path, e)
        return
    logger.info("Saved screenshot %s", path)
