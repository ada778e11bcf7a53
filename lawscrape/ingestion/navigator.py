"""Navigator and drill-down iterator for link hierarchies.

A list page holds child links inside a container; following them level by
level eventually reaches leaf pages, whose content is extracted. Every
navigation is preceded and followed by a configurable pause.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from ..errors import ExtractionMismatch, NavigationTimeout, Outcome
from ..normalization.extractor import LeafSelectors, extract_fields
from ..utils.browser import PageDriver
from ..utils.rate_limiter import NavigationDelays
from .base import (
    ExtractedDocument,
    IngestContext,
    LevelSpec,
    LinkRecord,
    PathLabel,
    SelectorMap,
    SourceSpec,
    SourceState,
)

logger = logging.getLogger(__name__)


def parse_links(html: str, selectors: SelectorMap, base_url: str) -> list[LinkRecord]:
    """Extract child links from a list page.

    Anchors without an href or a name are dropped, relative hrefs are
    resolved against ``base_url`` and repeated URLs keep their first entry.
    """
    soup = BeautifulSoup(html, "html.parser")
    container = soup.select_one(selectors.container)
    if container is None:
        return []

    links = []
    seen = set()
    for a in container.select(selectors.link):
        href = (a.get("href") or "").strip()
        if not href or href.startswith("#") or href.startswith("javascript"):
            continue

        name = _node_text(a, selectors.name) if selectors.name else a.get_text(" ", strip=True)
        if not name:
            continue
        description = _node_text(a, selectors.description) if selectors.description else ""

        url = urljoin(base_url, href)
        if url in seen:
            continue
        seen.add(url)
        links.append(LinkRecord(url=url, name=name, description=description))

    return links


def _node_text(anchor, selector: str) -> str:
    node = anchor.select_one(selector)
    return " ".join(node.get_text(" ", strip=True).split()) if node else ""


class Navigator:
    """Loads pages on the run's single browser page.

    Args:
        page: The browser page shared by the whole run.
        selectors: List-page selectors.
        delays: Pauses around each navigation.
        timeout_ms: Bound on waiting for the ready selector.
    """

    def __init__(
        self,
        page: PageDriver,
        selectors: SelectorMap,
        delays: NavigationDelays,
        timeout_ms: int = 10000,
    ):
        self.page = page
        self.selectors = selectors
        self.delays = delays
        self.timeout_ms = timeout_ms

    def open(self, url: str, ready_selector: Optional[str] = None) -> Outcome[str]:
        """Load ``url`` and return its HTML once ``ready_selector`` is present."""
        self.delays.before_navigation()
        logger.debug("Navigating to %s", url)
        try:
            self.page.goto(url)
            self.page.wait_for(ready_selector or self.selectors.container, self.timeout_ms)
            html = self.page.content()
        except NavigationTimeout as e:
            return Outcome.failure(e)
        self.delays.after_action()
        return Outcome.success(html)


class DrillDown:
    """Recursively follows child links until leaf pages are reached.

    A page with child links is a list page; a page without child links but
    with the leaf marker is a leaf. Failures below the root are recorded in
    the run report and never stop sibling iteration.
    """

    def __init__(
        self,
        spec: SourceSpec,
        navigator: Navigator,
        levels: Sequence[LevelSpec],
        leaf: LeafSelectors,
        ctx: IngestContext,
        max_depth: int = 6,
    ):
        self.spec = spec
        self.navigator = navigator
        self.levels = list(levels)
        self.leaf = leaf
        self.ctx = ctx
        self.max_depth = max_depth
        self.ready_selector = f"{navigator.selectors.container}, {leaf.presence_selector}"

    def level_at(self, depth: int) -> LevelSpec:
        if depth < len(self.levels):
            return self.levels[depth]
        return LevelSpec(level=f"level_{depth + 1}")

    def context(self, path: tuple[PathLabel, ...]) -> str:
        return " > ".join([self.spec.name] + [p.label for p in path])

    def walk(self, url: str, path: tuple[PathLabel, ...] = ()) -> Outcome[int]:
        """Visit ``url`` and everything below it.

        Returns the number of documents produced, or the failure of the page
        at ``url`` itself. Failures further down are recorded, not returned.
        """
        context = self.context(path)
        opened = self.navigator.open(url, self.ready_selector)
        if not opened.ok:
            return Outcome.failure(opened.error)

        html = opened.value
        links = parse_links(html, self.navigator.selectors, url)
        if links and len(path) < self.max_depth:
            return Outcome.success(self._descend(links, path))

        extracted = self.extract(html, url, path, context)
        if not extracted.ok:
            return Outcome.failure(extracted.error)
        self.ctx.accept(extracted.value)
        logger.info("Extracted %s", context)
        return Outcome.success(1)

    def _descend(self, links: list[LinkRecord], path: tuple[PathLabel, ...]) -> int:
        if not path:
            self.ctx.report.state = SourceState.LIST_LOADED
            logger.info("Found %d entries for %s", len(links), self.spec.label)
        self.ctx.report.state = SourceState.DRILLING_DOWN

        level = self.level_at(len(path))
        produced = 0
        for link in links:
            child = path + (PathLabel.from_link(link, level),)
            outcome = self.walk(link.url, child)
            if outcome.ok:
                produced += outcome.value
            else:
                self.ctx.skip(outcome.error, self.context(child))
        return produced

    def extract(
        self,
        html: str,
        url: str,
        path: tuple[PathLabel, ...],
        context: str,
    ) -> Outcome[ExtractedDocument]:
        try:
            fields = extract_fields(html, self.leaf, context)
        except ExtractionMismatch as e:
            return Outcome.failure(e)
        return Outcome.success(ExtractedDocument.for_spec(self.spec, url, fields, path))
