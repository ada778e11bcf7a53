"""Config-driven ingestor for sites organized as a hierarchy of link lists.

New York's consolidated laws (code -> article -> section) are the reference
case; any site whose list pages share one container/link layout can be added
through sources.yaml alone.
"""

from __future__ import annotations

from ..errors import Outcome
from ..normalization.extractor import LeafSelectors
from .base import BaseIngestor, IngestContext, LevelSpec, SelectorMap, SourceSpec
from .navigator import DrillDown, Navigator


class DrillDownIngestor(BaseIngestor):
    """Walk list pages from the code's root URL down to section pages."""

    def __init__(self, spec: SourceSpec):
        super().__init__(spec)
        self.selectors = SelectorMap.from_config(self.config["selectors"])
        self.levels = [
            LevelSpec(level=lv["level"], prefix=lv.get("prefix", ""))
            for lv in self.config.get("levels", [])
        ]
        self.leaf = LeafSelectors.from_config(self.config["leaf"])
        self.max_depth = int(self.config.get("max_depth", 6))

    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        url = self.source_url()
        self.logger.info("Processing %s at %s", self.spec.label, url)

        navigator = Navigator(
            ctx.require_page(),
            self.selectors,
            ctx.delays,
            timeout_ms=ctx.navigation_timeout_ms,
        )
        walker = DrillDown(self.spec, navigator, self.levels, self.leaf, ctx, max_depth=self.max_depth)
        outcome = walker.walk(url)
        if outcome.ok:
            self.logger.info(
                "Completed %s: %d documents, %d skipped",
                self.spec.label, outcome.value, len(ctx.report.failures),
            )
        return outcome
