"""CourtListener opinions ingestor (REST API, no browser)."""

from __future__ import annotations

import os

from ..errors import DownloadFailure, ExtractionMismatch, Outcome
from ..normalization.text_cleaner import NormalizationRules, normalize_text
from .base import BaseIngestor, ExtractedDocument, IngestContext, SourceSpec, SourceState

TOKEN_ENV = "COURTLISTENER_API_TOKEN"


def opinion_fields(item: dict, rules: NormalizationRules) -> dict[str, str]:
    """Map one API opinion to document fields.

    Raises:
        ExtractionMismatch: The opinion carries no plain text.
    """
    text = item.get("plain_text") or ""
    if not text.strip():
        raise ExtractionMismatch("Opinion has no plain_text", context=str(item.get("id", "")))
    return {
        "id": str(item.get("id", "")),
        "type": item.get("type") or "",
        "page_count": "" if item.get("page_count") is None else str(item["page_count"]),
        "cluster_id": "" if item.get("cluster_id") is None else str(item["cluster_id"]),
        "opinions_cited": ", ".join(item.get("opinions_cited") or []),
        "resource_uri": item.get("resource_uri") or "",
        "content": normalize_text(text, rules),
    }


class CourtListenerIngestor(BaseIngestor):
    """Page through the opinions endpoint, one document per opinion."""

    needs_browser = False

    def __init__(self, spec: SourceSpec):
        super().__init__(spec)
        self.max_pages = int(self.config.get("max_pages", 1))
        self.rules = NormalizationRules.from_config(self.config.get("normalization"))

    def headers(self) -> dict:
        token = os.environ.get(TOKEN_ENV)
        return {"Authorization": f"Token {token}"} if token else {}

    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        http = ctx.require_http()
        url = self.source_url()
        produced = 0
        for page_number in range(1, self.max_pages + 1):
            try:
                data = http.fetch_json(url, headers=self.headers())
            except DownloadFailure as e:
                if page_number == 1:
                    return Outcome.failure(e)
                ctx.skip(e, f"{self.spec.name} > page {page_number}")
                break

            results = data.get("results", [])
            if page_number == 1:
                ctx.report.state = SourceState.LIST_LOADED
                ctx.report.state = SourceState.DRILLING_DOWN
            self.logger.info("Page %d: %d opinions", page_number, len(results))

            for item in results:
                try:
                    fields = opinion_fields(item, self.rules)
                except ExtractionMismatch as e:
                    ctx.skip(e, f"{self.spec.name} > opinion {item.get('id', '?')}")
                    continue
                ctx.accept(ExtractedDocument.for_spec(self.spec, item.get("resource_uri") or url, fields))
                produced += 1

            url = data.get("next")
            if not url:
                break
        return Outcome.success(produced)
