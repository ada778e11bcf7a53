"""Texas Statutes ingestor.

statutes.capitol.texas.gov has no browsable link hierarchy; sections are
reached through the quick-search form. Picking a code populates the chapter
dropdown, picking a chapter populates the section dropdown, and the Go button
opens the section document in a new window. The window.open call is captured
by an init script so the document URL can be fetched over HTTP instead.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from ..errors import DownloadFailure, ExtractionMismatch, NavigationTimeout, Outcome
from ..normalization.extractor import first_text
from ..normalization.text_cleaner import NormalizationRules, clean_section_number, normalize_text
from .base import BaseIngestor, ExtractedDocument, IngestContext, SelectorMap, SourceSpec, SourceState
from .navigator import Navigator

DEFAULT_FORM = {
    "code_select": "#ctl00_ContentPlaceHolder1_QSearch_cboQuickCode",
    "chapter_select": "#ctl00_ContentPlaceHolder1_QSearch_cboQuickChapter",
    "section_select": "#ctl00_ContentPlaceHolder1_QSearch_cboQuickSec",
    "go_button": "#ctl00_ContentPlaceHolder1_QSearch_btnQSGo",
    "doc_name": "#ctl00_ContentPlaceHolder1_QSearch_hfDocName",
}

CONTENT_SELECTORS = [
    ".statute-content",
    ".content",
    "#content",
    ".main-content",
    "body",
    ".statute-text",
    ".law-text",
]

PLACEHOLDER_OPTION = "00"

# Registered once per page; re-running it on every document keeps the stub.
CAPTURE_WINDOW_OPEN = """
if (!window.__captureInstalled) {
  window.__captureInstalled = true;
  window.__capturedUrls = [];
  window.open = function (url) {
    window.__capturedUrls.push(url);
    return {focus() {}, close() {}, closed: false, location: {href: url}};
  };
}
"""


def options_ready(selector: str) -> str:
    """JS predicate: the dropdown is enabled and holds more than the placeholder."""
    return (
        "() => { const s = document.querySelector(%r);"
        " return !!s && !s.disabled && s.options.length > 1; }" % selector
    )


def button_enabled(selector: str) -> str:
    return "() => { const b = document.querySelector(%r); return !!b && !b.disabled; }" % selector


def read_options(html: str, selector: str) -> list[tuple[str, str]]:
    """Return ``(value, text)`` for every real option of a dropdown."""
    soup = BeautifulSoup(html, "html.parser")
    select = soup.select_one(selector)
    if select is None or select.has_attr("disabled"):
        return []
    options = []
    for option in select.find_all("option"):
        value = (option.get("value") or "").strip()
        if not value or value == PLACEHOLDER_OPTION:
            continue
        options.append((value, option.get_text(" ", strip=True)))
    return options


def hidden_value(html: str, selector: str) -> str:
    node = BeautifulSoup(html, "html.parser").select_one(selector)
    return (node.get("value") or "").strip() if node else ""


def _is_document(url: str) -> bool:
    return "/Docs/" in url or ".htm" in url


def resolve_document_url(captured: list, hidden: str, base_url: str) -> Optional[str]:
    """Pick the section document URL opened by the Go button.

    The first captured window.open URL wins; otherwise the hidden doc-name
    field is used, resolved against ``base_url`` when relative.
    """
    if captured:
        url = captured[0] or ""
        return urljoin(base_url, url) if _is_document(url) else None
    if hidden and _is_document(hidden):
        return urljoin(base_url, hidden)
    return None


def document_file_name(url: str) -> str:
    path = urlparse(url).path
    _, _, tail = path.partition("/Docs/")
    return tail or path.rsplit("/", 1)[-1]


class TexasDropdownIngestor(BaseIngestor):
    """Walk chapter and section dropdowns for one Texas code."""

    def __init__(self, spec: SourceSpec):
        super().__init__(spec)
        self.form = {**DEFAULT_FORM, **self.config.get("form", {})}
        self.content_selectors = self.config.get("content_selectors", CONTENT_SELECTORS)
        self.rules = NormalizationRules.from_config(self.config.get("normalization"))

    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        page = ctx.require_page()
        url = self.source_url()
        page.add_init_script(CAPTURE_WINDOW_OPEN)

        navigator = Navigator(
            page,
            SelectorMap(container=self.form["code_select"], link="option"),
            ctx.delays,
            timeout_ms=ctx.navigation_timeout_ms,
        )
        opened = navigator.open(url)
        if not opened.ok:
            return Outcome.failure(opened.error)

        try:
            page.select_option(self.form["code_select"], self.spec.code)
            ctx.delays.after_action()
            page.wait_for_function(options_ready(self.form["chapter_select"]), ctx.navigation_timeout_ms)
            chapters = read_options(page.content(), self.form["chapter_select"])
        except NavigationTimeout as e:
            return Outcome.failure(e)

        ctx.report.state = SourceState.LIST_LOADED
        self.logger.info("Found %d chapters in %s", len(chapters), self.spec.name)

        ctx.report.state = SourceState.DRILLING_DOWN
        produced = 0
        for chapter_value, chapter in chapters:
            produced += self._ingest_chapter(ctx, chapter_value, chapter, url)
        return Outcome.success(produced)

    def _ingest_chapter(self, ctx: IngestContext, value: str, chapter: str, base_url: str) -> int:
        page = ctx.require_page()
        context = f"{self.spec.name} > {chapter}"
        try:
            page.select_option(self.form["chapter_select"], value)
            ctx.delays.after_action()
            page.wait_for_function(options_ready(self.form["section_select"]), ctx.navigation_timeout_ms)
            sections = read_options(page.content(), self.form["section_select"])
        except NavigationTimeout as e:
            ctx.skip(e, context)
            return 0

        produced = 0
        for section_value, section in sections:
            outcome = self._ingest_section(ctx, section_value, chapter, section, base_url)
            if outcome.ok:
                ctx.accept(outcome.value)
                produced += 1
                self.logger.info("Fetched %s > %s", context, section)
            else:
                ctx.skip(outcome.error, f"{context} > {section}")
        return produced

    def _ingest_section(
        self,
        ctx: IngestContext,
        value: str,
        chapter: str,
        section: str,
        base_url: str,
    ) -> Outcome[ExtractedDocument]:
        page = ctx.require_page()
        try:
            page.select_option(self.form["section_select"], value)
            ctx.delays.after_action()
            page.evaluate("() => { window.__capturedUrls = []; }")
            page.wait_for_function(button_enabled(self.form["go_button"]), ctx.navigation_timeout_ms)
            page.click(self.form["go_button"])
            ctx.delays.after_action()
            captured = page.evaluate("() => window.__capturedUrls || []")
            hidden = hidden_value(page.content(), self.form["doc_name"])
        except NavigationTimeout as e:
            return Outcome.failure(e)

        doc_url = resolve_document_url(captured, hidden, base_url)
        if doc_url is None:
            return Outcome.failure(ExtractionMismatch("Go button opened no statute document", context=section))

        try:
            html = ctx.require_http().fetch(doc_url)
        except DownloadFailure as e:
            return Outcome.failure(e)

        text = first_text(html, self.content_selectors, min_length=100)
        return Outcome.success(ExtractedDocument.for_spec(self.spec, doc_url, {
            "code": self.spec.name,
            "chapter": chapter,
            "section": section,
            "section_number": clean_section_number(section),
            "file_name": document_file_name(doc_url),
            "content": normalize_text(text, self.rules),
        }))
