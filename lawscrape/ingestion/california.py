"""California Codes ingestor.

leginfo.legislature.ca.gov only exposes sections through its code search.
A configured sequence of clicks fills in and submits the search form; each
result page lists sections through onclick handlers, which are turned into
display URLs and fetched over HTTP. Results are paged ten at a time.
"""

from __future__ import annotations

import re
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from ..errors import DownloadFailure, ExtractionMismatch, NavigationTimeout, Outcome
from ..normalization.text_cleaner import NormalizationRules, normalize_text
from .base import BaseIngestor, ExtractedDocument, IngestContext, SelectorMap, SourceSpec, SourceState
from .navigator import Navigator

SECTION_URL = (
    "https://leginfo.legislature.ca.gov/faces/codes_displaySection.xhtml"
    "?lawCode={law_code}&sectionNum={section}&article={article}"
)
CAPTCHA_URL = "https://leginfo.legislature.ca.gov/faces/captcha.xhtml"

CONTENT_SELECTORS = ["#lawSection", ".sectionText", "#codeLawSectionNoHead"]
TITLE_SELECTOR = 'div[style*="float:left;text-indent: 0.5in;"] h4'
SUBJECT_SELECTOR = 'div[style*="display:inline;"] h5'

MAX_EMPTY_PAGES = 3

_QUOTED = re.compile(r"'([^']*)'")


def parse_result_links(html: str, selector: str, template: str = SECTION_URL) -> list[str]:
    """Turn the onclick handlers of a result page into section URLs.

    Handlers look like ``submitCodesValues('CIV','1.1.1','1','1.1',...)``;
    the first quoted argument is the law code, the third the section number
    and the fourth the article.
    """
    soup = BeautifulSoup(html, "html.parser")
    links = []
    for a in soup.select(selector):
        onclick = (a.get("onclick") or "").strip()
        args = _QUOTED.findall(onclick)
        if len(args) < 4:
            continue
        url = template.format(law_code=args[0], section=args[2], article=args[3])
        if url not in links:
            links.append(url)
    return links


def has_next_page(html: str, selector: str) -> bool:
    button = BeautifulSoup(html, "html.parser").select_one(selector)
    return button is not None and not button.has_attr("disabled")


def _first_nonempty(soup: BeautifulSoup, selectors: list[str]) -> str:
    for selector in selectors:
        node = soup.select_one(selector)
        if node is not None:
            text = node.get_text(" ", strip=True)
            if text:
                return text
    return ""


def parse_section_page(html: str, url: str, rules: NormalizationRules) -> dict[str, str]:
    """Extract one displayed section.

    Raises:
        ExtractionMismatch: None of the section text containers is present.
    """
    soup = BeautifulSoup(html, "html.parser")
    content = _first_nonempty(soup, CONTENT_SELECTORS)
    if not content:
        raise ExtractionMismatch("No section text on page", context=url)

    query = parse_qs(urlparse(url).query)
    return {
        "code": query.get("lawCode", [""])[0],
        "section": query.get("sectionNum", [""])[0],
        "title": normalize_text(_first_nonempty(soup, [TITLE_SELECTOR]), rules),
        "subject_area": normalize_text(_first_nonempty(soup, [SUBJECT_SELECTOR]), rules),
        "content": normalize_text(content, rules),
    }


class PagedSearchIngestor(BaseIngestor):
    """Submit the code search and fetch every section it returns."""

    def __init__(self, spec: SourceSpec):
        super().__init__(spec)
        search = self.config.get("search", {})
        self.form_clicks = list(search.get("clicks", []))
        self.results_ready = search.get("results_ready", 'span[title="Sections Returned"]')
        self.results = search.get("results", ".table_main")
        self.result_link = search.get("result_link", ".table_main a[onclick]")
        self.next_button = search.get("next_button", 'input[id="datanavform:nextTen"]')
        self.section_url = search.get("section_url", SECTION_URL)
        self.captcha_url = search.get("captcha_url", CAPTCHA_URL)
        self.max_pages = search.get("max_pages")
        self.rules = NormalizationRules.from_config(self.config.get("normalization"))

    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        page = ctx.require_page()
        navigator = Navigator(
            page,
            SelectorMap(container=self.results, link=self.result_link),
            ctx.delays,
            timeout_ms=ctx.navigation_timeout_ms,
        )
        opened = navigator.open(self.source_url(), self.form_clicks[0] if self.form_clicks else None)
        if not opened.ok:
            return Outcome.failure(opened.error)

        try:
            for selector in self.form_clicks:
                page.wait_for(selector, ctx.navigation_timeout_ms)
                page.click(selector)
                ctx.delays.after_action()
            page.wait_for(self.results_ready, ctx.navigation_timeout_ms)
        except NavigationTimeout as e:
            return Outcome.failure(e)

        ctx.report.state = SourceState.LIST_LOADED
        self.logger.info("Search submitted for %s", self.spec.label)
        ctx.report.state = SourceState.DRILLING_DOWN

        produced = 0
        page_number = 1
        empty_pages = 0
        while True:
            if page.url == self.captcha_url:
                return Outcome.failure(
                    NavigationTimeout("Redirected to CAPTCHA page", context=f"result page {page_number}")
                )

            try:
                page.wait_for(self.results, ctx.navigation_timeout_ms)
            except NavigationTimeout:
                self.logger.warning("Result table missing on page %d", page_number)
            try:
                html = page.content()
            except NavigationTimeout as e:
                return Outcome.failure(e)

            links = parse_result_links(html, self.result_link, self.section_url)
            self.logger.info("Found %d sections on result page %d", len(links), page_number)
            if links:
                empty_pages = 0
            else:
                empty_pages += 1

            for link in links:
                produced += self._ingest_section(ctx, link, page_number)
            if empty_pages >= MAX_EMPTY_PAGES:
                self.logger.warning("Stopping after %d empty result pages", empty_pages)
                break

            if not has_next_page(html, self.next_button):
                break
            if self.max_pages and page_number >= int(self.max_pages):
                self.logger.info("Stopping after %d result pages", page_number)
                break
            ctx.delays.before_navigation()
            try:
                page.click(self.next_button)
            except NavigationTimeout as e:
                ctx.skip(e, f"{self.spec.name} > result page {page_number + 1}")
                break
            ctx.delays.after_action()
            page_number += 1

        return Outcome.success(produced)

    def _ingest_section(self, ctx: IngestContext, url: str, page_number: int) -> int:
        context = f"{self.spec.name} > result page {page_number} > {url}"
        try:
            html = ctx.require_http().fetch(url)
            fields = parse_section_page(html, url, self.rules)
        except (DownloadFailure, ExtractionMismatch) as e:
            ctx.skip(e, context)
            return 0
        ctx.accept(ExtractedDocument.for_spec(self.spec, url, fields))
        return 1
