from __future__ import annotations

import httpx
import pytest
from conftest import NOT_FOUND, FakePage, mock_http

from lawscrape.errors import ExtractionMismatch
from lawscrape.ingestion.base import IngestContext, RunResult, SourceSpec
from lawscrape.ingestion.california import (
    CAPTCHA_URL,
    PagedSearchIngestor,
    has_next_page,
    parse_result_links,
    parse_section_page,
)
from lawscrape.normalization.text_cleaner import DEFAULT_RULES
from lawscrape.utils.rate_limiter import NavigationDelays

CODES = "https://leginfo.legislature.ca.gov/faces/codes.xhtml"
DISPLAY = "https://leginfo.legislature.ca.gov/faces/codes_displaySection.xhtml"

SEARCH = {
    "clicks": ["#textsearchtab", "#execute_search"],
    "results_ready": "#sections_returned",
    "results": ".table_main",
    "result_link": ".table_main a[onclick]",
    "next_button": "#nextTen",
}

FORM = '<a id="textsearchtab">Text search</a><input id="execute_search" type="submit">'


def _result_page(sections, has_next=True):
    rows = "".join(
        f"""<tr><td><a href="#" onclick="submitCodesValues('CIV','1.{n}','{n}','1.1','','')">§ {n}</a></td></tr>"""
        for n in sections
    )
    button = '<input id="nextTen" type="submit">' if has_next else '<input id="nextTen" type="submit" disabled>'
    return f'<span id="sections_returned">30</span><table class="table_main">{rows}</table>{button}'


class SearchPage(FakePage):
    """Code search form followed by a fixed list of result pages."""

    def __init__(self, results, captcha_after=None):
        super().__init__({})
        self.results = results
        self.captcha_after = captcha_after
        self.result_index = None

    def content(self):
        if self.url == CAPTCHA_URL:
            return "<form id='captcha'></form>"
        if self.url != CODES:
            return NOT_FOUND
        if self.result_index is None:
            return FORM
        return self.results[self.result_index]

    def click(self, selector):
        self.wait_for(selector, 0)
        if selector == "#execute_search":
            self.result_index = 0
        elif selector == "#nextTen":
            if self.captcha_after is not None and self.result_index + 1 >= self.captcha_after:
                self._url = CAPTCHA_URL
            else:
                self.result_index += 1


def _section(request):
    number = request.url.params.get("sectionNum")
    if number == "2":
        return httpx.Response(200, text="<html><body><p>Section not available</p></body></html>")
    return httpx.Response(200, text=f"""
        <div id="codeLawSectionNoHead">
          <div style="float:left;text-indent: 0.5in;"><h4>Civil Code - CIV</h4></div>
          <div style="display:inline;"><h5>DIVISION 1. PERSONS [38 - 86]</h5></div>
          <p>{number}. Text of section {number}.</p>
        </div>""")


def _run(tmp_path, page):
    spec = SourceSpec(jurisdiction="california", name="California Codes", code="CA",
                      kind="paged_search", config={"url": CODES, "search": SEARCH})
    report = RunResult().start(spec)
    emitted = []
    ctx = IngestContext(report=report, emit=emitted.append, page=page,
                        http=mock_http(tmp_path, _section), delays=NavigationDelays.none())
    return PagedSearchIngestor(spec).ingest(ctx), emitted, report


def test_pages_through_results(tmp_path):
    page = SearchPage([_result_page([1, 2]), _result_page([3], has_next=False)])
    outcome, emitted, report = _run(tmp_path, page)

    assert outcome.value == 2
    records = [d.to_dict() for d in emitted]
    assert [r["section"] for r in records] == ["1", "3"]
    assert records[0]["code"] == "CIV"
    assert records[0]["title"] == "Civil Code - CIV"
    assert records[0]["subject_area"] == "DIVISION 1. PERSONS [38 - 86]"
    assert records[0]["url"] == f"{DISPLAY}?lawCode=CIV&sectionNum=1&article=1.1"
    assert [f.kind for f in report.failures] == ["extraction_mismatch"]


def test_stops_after_three_empty_pages(tmp_path):
    page = SearchPage([_result_page([]) for _ in range(5)])
    outcome, emitted, _ = _run(tmp_path, page)
    assert outcome.value == 0
    assert page.result_index == 2


def test_captcha_fails_source_but_keeps_documents(tmp_path):
    page = SearchPage([_result_page([1]), _result_page([3])], captcha_after=1)
    outcome, emitted, _ = _run(tmp_path, page)
    assert not outcome.ok
    assert "CAPTCHA" in outcome.error.message
    assert len(emitted) == 1


def test_parse_result_links_requires_four_arguments():
    html = """<table class="table_main">
      <a onclick="submitCodesValues('PEN','2.','187','1','','')">187</a>
      <a onclick="submitCodesValues('PEN','2.')">broken</a>
      <a href="/plain">no handler</a>
    </table>"""
    assert parse_result_links(html, ".table_main a") == [
        f"{DISPLAY}?lawCode=PEN&sectionNum=187&article=1",
    ]


def test_has_next_page():
    assert has_next_page(_result_page([1]), "#nextTen")
    assert not has_next_page(_result_page([1], has_next=False), "#nextTen")
    assert not has_next_page("<p></p>", "#nextTen")


def test_section_page_without_text_raises():
    with pytest.raises(ExtractionMismatch):
        parse_section_page("<p>nothing</p>", f"{DISPLAY}?lawCode=CIV&sectionNum=9", DEFAULT_RULES)
