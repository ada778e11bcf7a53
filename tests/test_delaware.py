from __future__ import annotations

import httpx
import pytest
from conftest import FakePage, load_fixture, mock_http

from lawscrape.errors import ParseFailure
from lawscrape.ingestion import delaware
from lawscrape.ingestion.base import IngestContext, RunResult, SourceSpec, SourceState
from lawscrape.ingestion.delaware import DelawarePdfIngestor, parse_pdf, parse_title_links
from lawscrape.utils.rate_limiter import NavigationDelays

BASE = "https://delcode.delaware.gov/"

SPEC = SourceSpec(
    jurisdiction="delaware",
    name="Delaware Code",
    code="DE",
    kind="delaware_pdf",
    config={"url": BASE, "normalization": {"allowed": "printable_ascii", "drop": "$"}},
)


def test_parse_title_links_lists_constitution_first():
    titles = parse_title_links(load_fixture("delaware_index.html"), BASE)
    assert [(t.number, t.pdf_url) for t in titles] == [
        ("Constitution", f"{BASE}constitution/constitution.pdf"),
        ("1", f"{BASE}title1/title1.pdf"),
        ("2", f"{BASE}title2/title2.pdf"),
    ]
    assert titles[1].html_url == f"{BASE}title1/index.html"
    assert titles[1].file_name == "1_Title_1_General_Provisions.pdf"


def test_file_name_drops_punctuation_and_joins_words():
    title = delaware.CodeTitle(
        title="  Title 6 - Commerce  and\tTrade ", number="6", html_url=BASE, pdf_url=BASE,
    )
    assert title.file_name == "6_Title_6_Commerce_and_Trade.pdf"


def test_parse_pdf_rejects_garbage():
    with pytest.raises(ParseFailure):
        parse_pdf(b"this is not a pdf")


def _fake_parse(data):
    if data.startswith(b"%PDF"):
        return "TITLE 1\nGeneral   Provisions $ 100 §1", 3
    raise ParseFailure("bad pdf")


def _handler(request):
    path = request.url.path
    if path == "/title1/title1.pdf":
        return httpx.Response(200, content=b"%PDF-1.4 title one")
    if path == "/constitution/constitution.pdf":
        return httpx.Response(200, content=b"<html>moved</html>")
    return httpx.Response(500)


def test_failed_titles_are_skipped(monkeypatch, tmp_path):
    monkeypatch.setattr(delaware, "parse_pdf", _fake_parse)
    emitted = []
    report = RunResult().start(SPEC)
    ctx = IngestContext(
        report=report,
        emit=emitted.append,
        page=FakePage({BASE: load_fixture("delaware_index.html")}),
        http=mock_http(tmp_path, _handler),
        delays=NavigationDelays.none(),
    )

    outcome = DelawarePdfIngestor(SPEC).ingest(ctx)

    assert outcome.ok
    assert outcome.value == 1
    assert report.state is SourceState.DRILLING_DOWN
    record = emitted[0].to_dict()
    assert record["title_number"] == "1"
    assert record["pages"] == "3"
    assert record["content"] == "TITLE 1 General Provisions 100 1"
    assert record["pdf_url"] == f"{BASE}title1/title1.pdf"
    assert [f.kind for f in report.failures] == ["parse_failure", "download_failure"]
    assert report.failures[1].context == "Delaware Code > Title 2 - Transportation"


def test_index_timeout_fails_source(tmp_path):
    report = RunResult().start(SPEC)
    ctx = IngestContext(
        report=report,
        emit=lambda doc: None,
        page=FakePage({}),
        http=mock_http(tmp_path, _handler),
        delays=NavigationDelays.none(),
    )
    outcome = DelawarePdfIngestor(SPEC).ingest(ctx)
    assert not outcome.ok
    assert outcome.error.kind.value == "navigation_timeout"
