from __future__ import annotations

import io
import zipfile

import httpx
import pytest
from conftest import mock_http

from lawscrape.errors import ParseFailure
from lawscrape.ingestion.base import IngestContext, RunResult, SourceSpec, SourceState
from lawscrape.ingestion.govinfo import GovInfoBulkIngestor, parse_text_class, select_members

ARCHIVE_URL = "https://github.com/usgpo/bulk-data/archive/refs/heads/main.zip"
UPDATED = "bulk-data-main/ndash-changes-March2024/updated"

DOCUMENT = b"""<?xml version="1.0" encoding="UTF-8"?>
<DLPSTEXTCLASS>
  <HEADER>
    <FILEDESC>
      <TITLESTMT>
        <TITLE>  Public Papers of the Presidents: 1961 </TITLE>
      </TITLESTMT>
    </FILEDESC>
  </HEADER>
  <TEXT>
    <BODY>
      <P>Inaugural Address,
         January 20, 1961.</P>
      <P>Vice President Johnson, Mr. Speaker &#8211; fellow citizens.</P>
    </BODY>
  </TEXT>
</DLPSTEXTCLASS>
"""

UNTITLED = b"<DLPSTEXTCLASS><HEADER/><TEXT><P>Remarks only.</P></TEXT></DLPSTEXTCLASS>"


def _zip(files):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in files.items():
            zf.writestr(name, data)
    return buffer.getvalue()


def _context(tmp_path, handler):
    spec = SourceSpec(
        jurisdiction="govinfo",
        name="GovInfo Bulk Data",
        code="GPO",
        kind="govinfo_bulk",
        config={"url": ARCHIVE_URL, "normalization": {"allowed": r"a-zA-Z0-9\s"}},
    )
    report = RunResult().start(spec)
    emitted = []
    ctx = IngestContext(report=report, emit=emitted.append, http=mock_http(tmp_path, handler))
    return spec, ctx, emitted


def test_parse_text_class():
    parsed = parse_text_class(DOCUMENT)
    assert parsed["title"] == "Public Papers of the Presidents: 1961"
    assert parsed["content"] == (
        "Inaugural Address, January 20, 1961. Vice President Johnson, Mr. Speaker – fellow citizens."
    )


def test_parse_text_class_without_title():
    assert parse_text_class(UNTITLED) == {"title": "", "content": "Remarks only."}


def test_parse_text_class_rejects_malformed():
    with pytest.raises(ParseFailure):
        parse_text_class(b"<DLPSTEXTCLASS><HEADER>")


def test_select_members_keeps_only_xml_directly_in_directory():
    names = [
        f"{UPDATED}/",
        f"{UPDATED}/b.xml",
        f"{UPDATED}/a.XML",
        f"{UPDATED}/notes.txt",
        f"{UPDATED}/nested/c.xml",
        "bulk-data-main/ndash-changes-March2024/original/d.xml",
        "bulk-data-main/README.md",
    ]
    assert select_members(names, "ndash-changes-March2024/updated/") == [
        f"{UPDATED}/a.XML",
        f"{UPDATED}/b.xml",
    ]


def test_ingest_archive(tmp_path):
    archive = _zip({
        f"{UPDATED}/ppp1961.xml": DOCUMENT,
        f"{UPDATED}/broken.xml": b"<DLPSTEXTCLASS>",
        f"{UPDATED}/untitled.xml": UNTITLED,
        "bulk-data-main/README.md": b"# bulk data",
    })
    requested = []

    def handler(request):
        requested.append(str(request.url))
        return httpx.Response(200, content=archive)

    spec, ctx, emitted = _context(tmp_path, handler)
    outcome = GovInfoBulkIngestor(spec).ingest(ctx)

    assert outcome.value == 2
    assert requested == [ARCHIVE_URL]
    assert ctx.report.state is SourceState.DRILLING_DOWN
    records = {d.to_dict()["file_name"]: d.to_dict() for d in emitted}
    assert sorted(records) == ["ppp1961.xml", "untitled.xml"]
    assert records["ppp1961.xml"]["title"] == "Public Papers of the Presidents 1961"
    assert records["ppp1961.xml"]["content"].startswith("Inaugural Address January 20 1961 Vice President")
    assert records["ppp1961.xml"]["url"] == ARCHIVE_URL
    assert records["untitled.xml"]["title"] == ""
    assert [(f.kind, f.context) for f in ctx.report.failures] == [
        ("parse_failure", "GovInfo Bulk Data > broken.xml"),
    ]


def test_bad_archive_fails_source(tmp_path):
    spec, ctx, emitted = _context(tmp_path, lambda request: httpx.Response(200, content=b"<html>rate limited</html>"))
    outcome = GovInfoBulkIngestor(spec).ingest(ctx)
    assert not outcome.ok
    assert outcome.error.kind.value == "parse_failure"
    assert emitted == []


def test_download_failure_fails_source(tmp_path):
    spec, ctx, _ = _context(tmp_path, lambda request: httpx.Response(503))
    outcome = GovInfoBulkIngestor(spec).ingest(ctx)
    assert not outcome.ok
    assert outcome.error.kind.value == "download_failure"
