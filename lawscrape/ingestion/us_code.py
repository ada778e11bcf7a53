"""United States Code ingestor.

uscode.house.gov publishes the whole Code as a zip of USLM XML files, one per
title. The download page is read over HTTP to find the current release's XML
link; every XML file inside the archive becomes one document.
"""

from __future__ import annotations

import zipfile
from io import BytesIO
from pathlib import PurePosixPath
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from lxml import etree

from ..errors import DownloadFailure, ExtractionMismatch, Outcome, ParseFailure
from ..normalization.text_cleaner import NormalizationRules, normalize_text
from .base import BaseIngestor, ExtractedDocument, IngestContext, SourceSpec, SourceState

XML_LINK = '.itemdownloadlinks a[title*="XML"]'


def _el(name: str) -> str:
    # USLM elements live in a namespace that changes between releases.
    return f"*[local-name()='{name}']"


TITLE_PATH = f"//{_el('main')}/{_el('title')}"
SECTION_PATH = f"{TITLE_PATH}//{_el('section')}"
PARAGRAPH_PATH = f"{SECTION_PATH}/{_el('content')}/{_el('p')}"


def find_xml_link(html: str, base_url: str, selector: str = XML_LINK) -> str:
    """Return the absolute URL of the XML zip on the download page.

    Raises:
        ExtractionMismatch: The page has no XML download link.
    """
    link = BeautifulSoup(html, "html.parser").select_one(selector)
    if link is None or not link.get("href"):
        raise ExtractionMismatch("XML download link not found", context=base_url)
    return urljoin(base_url, link["href"])


def _text(node) -> str:
    return " ".join("".join(node.itertext()).split())


def parse_title_xml(data: bytes) -> dict[str, str]:
    """Read heading, citation, first section number and section text of one title.

    Raises:
        ParseFailure: The file is not well-formed XML.
    """
    try:
        root = etree.fromstring(data)
    except etree.XMLSyntaxError as e:
        raise ParseFailure(f"Invalid XML: {e}") from e

    headings = root.xpath(f"{TITLE_PATH}/{_el('heading')}")
    title = _text(headings[0]) if headings else ""
    number = root.xpath(f"{TITLE_PATH}/{_el('num')}/@value")
    citation = f"{number[0]} {title}".strip() if number else title
    section_nums = root.xpath(f"({SECTION_PATH})[1]/{_el('num')}")

    paragraphs = [_text(p) for p in root.xpath(PARAGRAPH_PATH)]
    return {
        "title": title,
        "citation": citation,
        "section": _text(section_nums[0]) if section_nums else "",
        "content": "\n\n".join(p for p in paragraphs if p),
    }


class UsCodeIngestor(BaseIngestor):
    """Download the USLM XML release and emit one document per title file."""

    needs_browser = False

    def __init__(self, spec: SourceSpec):
        super().__init__(spec)
        self.link_selector = self.config.get("xml_link", XML_LINK)
        # Paragraph breaks are part of the content; only the characters are filtered.
        self.rules = NormalizationRules.from_config(self.config.get("normalization"))

    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        http = ctx.require_http()
        url = self.source_url()
        try:
            zip_url = find_xml_link(http.fetch(url), url, self.link_selector)
            data = http.fetch_bytes(zip_url)
        except (DownloadFailure, ExtractionMismatch) as e:
            return Outcome.failure(e)

        try:
            archive = zipfile.ZipFile(BytesIO(data))
        except zipfile.BadZipFile as e:
            return Outcome.failure(ParseFailure(f"Not a zip archive: {e}", context=zip_url))

        with archive:
            names = sorted(n for n in archive.namelist() if n.lower().endswith(".xml"))
            ctx.report.state = SourceState.LIST_LOADED
            self.logger.info("Found %d XML files in %s", len(names), zip_url)

            ctx.report.state = SourceState.DRILLING_DOWN
            produced = 0
            for i, name in enumerate(names, start=1):
                file_name = PurePosixPath(name).name
                self.logger.info("Processing file %d/%d: %s", i, len(names), file_name)
                try:
                    parsed = parse_title_xml(archive.read(name))
                except ParseFailure as e:
                    ctx.skip(e, f"{self.spec.name} > {file_name}")
                    continue

                paragraphs = (normalize_text(p, self.rules) for p in parsed.pop("content").split("\n\n"))
                content = "\n\n".join(p for p in paragraphs if p)
                ctx.accept(ExtractedDocument.for_spec(self.spec, zip_url, {
                    "file_name": file_name,
                    **{k: normalize_text(v, self.rules) for k, v in parsed.items()},
                    "content": content,
                }))
                produced += 1

        return Outcome.success(produced)
