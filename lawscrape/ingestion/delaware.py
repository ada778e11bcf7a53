"""Delaware Code ingestor.

delcode.delaware.gov lists every title with an HTML and a PDF link. The PDF
of each title is downloaded and its text extracted with pdfplumber; one
document is produced per title.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from io import BytesIO
from urllib.parse import urljoin

import pdfplumber
from bs4 import BeautifulSoup

from ..errors import DownloadFailure, Outcome, ParseFailure
from ..normalization.text_cleaner import NormalizationRules, normalize_text
from .base import BaseIngestor, ExtractedDocument, IngestContext, SelectorMap, SourceSpec, SourceState
from .navigator import Navigator

TITLE_BLOCK = ".title-links"


@dataclass(frozen=True)
class CodeTitle:
    title: str
    number: str
    html_url: str
    pdf_url: str

    @property
    def file_name(self) -> str:
        safe = re.sub(r"[^a-zA-Z0-9\s]", "", self.title)
        stem = re.sub(r"\s+", "_", safe.strip())
        return f"{self.number}_{stem}.pdf"


def parse_title_links(html: str, base_url: str) -> list[CodeTitle]:
    """Find every title that offers both an HTML and a PDF version.

    The Constitution, when present, is listed first.
    """
    soup = BeautifulSoup(html, "html.parser")
    titles = []
    for block in soup.select(TITLE_BLOCK):
        html_link = block.select_one('a[href*="title"]:not([href*=".pdf"])')
        pdf_link = block.select_one('a[href*=".pdf"]')
        if html_link is None or pdf_link is None:
            continue
        text = html_link.get_text(" ", strip=True)
        match = re.search(r"Title\s+(\d+)", text, flags=re.IGNORECASE)
        titles.append(CodeTitle(
            title=text,
            number=match.group(1) if match else "",
            html_url=urljoin(base_url, html_link["href"]),
            pdf_url=urljoin(base_url, pdf_link["href"]),
        ))

    constitution = soup.select_one(f'{TITLE_BLOCK} a[href*="constitution"]:not([href*=".pdf"])')
    constitution_pdf = soup.select_one(f'{TITLE_BLOCK} a[href*="constitution.pdf"]')
    if constitution is not None and constitution_pdf is not None:
        pdf_url = urljoin(base_url, constitution_pdf["href"])
        if all(t.pdf_url != pdf_url for t in titles):
            titles.insert(0, CodeTitle(
                title="The Delaware Constitution",
                number="Constitution",
                html_url=urljoin(base_url, constitution["href"]),
                pdf_url=pdf_url,
            ))

    return titles


def parse_pdf(data: bytes) -> tuple[str, int]:
    """Extract raw text and page count from PDF bytes.

    Raises:
        ParseFailure: pdfplumber could not read the document.
    """
    try:
        with pdfplumber.open(BytesIO(data)) as pdf:
            parts = [page.extract_text() or "" for page in pdf.pages]
            return "\n".join(parts), len(pdf.pages)
    except Exception as e:
        raise ParseFailure(f"Could not parse PDF: {e}") from e


class DelawarePdfIngestor(BaseIngestor):
    """Download and parse every title PDF listed on the Delaware Code index."""

    def __init__(self, spec: SourceSpec):
        super().__init__(spec)
        self.rules = NormalizationRules.from_config(
            self.config.get("normalization", {"allowed": "printable_ascii", "drop": "$"})
        )

    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        url = self.source_url()
        navigator = Navigator(
            ctx.require_page(),
            SelectorMap(container=TITLE_BLOCK, link="a"),
            ctx.delays,
            timeout_ms=ctx.navigation_timeout_ms,
        )
        opened = navigator.open(url)
        if not opened.ok:
            return Outcome.failure(opened.error)

        titles = parse_title_links(opened.value, url)
        ctx.report.state = SourceState.LIST_LOADED
        self.logger.info("Found %d titles to process", len(titles))

        ctx.report.state = SourceState.DRILLING_DOWN
        http = ctx.require_http()
        produced = 0
        for i, title in enumerate(titles, start=1):
            self.logger.info("Processing %d/%d: %s", i, len(titles), title.title)
            try:
                data = http.fetch_bytes(title.pdf_url, timeout=60)
                text, pages = parse_pdf(data)
            except (DownloadFailure, ParseFailure) as e:
                ctx.skip(e, f"{self.spec.name} > {title.title}")
                continue

            ctx.accept(ExtractedDocument.for_spec(self.spec, title.pdf_url, {
                "title": title.title,
                "title_number": title.number,
                "html_url": title.html_url,
                "pdf_url": title.pdf_url,
                "file_name": title.file_name,
                "pages": str(pages),
                "downloaded_at": datetime.now(timezone.utc).isoformat(),
                "content": normalize_text(text, self.rules),
            }))
            produced += 1
            self.logger.info("Processed %s (%d pages)", title.title, pages)
            ctx.delays.after_action()

        return Outcome.success(produced)
