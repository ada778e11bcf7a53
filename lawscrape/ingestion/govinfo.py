"""GovInfo bulk-data ingestor.

The Government Publishing Office publishes bulk XML on GitHub
(usgpo/bulk-data). The repository archive is downloaded as a zip over HTTP
and every DLPS text-class XML file under the configured directory becomes one
document: the header's title statement gives the title, the document text the
content.
"""

from __future__ import annotations

import zipfile
from io import BytesIO
from pathlib import PurePosixPath

from lxml import etree

from ..errors import DownloadFailure, Outcome, ParseFailure
from ..normalization.text_cleaner import NormalizationRules, normalize_text
from .base import BaseIngestor, ExtractedDocument, IngestContext, SourceSpec, SourceState

ARCHIVE_URL = "https://github.com/usgpo/bulk-data/archive/refs/heads/main.zip"
DEFAULT_DIRECTORY = "ndash-changes-March2024/updated"

TITLE_PATH = "/DLPSTEXTCLASS/HEADER/FILEDESC/TITLESTMT/TITLE"


def select_members(names: list[str], directory: str) -> list[str]:
    """XML files directly inside ``directory``, whatever the archive's top folder."""
    directory = directory.strip("/")
    selected = []
    for name in names:
        path = PurePosixPath(name)
        if path.suffix.lower() != ".xml":
            continue
        parent = str(path.parent)
        if parent == directory or parent.endswith("/" + directory):
            selected.append(name)
    return sorted(selected)


def _text(node) -> str:
    return " ".join("".join(node.itertext()).split())


def parse_text_class(data: bytes) -> dict[str, str]:
    """Read the title and full text of one DLPS text-class document.

    Raises:
        ParseFailure: The file is not well-formed XML.
    """
    try:
        root = etree.fromstring(data)
    except etree.XMLSyntaxError as e:
        raise ParseFailure(f"Invalid XML: {e}") from e

    titles = root.xpath(TITLE_PATH)
    body = root.find("TEXT")
    return {
        "title": _text(titles[0]) if titles else "",
        "content": _text(body if body is not None else root),
    }


class GovInfoBulkIngestor(BaseIngestor):
    """Download the bulk-data archive and emit one document per XML file."""

    needs_browser = False

    def __init__(self, spec: SourceSpec):
        super().__init__(spec)
        self.directory = self.config.get("directory", DEFAULT_DIRECTORY)
        self.rules = NormalizationRules.from_config(self.config.get("normalization"))

    def source_url(self) -> str:
        return self.config.get("url", ARCHIVE_URL)

    def ingest(self, ctx: IngestContext) -> Outcome[int]:
        url = self.source_url()
        try:
            data = ctx.require_http().fetch_bytes(url, timeout=300)
        except DownloadFailure as e:
            return Outcome.failure(e)

        try:
            archive = zipfile.ZipFile(BytesIO(data))
        except zipfile.BadZipFile as e:
            return Outcome.failure(ParseFailure(f"Not a zip archive: {e}", context=url))

        with archive:
            names = select_members(archive.namelist(), self.directory)
            ctx.report.state = SourceState.LIST_LOADED
            self.logger.info("Found %d XML files under %s", len(names), self.directory)

            ctx.report.state = SourceState.DRILLING_DOWN
            produced = 0
            for name in names:
                file_name = PurePosixPath(name).name
                try:
                    parsed = parse_text_class(archive.read(name))
                except ParseFailure as e:
                    ctx.skip(e, f"{self.spec.name} > {file_name}")
                    continue

                if not parsed["title"]:
                    self.logger.warning("No title found in %s", file_name)
                ctx.accept(ExtractedDocument.for_spec(self.spec, url, {
                    "file_name": file_name,
                    "title": normalize_text(parsed["title"], self.rules),
                    "content": normalize_text(parsed["content"], self.rules),
                }))
                produced += 1

        return Outcome.success(produced)
