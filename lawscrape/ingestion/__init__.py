from .base import BaseIngestor, ExtractedDocument, IngestContext, RunResult, SourceSpec, SourceState
from .california import PagedSearchIngestor
from .court_listener import CourtListenerIngestor
from .delaware import DelawarePdfIngestor
from .drilldown import DrillDownIngestor
from .govinfo import GovInfoBulkIngestor
from .texas import TexasDropdownIngestor
from .us_code import UsCodeIngestor

__all__ = [
    "BaseIngestor",
    "ExtractedDocument",
    "IngestContext",
    "RunResult",
    "SourceSpec",
    "SourceState",
    "PagedSearchIngestor",
    "CourtListenerIngestor",
    "DelawarePdfIngestor",
    "DrillDownIngestor",
    "GovInfoBulkIngestor",
    "TexasDropdownIngestor",
    "UsCodeIngestor",
]
