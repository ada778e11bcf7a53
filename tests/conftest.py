from __future__ import annotations

from pathlib import Path

import httpx
import pytest
from bs4 import BeautifulSoup

from lawscrape.errors import NavigationTimeout
from lawscrape.utils.cache import HttpCache
from lawscrape.utils.rate_limiter import RateLimiter

FIXTURES = Path(__file__).parent / "fixtures"

NOT_FOUND = "<html><body><h1>Page not found</h1></body></html>"


def load_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


class FakePage:
    """In-memory browser page serving fixture HTML by URL.

    Unknown URLs render a bare not-found page, so waiting on any list or leaf
    selector there times out the way a real page would.
    """

    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self._url = "about:blank"
        self.visited: list[str] = []
        self.screenshots: list[Path] = []
        self.init_scripts: list[str] = []

    @property
    def url(self) -> str:
        return self._url

    def goto(self, url: str) -> None:
        self.visited.append(url)
        self._url = url

    def content(self) -> str:
        return self.pages.get(self._url, NOT_FOUND)

    def wait_for(self, selector: str, timeout_ms: int) -> None:
        if BeautifulSoup(self.content(), "html.parser").select_one(selector) is None:
            raise NavigationTimeout(f"Selector {selector!r} not found", context=self._url)

    def wait_for_function(self, expression: str, timeout_ms: int) -> None:
        raise NavigationTimeout("Condition not met", context=self._url)

    def select_option(self, selector: str, value: str) -> None:
        pass

    def click(self, selector: str) -> None:
        self.wait_for(selector, 0)

    def evaluate(self, expression: str):
        return None

    def add_init_script(self, script: str) -> None:
        self.init_scripts.append(script)

    def screenshot(self, path: Path) -> None:
        self.screenshots.append(path)


def mock_http(tmp_path: Path, handler) -> HttpCache:
    """HttpCache whose requests are answered by ``handler`` instead of the network."""
    return HttpCache(
        cache_dir=tmp_path / "http",
        ttl=0,
        rate_limiter=RateLimiter(requests_per_second=1000.0, sleep=lambda s: None),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


@pytest.fixture
def ny_pages() -> dict[str, str]:
    base = "https://www.nysenate.gov/legislation/laws/BSC"
    return {
        base: load_fixture("ny_code.html"),
        f"{base}/A1": load_fixture("ny_article_1.html"),
        f"{base}/101": load_fixture("ny_section_101.html"),
        f"{base}/102": load_fixture("ny_section_102.html"),
    }
