"""Browser session management.

The pipeline drives exactly one page for a whole run. Ingestors talk to it
through the small PageDriver protocol so tests can substitute a fake page
serving fixture HTML.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Protocol

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from ..errors import NavigationTimeout
from .cache import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-http2",
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
]


class PageDriver(Protocol):
    """The browser operations ingestors rely on."""

    @property
    def url(self) -> str: ...

    def goto(self, url: str) -> None: ...

    def wait_for(self, selector: str, timeout_ms: int) -> None: ...

    def wait_for_function(self, expression: str, timeout_ms: int) -> None: ...

    def content(self) -> str: ...

    def select_option(self, selector: str, value: str) -> None: ...

    def click(self, selector: str) -> None: ...

    def evaluate(self, expression: str) -> Any: ...

    def add_init_script(self, script: str) -> None: ...

    def screenshot(self, path: Path) -> None: ...


class PlaywrightPage:
    """PageDriver backed by a Playwright sync Page.

    Playwright timeouts and navigation errors surface as NavigationTimeout.
    """

    def __init__(self, page: Page, load_timeout_ms: int = 30000):
        self._page = page
        self.load_timeout_ms = load_timeout_ms

    @property
    def url(self) -> str:
        return self._page.url

    def goto(self, url: str) -> None:
        try:
            self._page.goto(url, wait_until="networkidle", timeout=self.load_timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(f"Timed out loading {url}", context=url) from e
        except PlaywrightError as e:
            raise NavigationTimeout(f"Could not load {url}: {e.message}", context=url) from e

    def wait_for(self, selector: str, timeout_ms: int) -> None:
        try:
            self._page.wait_for_selector(selector, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(
                f"Selector {selector!r} did not appear within {timeout_ms}ms",
                context=self._page.url,
            ) from e
        except PlaywrightError as e:
            raise NavigationTimeout(f"Waiting for {selector!r} failed: {e.message}", context=self._page.url) from e

    def wait_for_function(self, expression: str, timeout_ms: int) -> None:
        try:
            self._page.wait_for_function(expression, timeout=timeout_ms)
        except PlaywrightTimeoutError as e:
            raise NavigationTimeout(
                f"Condition not met within {timeout_ms}ms", context=self._page.url
            ) from e
        except PlaywrightError as e:
            raise NavigationTimeout(f"Condition failed: {e.message}", context=self._page.url) from e

    def content(self) -> str:
        try:
            return self._page.content()
        except PlaywrightError as e:
            raise NavigationTimeout(f"Could not read page content: {e.message}", context=self._page.url) from e

    def select_option(self, selector: str, value: str) -> None:
        try:
            self._page.select_option(selector, value, timeout=self.load_timeout_ms)
        except PlaywrightError as e:
            raise NavigationTimeout(
                f"Could not select {value!r} in {selector!r}: {e.message}", context=self._page.url
            ) from e

    def click(self, selector: str) -> None:
        try:
            self._page.click(selector, timeout=self.load_timeout_ms)
        except PlaywrightError as e:
            raise NavigationTimeout(f"Could not click {selector!r}: {e.message}", context=self._page.url) from e

    def evaluate(self, expression: str) -> Any:
        try:
            return self._page.evaluate(expression)
        except PlaywrightError as e:
            raise NavigationTimeout(f"Script failed: {e.message}", context=self._page.url) from e

    def add_init_script(self, script: str) -> None:
        self._page.add_init_script(script=script)

    def screenshot(self, path: Path) -> None:
        self._page.screenshot(path=str(path), full_page=True)


@contextmanager
def browser_session(
    headless: bool = True,
    user_agent: str = DEFAULT_USER_AGENT,
    load_timeout_ms: int = 30000,
) -> Iterator[PlaywrightPage]:
    """Launch Chromium, yield its single page, and always close it."""
    with sync_playwright() as p:
        logger.info("Launching Chromium (headless=%s)", headless)
        browser = p.chromium.launch(headless=headless, args=LAUNCH_ARGS)
        try:
            context = browser.new_context(
                user_agent=user_agent,
                viewport={"width": 1920, "height": 1080},
                locale="en-US",
            )
            page = context.new_page()
            yield PlaywrightPage(page, load_timeout_ms=load_timeout_ms)
        finally:
            logger.info("Closing browser")
            browser.close()
