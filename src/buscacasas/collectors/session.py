"""Browser rendering sessions.

A ``RenderingSession`` is one browser page owned by one source pipeline for
the duration of a run. ``BrowserSession`` drives headless Chromium through
Playwright; tests substitute their own ``RenderingSession`` serving canned
HTML.

Sessions are only handed out through async context managers so the
browser is closed on every exit path:

    async with BrowserSession.open("mercadolibre") as session:
        await session.navigate(url, timeout=30)
        soup = await session.snapshot()
"""

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import AsyncContextManager, AsyncIterator, Callable, Optional, Sequence

from bs4 import BeautifulSoup
from playwright.async_api import Browser, Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from ..config import Settings, config
from .base import DataSourceError, NavigationTimeout

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
]

# Hide the most common automation tell
HIDE_WEBDRIVER_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
"""


class RenderingSession(ABC):
    """One rendered page context.

    All timeouts are in seconds. Waiting operations resolve to a value
    (None/False) on timeout instead of raising, except ``navigate`` which
    raises ``NavigationTimeout`` so the caller can decide how fatal it is.
    """

    source: str

    @abstractmethod
    async def navigate(self, url: str, timeout: float) -> None:
        """Load ``url`` and wait for the network to go idle.

        Raises:
            NavigationTimeout: If the page did not settle within ``timeout``
            DataSourceError: If the page could not be loaded at all
        """

    @abstractmethod
    async def wait_for_any(self, selectors: Sequence[str], timeout: float) -> Optional[str]:
        """Wait until one of ``selectors`` matches; return it, or None on timeout."""

    @abstractmethod
    async def snapshot(self) -> BeautifulSoup:
        """Parse the current DOM into a queryable snapshot."""

    @abstractmethod
    async def is_clickable(self, selector: str) -> bool:
        """Whether ``selector`` matches an element that is not disabled."""

    @abstractmethod
    async def click_and_wait(self, selector: str, timeout: float) -> bool:
        """Click ``selector`` and wait for the resulting navigation.

        Returns:
            True if a new page loaded, False on timeout or click failure
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying browser resources. Safe to call twice."""


SessionFactory = Callable[[], AsyncContextManager[RenderingSession]]


class BrowserSession(RenderingSession):
    """Playwright-backed rendering session (headless Chromium)."""

    def __init__(self, source: str, browser: Browser, page: Page):
        self.source = source
        self._browser = browser
        self._page = page
        self._closed = False

    @classmethod
    @asynccontextmanager
    async def open(
        cls, source: str, settings: Optional[Settings] = None
    ) -> AsyncIterator["BrowserSession"]:
        """Launch a browser with a single page and close it on exit.

        Args:
            source: Name of the source this session belongs to (for errors/logs)
            settings: Browser settings (defaults to the global config)
        """
        settings = settings or config
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=settings.headless, args=LAUNCH_ARGS)
            session: Optional[BrowserSession] = None
            try:
                context = await browser.new_context(
                    user_agent=settings.user_agent,
                    viewport={
                        "width": settings.viewport_width,
                        "height": settings.viewport_height,
                    },
                    locale="es-UY",
                )
                await context.add_init_script(HIDE_WEBDRIVER_SCRIPT)
                page = await context.new_page()
                session = cls(source, browser, page)
                logger.debug(f"Browser session opened for {source}")
                yield session
            finally:
                if session is not None:
                    await session.close()
                else:
                    await browser.close()

    async def navigate(self, url: str, timeout: float) -> None:
        try:
            await self._page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightTimeoutError:
            raise NavigationTimeout(self.source, url, timeout)
        except PlaywrightError as e:
            raise DataSourceError(self.source, f"Navigation to {url} failed: {e}")

    async def wait_for_any(self, selectors: Sequence[str], timeout: float) -> Optional[str]:
        if not selectors:
            return None
        try:
            await self._page.wait_for_selector(
                ", ".join(selectors), state="attached", timeout=timeout * 1000
            )
        except PlaywrightTimeoutError:
            return None
        for selector in selectors:
            if await self._page.query_selector(selector) is not None:
                return selector
        return None

    async def snapshot(self) -> BeautifulSoup:
        try:
            html = await self._page.content()
        except PlaywrightError as e:
            raise DataSourceError(self.source, f"Could not read page content: {e}")
        return BeautifulSoup(html, "html.parser")

    async def is_clickable(self, selector: str) -> bool:
        try:
            element = await self._page.query_selector(selector)
            if element is None:
                return False
            if await element.get_attribute("aria-disabled") == "true":
                return False
            return await element.is_enabled()
        except PlaywrightError as e:
            logger.debug(f"Could not inspect {selector}: {e}")
            return False

    async def click_and_wait(self, selector: str, timeout: float) -> bool:
        try:
            async with self._page.expect_navigation(
                wait_until="networkidle", timeout=timeout * 1000
            ):
                await self._page.click(selector, timeout=timeout * 1000)
            return True
        except PlaywrightTimeoutError:
            logger.info(f"Navigation after clicking {selector} timed out ({timeout:g}s)")
            return False
        except PlaywrightError as e:
            logger.warning(f"Could not click {selector}: {e}")
            return False

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._browser.close()
        except PlaywrightError as e:
            logger.debug(f"Error closing browser for {self.source}: {e}")
        logger.debug(f"Browser session closed for {self.source}")
