"""
Playwright Browser - Browser session used by the command line tool.

Launches a browser, opens one page and hands it to the engine wrapped in a
PlaywrightDocument. Library users who already drive Playwright themselves
only need ``PlaywrightDocument(page)``.
"""

from typing import Any, Optional
import logging

from tour_anchor.browsers.playwright_dom import PlaywrightDocument
from tour_anchor.config.settings import BrowserSettings
from tour_anchor.exceptions.browser import BrowserError, BrowserLaunchError, NavigationError
from tour_anchor.utils.retry import RetryConfig, retry_async

NAVIGATION_RETRY_DELAY_MS = 1000

logger = logging.getLogger(__name__)


class PlaywrightBrowser:
    """
    Single-page Playwright session.

    Example:
        >>> browser = PlaywrightBrowser(settings.browser)
        >>> await browser.launch()
        >>> document = await browser.open("https://example.com")
        >>> await browser.close()

    Also usable as an async context manager.
    """

    def __init__(self, settings: Optional[BrowserSettings] = None):
        self.settings = settings or BrowserSettings()
        self._playwright: Any = None
        self._browser: Any = None
        self._context: Any = None
        self._page: Any = None

    @property
    def is_connected(self) -> bool:
        """Check if browser is connected."""
        return self._browser is not None and self._browser.is_connected()

    async def launch(self, **options: Any) -> None:
        """
        Launch the browser.

        Args:
            **options: Additional Playwright launch options
        """
        try:
            from playwright.async_api import async_playwright

            self._playwright = await async_playwright().start()

            browser_launchers = {
                "chromium": self._playwright.chromium,
                "firefox": self._playwright.firefox,
                "webkit": self._playwright.webkit,
            }
            launcher = browser_launchers.get(self.settings.browser_type, self._playwright.chromium)

            self._browser = await launcher.launch(headless=self.settings.headless, **options)

            logger.info(
                f"Launched {self.settings.browser_type} browser (headless={self.settings.headless})"
            )
        except Exception as e:
            await self.close()
            raise BrowserLaunchError(f"Failed to launch browser: {e}") from e

    async def new_document(self) -> PlaywrightDocument:
        """Open a page in the session context and wrap it for the engine."""
        if not self._browser:
            raise BrowserError("Browser not launched. Call launch() first.")

        if not self._context:
            self._context = await self._browser.new_context(
                viewport={
                    "width": self.settings.viewport_width,
                    "height": self.settings.viewport_height,
                }
            )
        self._page = await self._context.new_page()
        self._page.set_default_navigation_timeout(self.settings.navigation_timeout_ms)
        return PlaywrightDocument(self._page)

    async def open(self, url: str) -> PlaywrightDocument:
        """
        Navigate a fresh page to ``url``.

        Failed loads are retried ``settings.navigation_retries`` times.

        Args:
            url: Address of the page to inspect

        Returns:
            Document wrapper for the loaded page

        Raises:
            NavigationError: If the page could not be loaded
        """
        document = await self.new_document()
        retry = RetryConfig(
            max_attempts=self.settings.navigation_retries + 1,
            initial_delay_ms=NAVIGATION_RETRY_DELAY_MS,
            backoff_multiplier=2.0,
        )
        try:
            await retry_async(self._page.goto, retry, url, wait_until="domcontentloaded")
        except Exception as e:
            raise NavigationError(f"Failed to navigate to {url}: {e}", url=url) from e
        logger.debug(f"Loaded {url}")
        return document

    async def close(self) -> None:
        """Close the browser and cleanup."""
        if self._context:
            await self._context.close()
            self._context = None
            self._page = None

        if self._browser:
            await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

        logger.info("Browser closed")

    async def __aenter__(self) -> "PlaywrightBrowser":
        await self.launch()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
