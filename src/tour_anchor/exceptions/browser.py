"""
Browser session exceptions.

Raised by the Playwright session used by the command line tool. The engine
itself only ever sees an already-open page.
"""

from tour_anchor.exceptions.base import TourAnchorError


class BrowserError(TourAnchorError):
    """Base exception for browser-related errors."""
    pass


class BrowserLaunchError(BrowserError):
    """
    Error launching the browser.
    
    Raised when the browser fails to start, usually because the Playwright
    browser binaries are not installed.
    """
    pass


class NavigationError(BrowserError):
    """Error navigating the page to the URL under inspection."""
    
    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, {"url": url})
        self.url = url
