"""
Browsers module - Playwright adapters for the DOM port.
"""

from tour_anchor.browsers.playwright_dom import (
    PlaywrightDocument,
    PlaywrightNode,
    PlaywrightObservation,
)
from tour_anchor.browsers.playwright_browser import PlaywrightBrowser

__all__ = [
    "PlaywrightDocument",
    "PlaywrightNode",
    "PlaywrightObservation",
    "PlaywrightBrowser",
]
