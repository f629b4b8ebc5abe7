"""
Tour Anchor - Find, wait for and diagnose the DOM elements a product tour points at.

This package resolves tour-step anchors in dynamically rendered pages: it
tries candidate selectors in order, waits for late elements with bounded
mutation observation, decides whether they are practically visible, and
explains failures with actionable diagnostics.

Example:
    >>> from tour_anchor import TourElementValidator
    >>> from tour_anchor.browsers import PlaywrightDocument
    >>> validator = TourElementValidator(PlaywrightDocument(page))
    >>> result = await validator.find_element(["#checkout", ".checkout-button"])
"""

__version__ = "0.1.0"

# Public API exports
from tour_anchor.engine.tour_validator import TourElementValidator, FallbackOptions
from tour_anchor.config.settings import Settings

__all__ = [
    "TourElementValidator",
    "FallbackOptions",
    "Settings",
    "__version__",
]
