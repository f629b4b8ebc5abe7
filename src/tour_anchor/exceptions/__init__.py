"""
Exceptions module - Custom exception hierarchy.

The resolution engine reports misses and failures through result objects.
These exceptions are raised only at the edges: by configuration loading, by
the browser session and by DOM adapters (where the engine catches them).
"""

from tour_anchor.exceptions.base import (
    TourAnchorError,
    ConfigurationError,
)
from tour_anchor.exceptions.dom import (
    DomError,
    SelectorSyntaxError,
    DomAccessError,
    ObservationError,
)
from tour_anchor.exceptions.browser import (
    BrowserError,
    BrowserLaunchError,
    NavigationError,
)

__all__ = [
    "TourAnchorError",
    "ConfigurationError",
    "DomError",
    "SelectorSyntaxError",
    "DomAccessError",
    "ObservationError",
    "BrowserError",
    "BrowserLaunchError",
    "NavigationError",
]
