"""
DOM port exceptions.

These are raised by DOM adapters (Playwright, test doubles) when the page
refuses an operation. The engine never lets them reach its callers: each one
is caught at the port boundary, logged, and turned into result data.
"""

from tour_anchor.exceptions.base import TourAnchorError


class DomError(TourAnchorError):
    """Base exception for DOM port errors."""
    pass


class SelectorSyntaxError(DomError):
    """
    The page's native query engine rejected a selector.
    
    Raised for syntax the engine does not understand, such as text
    pseudo-selectors or relational pseudo-selectors on older engines.
    """
    
    def __init__(self, message: str, selector: str):
        super().__init__(message, {"selector": selector})
        self.selector = selector


class DomAccessError(DomError):
    """
    The DOM could not be read.
    
    Raised when a node was detached mid-operation, the page was closed,
    or the page-side script failed for another reason.
    """
    pass


class ObservationError(DomError):
    """
    A mutation observation could not be created or torn down.
    """
    
    def __init__(self, message: str, observation_id: str | None = None):
        super().__init__(message, {"observation_id": observation_id})
        self.observation_id = observation_id
