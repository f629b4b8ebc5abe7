"""
DOM Interface - Abstract base classes for the document the engine inspects.

The resolution engine never talks to a browser directly. It is written
against these interfaces so the same logic runs against a live Playwright
page (see ``tour_anchor.browsers.playwright_dom``) and against in-memory
test doubles.

Example:
    >>> from tour_anchor.browsers import PlaywrightDocument
    >>> document = PlaywrightDocument(page)
    >>> element = await document.query_selector("#checkout")
    >>> box = await element.bounding_box()
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional


MutationCallback = Callable[[], None]


class IElement(ABC):
    """
    Abstract interface for a live DOM element.

    All geometry is reported relative to the viewport, the way
    ``getBoundingClientRect`` reports it.
    """

    @abstractmethod
    async def tag_name(self) -> str:
        """Get the lower-case tag name (e.g. 'button')."""
        ...

    @abstractmethod
    async def get_attribute(self, name: str) -> Optional[str]:
        """
        Get an attribute value from this element.

        Args:
            name: The attribute name

        Returns:
            The attribute value, or None if not present
        """
        ...

    @abstractmethod
    async def text_content(self) -> str:
        """Get the aggregated text content of this element and its descendants."""
        ...

    @abstractmethod
    async def computed_style(self) -> Dict[str, str]:
        """
        Get the computed style properties the engine relies on.

        Returns:
            Mapping with at least display, visibility, opacity, transform,
            clip-path, pointer-events and position
        """
        ...

    @abstractmethod
    async def bounding_box(self) -> Optional[Dict[str, float]]:
        """
        Get the viewport-relative bounding box.

        Returns:
            Dict with x, y, width, height, or None when the element has no box
        """
        ...

    @abstractmethod
    async def query_selector(self, selector: str) -> Optional["IElement"]:
        """Find the first descendant matching a CSS selector."""
        ...

    @abstractmethod
    async def query_selector_all(self, selector: str) -> List["IElement"]:
        """Find all descendants matching a CSS selector."""
        ...

    @abstractmethod
    async def next_element_sibling(self) -> Optional["IElement"]:
        """Get the immediately following sibling element."""
        ...

    @abstractmethod
    async def parent_element(self) -> Optional["IElement"]:
        """Get the parent element, or None at the root."""
        ...

    @abstractmethod
    async def shadow_host(self) -> Optional["IElement"]:
        """Get the host of the shadow root containing this element, if any."""
        ...

    @abstractmethod
    async def is_same_node(self, other: "IElement") -> bool:
        """Check whether two handles point at the same DOM node."""
        ...


class IMutationObservation(ABC):
    """A live subscription to document mutations."""

    @abstractmethod
    def disconnect(self) -> None:
        """
        Stop delivering notifications.

        Synchronous: once this returns no further callback is invoked.
        """
        ...


class IDocument(ABC):
    """
    Abstract interface for a queryable document.

    Query methods use the platform's native selector engine: syntax the
    engine does not understand raises ``SelectorSyntaxError``.
    """

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        """Check whether the underlying page has gone away."""
        ...

    @abstractmethod
    async def query_selector(self, selector: str) -> Optional[IElement]:
        """Find the first element matching a CSS selector."""
        ...

    @abstractmethod
    async def query_selector_all(self, selector: str) -> List[IElement]:
        """Find all elements matching a CSS selector, in document order."""
        ...

    @abstractmethod
    async def supports_selector(self, selector: str) -> bool:
        """
        Probe whether the native engine accepts a selector.

        Never raises.
        """
        ...

    @abstractmethod
    async def viewport_size(self) -> Dict[str, float]:
        """Get the viewport size as {'width': ..., 'height': ...}."""
        ...

    @abstractmethod
    async def scroll_offset(self) -> Dict[str, float]:
        """Get the current scroll offset as {'x': ..., 'y': ...}."""
        ...

    @abstractmethod
    async def element_at_point(self, x: float, y: float) -> Optional[IElement]:
        """
        Hit-test a point in viewport coordinates.

        Returns the topmost element painted there, or None when the point is
        outside the viewport or nothing is there.
        """
        ...

    @abstractmethod
    async def ready_state(self) -> str:
        """Get document.readyState ('loading', 'interactive' or 'complete')."""
        ...

    @abstractmethod
    async def observe_mutations(self, callback: MutationCallback) -> IMutationObservation:
        """
        Watch the whole document for added or changed subtrees.

        The callback fires for child-list changes anywhere in the tree and
        for changes to the class, style and hidden attributes.

        Args:
            callback: Called with no arguments for each batch of mutations

        Returns:
            Observation handle owned by the caller
        """
        ...


_ELEMENT_OPERATIONS = (
    "tag_name",
    "get_attribute",
    "text_content",
    "computed_style",
    "bounding_box",
    "query_selector",
    "query_selector_all",
    "next_element_sibling",
    "parent_element",
    "shadow_host",
    "is_same_node",
)

_DOCUMENT_OPERATIONS = (
    "query_selector",
    "query_selector_all",
    "supports_selector",
    "viewport_size",
    "scroll_offset",
    "observe_mutations",
)


def looks_like_element(candidate: Any) -> Optional[IElement]:
    """
    Capability check for element handles.

    Returns the candidate when it offers every operation the engine calls
    on an element, otherwise None. Subclassing IElement is not required.
    """
    if candidate is None:
        return None
    for name in _ELEMENT_OPERATIONS:
        if not callable(getattr(candidate, name, None)):
            return None
    return candidate


def looks_like_document(candidate: Any) -> Optional[IDocument]:
    """Capability check for documents; returns None for closed pages."""
    if candidate is None:
        return None
    for name in _DOCUMENT_OPERATIONS:
        if not callable(getattr(candidate, name, None)):
            return None
    if getattr(candidate, "is_closed", False):
        return None
    return candidate
