"""
Static Resolver - One pass over the candidates, no waiting.

Each candidate is routed to the cheapest lookup that can answer it:
native query for plain CSS, the text finder for ``:contains()``, and native
or emulated relational matching for ``:has()``. Engine errors are caught per
candidate and recorded; the pass stops at the first hit.
"""

from dataclasses import dataclass, field
from typing import List, Optional
import logging

from tour_anchor.engine.finder import ScriptElementFinder
from tour_anchor.engine.models import ValidationMethod
from tour_anchor.engine.selectors import (
    RELATIONAL_PSEUDO,
    TEXT_PSEUDO,
    SelectorSupport,
    parse_relational_pseudo,
    parse_text_pseudo,
)
from tour_anchor.engine.visibility import VisibilityEvaluator
from tour_anchor.interfaces.dom import IDocument, IElement

logger = logging.getLogger(__name__)


@dataclass
class LookupOutcome:
    """Result of looking up a single selector."""
    element: Optional[IElement] = None
    method: ValidationMethod = ValidationMethod.HYBRID
    error: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.element is not None


@dataclass
class Resolution:
    """Result of a static pass over several candidates."""
    element: Optional[IElement] = None
    selector: Optional[str] = None
    method: ValidationMethod = ValidationMethod.HYBRID
    index: int = -1
    attempts: int = 0
    attempted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.element is not None


async def _contains(ancestor: IElement, element: IElement) -> bool:
    current = await element.parent_element()
    while current is not None:
        if await current.is_same_node(ancestor):
            return True
        current = await current.parent_element()
    return False


class StaticResolver:
    """
    Resolves candidates against the current DOM without waiting.

    Args:
        document: Document to query
        support: Selector support cache for the same document
        finder: Script finder for text and relational lookups
        visibility: Evaluator used when ``require_visible`` is set
        require_visible: Treat hidden matches as misses
    """

    def __init__(
        self,
        document: Optional[IDocument],
        support: SelectorSupport,
        finder: ScriptElementFinder,
        visibility: Optional[VisibilityEvaluator] = None,
        require_visible: bool = True,
    ):
        self._document = document
        self._support = support
        self._finder = finder
        self._visibility = visibility
        self._require_visible = require_visible and visibility is not None

    async def _by_text(self, selector: str) -> LookupOutcome:
        parsed = parse_text_pseudo(selector)
        if parsed is None:
            return LookupOutcome(error=f"Invalid selector syntax: {selector}")

        tag, text = parsed
        matches = await self._finder.find_by_text(tag, text)
        if not matches:
            return LookupOutcome(method=ValidationMethod.JAVASCRIPT)

        pick = matches[0]
        if tag == "*":
            # Every ancestor of the target matches too; narrow to the innermost
            for candidate in matches[1:]:
                if await _contains(pick, candidate):
                    pick = candidate
        return LookupOutcome(pick, ValidationMethod.JAVASCRIPT)

    async def _by_relation(self, selector: str) -> LookupOutcome:
        if await self._support.has_relational_support():
            try:
                element = await self._document.query_selector(selector)
                return LookupOutcome(element, ValidationMethod.CSS)
            except Exception as e:
                logger.warning(f"Native :has() failed for {selector!r}: {e}")

        parsed = parse_relational_pseudo(selector)
        if parsed is None:
            return LookupOutcome(error=f"Invalid selector syntax: {selector}")
        matches = await self._finder.find_with_relational_match(*parsed)
        return LookupOutcome(matches[0] if matches else None, ValidationMethod.JAVASCRIPT)

    async def _by_css(self, selector: str) -> LookupOutcome:
        if not await self._support.is_valid_selector(selector):
            return LookupOutcome(error=f"Invalid selector syntax: {selector}")
        try:
            element = await self._document.query_selector(selector)
            return LookupOutcome(element, ValidationMethod.CSS)
        except Exception as e:
            logger.warning(f"CSS selector error for {selector!r}: {e}")
            return LookupOutcome(error=f"Query failed for {selector}: {e}")

    async def lookup(self, selector: str) -> LookupOutcome:
        """
        Look up one selector. Never raises.

        Returns:
            LookupOutcome with the element (or None), how it was found and
            any error encountered
        """
        if not isinstance(selector, str) or not selector.strip():
            return LookupOutcome(error="Empty or invalid selector")
        if self._document is None:
            return LookupOutcome(error="No document available")

        selector = selector.strip()
        try:
            if TEXT_PSEUDO in selector:
                outcome = await self._by_text(selector)
            elif RELATIONAL_PSEUDO in selector:
                outcome = await self._by_relation(selector)
            else:
                outcome = await self._by_css(selector)
        except Exception as e:
            logger.warning(f"Unexpected lookup error for {selector!r}: {e}")
            return LookupOutcome(error=f"Lookup failed for {selector}: {e}")

        if outcome.element is not None and self._require_visible:
            if not await self._visibility.is_visible_in_shadow_dom(outcome.element):
                logger.debug(f"Match for {selector!r} is not visible yet")
                return LookupOutcome(method=outcome.method, error=f"Element not visible: {selector}")
        return outcome

    async def resolve(self, candidates: List[str]) -> Resolution:
        """
        Try candidates strictly in order and stop at the first hit.

        ``attempts`` counts every candidate tried, the successful one
        included.
        """
        resolution = Resolution()
        for index, selector in enumerate(candidates):
            resolution.attempts += 1
            resolution.attempted.append(selector)
            outcome = await self.lookup(selector)
            if outcome.found:
                resolution.element = outcome.element
                resolution.selector = selector
                resolution.method = outcome.method
                resolution.index = index
                return resolution
            resolution.failed.append(selector)
            if outcome.error:
                resolution.errors.append(outcome.error)
        return resolution
