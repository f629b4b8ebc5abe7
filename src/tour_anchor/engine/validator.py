"""
Comprehensive Validator - Score how usable a found anchor really is.

Finding an element is not enough for a tour: it has to be visible, have a
size, be on screen, be reachable by assistive technology and accept
interaction. Each failed check removes points from 100 according to a
ScoringPolicy and adds an issue with a matching recommendation.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import logging

from tour_anchor.config.settings import ScoringSettings
from tour_anchor.engine.diagnostics import DiagnosticReporter
from tour_anchor.engine.models import ComprehensiveValidation, ErrorCode
from tour_anchor.engine.monitor import PerformanceMonitor
from tour_anchor.engine.visibility import VisibilityEvaluator, describe_element, dom_depth
from tour_anchor.interfaces.dom import IElement, looks_like_element

logger = logging.getLogger(__name__)


INTERACTIVE_TAGS = ("a", "button", "input", "select", "textarea", "summary")

INTERACTIVE_ROLES = (
    "button", "link", "checkbox", "radio", "switch", "tab", "menuitem",
    "option", "textbox", "searchbox", "combobox", "slider", "spinbutton",
)

KNOWN_ROLES = frozenset(INTERACTIVE_ROLES + (
    "alert", "alertdialog", "application", "article", "banner", "cell",
    "columnheader", "complementary", "contentinfo", "dialog", "document",
    "feed", "figure", "form", "grid", "gridcell", "group", "heading", "img",
    "list", "listbox", "listitem", "log", "main", "marquee", "math", "menu",
    "menubar", "menuitemcheckbox", "menuitemradio", "meter", "navigation",
    "none", "note", "presentation", "progressbar", "radiogroup", "region",
    "row", "rowgroup", "rowheader", "scrollbar", "search", "separator",
    "status", "table", "tablist", "tabpanel", "term", "timer", "toolbar",
    "tooltip", "tree", "treegrid", "treeitem", "generic",
))

NAME_ATTRIBUTES = ("aria-label", "aria-labelledby", "title", "alt", "placeholder", "value")


@dataclass
class ScoringPolicy:
    """Points removed per failed check, plus performance thresholds."""
    not_visible: int = 30
    zero_size: int = 20
    outside_viewport: int = 15
    per_accessibility_issue: int = 10
    per_interactivity_issue: int = 15
    per_performance_issue: int = 5
    max_selector_complexity: int = 10
    max_dom_depth: int = 20
    slow_average_ms: float = 1000

    @classmethod
    def from_settings(cls, settings: ScoringSettings, slow_average_ms: float = 1000) -> "ScoringPolicy":
        return cls(slow_average_ms=slow_average_ms, **settings.model_dump())


def selector_complexity(selector: Any) -> int:
    """
    Rough cost of a selector.

    Classes, ids and combinators count 1, attribute tests 2, pseudo-classes 3.
    """
    if not isinstance(selector, str) or not selector:
        return 0
    return (
        selector.count(".")
        + selector.count("#")
        + selector.count("[") * 2
        + selector.count(":") * 3
        + selector.count(">")
        + selector.count("+")
        + selector.count("~")
    )


class ComprehensiveValidator:
    """
    Scores a found element against visibility, accessibility, interactivity
    and performance checks. ``validate`` never raises.
    """

    def __init__(
        self,
        visibility: VisibilityEvaluator,
        monitor: Optional[PerformanceMonitor] = None,
        policy: Optional[ScoringPolicy] = None,
    ):
        self._visibility = visibility
        self._monitor = monitor
        self.policy = policy or ScoringPolicy()

    async def _accessibility_issues(self, element: IElement) -> List[str]:
        issues = []
        tag = (await element.tag_name()).lower()
        role = ((await element.get_attribute("role")) or "").strip().lower()

        if role and role.split()[0] not in KNOWN_ROLES:
            issues.append(f"Element has unknown ARIA role: {role}")

        tabindex = await element.get_attribute("tabindex")
        focusable_generic = tag in ("div", "span") and tabindex not in (None, "-1")
        if focusable_generic and not role:
            issues.append("Focusable generic element has no role")

        if tag in INTERACTIVE_TAGS or role in INTERACTIVE_ROLES or focusable_generic:
            named = bool(((await element.text_content()) or "").strip())
            for name in NAME_ATTRIBUTES:
                if named:
                    break
                named = bool(((await element.get_attribute(name)) or "").strip())
            if not named:
                issues.append("Element has no accessible name")
        return issues

    async def _interactivity_issues(self, element: IElement) -> List[str]:
        issues = []
        if await element.get_attribute("disabled") is not None:
            issues.append("Element is disabled")
        if await element.get_attribute("readonly") is not None:
            issues.append("Element is readonly")
        style = await element.computed_style()
        if style.get("pointer-events") == "none":
            issues.append("Element has pointer-events: none")
        if (await element.get_attribute("tabindex")) == "-1":
            issues.append("Element is not focusable (tabindex=-1)")
        return issues

    async def _performance_issues(self, element: IElement, selector: str) -> List[str]:
        issues = []
        if selector_complexity(selector) > self.policy.max_selector_complexity:
            issues.append("Selector is overly complex")
        if await dom_depth(element) > self.policy.max_dom_depth:
            issues.append("Element is deeply nested in DOM")

        metrics = self._monitor.get_metrics(selector) if self._monitor else None
        if metrics:
            if metrics.average_time_ms > self.policy.slow_average_ms:
                issues.append("Selector has slow average search time")
            if metrics.failed_searches > metrics.successful_searches:
                issues.append("Selector has high failure rate")
        return issues

    async def validate(
        self,
        element: Any,
        selector: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> ComprehensiveValidation:
        """
        Validate an element found by ``selector``.

        Args:
            element: The element handle (None when the lookup failed)
            selector: Selector that produced the element
            context: Extra facts copied into the error details

        Returns:
            ComprehensiveValidation with a score in [0, 100]
        """
        context = dict(context or {})
        if element is None:
            return ComprehensiveValidation(
                is_valid=False,
                accessibility_score=0,
                issues=["Element not found"],
                recommendations=[
                    "Check if element exists in DOM",
                    "Verify selector syntax",
                    "Wait for dynamic content to load",
                ],
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.SELECTOR_NOT_FOUND, "Element not found", {"selector": selector, **context}
                ),
            )

        target = looks_like_element(element)
        if target is None:
            return ComprehensiveValidation(
                is_valid=False,
                accessibility_score=0,
                issues=["Invalid element type"],
                recommendations=["Ensure element is a valid DOM element handle", "Check element creation process"],
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.DOM_NOT_READY,
                    "Invalid element type",
                    {"selector": selector, "element_type": type(element).__name__, **context},
                ),
            )

        policy = self.policy
        issues: List[str] = []
        recommendations: List[str] = []
        score = 100

        try:
            if not await self._visibility.is_visible(target):
                issues.append("Element is not visible")
                recommendations.append("Check CSS display, visibility, and opacity properties")
                recommendations.append("Verify element is not hidden by parent containers")
                score -= policy.not_visible

            box = await target.bounding_box()
            if not box or box.get("width", 0) == 0 or box.get("height", 0) == 0:
                issues.append("Element has zero dimensions")
                recommendations.append("Check CSS width and height properties")
                score -= policy.zero_size

            if not await self._visibility.is_in_viewport(target):
                issues.append("Element is outside viewport")
                recommendations.append("Scroll element into view")
                recommendations.append("Check element positioning")
                score -= policy.outside_viewport

            accessibility = await self._accessibility_issues(target)
            if accessibility:
                issues.extend(accessibility)
                recommendations.append("Fix accessibility issues for better user experience")
                score -= len(accessibility) * policy.per_accessibility_issue

            interactivity = await self._interactivity_issues(target)
            if interactivity:
                issues.extend(interactivity)
                recommendations.append("Ensure element is interactive and not disabled")
                score -= len(interactivity) * policy.per_interactivity_issue

            performance = await self._performance_issues(target, selector)
            if performance:
                issues.extend(performance)
                recommendations.append("Optimize selector for better performance")
                score -= len(performance) * policy.per_performance_issue
        except Exception as e:
            logger.warning(f"Error during comprehensive element validation: {e}")
            return ComprehensiveValidation(
                is_valid=False,
                accessibility_score=0,
                issues=["Validation error occurred"],
                recommendations=["Check element and try again"],
                error_details=DiagnosticReporter.create_error_details(
                    ErrorCode.DOM_NOT_READY,
                    f"Validation error: {e}",
                    {"selector": selector, "error": str(e), **context},
                ),
            )

        score = max(0, min(100, score))
        result = ComprehensiveValidation(
            is_valid=not issues,
            accessibility_score=score,
            issues=issues,
            recommendations=recommendations,
        )
        if issues:
            primary = issues[0]
            if "not visible" in primary:
                code = ErrorCode.ELEMENT_NOT_VISIBLE
            elif "not found" in primary:
                code = ErrorCode.SELECTOR_NOT_FOUND
            else:
                code = ErrorCode.ELEMENT_NOT_ACCESSIBLE
            result.error_details = DiagnosticReporter.create_error_details(
                code,
                "; ".join(issues),
                {
                    "selector": selector,
                    "issues": list(issues),
                    "accessibility_score": score,
                    "element_info": await describe_element(target),
                    **context,
                },
            )
        return result
