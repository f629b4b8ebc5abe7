"""
Diagnostic Reporter - Error taxonomy, suggestions and messages.

Every failure the engine reports carries an ErrorCode with a category, a
severity and remediation suggestions that a tour author can act on.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple
import logging

from tour_anchor.engine.models import (
    ErrorCategory,
    ErrorCode,
    ErrorDetails,
    ErrorSeverity,
)

logger = logging.getLogger(__name__)


ERROR_CLASSIFICATION: Dict[ErrorCode, Tuple[ErrorCategory, ErrorSeverity]] = {
    ErrorCode.SELECTOR_INVALID: (ErrorCategory.SELECTOR, ErrorSeverity.HIGH),
    ErrorCode.SELECTOR_NOT_FOUND: (ErrorCategory.SELECTOR, ErrorSeverity.MEDIUM),
    ErrorCode.ELEMENT_NOT_VISIBLE: (ErrorCategory.VISIBILITY, ErrorSeverity.MEDIUM),
    ErrorCode.ELEMENT_NOT_ACCESSIBLE: (ErrorCategory.VISIBILITY, ErrorSeverity.LOW),
    ErrorCode.DOM_NOT_READY: (ErrorCategory.DOM, ErrorSeverity.HIGH),
    ErrorCode.TIMEOUT_EXCEEDED: (ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM),
    ErrorCode.ENVIRONMENT_UNSUPPORTED: (ErrorCategory.ENVIRONMENT, ErrorSeverity.CRITICAL),
    ErrorCode.SHADOW_DOM_ACCESS: (ErrorCategory.DOM, ErrorSeverity.MEDIUM),
    ErrorCode.IFRAME_ACCESS: (ErrorCategory.DOM, ErrorSeverity.MEDIUM),
    ErrorCode.PERFORMANCE_DEGRADED: (ErrorCategory.DOM, ErrorSeverity.LOW),
}

SUGGESTIONS: Dict[ErrorCode, List[str]] = {
    ErrorCode.SELECTOR_INVALID: [
        "Use valid CSS selector syntax",
        "Consider using data-testid attributes for more reliable selection",
    ],
    ErrorCode.SELECTOR_NOT_FOUND: [
        "Verify the element exists in the DOM",
        "Check if the element is dynamically loaded",
        "Consider using a more specific selector",
        "Add data-testid attribute to the target element",
    ],
    ErrorCode.ELEMENT_NOT_VISIBLE: [
        "Check if element has display: none or visibility: hidden",
        "Verify element is not hidden by parent containers",
        "Ensure element is within viewport bounds",
        "Check for CSS transforms that might hide the element",
    ],
    ErrorCode.ELEMENT_NOT_ACCESSIBLE: [
        "Check if element is covered by other elements",
        "Verify element has sufficient z-index",
        "Ensure element is not disabled or readonly",
    ],
    ErrorCode.DOM_NOT_READY: [
        "Wait for DOM content to load before element validation",
        "Use mutation observers for dynamic content",
        "Consider increasing timeout for slow-loading content",
    ],
    ErrorCode.TIMEOUT_EXCEEDED: [
        "Increase timeout value for slow-loading elements",
        "Check network conditions and page load performance",
        "Verify element is not conditionally rendered",
    ],
    ErrorCode.ENVIRONMENT_UNSUPPORTED: [
        "Ensure a browser page is attached before element validation",
        "Add environment detection before DOM operations",
        "Provide server-side rendering fallbacks",
    ],
    ErrorCode.SHADOW_DOM_ACCESS: [
        "Use shadow DOM compatible selectors",
        "Access elements through shadow root references",
        "Consider using ::part() selectors for styled components",
    ],
    ErrorCode.IFRAME_ACCESS: [
        "Ensure iframe content is from same origin",
        "Use postMessage for cross-origin iframe communication",
        "Wait for iframe content to load completely",
    ],
    ErrorCode.PERFORMANCE_DEGRADED: [
        "Optimize selector specificity",
        "Reduce DOM query frequency",
        "Use more efficient element finding strategies",
    ],
}

MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.SELECTOR_INVALID: 'Invalid CSS selector syntax: "{selector}"',
    ErrorCode.SELECTOR_NOT_FOUND: 'Element not found for selector: "{selector}"',
    ErrorCode.ELEMENT_NOT_VISIBLE: 'Element found but not visible: "{selector}"',
    ErrorCode.ELEMENT_NOT_ACCESSIBLE: 'Element found but not accessible: "{selector}"',
    ErrorCode.DOM_NOT_READY: 'DOM not ready for element selection: "{selector}"',
    ErrorCode.TIMEOUT_EXCEEDED: 'Timeout exceeded waiting for element: "{selector}"',
    ErrorCode.ENVIRONMENT_UNSUPPORTED: 'Unsupported environment for element validation: "{selector}"',
    ErrorCode.SHADOW_DOM_ACCESS: 'Cannot access element in shadow DOM: "{selector}"',
    ErrorCode.IFRAME_ACCESS: 'Cannot access element in iframe: "{selector}"',
    ErrorCode.PERFORMANCE_DEGRADED: 'Performance degraded during element search: "{selector}"',
}


class DiagnosticReporter:
    """
    Builds ErrorDetails and human-readable failure messages.

    Example:
        >>> details = DiagnosticReporter.create_error_details(
        ...     ErrorCode.SELECTOR_INVALID, "bad syntax", {"selector": "div:contains('x')"}
        ... )
        >>> details.suggestions[-1]
        'Replace :contains() with script-based text matching'
    """

    @staticmethod
    def create_error_details(
        code: ErrorCode,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
    ) -> ErrorDetails:
        """
        Create detailed error information for a failure.

        Args:
            code: Taxonomy code
            message: Short description stored in the context
            context: Extra facts about the failure
            severity: Override for the code's default severity

        Returns:
            Populated ErrorDetails
        """
        context = dict(context or {})
        category, default_severity = ERROR_CLASSIFICATION.get(
            code, (ErrorCategory.DOM, ErrorSeverity.MEDIUM)
        )
        full_context = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": message,
            **context,
        }
        return ErrorDetails(
            code=code,
            category=category,
            severity=severity or default_severity,
            context=full_context,
            suggestions=DiagnosticReporter.suggestions_for(code, context),
        )

    @staticmethod
    def suggestions_for(code: ErrorCode, context: Optional[Dict[str, Any]] = None) -> List[str]:
        """Generate actionable suggestions for an error code."""
        suggestions = list(SUGGESTIONS.get(code, []))
        if code is ErrorCode.SELECTOR_INVALID and context:
            selector = context.get("selector")
            if isinstance(selector, str):
                if ":contains" in selector:
                    suggestions.append("Replace :contains() with script-based text matching")
                if ":has" in selector:
                    suggestions.append("Use feature detection for :has() or provide a script fallback")
        return suggestions

    @staticmethod
    def create_message(
        code: ErrorCode,
        selector: Any,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Create a meaningful error message.

        Timeout, attempt count and search time from ``context`` are appended
        when present and non-zero.
        """
        template = MESSAGES.get(code, 'Unknown error for selector: "{selector}"')
        message = template.format(selector=selector if isinstance(selector, str) else "")

        context = context or {}
        if context.get("timeout"):
            message += f" (timeout: {context['timeout']}ms)"
        if context.get("attempts"):
            message += f" (attempts: {context['attempts']})"
        if context.get("search_time"):
            message += f" (search time: {round(context['search_time'])}ms)"
        return message
