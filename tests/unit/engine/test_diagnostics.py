"""
Tests for diagnostics.
"""

from tour_anchor.engine.diagnostics import DiagnosticReporter
from tour_anchor.engine.models import ErrorCategory, ErrorCode, ErrorSeverity


class TestDiagnosticReporter:
    """Test error details and messages."""

    def test_error_details_classification(self):
        details = DiagnosticReporter.create_error_details(
            ErrorCode.TIMEOUT_EXCEEDED, "took too long", {"selector": "#a"}
        )

        assert details.category == ErrorCategory.TIMEOUT
        assert details.severity == ErrorSeverity.MEDIUM
        assert details.context["message"] == "took too long"
        assert details.context["selector"] == "#a"
        assert "timestamp" in details.context
        assert details.suggestions[0] == "Increase timeout value for slow-loading elements"

    def test_severity_override(self):
        details = DiagnosticReporter.create_error_details(
            ErrorCode.ELEMENT_NOT_ACCESSIBLE, "meh", severity=ErrorSeverity.HIGH
        )

        assert details.severity == ErrorSeverity.HIGH

    def test_selector_specific_suggestions(self):
        details = DiagnosticReporter.create_error_details(
            ErrorCode.SELECTOR_INVALID, "bad", {"selector": "div:has(span):contains('x')"}
        )

        assert details.suggestions[-2:] == [
            "Replace :contains() with script-based text matching",
            "Use feature detection for :has() or provide a script fallback",
        ]

    def test_every_code_has_suggestions(self):
        for code in ErrorCode:
            assert DiagnosticReporter.suggestions_for(code), code

    def test_message_with_context(self):
        message = DiagnosticReporter.create_message(
            ErrorCode.SELECTOR_NOT_FOUND, "#a", {"timeout": 100, "attempts": 2, "search_time": 12.4}
        )

        assert message == 'Element not found for selector: "#a" (timeout: 100ms) (attempts: 2) (search time: 12ms)'

    def test_message_skips_zero_context(self):
        message = DiagnosticReporter.create_message(ErrorCode.TIMEOUT_EXCEEDED, None, {"timeout": 0})

        assert message == 'Timeout exceeded waiting for element: ""'

    def test_details_serialize(self):
        data = DiagnosticReporter.create_error_details(ErrorCode.DOM_NOT_READY, "x").to_dict()

        assert data["code"] == "DOM_NOT_READY"
        assert data["category"] == "dom"
        assert data["severity"] == "high"

