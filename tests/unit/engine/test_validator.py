"""
Tests for comprehensive element validation and scoring.
"""

import pytest

from tour_anchor.config import ScoringSettings
from tour_anchor.engine.environment import EnvironmentDetector
from tour_anchor.engine.models import ErrorCode
from tour_anchor.engine.monitor import PerformanceMonitor
from tour_anchor.engine.validator import ComprehensiveValidator, ScoringPolicy, selector_complexity
from tour_anchor.engine.visibility import VisibilityEvaluator
from tests.fakes import FakeElement


def make_validator(doc, monitor=None, policy=None):
    return ComprehensiveValidator(VisibilityEvaluator(doc, EnvironmentDetector(doc)), monitor, policy)


class TestSelectorComplexity:
    """Test the selector cost heuristic."""

    def test_simple(self):
        assert selector_complexity("#save") == 1
        assert selector_complexity('[data-testid="x"]') == 2

    def test_complex(self):
        assert selector_complexity("div.a.b.c > span.d:first-child:last-child") == 11

    def test_non_string(self):
        assert selector_complexity(None) == 0


class TestScoringPolicy:
    """Test the policy built from settings."""

    def test_from_settings(self):
        policy = ScoringPolicy.from_settings(ScoringSettings(not_visible=40), slow_average_ms=250)

        assert policy.not_visible == 40
        assert policy.zero_size == 20
        assert policy.slow_average_ms == 250


class TestComprehensiveValidator:
    """Test scoring of found elements."""

    @pytest.mark.asyncio
    async def test_healthy_element(self, page):
        button = await page.query_selector(".btn")

        result = await make_validator(page).validate(button, '[data-testid="signup-button"]')

        assert result.is_valid is True
        assert result.accessibility_score == 100
        assert result.issues == []
        assert result.error_details is None

    @pytest.mark.asyncio
    async def test_hidden_element(self, document):
        element = document.body.add(FakeElement("button", "Go", style={"display": "none"}))

        result = await make_validator(document).validate(element, "button")

        assert result.accessibility_score == 70
        assert result.issues == ["Element is not visible"]
        assert result.error_details.code == ErrorCode.ELEMENT_NOT_VISIBLE

    @pytest.mark.asyncio
    async def test_disabled_and_unfocusable(self, document):
        element = document.body.add(FakeElement("button", "Go", attrs={"disabled": "", "tabindex": "-1"}))

        result = await make_validator(document).validate(element, "button")

        assert result.accessibility_score == 70
        assert "Element is disabled" in result.issues
        assert "Element is not focusable (tabindex=-1)" in result.issues
        assert result.error_details.code == ErrorCode.ELEMENT_NOT_ACCESSIBLE

    @pytest.mark.asyncio
    async def test_focusable_generic_without_role_or_name(self, document):
        element = document.body.add(FakeElement("div", attrs={"tabindex": "0"}))

        result = await make_validator(document).validate(element, "div")

        assert result.accessibility_score == 80
        assert result.issues == ["Focusable generic element has no role", "Element has no accessible name"]

    @pytest.mark.asyncio
    async def test_named_by_aria_label(self, document):
        element = document.body.add(FakeElement("button", attrs={"aria-label": "Close"}))

        result = await make_validator(document).validate(element, "button")

        assert result.accessibility_score == 100

    @pytest.mark.asyncio
    async def test_unknown_role(self, document):
        element = document.body.add(FakeElement("div", "Card", attrs={"role": "cardthing"}))

        result = await make_validator(document).validate(element, "div")

        assert result.issues == ["Element has unknown ARIA role: cardthing"]
        assert result.accessibility_score == 90

    @pytest.mark.asyncio
    async def test_offscreen(self, document):
        element = document.body.add(FakeElement("p", "Far", box={"x": 2000, "y": 10, "width": 100, "height": 30}))

        result = await make_validator(document).validate(element, "p")

        assert result.accessibility_score == 85
        assert result.issues == ["Element is outside viewport"]
        assert "Scroll element into view" in result.recommendations

    @pytest.mark.asyncio
    async def test_zero_width(self, document):
        element = document.body.add(FakeElement("p", "Thin", box={"x": 10, "y": 10, "width": 0, "height": 30}))

        result = await make_validator(document).validate(element, "p")

        assert result.accessibility_score == 50
        assert result.issues == ["Element is not visible", "Element has zero dimensions"]

    @pytest.mark.asyncio
    async def test_complex_selector(self, page):
        button = await page.query_selector(".btn")

        result = await make_validator(page).validate(button, "div.a.b.c > span.d:first-child:last-child")

        assert result.accessibility_score == 95
        assert result.issues == ["Selector is overly complex"]
        assert "Optimize selector for better performance" in result.recommendations

    @pytest.mark.asyncio
    async def test_slow_and_failing_selector_history(self, page):
        monitor = PerformanceMonitor()
        monitor.record_search(".btn", 3000, False)
        button = await page.query_selector(".btn")

        result = await make_validator(page, monitor).validate(button, ".btn")

        assert result.issues == ["Selector has slow average search time", "Selector has high failure rate"]
        assert result.accessibility_score == 90

    @pytest.mark.asyncio
    async def test_score_clamps_to_zero(self, document):
        element = document.body.add(FakeElement(
            "div",
            attrs={"tabindex": "0", "role": "bogus", "disabled": "", "readonly": ""},
            style={"pointer-events": "none", "opacity": "0"},
            box={"x": 2000, "y": 10, "width": 0, "height": 30},
        ))

        result = await make_validator(document).validate(element, "div")

        assert result.accessibility_score == 0
        assert result.is_valid is False

    @pytest.mark.asyncio
    async def test_missing_element(self, document):
        result = await make_validator(document).validate(None, "#gone", {"step": 3})

        assert result.issues == ["Element not found"]
        assert result.accessibility_score == 0
        assert result.error_details.code == ErrorCode.SELECTOR_NOT_FOUND
        assert result.error_details.context["step"] == 3

    @pytest.mark.asyncio
    async def test_not_an_element(self, document):
        result = await make_validator(document).validate("div", "div")

        assert result.issues == ["Invalid element type"]
        assert result.error_details.context["element_type"] == "str"

    @pytest.mark.asyncio
    async def test_failing_element(self, document):
        """Test introspection failures become a validation error result."""
        element = document.body.add(FakeElement("div"))
        element.fail = True

        result = await make_validator(document).validate(element, "div")

        assert result.issues == ["Validation error occurred"]
        assert result.accessibility_score == 0
        assert result.error_details.code == ErrorCode.DOM_NOT_READY

    @pytest.mark.asyncio
    async def test_custom_policy(self, document):
        element = document.body.add(FakeElement("button", "Go", style={"display": "none"}))

        result = await make_validator(document, policy=ScoringPolicy(not_visible=50)).validate(element, "button")

        assert result.accessibility_score == 50
