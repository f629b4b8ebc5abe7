"""
Tests for visibility and geometry evaluation.
"""

import pytest

from tour_anchor.engine.environment import EnvironmentDetector
from tour_anchor.engine.visibility import (
    VisibilityEvaluator,
    clip_path_hides,
    describe_element,
    dom_depth,
    transform_collapses,
)
from tests.fakes import FakeElement


def make_evaluator(doc):
    return VisibilityEvaluator(doc, EnvironmentDetector(doc))


class TestStyleHelpers:
    """Test transform and clip-path parsing."""

    @pytest.mark.parametrize("transform,collapses", [
        ("none", False),
        (None, False),
        ("scale(0)", True),
        ("scale(1, 0)", True),
        ("scaleY(0)", True),
        ("scale(0.5)", False),
        ("rotate(45deg)", False),
        ("matrix(0, 0, 0, 1, 0, 0)", True),
        ("matrix(1, 0, 0, 1, 10, 20)", False),
        ("matrix3d(0, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1, 0, 0, 0, 0, 1)", True),
    ])
    def test_transform_collapses(self, transform, collapses):
        assert transform_collapses(transform) is collapses

    def test_clip_path_percentages(self):
        assert clip_path_hides("inset(50%)") is True
        assert clip_path_hides("inset(10%)") is False

    def test_clip_path_lengths_need_size(self):
        """Test absolute insets are compared with the element box."""
        assert clip_path_hides("inset(0 0 100% 0)", 100, 30) is True
        assert clip_path_hides("inset(15px 0 15px 0)", 100, 30) is True
        assert clip_path_hides("inset(10px 0 10px 0)", 100, 30) is False

    def test_clip_path_circle(self):
        assert clip_path_hides("circle(0)") is True
        assert clip_path_hides("circle(50% at 50% 50%)") is False

    def test_clip_path_none(self):
        assert clip_path_hides("none") is False
        assert clip_path_hides(None) is False


class TestElementHelpers:
    """Test element labelling and depth."""

    @pytest.mark.asyncio
    async def test_describe_element(self):
        element = FakeElement("button", attrs={"id": "go", "class": "a b c d"})

        assert await describe_element(element) == "button#go.a.b.c"

    @pytest.mark.asyncio
    async def test_describe_failing_element(self):
        element = FakeElement("div")
        element.fail = True

        assert await describe_element(element) == "unknown"

    @pytest.mark.asyncio
    async def test_dom_depth(self, page):
        button = await page.query_selector(".btn")
        link = await page.query_selector(".nav-link")

        assert await dom_depth(button) == 1
        assert await dom_depth(link) == 2


class TestIsVisible:
    """Test the practical visibility predicate."""

    @pytest.mark.asyncio
    async def test_plain_element_is_visible(self, document):
        element = document.body.add(FakeElement("div", "Hi"))

        assert await make_evaluator(document).is_visible(element) is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("style", [
        {"display": "none"},
        {"visibility": "hidden"},
        {"visibility": "collapse"},
        {"opacity": "0"},
        {"transform": "scale(0)"},
        {"clip-path": "inset(50%)"},
    ])
    async def test_hidden_by_style(self, document, style):
        element = document.body.add(FakeElement("div", "Hi", style=style))

        assert await make_evaluator(document).is_visible(element) is False

    @pytest.mark.asyncio
    async def test_hidden_by_geometry(self, document):
        evaluator = make_evaluator(document)
        no_box = document.body.add(FakeElement("div", box=None))
        flat = document.body.add(FakeElement("div", box={"x": 0, "y": 0, "width": 100, "height": 0}))

        assert await evaluator.is_visible(no_box) is False
        assert await evaluator.is_visible(flat) is False

    @pytest.mark.asyncio
    async def test_bad_elements(self, document):
        evaluator = make_evaluator(document)
        detached = document.body.add(FakeElement("div"))
        detached.fail = True

        assert await evaluator.is_visible(None) is False
        assert await evaluator.is_visible("div") is False
        assert await evaluator.is_visible(detached) is False

    @pytest.mark.asyncio
    async def test_without_document(self):
        assert await make_evaluator(None).is_visible(FakeElement("div")) is False

    @pytest.mark.asyncio
    async def test_shadow_host_visibility(self, document):
        evaluator = make_evaluator(document)
        host = document.body.add(FakeElement("my-widget"))
        inner = FakeElement("button", "Go")
        inner.host = host
        host.add(inner)

        assert await evaluator.is_visible_in_shadow_dom(inner) is True

        host.style["display"] = "none"
        assert await evaluator.is_visible_in_shadow_dom(inner) is False


class TestGeometry:
    """Test viewport intersection and page positions."""

    def test_viewport_info_partial(self):
        """Test half of the element hangs below the fold."""
        info = VisibilityEvaluator.viewport_info(
            {"x": 10, "y": 753, "width": 100, "height": 30},
            {"width": 1024, "height": 768},
        )

        assert info.visible_area == pytest.approx(0.5)
        assert info.is_visible is True
        assert info.bottom == 783

    def test_viewport_info_outside(self):
        info = VisibilityEvaluator.viewport_info(
            {"x": 2000, "y": 10, "width": 100, "height": 30},
            {"width": 1024, "height": 768},
        )

        assert info.visible_area == 0
        assert info.is_visible is False

    @pytest.mark.asyncio
    async def test_is_in_viewport(self, document):
        evaluator = make_evaluator(document)
        inside = document.body.add(FakeElement("div"))
        right = document.body.add(FakeElement("div", box={"x": 2000, "y": 10, "width": 100, "height": 30}))
        above = document.body.add(FakeElement("div", box={"x": 10, "y": -100, "width": 100, "height": 30}))

        assert await evaluator.is_in_viewport(inside) is True
        assert await evaluator.is_in_viewport(right) is False
        assert await evaluator.is_in_viewport(above) is False

    @pytest.mark.asyncio
    async def test_position_includes_scroll(self, document):
        document.scroll = {"x": 0.0, "y": 500.0}
        element = document.body.add(FakeElement("div", box={"x": 20, "y": 100, "width": 200, "height": 50}))

        position = await make_evaluator(document).get_position(element)

        assert position.top == 600
        assert position.left == 20
        assert position.center.x == 120
        assert position.center.y == 625
        assert position.scroll.y == 500
        assert position.viewport.visible_area == 1.0
        assert position.shadow_dom is None

    @pytest.mark.asyncio
    async def test_position_of_missing_element(self, document):
        evaluator = make_evaluator(document)
        detached = FakeElement("div")
        detached.fail = True

        assert await evaluator.get_position(None) is None
        assert await evaluator.get_position(detached) is None
        assert await evaluator.get_position(FakeElement("div", box=None)) is None

    @pytest.mark.asyncio
    async def test_position_in_shadow_dom(self, document):
        document.scroll = {"x": 0.0, "y": 500.0}
        host = document.body.add(FakeElement(
            "my-widget", attrs={"id": "chat"}, box={"x": 50, "y": 40, "width": 300, "height": 200}
        ))
        inner = FakeElement("button", "Open")
        inner.host = host
        host.add(inner)

        position = await make_evaluator(document).get_position_in_shadow_dom(inner)

        assert position.shadow_dom.is_in_shadow_dom is True
        assert position.shadow_dom.host == "my-widget#chat"
        assert position.shadow_dom.host_offset.x == 50
        assert position.shadow_dom.host_offset.y == 540

    @pytest.mark.asyncio
    async def test_position_outside_shadow_dom(self, page):
        button = await page.query_selector(".btn")

        position = await make_evaluator(page).get_position_in_shadow_dom(button)

        assert position.shadow_dom.is_in_shadow_dom is False
        assert position.shadow_dom.host is None


class TestHitTesting:
    """Test whether something else is painted over an element."""

    @pytest.fixture
    def hit_document(self, document):
        document.hit_testing = True
        return document

    @pytest.mark.asyncio
    async def test_uncovered(self, hit_document):
        button = hit_document.body.add(FakeElement("button", "Next"))

        assert await make_evaluator(hit_document).is_covered(button) is False

    @pytest.mark.asyncio
    async def test_covered_by_later_overlay(self, hit_document):
        button = hit_document.body.add(FakeElement("button", "Next"))
        hit_document.body.add(FakeElement(
            "div", attrs={"class": "modal-backdrop"}, box={"x": 0, "y": 0, "width": 1024, "height": 768}
        ))

        assert await make_evaluator(hit_document).is_covered(button) is True

    @pytest.mark.asyncio
    async def test_overlay_elsewhere(self, hit_document):
        button = hit_document.body.add(FakeElement("button", "Next"))
        hit_document.body.add(FakeElement("div", box={"x": 500, "y": 500, "width": 50, "height": 50}))

        assert await make_evaluator(hit_document).is_covered(button) is False

    @pytest.mark.asyncio
    async def test_own_descendant_on_top(self, hit_document):
        button = hit_document.body.add(FakeElement("button"))
        button.add(FakeElement("span", "Next"))

        assert await make_evaluator(hit_document).is_covered(button) is False

    @pytest.mark.asyncio
    async def test_ancestor_on_top(self, hit_document):
        """Test a click-through element reports its container, which is not a cover."""
        card = hit_document.body.add(FakeElement("div", attrs={"class": "card"}))
        badge = card.add(FakeElement("span", "New", style={"pointer-events": "none"}))

        assert await make_evaluator(hit_document).is_covered(badge) is False

    @pytest.mark.asyncio
    async def test_nothing_at_point(self, document):
        button = document.body.add(FakeElement("button", "Next"))

        assert await make_evaluator(document).is_covered(button) is False

    @pytest.mark.asyncio
    async def test_hit_test_failure(self, hit_document):
        button = hit_document.body.add(FakeElement("button", "Next"))
        hit_document.fail_queries = True

        assert await make_evaluator(hit_document).is_covered(button) is False

    @pytest.mark.asyncio
    async def test_element_without_layout(self, hit_document):
        assert await make_evaluator(hit_document).is_covered(FakeElement("div", box=None)) is False
