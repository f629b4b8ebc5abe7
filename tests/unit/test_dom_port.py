"""
Tests for the DOM port capability checks.
"""

from tour_anchor.interfaces.dom import looks_like_document, looks_like_element
from tests.fakes import FakeDocument, FakeElement


class TestLooksLikeElement:
    """Test duck-typed element acceptance."""

    def test_fake_element(self):
        element = FakeElement("button")

        assert looks_like_element(element) is element

    def test_none_and_plain_objects(self):
        assert looks_like_element(None) is None
        assert looks_like_element(object()) is None
        assert looks_like_element("#save") is None

    def test_handle_without_sibling_navigation(self):
        """Test label lookup walks siblings, so a handle without them is rejected."""

        class NoSiblings(FakeElement):
            next_element_sibling = None

        assert looks_like_element(NoSiblings("li")) is None


class TestLooksLikeDocument:
    """Test duck-typed document acceptance."""

    def test_live_and_closed(self):
        doc = FakeDocument()
        assert looks_like_document(doc) is doc

        doc.closed = True
        assert looks_like_document(doc) is None

    def test_element_is_not_a_document(self):
        assert looks_like_document(FakeElement("html")) is None
