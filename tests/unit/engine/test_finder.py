"""
Tests for the script element finder.
"""

import pytest

from tour_anchor.engine.environment import EnvironmentDetector
from tour_anchor.engine.finder import ScriptElementFinder, unique_elements
from tests.fakes import FakeDocument, FakeElement


def make_finder(doc):
    return ScriptElementFinder(doc, EnvironmentDetector(doc))


class TestFindByText:
    """Test text matching."""

    @pytest.mark.asyncio
    async def test_substring_match(self, page):
        """Test text is matched as a substring by default."""
        finder = make_finder(page)

        links = await finder.find_by_text("a", "Pric")

        assert len(links) == 1
        assert links[0].attrs["href"] == "/pricing"

    @pytest.mark.asyncio
    async def test_exact_match(self, page):
        finder = make_finder(page)

        assert await finder.find_by_text("a", "Pric", exact=True) == []
        assert len(await finder.find_by_text("a", "Pricing", exact=True)) == 1

    @pytest.mark.asyncio
    async def test_universal_tag_matches_ancestors(self, page):
        """Test '*' returns every element whose aggregated text contains the string."""
        finder = make_finder(page)

        matches = await finder.find_by_text("*", "Pricing")

        assert [el.tag for el in matches] == ["html", "body", "header", "nav", "a"]

    @pytest.mark.asyncio
    async def test_empty_arguments(self, page):
        finder = make_finder(page)

        assert await finder.find_by_text("", "Pricing") == []
        assert await finder.find_by_text("a", "") == []

    @pytest.mark.asyncio
    async def test_query_failure_returns_empty(self, page):
        """Test engine errors are logged, not raised."""
        page.fail_queries = True

        assert await make_finder(page).find_by_text("a", "Home") == []


class TestButtonsAndLinks:
    """Test role-aware finders."""

    @pytest.mark.asyncio
    async def test_button_with_span_text_found_once(self, document):
        """Test a button matched through its own text and its span is not duplicated."""
        button = document.body.add(FakeElement("button"))
        button.add(FakeElement("span", "Export"))

        found = await make_finder(document).find_button_by_text("Export")

        assert found == [button]

    @pytest.mark.asyncio
    async def test_role_button(self, document):
        menu = document.body.add(FakeElement("div", "Open menu", attrs={"role": "button"}))

        assert await make_finder(document).find_button_by_text("Open menu") == [menu]

    @pytest.mark.asyncio
    async def test_links(self, document):
        anchor = document.body.add(FakeElement("a", "Docs", attrs={"href": "/docs"}))
        fake_link = document.body.add(FakeElement("span", "Docs home", attrs={"role": "link"}))

        assert await make_finder(document).find_link_by_text("Docs") == [anchor, fake_link]

    @pytest.mark.asyncio
    async def test_bad_text(self, document):
        finder = make_finder(document)

        assert await finder.find_button_by_text("") == []
        assert await finder.find_link_by_text(None) == []


class TestLabelAssociation:
    """Test finding form controls through labels."""

    @pytest.mark.asyncio
    async def test_for_attribute(self, page):
        controls = await make_finder(page).find_input_by_label_text("Email")

        assert len(controls) == 1
        assert controls[0].attrs["id"] == "email"

    @pytest.mark.asyncio
    async def test_nested_control(self, document):
        label = document.body.add(FakeElement("label", "Phone"))
        control = label.add(FakeElement("input", attrs={"type": "tel"}))

        assert await make_finder(document).find_input_by_label_text("Phone") == [control]

    @pytest.mark.asyncio
    async def test_following_sibling(self, document):
        document.body.add(FakeElement("label", "City"))
        control = document.body.add(FakeElement("select"))

        assert await make_finder(document).find_input_by_label_text("City") == [control]

    @pytest.mark.asyncio
    async def test_label_without_control(self, document):
        document.body.add(FakeElement("label", "Notes"))
        document.body.add(FakeElement("div"))

        assert await make_finder(document).find_input_by_label_text("Notes") == []


class TestRelationalMatch:
    """Test the :has() emulation."""

    @pytest.mark.asyncio
    async def test_parent_containing_child(self, page):
        matches = await make_finder(page).find_with_relational_match("form", "input[type=email]")

        assert [el.attrs.get("id") for el in matches] == ["signup"]

    @pytest.mark.asyncio
    async def test_no_match(self, page):
        assert await make_finder(page).find_with_relational_match("nav", "input") == []

    @pytest.mark.asyncio
    async def test_invalid_selectors(self, page):
        finder = make_finder(page)

        assert await finder.find_with_relational_match("div[", "span") == []
        assert await finder.find_with_relational_match("form", "  ") == []


class TestWithoutDocument:
    """Test the finder degrades outside a DOM-capable environment."""

    @pytest.mark.asyncio
    async def test_no_document(self):
        finder = ScriptElementFinder(None, EnvironmentDetector(None))

        assert await finder.find_by_text("*", "x") == []
        assert await finder.find_button_by_text("x") == []
        assert await finder.find_input_by_label_text("x") == []
        assert await finder.find_with_relational_match("form", "input") == []

    @pytest.mark.asyncio
    async def test_closed_document(self, page):
        page.closed = True

        assert await make_finder(page).find_link_by_text("Home") == []


@pytest.mark.asyncio
async def test_unique_elements_keeps_first_occurrence():
    """Test duplicate handles and None are dropped in order."""
    a, b = FakeElement("a"), FakeElement("b")

    assert await unique_elements([a, None, b, a]) == [a, b]
