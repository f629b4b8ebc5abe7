"""
Script Element Finder - Lookups native selectors cannot express.

Covers text matching (the job ``:contains()`` would do), label association
for form controls, and a relational "parent containing child" match for
engines without ``:has()``. Every entry point returns a list and never
raises; outside a DOM-capable environment the list is empty.
"""

from typing import List, Optional
import logging

from tour_anchor.engine.environment import EnvironmentDetector
from tour_anchor.engine.selectors import escape_for_attribute
from tour_anchor.interfaces.dom import IDocument, IElement

logger = logging.getLogger(__name__)


FORM_CONTROLS = ("input", "select", "textarea")


async def unique_elements(elements: List[IElement]) -> List[IElement]:
    """Drop handles that point at a node already in the list, keeping order."""
    unique: List[IElement] = []
    for element in elements:
        if element is None:
            continue
        duplicate = False
        for seen in unique:
            if seen is element or await seen.is_same_node(element):
                duplicate = True
                break
        if not duplicate:
            unique.append(element)
    return unique


class ScriptElementFinder:
    """
    Finds elements by text, role and label heuristics.

    Usage:
        finder = ScriptElementFinder(document, environment)
        buttons = await finder.find_button_by_text("Save")
        inputs = await finder.find_input_by_label_text("Email")
    """

    def __init__(self, document: Optional[IDocument], environment: EnvironmentDetector):
        self._document = document
        self._environment = environment

    def _available(self) -> bool:
        return self._environment.is_browser_like()

    async def find_by_text(self, tag: str, text: str, exact: bool = False) -> List[IElement]:
        """
        Find elements matching ``tag`` whose text contains (or equals) ``text``.

        Text is the element's aggregated descendant text, whitespace-trimmed.
        Use "*" to scan every element; an empty tag or text returns [].
        """
        if not self._available():
            return []
        if not isinstance(tag, str) or not isinstance(text, str) or not tag or not text:
            return []

        try:
            candidates = await self._document.query_selector_all(tag)
            matches = []
            for element in candidates:
                content = ((await element.text_content()) or "").strip()
                if (content == text) if exact else (text in content):
                    matches.append(element)
            return matches
        except Exception as e:
            logger.warning(f"Text search failed for {tag!r} containing {text!r}: {e}")
            return []

    async def find_button_by_text(self, text: str) -> List[IElement]:
        """Find buttons and role="button" elements by text, including text in child spans."""
        if not self._available() or not isinstance(text, str) or not text:
            return []

        try:
            found = list(await self.find_by_text("button", text))
            for button in await self._document.query_selector_all("button"):
                for span in await button.query_selector_all("span"):
                    if text in ((await span.text_content()) or "").strip():
                        found.append(button)
                        break
            found.extend(await self.find_by_text('[role="button"]', text))
            return await unique_elements(found)
        except Exception as e:
            logger.warning(f"Button search failed for {text!r}: {e}")
            return []

    async def find_link_by_text(self, text: str) -> List[IElement]:
        """Find anchors and role="link" elements by text."""
        if not self._available() or not isinstance(text, str) or not text:
            return []

        try:
            found = await self.find_by_text("a", text)
            found = found + await self.find_by_text('[role="link"]', text)
            return await unique_elements(found)
        except Exception as e:
            logger.warning(f"Link search failed for {text!r}: {e}")
            return []

    async def find_input_by_label_text(self, text: str) -> List[IElement]:
        """
        Find form controls through the labels that describe them.

        For each label containing ``text`` the first of these wins: the
        control named by its ``for`` attribute, a control nested inside it,
        or a control immediately following it.
        """
        if not self._available() or not isinstance(text, str) or not text:
            return []

        try:
            controls: List[IElement] = []
            for label in await self.find_by_text("label", text):
                control = await self._control_for_label(label)
                if control is not None:
                    controls.append(control)
            return await unique_elements(controls)
        except Exception as e:
            logger.warning(f"Label search failed for {text!r}: {e}")
            return []

    async def _control_for_label(self, label: IElement) -> Optional[IElement]:
        target_id = await label.get_attribute("for")
        if target_id:
            control = await self._document.query_selector(f'[id="{escape_for_attribute(target_id)}"]')
            if control is not None:
                return control

        nested = await label.query_selector(", ".join(FORM_CONTROLS))
        if nested is not None:
            return nested

        sibling = await label.next_element_sibling()
        if sibling is not None and (await sibling.tag_name()).lower() in FORM_CONTROLS:
            return sibling
        return None

    async def find_with_relational_match(
        self,
        parent_selector: str,
        child_selector: str,
    ) -> List[IElement]:
        """
        Emulate ``parent:has(child)`` by scanning candidate parents.

        Invalid or empty selectors yield [].
        """
        if not self._available():
            return []
        if not isinstance(parent_selector, str) or not isinstance(child_selector, str):
            return []
        if not parent_selector.strip() or not child_selector.strip():
            return []

        try:
            matches = []
            for parent in await self._document.query_selector_all(parent_selector.strip()):
                if await parent.query_selector(child_selector.strip()) is not None:
                    matches.append(parent)
            return matches
        except Exception as e:
            logger.warning(
                f"Relational match failed for {parent_selector!r} containing {child_selector!r}: {e}"
            )
            return []
