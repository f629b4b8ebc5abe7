"""
Fallback Strategy Generator - Alternatives for selectors that fail.

Given a failing selector, this module guesses what the author was pointing
at and synthesizes candidates that are likely to still match: data-testid
guesses, role-based alternatives, attribute rewrites of classes and ids, and
a structural variant. It also produces the remediation advice attached to
failed lookups.

Only generate_element_selectors reads the DOM, through the port, from an
element that already resolved. Every generated selector is checked with the
DOM-free shape check before it is returned.
"""

import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, TYPE_CHECKING
import logging

from tour_anchor.engine.models import FallbackStrategies, StepFallbackPlan
from tour_anchor.engine.selectors import (
    escape_for_attribute,
    escape_identifier,
    has_script_fallback,
    is_syntactically_safe,
    parse_text_pseudo,
    sanitize_for_test_id,
)

if TYPE_CHECKING:
    from tour_anchor.engine.finder import ScriptElementFinder
    from tour_anchor.interfaces.dom import IElement

logger = logging.getLogger(__name__)


_ATTR_VALUE = r"""\s*[*^$|~]?=\s*['"]([^'"]+)['"]\]"""
_TEST_ID_ATTR = re.compile(rf"\[data-testid{_ATTR_VALUE}")
_HREF_ATTR = re.compile(rf"\[href{_ATTR_VALUE}")
_TEXT_PSEUDO = re.compile(r""":contains\s*\(\s*['"]([^'"]+)['"]\s*\)""")
_ARIA_LABEL_ATTR = re.compile(rf"\[aria-label{_ATTR_VALUE}")
_CLASS = re.compile(r"\.([a-zA-Z][a-zA-Z0-9_-]*)")
_CLASS_ATTR = re.compile(rf"\[class{_ATTR_VALUE}")
_ID = re.compile(r"#([a-zA-Z][a-zA-Z0-9_-]*)")
_ID_ATTR = re.compile(rf"\[id{_ATTR_VALUE}")
_NAME_ATTR = re.compile(rf"\[name{_ATTR_VALUE}")
_ROLE_ATTR = re.compile(rf"\[role{_ATTR_VALUE}")
_TITLE_ATTR = re.compile(rf"\[title{_ATTR_VALUE}")
_LEADING_TAG = re.compile(r"^([a-zA-Z][a-zA-Z0-9]*)")
_IDENTIFIER = re.compile(r"^[a-zA-Z_][\w-]*$")

ROLE_FALLBACKS = (
    (("button",), ("button", '[role="button"]', 'button[role="button"]')),
    (("nav",), ("nav", '[role="navigation"]', 'nav[role="navigation"]')),
    (("link", "a["), ("a", '[role="link"]', 'a[role="link"]')),
    (("input",), ("input", '[role="textbox"]', '[role="searchbox"]')),
)

ELEMENT_TYPE_HINTS = (
    (("button", "btn"), "button"),
    (("link", "href"), "link"),
    (("input",), "textbox"),
    (("select",), "combobox"),
    (("nav",), "navigation"),
    (("menu",), "menu"),
    (("dialog", "modal"), "dialog"),
    (("tab",), "tab"),
    (("panel",), "tabpanel"),
)

ROLE_BY_ELEMENT_TYPE: Dict[str, str] = {
    "button": "button",
    "a": "link",
    "input": "textbox",
    "select": "combobox",
    "textarea": "textbox",
    "nav": "navigation",
    "main": "main",
    "header": "banner",
    "footer": "contentinfo",
    "aside": "complementary",
    "section": "region",
    "article": "article",
    "dialog": "dialog",
    "menu": "menu",
    "menuitem": "menuitem",
    "tab": "tab",
    "tabpanel": "tabpanel",
    "list": "list",
    "listitem": "listitem",
}


def _first_group(pattern: "re.Pattern[str]", text: str) -> Optional[str]:
    match = pattern.search(text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def _strip_functional_pseudo(selector: str, names=("contains", "has")) -> str:
    """Remove ``:name(...)`` groups, respecting nested parentheses and quotes."""
    out = []
    i = 0
    while i < len(selector):
        matched = None
        for name in names:
            token = f":{name}("
            if selector.startswith(token, i):
                matched = token
                break
        if matched is None:
            out.append(selector[i])
            i += 1
            continue

        depth, quote = 0, None
        j = i + len(matched) - 1
        while j < len(selector):
            char = selector[j]
            if quote:
                if char == "\\":
                    j += 1
                elif char == quote:
                    quote = None
            elif char in "'\"":
                quote = char
            elif char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    break
            j += 1
        i = j + 1
    return "".join(out).strip()


def split_compounds(selector: str) -> List[str]:
    """
    Split a selector into its compound parts, dropping combinators.

    Only the last entry of a selector list is considered.
    """
    parts: List[str] = []
    current: List[str] = []
    depth, quote = 0, None
    for index, char in enumerate(selector):
        if quote:
            current.append(char)
            if char == quote and selector[index - 1] != "\\":
                quote = None
            continue
        if char in "'\"":
            quote = char
        elif char in "[(":
            depth += 1
        elif char in "])":
            depth -= 1
        elif depth == 0 and char == ",":
            parts, current = [], []
            continue
        elif depth == 0 and (char.isspace() or char in ">+~") and not (
            index > 0 and selector[index - 1] == "\\"
        ):
            if current:
                parts.append("".join(current))
                current = []
            continue
        current.append(char)
    if current:
        parts.append("".join(current))
    return parts


def _structural_alternative(selector: str) -> Optional[str]:
    base = _strip_functional_pseudo(selector)
    if not base or not is_syntactically_safe(base):
        return None
    compounds = split_compounds(base)
    if not compounds:
        return None
    if len(compounds) == 1 and "," not in base:
        scope = "html" if compounds[0].lower().startswith("body") else "body"
        return f"{scope} {compounds[0]}"
    return compounds[-1]


def generate_test_id(selector: str) -> Optional[str]:
    """Crude data-testid guess built from every word-like part of a selector."""
    if not isinstance(selector, str):
        return None
    cleaned = re.sub(r"""[\[\]"'=]""", "", re.sub(r"[#.]", "-", selector))
    return sanitize_for_test_id(cleaned)


def extract_test_id(selector: str) -> Optional[str]:
    """
    Guess the data-testid an element matched by ``selector`` should carry.

    Looks, in order, at: an existing data-testid, the last path segment of an
    href, text in a ``:contains()``, aria-label, the first class, a class
    attribute, the id, an id attribute, name, role, and finally the leading
    tag name (except div and span).
    """
    if not isinstance(selector, str) or not selector.strip():
        return None
    text = selector.strip()

    value = _first_group(_TEST_ID_ATTR, text)
    if value:
        return sanitize_for_test_id(value)

    href = _first_group(_HREF_ATTR, text)
    if href:
        segments = [part for part in href.split("/") if part]
        if segments:
            tail = segments[-1].split("?")[0].split("#")[0]
            if tail:
                return sanitize_for_test_id(tail)
        return sanitize_for_test_id(href)

    for pattern in (_TEXT_PSEUDO, _ARIA_LABEL_ATTR, _CLASS):
        value = _first_group(pattern, text)
        if value:
            return sanitize_for_test_id(value)

    class_attr = _first_group(_CLASS_ATTR, text)
    if class_attr:
        return sanitize_for_test_id(class_attr.split()[0])

    for pattern in (_ID, _ID_ATTR, _NAME_ATTR, _ROLE_ATTR):
        value = _first_group(pattern, text)
        if value:
            return sanitize_for_test_id(value)

    tag = _first_group(_LEADING_TAG, text)
    if tag and tag.lower() not in ("div", "span"):
        return sanitize_for_test_id(tag)
    return None


def _unique_safe(selectors: List[str]) -> List[str]:
    seen = set()
    result = []
    for selector in selectors:
        candidate = selector.strip() if isinstance(selector, str) else ""
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        if is_syntactically_safe(candidate):
            result.append(candidate)
        else:
            logger.debug(f"Skipping generated selector outside the portable subset: {candidate}")
    return result


def generate_fallback_selectors(selector: str) -> List[str]:
    """
    Generate ranked alternatives for a selector.

    The primary selector leads the list when it is itself portable. Every
    returned selector passes the shape check, and any non-trivial input
    yields at least one candidate different from the input.

    Args:
        selector: The (possibly failing) primary selector

    Returns:
        Deduplicated list of candidates, best first
    """
    if not isinstance(selector, str) or not selector.strip():
        return []
    primary = selector.strip()
    candidates: List[str] = [primary]

    try:
        if "data-testid" not in primary:
            test_id = extract_test_id(primary) or generate_test_id(primary)
            if test_id:
                candidates.append(f'[data-testid="{escape_for_attribute(test_id)}"]')
                candidates.append(f'[data-testid*="{escape_for_attribute(test_id)}"]')

        for triggers, alternatives in ROLE_FALLBACKS:
            if any(trigger in primary for trigger in triggers):
                candidates.extend(alternatives)

        class_attr = _first_group(_CLASS_ATTR, primary)
        if class_attr:
            first_class = class_attr.split()[0]
            if _IDENTIFIER.match(first_class):
                candidates.append(f".{escape_identifier(first_class)}")

        class_name = _first_group(_CLASS, primary)
        if class_name:
            candidates.append(f'[class~="{escape_for_attribute(class_name)}"]')

        element_id = _first_group(_ID, primary)
        if element_id:
            candidates.append(f'[id="{escape_for_attribute(element_id)}"]')

        label = _first_group(_ARIA_LABEL_ATTR, primary)
        if label:
            candidates.append(f'[aria-label="{escape_for_attribute(label)}"]')
            candidates.append(f'[aria-label*="{escape_for_attribute(label)}"]')

        title = _first_group(_TITLE_ATTR, primary)
        if title:
            candidates.append(f'[title="{escape_for_attribute(title)}"]')

        name = _first_group(_NAME_ATTR, primary)
        if name and _IDENTIFIER.match(name):
            candidates.append(f'[name="{escape_for_attribute(name)}"]')

        structural = _structural_alternative(primary)
        if structural:
            candidates.append(structural)
    except Exception as e:
        logger.warning(f"Error generating fallback selectors for {primary!r}: {e}")

    return _unique_safe(candidates)


MAX_SIBLING_WALK = 200


async def _scope_label(element: "IElement") -> str:
    tag = (await element.tag_name()).lower()
    if tag in ("body", "html"):
        return tag
    element_id = await element.get_attribute("id")
    if element_id:
        return f"{tag}#{escape_identifier(element_id)}"
    classes = [c for c in (await element.get_attribute("class") or "").split() if _IDENTIFIER.match(c)]
    if classes:
        return f"{tag}.{escape_identifier(classes[0])}"
    return tag


async def _child_position(parent: "IElement", element: "IElement") -> Optional[int]:
    """1-based position of ``element`` among the element children of ``parent``."""
    for candidate in await parent.query_selector_all("*"):
        candidate_parent = await candidate.parent_element()
        if candidate_parent is None or not await candidate_parent.is_same_node(parent):
            continue
        # First child in document order; count siblings from here
        position, current = 1, candidate
        while current is not None and position <= MAX_SIBLING_WALK:
            if await current.is_same_node(element):
                return position
            current = await current.next_element_sibling()
            position += 1
        return None
    return None


async def generate_element_selectors(element: "IElement") -> List[str]:
    """
    Generate candidates from a resolved element's attributes and its parent.

    Stable hooks come first (data-testid, id, aria-label, name), then tag
    plus class, then selectors scoped to the parent: ``parent > tag.class``
    and ``parent > tag:nth-child(n)``. Read failures end generation early
    and keep what was built so far.

    Args:
        element: An element handle from the DOM port

    Returns:
        Deduplicated portable selectors, most stable first
    """
    candidates: List[str] = []
    try:
        tag = (await element.tag_name()).lower()

        test_id = await element.get_attribute("data-testid")
        if test_id:
            candidates.append(f'[data-testid="{escape_for_attribute(test_id)}"]')
        element_id = await element.get_attribute("id")
        if element_id:
            candidates.append(f"#{escape_identifier(element_id)}")
        for name in ("aria-label", "name"):
            value = await element.get_attribute(name)
            if value:
                candidates.append(f'{tag}[{name}="{escape_for_attribute(value)}"]')

        classes = [c for c in (await element.get_attribute("class") or "").split() if _IDENTIFIER.match(c)]
        compound = f"{tag}.{escape_identifier(classes[0])}" if classes else tag
        if classes:
            candidates.append(compound)

        parent = await element.parent_element()
        if parent is not None:
            scope = await _scope_label(parent)
            candidates.append(f"{scope} > {compound}")
            position = await _child_position(parent, element)
            if position:
                candidates.append(f"{scope} > {tag}:nth-child({position})")
    except Exception as e:
        logger.warning(f"Error generating selectors from element: {e}")

    return _unique_safe(candidates)


def infer_element_type(selector: str) -> Optional[str]:
    """Infer an ARIA role from words in a selector."""
    for triggers, role in ELEMENT_TYPE_HINTS:
        if any(trigger in selector for trigger in triggers):
            return role
    return None


def infer_label(selector: str) -> Optional[str]:
    """Infer a human label from text, class or id parts of a selector."""
    text = _first_group(_TEXT_PSEUDO, selector)
    if text:
        return text
    for pattern in (_CLASS, _ID):
        value = _first_group(pattern, selector)
        if value:
            return value.replace("-", " ")
    return None


def generate_fallback_strategies(selector: str) -> FallbackStrategies:
    """
    Build the strategy list and advice attached to a lookup.

    ``attempted`` holds alternatives that the resolver can try (portable CSS
    or a text pseudo-selector it resolves by script); ``failed`` is left for
    the caller to fill in.
    """
    strategies: List[str] = []
    recommendations: List[str] = []
    if not isinstance(selector, str) or not selector.strip():
        return FallbackStrategies(recommendations=["Provide a valid CSS selector string"])
    selector = selector.strip()

    try:
        if "data-testid" not in selector:
            recommendations.append(
                "Add data-testid attribute to target element for more reliable selection"
            )
            test_id = generate_test_id(selector) or "element"
            strategies.append(f'[data-testid="{test_id}"]')

        if ">" not in selector and " " not in selector:
            recommendations.append("Use more specific parent-child selectors")
            strategies.extend([f"body {selector}", f"main {selector}", f"#app {selector}"])

        if selector.startswith("."):
            class_name = escape_for_attribute(selector[1:])
            strategies.extend([
                f'[class*="{class_name}"]',
                f'[class^="{class_name}"]',
                f'[class$="{class_name}"]',
            ])
            recommendations.append(
                "Consider using attribute selectors for more flexible class matching"
            )

        if "role=" not in selector:
            role = infer_element_type(selector)
            if role:
                strategies.append(f'[role="{role}"]')
                recommendations.append(f'Add role="{role}" attribute for better accessibility')

        if "aria-label" not in selector:
            recommendations.append("Add aria-label attribute for better accessibility and selection")
            label = infer_label(selector)
            if label:
                strategies.append(f'[aria-label*="{escape_for_attribute(label)}"]')

        parsed = parse_text_pseudo(selector)
        if parsed:
            strategies.append(f'*:contains("{escape_for_attribute(parsed[1])}")')
            recommendations.append("Use text-based selection as fallback")

        if ":nth-child" not in selector:
            recommendations.append("Consider using structural pseudo-selectors like :nth-child()")
            strategies.extend([f"{selector}:first-child", f"{selector}:last-child"])
    except Exception as e:
        logger.warning(f"Error generating fallback strategies for {selector!r}: {e}")
        return FallbackStrategies(
            recommendations=["Unable to generate fallback strategies due to error"]
        )

    attempted = []
    for strategy in strategies:
        resolvable = is_syntactically_safe(strategy) or (
            has_script_fallback(strategy) and parse_text_pseudo(strategy) is not None
        )
        if resolvable and strategy not in attempted:
            attempted.append(strategy)
    return FallbackStrategies(attempted=attempted, recommendations=recommendations)


def infer_role(element_type: str) -> str:
    return ROLE_BY_ELEMENT_TYPE.get(element_type.lower(), "generic")


def create_fallback_strategies(
    selector: str,
    element_type: Optional[str] = None,
    expected_text: Optional[str] = None,
    parent_selector: Optional[str] = None,
    attributes: Optional[Dict[str, str]] = None,
) -> StepFallbackPlan:
    """
    Plan fallbacks for a tour step, grouped by when to try them.

    Args:
        selector: The step's selector
        element_type: Expected tag (button, a, input, ...)
        expected_text: Visible text the element should carry
        parent_selector: A container known to hold the element
        attributes: Known attributes of the element (data-testid, id)

    Returns:
        StepFallbackPlan with immediate, delayed and alternative selectors
    """
    plan = StepFallbackPlan()
    attributes = attributes or {}

    try:
        if attributes.get("data-testid"):
            plan.immediate.append(f'[data-testid="{escape_for_attribute(attributes["data-testid"])}"]')
        if attributes.get("id"):
            plan.immediate.append(f"#{escape_identifier(attributes['id'])}")

        if parent_selector:
            plan.delayed.append(f"{parent_selector} {selector}")
            plan.delayed.append(f"{parent_selector} > {selector}")

        if expected_text:
            plan.alternative.append(f'*:contains("{escape_for_attribute(expected_text)}")')
        if element_type:
            plan.alternative.append(f'{element_type}[role="{infer_role(element_type)}"]')

        plan.recommendations.extend([
            "Add data-testid attribute for reliable selection",
            "Use semantic HTML elements with proper roles",
            "Ensure elements are present in DOM before validation",
        ])
        if isinstance(selector, str) and "data-testid" not in selector:
            plan.recommendations.append("Consider using data-testid instead of class or ID selectors")
        if expected_text:
            plan.recommendations.append("Add aria-label for better accessibility and selection")
    except Exception as e:
        logger.warning(f"Error creating fallback strategies for {selector!r}: {e}")
        plan.recommendations.append("Review selector syntax and element structure")

    return plan


def _attribute_text(text: str) -> str:
    """Collapse whitespace so free text can sit inside an attribute value."""
    return re.sub(r"\s+", " ", text.strip())


@dataclass
class HybridSelectors:
    """CSS candidates plus a script finder for the same target."""
    css_selectors: List[str] = field(default_factory=list)
    script_finder: Optional[Callable[[], Awaitable[List["IElement"]]]] = None


class SmartSelectorBuilder:
    """
    Portable selectors for common UI patterns, built from visible text.

    None of the generated selectors use text or relational pseudo-selectors;
    pair them with ``generate_hybrid_selectors`` to get a script finder for
    the text itself.
    """

    @staticmethod
    def for_navigation(text: str) -> List[str]:
        if not isinstance(text, str) or not text.strip():
            return []
        value = escape_for_attribute(_attribute_text(text))
        test_id = sanitize_for_test_id(text)
        selectors = [f'[data-testid="{test_id}"]'] if test_id else []
        selectors.extend([
            f'nav a[href*="{value.lower()}"]',
            f'nav [aria-label*="{value}"]',
            f'[role="navigation"] a[href*="{value.lower()}"]',
            f'[aria-label*="{value}"]',
        ])
        return _unique_safe(selectors)

    @staticmethod
    def for_button(text: str) -> List[str]:
        if not isinstance(text, str) or not text.strip():
            return []
        value = escape_for_attribute(_attribute_text(text))
        test_id = sanitize_for_test_id(text)
        selectors = [f'[data-testid="{test_id}-button"]', f'[data-testid="{test_id}"]'] if test_id else []
        selectors.extend([
            f'button[aria-label*="{value}"]',
            f'[role="button"][aria-label*="{value}"]',
            f'input[type="button"][value*="{value}"]',
            f'input[type="submit"][value*="{value}"]',
        ])
        return _unique_safe(selectors)

    @staticmethod
    def for_form(field_name: str) -> List[str]:
        if not isinstance(field_name, str) or not field_name.strip():
            return []
        value = escape_for_attribute(_attribute_text(field_name))
        test_id = sanitize_for_test_id(field_name)
        selectors = [f'[data-testid="{test_id}"]'] if test_id else []
        selectors.extend([
            f'input[name="{value}"]',
            f'input[id="{value}"]',
            f'textarea[name="{value}"]',
            f'select[name="{value}"]',
            f'[aria-label*="{value}"]',
            f'[placeholder*="{value}"]',
        ])
        return _unique_safe(selectors)

    @staticmethod
    def for_content(class_name: str) -> List[str]:
        if not isinstance(class_name, str) or not class_name.strip():
            return []
        value = escape_for_attribute(_attribute_text(class_name))
        identifier = escape_identifier(class_name.strip())
        selectors = [
            f'[data-testid="{value}"]',
            f".{identifier}",
            f'[class*="{value}"]',
            f'div[class*="{value}"]',
            f'section[class*="{value}"]',
            f'main[class*="{value}"]',
            f'article[class*="{value}"]',
        ]
        return _unique_safe(selectors)

    @classmethod
    def generate_hybrid_selectors(
        cls,
        text: str,
        kind: str,
        finder: "ScriptElementFinder",
    ) -> HybridSelectors:
        """
        Combine CSS candidates with a script finder for the same text.

        Args:
            text: Visible text of the target
            kind: One of button, link, input, navigation
            finder: Script finder bound to the document

        Returns:
            HybridSelectors; unknown kinds get an empty result
        """
        if kind == "button":
            return HybridSelectors(cls.for_button(text), lambda: finder.find_button_by_text(text))
        if kind == "link":
            return HybridSelectors(cls.for_navigation(text), lambda: finder.find_link_by_text(text))
        if kind == "input":
            return HybridSelectors(cls.for_form(text), lambda: finder.find_input_by_label_text(text))
        if kind == "navigation":
            return HybridSelectors(cls.for_navigation(text), lambda: finder.find_by_text("nav", text))
        logger.warning(f"Unknown element kind for hybrid selectors: {kind}")
        return HybridSelectors()
