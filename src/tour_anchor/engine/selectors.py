"""
Selector handling - normalization, support probing, escaping and validation.

Callers hand the engine loosely typed selector input (a string, a list with
holes in it, sometimes nothing at all). Everything here turns that input into
candidates that are safe to forward to the page's native query engine.

Example:
    >>> normalize(["", None, ".real-target"]).valid
    ['.real-target']
    >>> escape_identifier("1st-item")
    '\\\\31 st-item'
"""

import re
from typing import Any, Dict, Optional, Tuple
import logging

from tour_anchor.engine.models import (
    NormalizedSelectors,
    SelectorCandidate,
    SelectorCheck,
)
from tour_anchor.interfaces.dom import IDocument, looks_like_document

logger = logging.getLogger(__name__)


TEXT_PSEUDO = ":contains("
RELATIONAL_PSEUDO = ":has("

NO_SELECTORS = "No selectors provided"
NO_VALID_SELECTORS = "No valid selectors provided"

TEST_ID_MAX_LENGTH = 50

_SPECIAL_CHARS = re.compile(r"""[!"#$%&'()*+,./:;<=>?@\[\\\]^`{|}~]""")
_WHITESPACE = re.compile(r"\s")

# Conservative CSS grammar: tags, ids, classes, attribute tests and a
# handful of structural pseudo-classes joined by the four combinators.
_ESCAPE = r"(?:\\[0-9a-fA-F]{1,6}\s?|\\[^\n\r\f0-9a-fA-F])"
_NAME_START = rf"(?:[_a-zA-Z\u00a0-\uffff]|{_ESCAPE})"
_NAME_CHAR = rf"(?:[_a-zA-Z0-9\-\u00a0-\uffff]|{_ESCAPE})"
_IDENT = rf"(?:--{_NAME_CHAR}*|-?{_NAME_START}{_NAME_CHAR}*)"
_STRING = r"""(?:"(?:[^"\\\n]|\\.)*"|'(?:[^'\\\n]|\\.)*')"""
_ATTR = rf"\[\s*{_IDENT}\s*(?:[~|^$*]?=\s*(?:{_STRING}|{_IDENT})\s*(?:[iIsS]\s*)?)?\]"
_NTH = r"(?:odd|even|[+-]?\d*n(?:\s*[+-]\s*\d+)?|[+-]?\d+)"
_PSEUDO = (
    r":(?:first-child|last-child|only-child|first-of-type|last-of-type|only-of-type"
    r"|empty|root|checked|disabled|enabled|required|optional"
    rf"|nth-child\(\s*{_NTH}\s*\)|nth-last-child\(\s*{_NTH}\s*\)|nth-of-type\(\s*{_NTH}\s*\))"
)
_SIMPLE = rf"(?:#{_IDENT}|\.{_IDENT}|{_ATTR}|{_PSEUDO})"
_COMPOUND = rf"(?:(?:{_IDENT}|\*){_SIMPLE}*|{_SIMPLE}+)"
_COMPLEX = rf"{_COMPOUND}(?:\s*[>+~]\s*{_COMPOUND}|\s+{_COMPOUND})*"
_SAFE_SELECTOR = re.compile(rf"^\s*{_COMPLEX}(?:\s*,\s*{_COMPLEX})*\s*$")

_SIMPLE_ATTRIBUTE = re.compile(r"""^\[[\w-]+(\s*[*^$|~]?\s*=\s*['"][^'"]*['"])?\]$""")
_TEXT_PSEUDO_FORM = re.compile(r"""^(.*?):contains\(\s*(['"])(.+?)\2\s*\)$""", re.DOTALL)
_RELATIONAL_PSEUDO_FORM = re.compile(r"^([^:]+):has\((.+)\)$", re.DOTALL)

_FEATURE_PROBES: Dict[str, str] = {
    "attribute-partial-match": '[class*=""]',
    "nth-child": ":nth-child(1)",
    "attribute-case-insensitive": '[class="test" i]',
}


def normalize(candidates: Any) -> NormalizedSelectors:
    """
    Turn caller input into ordered, validated candidates.

    Accepts a single string or an ordered list/tuple. None, blank strings and
    non-strings are kept as rejected candidates so callers can report them,
    but are never returned from ``.valid``.

    Args:
        candidates: Raw selector input

    Returns:
        NormalizedSelectors with ``error`` set when nothing usable survives
    """
    if candidates is None:
        return NormalizedSelectors(error=NO_SELECTORS)

    if isinstance(candidates, (list, tuple)):
        raw_items = list(candidates)
    else:
        raw_items = [candidates]

    if not raw_items:
        return NormalizedSelectors(error=NO_SELECTORS)

    result = NormalizedSelectors()
    for raw in raw_items:
        if raw is None:
            result.candidates.append(SelectorCandidate(raw, False, "missing selector"))
        elif not isinstance(raw, str):
            result.candidates.append(
                SelectorCandidate(raw, False, f"not a string ({type(raw).__name__})")
            )
        elif not raw.strip():
            result.candidates.append(SelectorCandidate(raw, False, "empty or whitespace-only"))
        else:
            result.candidates.append(SelectorCandidate(raw, True))

    if not result.valid:
        result.error = NO_VALID_SELECTORS
    return result


def has_script_fallback(selector: Any) -> bool:
    """Check whether a selector can be resolved by the script-based finder."""
    if not isinstance(selector, str) or not selector:
        return False
    return (
        TEXT_PSEUDO in selector
        or RELATIONAL_PSEUDO in selector
        or bool(_SIMPLE_ATTRIBUTE.match(selector))
    )


def parse_text_pseudo(selector: Any) -> Optional[Tuple[str, str]]:
    """
    Split ``tag:contains("text")`` into (tag, text).

    The tag part defaults to "*" when absent. Returns None for anything else.
    """
    if not isinstance(selector, str):
        return None
    match = _TEXT_PSEUDO_FORM.match(selector.strip())
    if not match:
        return None
    tag, text = match.group(1).strip() or "*", match.group(3).strip()
    if not text:
        return None
    return tag, text


def parse_relational_pseudo(selector: Any) -> Optional[Tuple[str, str]]:
    """Split ``parent:has(child)`` into (parent, child), or return None."""
    if not isinstance(selector, str):
        return None
    match = _RELATIONAL_PSEUDO_FORM.match(selector.strip())
    if not match:
        return None
    parent, child = match.group(1).strip(), match.group(2).strip()
    if not parent or not child:
        return None
    return parent, child


def is_syntactically_safe(selector: Any) -> bool:
    """
    DOM-free shape check for generated selectors.

    Accepts a conservative subset of CSS that every current engine
    understands; anything outside it (text or relational pseudo-selectors
    included) is rejected.
    """
    if not isinstance(selector, str) or not selector.strip():
        return False
    return bool(_SAFE_SELECTOR.match(selector))


def escape_for_selector(raw: Any) -> str:
    """
    Backslash-escape characters that are significant in selector grammar.

    Whitespace is written as a hex escape so the result stays one token.
    Returns "" for non-string or empty input.
    """
    if not isinstance(raw, str) or not raw:
        return ""

    def _escape(match: "re.Match[str]") -> str:
        char = match.group(0)
        if _WHITESPACE.match(char):
            return f"\\{ord(char):x} "
        return "\\" + char

    return re.sub(rf"{_SPECIAL_CHARS.pattern}|\s", _escape, raw)


def escape_identifier(raw: Any) -> str:
    """
    Escape a string for use as a class name or id, following CSS.escape.

    Leading digits (and a digit after a leading hyphen) become hex escapes,
    a lone hyphen is backslash-escaped, and control characters are hex
    escaped. Returns "" for non-string or empty input.
    """
    if not isinstance(raw, str) or not raw:
        return ""

    out = []
    for index, char in enumerate(raw):
        code = ord(char)
        if code == 0:
            out.append("\ufffd")
        elif 0x01 <= code <= 0x1F or code == 0x7F:
            out.append(f"\\{code:x} ")
        elif index == 0 and char.isdigit() and char.isascii():
            out.append(f"\\{code:x} ")
        elif index == 1 and char.isdigit() and char.isascii() and raw[0] == "-":
            out.append(f"\\{code:x} ")
        elif index == 0 and char == "-" and len(raw) == 1:
            out.append("\\-")
        elif code >= 0x80 or char in "-_" or (char.isascii() and char.isalnum()):
            out.append(char)
        else:
            out.append("\\" + char)
    return "".join(out)


def escape_for_attribute(raw: Any) -> str:
    """Escape a string for use inside a double-quoted attribute value."""
    if not isinstance(raw, str) or not raw:
        return ""
    escaped = raw.replace("\\", "\\\\").replace('"', '\\"')
    return re.sub(r"[\r\n\f]", lambda m: f"\\{ord(m.group(0)):x} ", escaped)


def sanitize_for_test_id(text: Any) -> Optional[str]:
    """
    Derive a data-testid guess from free text.

    Lower-cases, collapses runs of non-alphanumerics into single hyphens,
    trims hyphens and caps the length.

    Returns:
        The sanitized id, or None when nothing is left
    """
    if not isinstance(text, str):
        return None
    sanitized = re.sub(r"[^a-z0-9]+", "-", text.strip().lower()).strip("-")
    if len(sanitized) > TEST_ID_MAX_LENGTH:
        sanitized = sanitized[:TEST_ID_MAX_LENGTH].rstrip("-")
    return sanitized or None


class SelectorSupport:
    """
    Per-document cache of what the native query engine accepts.

    The relational pseudo-selector probe runs once per instance; every
    other selector is probed at most once.
    """

    def __init__(self, document: Optional[IDocument]):
        self._document = looks_like_document(document)
        self._has_support: Optional[bool] = None
        self._validity: Dict[str, bool] = {}
        self._features: Dict[str, bool] = {}

    async def _probe(self, selector: str) -> bool:
        if self._document is None:
            return False
        try:
            return bool(await self._document.supports_selector(selector))
        except Exception as e:
            logger.warning(f"Selector probe failed for {selector!r}: {e}")
            return False

    async def has_relational_support(self) -> bool:
        """Check (once) whether the engine understands :has()."""
        if self._has_support is None:
            self._has_support = await self._probe(":has(*)")
            logger.debug(f"Relational pseudo-selector support: {self._has_support}")
        return self._has_support

    async def is_valid_selector(self, selector: Any) -> bool:
        """
        Check whether a selector can be sent to the native engine.

        Text pseudo-selectors are always rejected; relational ones only when
        the engine lacks support.
        """
        if not isinstance(selector, str) or not selector.strip():
            return False
        if TEXT_PSEUDO in selector:
            return False
        if RELATIONAL_PSEUDO in selector and not await self.has_relational_support():
            return False
        if selector not in self._validity:
            self._validity[selector] = await self._probe(selector)
        return self._validity[selector]

    async def supports_feature(self, feature: str) -> bool:
        """
        Check support for a named selector feature.

        Known features: attribute-partial-match, nth-child, css-escape,
        attribute-case-insensitive, has-selector, contains-selector.
        """
        if feature in self._features:
            return self._features[feature]

        if feature == "has-selector":
            supported = await self.has_relational_support()
        elif feature == "contains-selector":
            supported = False
        elif feature == "css-escape":
            # Escaping happens in Python and does not depend on the page
            supported = True
        elif feature in _FEATURE_PROBES:
            supported = await self._probe(_FEATURE_PROBES[feature])
        else:
            logger.warning(f"Unknown selector feature test: {feature}")
            supported = False

        self._features[feature] = supported
        return supported

    async def validate_css_selector(self, selector: Any) -> SelectorCheck:
        """
        Validate a selector and explain what to do when it is unusable.

        Returns:
            SelectorCheck with an actionable error and suggestion
        """
        if not isinstance(selector, str) or not selector.strip():
            return SelectorCheck(
                is_valid=False,
                error="Selector is empty or invalid",
                suggestion="Provide a non-empty string selector",
            )

        trimmed = selector.strip()
        if TEXT_PSEUDO in trimmed:
            return SelectorCheck(
                is_valid=False,
                error="Invalid pseudo-selector :contains() - not supported in standard CSS",
                suggestion="Use script-based text matching (ScriptElementFinder.find_by_text)",
            )
        if RELATIONAL_PSEUDO in trimmed and not await self.has_relational_support():
            return SelectorCheck(
                is_valid=False,
                error="Pseudo-selector :has() not supported in this browser",
                suggestion=(
                    "Use feature detection or a script fallback "
                    "(ScriptElementFinder.find_with_relational_match)"
                ),
            )
        if await self.is_valid_selector(trimmed):
            return SelectorCheck(is_valid=True)
        return SelectorCheck(
            is_valid=False,
            error="Invalid CSS selector syntax",
            suggestion="Check selector syntax and escape special characters",
        )


def check_selector_shape(selector: Any) -> SelectorCheck:
    """
    Offline variant of validate_css_selector.

    Uses the DOM-free shape check, so relational selectors are reported as
    needing a script fallback.
    """
    if not isinstance(selector, str) or not selector.strip():
        return SelectorCheck(False, "Selector is empty or invalid", "Provide a non-empty string selector")
    if TEXT_PSEUDO in selector:
        return SelectorCheck(
            False,
            "Invalid pseudo-selector :contains() - not supported in standard CSS",
            "Use script-based text matching (ScriptElementFinder.find_by_text)",
        )
    if RELATIONAL_PSEUDO in selector:
        return SelectorCheck(
            False,
            "Pseudo-selector :has() support depends on the browser",
            "Use feature detection or a script fallback "
            "(ScriptElementFinder.find_with_relational_match)",
        )
    if is_syntactically_safe(selector):
        return SelectorCheck(True)
    return SelectorCheck(
        False,
        "Selector uses syntax outside the portable subset",
        "Check selector syntax and escape special characters",
    )
