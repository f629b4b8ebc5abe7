"""
Visibility & Geometry Evaluator - Is the anchor really on screen, and where.

Visibility here is practical visibility: an element that is in the DOM but
collapsed by a transform, clipped away entirely, transparent or hidden by
style is treated as not visible. Geometry is reported in page coordinates so
a callout can be placed next to the element regardless of scrolling.

Every introspection call goes through the DOM port and may fail (detached
nodes, closed pages); failures degrade to "not visible" / None.
"""

import math
import re
from typing import Dict, List, Optional
import logging

from tour_anchor.engine.environment import EnvironmentDetector
from tour_anchor.engine.models import ElementPosition, Point, ShadowDomInfo, ViewportInfo
from tour_anchor.interfaces.dom import IDocument, IElement, looks_like_element

logger = logging.getLogger(__name__)


MAX_DEPTH_WALK = 50

_FUNCTION = re.compile(r"([a-zA-Z0-9]+)\(([^)]*)\)")
_LENGTH = re.compile(r"^(-?[\d.]+)(%|px)?$")


def _parse_float(value: Optional[str], default: float) -> float:
    try:
        return float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        return default


def _numbers(arguments: str) -> List[float]:
    values = []
    for part in re.split(r"[\s,]+", arguments.strip()):
        if not part:
            continue
        try:
            values.append(float(part))
        except ValueError:
            # Angles and lengths are irrelevant for scale detection
            values.append(math.nan)
    return values


def transform_collapses(transform: Optional[str]) -> bool:
    """
    Check whether a transform scales the element down to nothing.

    Understands scale(), scaleX(), scaleY(), scale3d(), matrix() and
    matrix3d(); browsers report computed transforms as one of the matrices.
    """
    if not transform or transform == "none":
        return False

    for name, arguments in _FUNCTION.findall(transform):
        values = _numbers(arguments)
        name = name.lower()
        if name in ("scale", "scale3d"):
            if any(v == 0 for v in values[:2]):
                return True
        elif name in ("scalex", "scaley"):
            if values and values[0] == 0:
                return True
        elif name == "matrix" and len(values) >= 4:
            a, b, c, d = values[:4]
            if math.hypot(a, b) == 0 or math.hypot(c, d) == 0:
                return True
        elif name == "matrix3d" and len(values) >= 16:
            a, b, c, d = values[0], values[1], values[4], values[5]
            if math.hypot(a, b) == 0 or math.hypot(c, d) == 0:
                return True
    return False


def _inset_fraction(token: str, extent: float) -> Optional[float]:
    match = _LENGTH.match(token)
    if not match:
        return None
    value, unit = float(match.group(1)), match.group(2)
    if unit == "%":
        return value / 100
    if extent <= 0:
        return None
    # Bare zero and px lengths are absolute
    return value / extent


def clip_path_hides(clip_path: Optional[str], width: float = 0.0, height: float = 0.0) -> bool:
    """
    Check whether a clip-path removes the whole element.

    Handles ``inset()`` where opposing insets add up to the full box and
    ``circle()`` with a zero radius.
    """
    if not clip_path or clip_path == "none":
        return False

    text = clip_path.strip().lower()
    match = re.match(r"inset\(([^)]*)\)", text)
    if match:
        tokens = match.group(1).split(" round ")[0].split()
        if not tokens:
            return False
        # CSS shorthand: top, right, bottom, left
        while len(tokens) < 4:
            tokens.append(tokens[len(tokens) - 2] if len(tokens) >= 2 else tokens[0])
        top, right, bottom, left = tokens[:4]
        vertical = [_inset_fraction(top, height), _inset_fraction(bottom, height)]
        horizontal = [_inset_fraction(left, width), _inset_fraction(right, width)]
        if None not in vertical and sum(vertical) >= 1:
            return True
        if None not in horizontal and sum(horizontal) >= 1:
            return True
        return False

    match = re.match(r"circle\(\s*(-?[\d.]+)(%|px)?", text)
    if match:
        return float(match.group(1)) <= 0
    return False


async def describe_element(element: IElement) -> str:
    """Short human label for an element: tag#id.class1.class2."""
    try:
        label = (await element.tag_name()).lower()
        element_id = await element.get_attribute("id")
        if element_id:
            label += f"#{element_id}"
        classes = (await element.get_attribute("class") or "").split()
        if classes:
            label += "." + ".".join(classes[:3])
        return label
    except Exception as e:
        logger.debug(f"Could not describe element: {e}")
        return "unknown"


async def dom_depth(element: IElement) -> int:
    """Number of ancestors between the element and <body>, capped."""
    depth = 0
    current = await element.parent_element()
    while current is not None and depth < MAX_DEPTH_WALK:
        if (await current.tag_name()).lower() in ("body", "html"):
            break
        depth += 1
        current = await current.parent_element()
    return depth


class VisibilityEvaluator:
    """
    Decides practical visibility and computes element geometry.

    Usage:
        evaluator = VisibilityEvaluator(document, environment)
        if await evaluator.is_visible(element):
            position = await evaluator.get_position(element)
    """

    def __init__(self, document: Optional[IDocument], environment: EnvironmentDetector):
        self._document = document
        self._environment = environment

    def _usable(self, element) -> Optional[IElement]:
        if not self._environment.is_browser_like():
            return None
        return looks_like_element(element)

    async def is_visible(self, element) -> bool:
        """
        Check display, visibility, opacity, size, transforms and clip-path.

        Returns False for a missing element or when introspection fails.
        """
        target = self._usable(element)
        if target is None:
            return False

        try:
            box = await target.bounding_box()
            if not box or box.get("width", 0) <= 0 or box.get("height", 0) <= 0:
                return False

            style = await target.computed_style()
            if style.get("display") == "none":
                return False
            if style.get("visibility") in ("hidden", "collapse"):
                return False
            if _parse_float(style.get("opacity"), 1.0) <= 0:
                return False
            if transform_collapses(style.get("transform")):
                return False
            if clip_path_hides(style.get("clip-path"), box["width"], box["height"]):
                return False
            return True
        except Exception as e:
            logger.warning(f"Error checking element visibility: {e}")
            return False

    async def is_visible_in_shadow_dom(self, element) -> bool:
        """Same predicate, plus the shadow host (one level) must be visible."""
        if not await self.is_visible(element):
            return False
        try:
            host = await element.shadow_host()
        except Exception as e:
            logger.warning(f"Error checking shadow DOM visibility: {e}")
            return False
        if host is None:
            return True
        return await self.is_visible(host)

    async def _viewport(self) -> Dict[str, float]:
        try:
            size = await self._document.viewport_size()
            return {"width": float(size.get("width", 0)), "height": float(size.get("height", 0))}
        except Exception as e:
            logger.warning(f"Error reading viewport size: {e}")
            return {"width": 0.0, "height": 0.0}

    async def _scroll(self) -> Point:
        try:
            offset = await self._document.scroll_offset()
            return Point(float(offset.get("x", 0)), float(offset.get("y", 0)))
        except Exception as e:
            logger.warning(f"Error reading scroll position: {e}")
            return Point()

    @staticmethod
    def viewport_info(box: Dict[str, float], viewport: Dict[str, float]) -> ViewportInfo:
        """Intersect a viewport-relative box with the viewport."""
        top, left = box["y"], box["x"]
        right, bottom = left + box["width"], top + box["height"]

        visible_width = max(0.0, min(viewport["width"], right) - max(0.0, left))
        visible_height = max(0.0, min(viewport["height"], bottom) - max(0.0, top))
        total = box["width"] * box["height"]
        ratio = (visible_width * visible_height) / total if total > 0 else 0.0
        ratio = min(1.0, max(0.0, ratio))

        return ViewportInfo(
            top=top,
            left=left,
            right=right,
            bottom=bottom,
            is_visible=ratio > 0,
            visible_area=ratio,
        )

    async def is_in_viewport(self, element) -> bool:
        """Check whether any part of the element lies inside the viewport."""
        target = self._usable(element)
        if target is None:
            return False
        try:
            box = await target.bounding_box()
            if not box:
                return False
            viewport = await self._viewport()
            right, bottom = box["x"] + box["width"], box["y"] + box["height"]
            if right < 0 or bottom < 0:
                return False
            if box["x"] > viewport["width"] or box["y"] > viewport["height"]:
                return False
            return True
        except Exception as e:
            logger.warning(f"Error checking viewport bounds: {e}")
            return True

    async def is_covered(self, element) -> bool:
        """
        Hit-test the centre of the element.

        Covered means something other than the element, one of its
        descendants or one of its ancestors is painted there. Nothing at the
        point, or a failed hit test, counts as not covered.
        """
        target = self._usable(element)
        hit_test = getattr(self._document, "element_at_point", None)
        if target is None or not callable(hit_test):
            return False
        try:
            box = await target.bounding_box()
            if not box or box.get("width", 0) <= 0 or box.get("height", 0) <= 0:
                return False
            top = await hit_test(
                box["x"] + box["width"] / 2, box["y"] + box["height"] / 2
            )
            if top is None:
                return False

            # Descendant or the element itself
            current, depth = top, 0
            while current is not None and depth < MAX_DEPTH_WALK:
                if await target.is_same_node(current):
                    return False
                current = await current.parent_element()
                depth += 1

            # Ancestor, across the shadow boundary
            current, depth = target, 0
            while current is not None and depth < MAX_DEPTH_WALK:
                if await current.is_same_node(top):
                    return False
                current = await current.parent_element() or await current.shadow_host()
                depth += 1
            return True
        except Exception as e:
            logger.warning(f"Error hit-testing element: {e}")
            return False

    async def get_position(self, element) -> Optional[ElementPosition]:
        """
        Get page-coordinate geometry plus viewport intersection.

        Returns:
            ElementPosition, or None for a missing element or failed read
        """
        target = self._usable(element)
        if target is None:
            return None

        try:
            box = await target.bounding_box()
            if not box:
                return None
            scroll = await self._scroll()
            viewport = self.viewport_info(box, await self._viewport())

            top = box["y"] + scroll.y
            left = box["x"] + scroll.x
            return ElementPosition(
                top=top,
                left=left,
                width=box["width"],
                height=box["height"],
                center=Point(left + box["width"] / 2, top + box["height"] / 2),
                viewport=viewport,
                scroll=scroll,
            )
        except Exception as e:
            logger.warning(f"Error getting element position: {e}")
            return None

    async def get_position_in_shadow_dom(self, element) -> Optional[ElementPosition]:
        """Like get_position, with shadow host metadata and host offset."""
        position = await self.get_position(element)
        if position is None:
            return None

        try:
            host = await element.shadow_host()
            if host is None:
                position.shadow_dom = ShadowDomInfo(is_in_shadow_dom=False)
                return position

            host_offset = Point()
            host_box = await host.bounding_box()
            if host_box:
                host_offset = Point(host_box["x"] + position.scroll.x, host_box["y"] + position.scroll.y)
            position.shadow_dom = ShadowDomInfo(
                is_in_shadow_dom=True,
                host=await describe_element(host),
                host_offset=host_offset,
            )
            return position
        except Exception as e:
            logger.warning(f"Error getting shadow DOM element position: {e}")
            return None
