"""
Playwright DOM - Implementation of the DOM port on a Playwright page.

Queries go through the page's own ``document.querySelector`` rather than
Playwright's extended selector engine, so a selector the browser does not
understand fails here exactly as it would for page scripts.

Mutation observation installs a page-side MutationObserver per observation
that calls back into Python through an exposed binding.
"""

import asyncio
import itertools
from typing import Any, Dict, List, Optional, Set
import logging

from tour_anchor.exceptions.dom import DomAccessError, ObservationError, SelectorSyntaxError
from tour_anchor.interfaces.dom import IDocument, IElement, IMutationObservation, MutationCallback

logger = logging.getLogger(__name__)


BINDING_NAME = "__tourAnchorMutation"

_SYNTAX_MARKERS = ("SyntaxError", "is not a valid selector", "not a valid selector")

STYLE_JS = """el => {
    const s = window.getComputedStyle(el);
    return {
        'display': s.display,
        'visibility': s.visibility,
        'opacity': s.opacity,
        'transform': s.transform,
        'clip-path': s.clipPath,
        'pointer-events': s.pointerEvents,
        'position': s.position,
    };
}"""

BOX_JS = """el => {
    const r = el.getBoundingClientRect();
    return {x: r.left, y: r.top, width: r.width, height: r.height};
}"""

SHADOW_HOST_JS = """el => {
    const root = el.getRootNode();
    return (typeof ShadowRoot !== 'undefined' && root instanceof ShadowRoot) ? root.host : null;
}"""

OBSERVE_JS = """([binding, id]) => {
    window.__tourAnchorObservers = window.__tourAnchorObservers || new Map();
    const observer = new MutationObserver(() => { window[binding](id); });
    observer.observe(document.documentElement || document, {
        childList: true,
        subtree: true,
        attributes: true,
        attributeFilter: ['class', 'style', 'hidden'],
    });
    window.__tourAnchorObservers.set(id, observer);
}"""

DISCONNECT_JS = """id => {
    const observers = window.__tourAnchorObservers;
    if (!observers || !observers.has(id)) return false;
    observers.get(id).disconnect();
    observers.delete(id);
    return true;
}"""


def _translate(error: Exception, selector: Optional[str] = None) -> Exception:
    message = str(error)
    if selector is not None and any(marker in message for marker in _SYNTAX_MARKERS):
        return SelectorSyntaxError(f"Invalid selector {selector!r}: {message}", selector=selector)
    return DomAccessError(message)


async def _elements_from_array(handle: Any) -> List["PlaywrightNode"]:
    properties = await handle.get_properties()
    elements = []
    for key in sorted((k for k in properties if k.isdigit()), key=int):
        element = properties[key].as_element()
        if element is not None:
            elements.append(PlaywrightNode(element))
    await handle.dispose()
    return elements


class PlaywrightNode(IElement):
    """
    Playwright implementation of IElement.

    Wraps a Playwright ElementHandle.
    """

    def __init__(self, handle: Any):
        self._handle = handle

    @property
    def handle(self) -> Any:
        return self._handle

    async def _evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._handle.evaluate(script, arg)
        except Exception as e:
            raise _translate(e) from e

    async def _evaluate_element(self, script: str, arg: Any = None, selector: Optional[str] = None):
        try:
            handle = await self._handle.evaluate_handle(script, arg)
        except Exception as e:
            raise _translate(e, selector) from e
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            return None
        return PlaywrightNode(element)

    async def tag_name(self) -> str:
        return await self._evaluate("el => el.tagName.toLowerCase()")

    async def get_attribute(self, name: str) -> Optional[str]:
        try:
            return await self._handle.get_attribute(name)
        except Exception as e:
            raise _translate(e) from e

    async def text_content(self) -> str:
        return await self._evaluate("el => el.textContent || ''")

    async def computed_style(self) -> Dict[str, str]:
        return await self._evaluate(STYLE_JS)

    async def bounding_box(self) -> Optional[Dict[str, float]]:
        return await self._evaluate(BOX_JS)

    async def query_selector(self, selector: str) -> Optional[IElement]:
        return await self._evaluate_element("(el, s) => el.querySelector(s)", selector, selector)

    async def query_selector_all(self, selector: str) -> List[IElement]:
        try:
            handle = await self._handle.evaluate_handle(
                "(el, s) => Array.from(el.querySelectorAll(s))", selector
            )
            return await _elements_from_array(handle)
        except Exception as e:
            raise _translate(e, selector) from e

    async def next_element_sibling(self) -> Optional[IElement]:
        return await self._evaluate_element("el => el.nextElementSibling")

    async def parent_element(self) -> Optional[IElement]:
        return await self._evaluate_element("el => el.parentElement")

    async def shadow_host(self) -> Optional[IElement]:
        return await self._evaluate_element(SHADOW_HOST_JS)

    async def is_same_node(self, other: IElement) -> bool:
        if not isinstance(other, PlaywrightNode):
            return False
        if other._handle is self._handle:
            return True
        return bool(await self._evaluate("(a, b) => a === b", other._handle))


class PlaywrightObservation(IMutationObservation):
    """Handle for one page-side MutationObserver."""

    def __init__(self, document: "PlaywrightDocument", observation_id: str):
        self._document = document
        self.id = observation_id
        self.disconnected = False

    def disconnect(self) -> None:
        if self.disconnected:
            return
        self.disconnected = True
        self._document._detach(self.id)


class PlaywrightDocument(IDocument):
    """
    Playwright implementation of IDocument.

    Example:
        >>> document = PlaywrightDocument(page)
        >>> validator = TourElementValidator(document)
    """

    def __init__(self, page: Any):
        self._page = page
        self._listeners: Dict[str, MutationCallback] = {}
        self._counter = itertools.count(1)
        self._binding_ready = False
        self._binding_lock = asyncio.Lock()
        self._background: Set[asyncio.Task] = set()

    @property
    def page(self) -> Any:
        return self._page

    @property
    def is_closed(self) -> bool:
        try:
            return self._page.is_closed()
        except Exception:
            return True

    async def _evaluate_handle(self, script: str, arg: Any = None, selector: Optional[str] = None) -> Any:
        try:
            return await self._page.evaluate_handle(script, arg)
        except Exception as e:
            raise _translate(e, selector) from e

    async def _evaluate(self, script: str, arg: Any = None) -> Any:
        try:
            return await self._page.evaluate(script, arg)
        except Exception as e:
            raise _translate(e) from e

    async def query_selector(self, selector: str) -> Optional[IElement]:
        handle = await self._evaluate_handle("s => document.querySelector(s)", selector, selector)
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            return None
        return PlaywrightNode(element)

    async def query_selector_all(self, selector: str) -> List[IElement]:
        handle = await self._evaluate_handle(
            "s => Array.from(document.querySelectorAll(s))", selector, selector
        )
        try:
            return await _elements_from_array(handle)
        except Exception as e:
            raise _translate(e, selector) from e

    async def supports_selector(self, selector: str) -> bool:
        try:
            return bool(await self._page.evaluate(
                "s => { try { document.createDocumentFragment().querySelector(s); return true; }"
                " catch (e) { return false; } }",
                selector,
            ))
        except Exception as e:
            logger.debug(f"Selector probe failed for {selector!r}: {e}")
            return False

    async def viewport_size(self) -> Dict[str, float]:
        return await self._evaluate(
            "() => ({width: window.innerWidth || document.documentElement.clientWidth || 0,"
            " height: window.innerHeight || document.documentElement.clientHeight || 0})"
        )

    async def scroll_offset(self) -> Dict[str, float]:
        return await self._evaluate("() => ({x: window.scrollX || 0, y: window.scrollY || 0})")

    async def element_at_point(self, x: float, y: float) -> Optional[IElement]:
        handle = await self._evaluate_handle("([x, y]) => document.elementFromPoint(x, y)", [x, y])
        element = handle.as_element()
        if element is None:
            await handle.dispose()
            return None
        return PlaywrightNode(element)

    async def ready_state(self) -> str:
        return await self._evaluate("() => document.readyState")

    def _on_mutation(self, observation_id: str) -> None:
        callback = self._listeners.get(observation_id)
        if callback is None:
            return
        try:
            callback()
        except Exception as e:
            logger.warning(f"Mutation callback for {observation_id} failed: {e}")

    async def _ensure_binding(self) -> None:
        async with self._binding_lock:
            if self._binding_ready:
                return
            try:
                await self._page.expose_function(BINDING_NAME, self._on_mutation)
            except Exception as e:
                raise ObservationError(f"Failed to expose mutation binding: {e}") from e
            self._binding_ready = True

    async def observe_mutations(self, callback: MutationCallback) -> IMutationObservation:
        await self._ensure_binding()
        observation_id = f"obs-{next(self._counter)}"
        self._listeners[observation_id] = callback
        try:
            await self._page.evaluate(OBSERVE_JS, [BINDING_NAME, observation_id])
        except Exception as e:
            self._listeners.pop(observation_id, None)
            raise ObservationError(f"Failed to start mutation observer: {e}", observation_id) from e
        logger.debug(f"Started page mutation observer {observation_id}")
        return PlaywrightObservation(self, observation_id)

    def _detach(self, observation_id: str) -> None:
        # The Python listener goes away now; the page-side observer follows
        self._listeners.pop(observation_id, None)
        if self.is_closed:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop to disconnect page observer {observation_id}")
            return
        task = loop.create_task(self._page.evaluate(DISCONNECT_JS, observation_id))
        self._background.add(task)
        task.add_done_callback(self._finish_detach)

    def _finish_detach(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug(f"Page observer disconnect failed: {error}")
