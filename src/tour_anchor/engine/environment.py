"""
Environment Detector - Decide whether DOM work is possible at all.

Every DOM-touching component asks the detector first and degrades to a
not-found result or a no-op cleanup when it answers no.
"""

import asyncio
import os
import sys
from enum import Enum
from typing import Any, Optional
import logging

from tour_anchor.interfaces.dom import IDocument, looks_like_document

logger = logging.getLogger(__name__)


class TimerFlavor(Enum):
    """Timer semantics available to the engine."""
    EVENT_LOOP = "event_loop"
    NONE = "none"


_TRUTHY = {"1", "true", "yes", "on"}


class EnvironmentDetector:
    """
    Answers capability questions about the current execution context.

    None of the methods raise; missing indicators produce a conservative
    answer.

    Example:
        >>> detector = EnvironmentDetector(document)
        >>> if not detector.is_browser_like():
        ...     return []
    """

    def __init__(self, document: Any = None, headless_hint: Optional[bool] = None):
        """
        Args:
            document: The document the engine will inspect, if any
            headless_hint: Explicit headless flag from browser settings
        """
        self._document = document
        self._headless_hint = headless_hint

    @property
    def document(self) -> Optional[IDocument]:
        return looks_like_document(self._document)

    def is_browser_like(self) -> bool:
        """Check whether a live, queryable document is attached."""
        try:
            return self.document is not None
        except Exception as e:
            logger.warning(f"Environment check failed: {e}")
            return False

    def is_headless_like(self) -> bool:
        """
        Guess whether the page renders without a visible display.

        Consults the explicit hint, then CI/HEADLESS environment variables,
        then (on Linux) whether any display server is advertised.
        """
        if self._headless_hint is not None:
            return bool(self._headless_hint)
        try:
            for name in ("HEADLESS", "CI"):
                if os.environ.get(name, "").strip().lower() in _TRUTHY:
                    return True
            if sys.platform.startswith("linux"):
                return not (os.environ.get("DISPLAY") or os.environ.get("WAYLAND_DISPLAY"))
        except Exception as e:
            logger.warning(f"Headless detection failed: {e}")
        return False

    def timer_flavor(self) -> TimerFlavor:
        """Report which timers can be scheduled from the current context."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return TimerFlavor.NONE
        return TimerFlavor.EVENT_LOOP
