"""
Interfaces module - Abstract base classes for the DOM port.

This module defines the contracts that DOM adapters (Playwright, test
doubles) must implement to be driven by the resolution engine.
"""

from tour_anchor.interfaces.dom import (
    IDocument,
    IElement,
    IMutationObservation,
    MutationCallback,
    looks_like_document,
    looks_like_element,
)

__all__ = [
    "IDocument",
    "IElement",
    "IMutationObservation",
    "MutationCallback",
    "looks_like_document",
    "looks_like_element",
]
