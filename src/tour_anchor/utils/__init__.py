"""
Utilities module - Common utility functions.
"""

from tour_anchor.utils.logging import JsonFormatter, setup_logging
from tour_anchor.utils.retry import RetryConfig, retry_async, retry_until

__all__ = [
    "setup_logging",
    "JsonFormatter",
    "RetryConfig",
    "retry_async",
    "retry_until",
]
