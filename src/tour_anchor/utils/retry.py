"""
Retry utilities for element lookups and page operations.

Two flavours are provided: ``retry_async`` retries on exceptions (used around
navigation), while ``retry_until`` keeps going until the result is truthy
(used for element searches, which report misses as results, not errors).
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.
    
    Attributes:
        max_attempts: Maximum number of attempts
        initial_delay_ms: Delay before the first retry
        max_delay_ms: Maximum delay between retries
        backoff_multiplier: Multiplier applied to the delay after each retry
        retry_on: Exception types to retry on
        on_retry: Callback called with (attempt, reason) before each retry
    """
    max_attempts: int = 3
    initial_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 1.0
    retry_on: Tuple[Type[Exception], ...] = (Exception,)
    on_retry: Optional[Callable[[int, Any], None]] = None

    def next_delay(self, delay_ms: float) -> float:
        return min(delay_ms * self.backoff_multiplier, self.max_delay_ms)


async def retry_async(
    func: Callable[..., Awaitable[T]],
    config: RetryConfig,
    *args: Any,
    **kwargs: Any,
) -> T:
    """
    Await ``func(*args, **kwargs)`` until it stops raising.

    Only exceptions in ``config.retry_on`` are retried; anything else
    propagates at once.

    Raises:
        The last exception once every attempt has failed
    """
    last_exception: Optional[Exception] = None
    delay_ms: float = config.initial_delay_ms
    
    for attempt in range(max(1, config.max_attempts)):
        try:
            return await func(*args, **kwargs)
        except config.retry_on as e:
            last_exception = e
            
            if attempt == config.max_attempts - 1:
                break
            
            logger.warning(
                f"Attempt {attempt + 1}/{config.max_attempts} failed: {e}. "
                f"Retrying in {delay_ms:.0f}ms..."
            )
            
            if config.on_retry:
                config.on_retry(attempt + 1, e)
            
            await asyncio.sleep(delay_ms / 1000)
            delay_ms = config.next_delay(delay_ms)
    
    raise last_exception  # type: ignore


async def retry_until(
    func: Callable[..., Awaitable[T]],
    config: RetryConfig,
    *args: Any,
    is_done: Callable[[T], bool] = bool,
    **kwargs: Any,
) -> Tuple[Optional[T], int]:
    """
    Call ``func`` until ``is_done(result)`` holds or attempts run out.

    Exceptions matching ``config.retry_on`` count as a failed attempt and are
    logged; the last result (or None when every attempt raised) is returned
    together with the number of attempts made.
    """
    result: Optional[T] = None
    delay_ms: float = config.initial_delay_ms
    attempts = max(1, config.max_attempts)

    for attempt in range(attempts):
        reason: Any = None
        try:
            result = await func(*args, **kwargs)
            if is_done(result):
                return result, attempt + 1
            reason = result
        except config.retry_on as e:
            logger.warning(f"Attempt {attempt + 1}/{attempts} raised: {e}")
            reason = e

        if attempt == attempts - 1:
            break

        logger.debug(f"Attempt {attempt + 1}/{attempts} unsuccessful, retrying in {delay_ms:.0f}ms")
        if config.on_retry:
            config.on_retry(attempt + 1, reason)
        await asyncio.sleep(delay_ms / 1000)
        delay_ms = config.next_delay(delay_ms)

    return result, attempts
