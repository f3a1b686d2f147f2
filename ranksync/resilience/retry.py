"""Retry with backoff.

Provides the delay computation used by reconnect scheduling and a
decorator for retrying failed coroutine calls.
"""

import asyncio
import functools
import logging
import random
from typing import Any, Callable, Optional

from .config import RetryConfig, RetryStrategy

logger = logging.getLogger(__name__)


class MaxRetriesExceeded(Exception):
    """Raised when all retry attempts have been exhausted."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(
            f"Max retries ({attempts}) exceeded. "
            f"Last error: {last_exception}"
        )


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """Compute the delay for the given attempt number.

    Args:
        attempt: Zero-based attempt index (0 = first retry).
        config: Retry configuration.

    Returns:
        Delay in the config's time unit, capped at max_delay.
    """
    if config.strategy == RetryStrategy.EXPONENTIAL:
        delay = config.base_delay * (2 ** attempt)
    elif config.strategy == RetryStrategy.LINEAR:
        delay = config.base_delay * (attempt + 1)
    else:  # CONSTANT
        delay = config.base_delay

    if config.jitter_max > 0:
        delay += random.uniform(0, config.jitter_max)

    return min(delay, config.max_delay)


def retry(config: Optional[RetryConfig] = None) -> Callable:
    """Decorator that retries a coroutine function on failure with backoff.

    Only exceptions listed in ``config.retryable_exceptions`` are retried;
    anything else propagates immediately. Delays are in seconds.

    Usage:
        @retry(RetryConfig(max_retries=2, retryable_exceptions=(TransientFetchError,)))
        async def fetch():
            ...
    """
    cfg = config or RetryConfig()

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            last_exc: Optional[Exception] = None
            for attempt in range(cfg.max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except cfg.retryable_exceptions as exc:
                    last_exc = exc
                    if attempt < cfg.max_retries:
                        delay = compute_delay(attempt, cfg)
                        logger.warning(
                            "Retry %d/%d for %s after %.2fs: %s",
                            attempt + 1,
                            cfg.max_retries,
                            func.__name__,
                            delay,
                            exc,
                        )
                        await asyncio.sleep(delay)
                    else:
                        logger.error(
                            "All %d retries exhausted for %s: %s",
                            cfg.max_retries,
                            func.__name__,
                            exc,
                        )
            raise MaxRetriesExceeded(cfg.max_retries, last_exc)  # type: ignore[arg-type]

        async_wrapper._retry_config = cfg  # type: ignore[attr-defined]
        return async_wrapper

    return decorator
