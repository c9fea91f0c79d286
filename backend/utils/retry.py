"""
Async retry decorator with exponential backoff
"""

import asyncio
import functools
import logging
import random
from typing import Callable, Optional, Tuple, Type

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 8.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
):
    """
    Retry an async callable on failure with exponential backoff and jitter.

    Args:
        max_retries: Retries after the first attempt (0 disables retrying)
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap for a single delay, in seconds
        retry_on: Exception types that are candidates for a retry
        should_retry: Optional predicate; returning False re-raises immediately

    Cancellation (e.g. from asyncio.wait_for) is never retried.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    if attempt >= max_retries or (should_retry is not None and not should_retry(e)):
                        raise
                    delay = min(max_delay, base_delay * (2 ** attempt))
                    delay *= 0.5 + random.random() / 2
                    attempt += 1
                    logger.warning(
                        f"{func.__qualname__} failed ({e}); retry {attempt}/{max_retries} in {delay:.2f}s"
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator
