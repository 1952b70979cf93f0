#!/usr/bin/env python3
"""
Retry/backoff helper with an injectable sleep so timing stays testable.
"""

import logging
import time
from typing import Callable, Optional, Tuple, Type

from .errors import RETRYABLE_ERRORS

logger = logging.getLogger(__name__)


class LinearBackoff:
    """Delay of attempt * step seconds (1s, 2s, 3s ...)"""

    def __init__(self, step: float = 1.0):
        self.step = step

    def delay(self, attempt: int) -> float:
        return attempt * self.step


def retry_call(fn: Callable, attempts: int = 3, backoff: LinearBackoff = None,
               retry_on: Tuple[Type[BaseException], ...] = RETRYABLE_ERRORS,
               sleep: Callable[[float], None] = time.sleep,
               on_retry: Optional[Callable[[int, BaseException], None]] = None,
               label: str = 'call'):
    """Call fn() up to `attempts` times.

    Exceptions in `retry_on` are retried after backoff.delay(attempt); anything
    else propagates immediately. The last retryable error is re-raised once
    attempts are exhausted.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    backoff = backoff or LinearBackoff()
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as e:
            if attempt >= attempts:
                logger.warning("%s failed after %d attempts: %s", label, attempts, e)
                raise
            wait = backoff.delay(attempt)
            logger.debug("%s attempt %d/%d failed (%s); retrying in %.1fs", label, attempt, attempts, e, wait)
            if on_retry:
                on_retry(attempt, e)
            if wait > 0:
                sleep(wait)
