#!/usr/bin/env python3
"""
Keyed Rate Limiter
Single FIFO queue that spaces the *start* of upstream calls by min_interval.

min_interval = max(base_interval, 1s / active_key_count), recomputed whenever the
key pool reports a new active count. Only dispatch is serialized: once a call has
started, the next queued call may start min_interval later even if the first has
not returned yet, so any number of responses can be in flight.
"""

from __future__ import annotations
import threading
import time
from collections import deque
from typing import Callable, Dict, List, Optional, TypeVar

T = TypeVar('T')


class KeyedRateLimiter:
    def __init__(self, base_interval_ms: int = 200, active_keys: int = 1,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        self.base_interval = max(0, base_interval_ms) / 1000.0
        self.clock = clock
        self.sleep = sleep
        self._cond = threading.Condition()
        self._active_keys = max(1, active_keys)
        self._next_ticket = 0
        self._serving = 0
        self._last_dispatch: Optional[float] = None
        self._request_count = 0
        self._dispatch_times = deque(maxlen=1000)

    @property
    def min_interval(self) -> float:
        """Seconds between two dispatch starts"""
        with self._cond:
            return self._min_interval_locked()

    def _min_interval_locked(self) -> float:
        return max(self.base_interval, 1.0 / self._active_keys)

    def set_active_keys(self, count: int):
        with self._cond:
            self._active_keys = max(1, count)

    def execute(self, fn: Callable[[], T]) -> T:
        """Queue fn, wait for its turn, dispatch it and return its result"""
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
            interval = self._min_interval_locked()
            last = self._last_dispatch

        # Only the head of the queue reaches this point.
        try:
            if last is not None:
                wait = interval - (self.clock() - last)
                if wait > 0:
                    self.sleep(wait)
        finally:
            with self._cond:
                now = self.clock()
                self._last_dispatch = now
                self._dispatch_times.append(now)
                self._request_count += 1
                self._serving += 1
                self._cond.notify_all()

        return fn()

    def dispatch_times(self) -> List[float]:
        with self._cond:
            return list(self._dispatch_times)

    def stats(self) -> Dict:
        with self._cond:
            queued = self._next_ticket - self._serving
            return {
                'request_count': self._request_count,
                'queue_length': queued,
                'min_interval_ms': round(self._min_interval_locked() * 1000),
                'active_keys': self._active_keys,
                'is_processing': queued > 0,
            }
