#!/usr/bin/env python3
"""
Block Range Service
Turns a calendar date into the closed block interval covering that trading day.
"""

from __future__ import annotations
import logging
import threading
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from ..models import BlockRange, NetworkConfig
from ..retry import LinearBackoff, retry_call

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400


class TradingDayBoundary:
    """A trading day starts at `start_hour` local time in UTC+`utc_offset_hours`"""

    def __init__(self, utc_offset_hours: int = 0, start_hour: int = 0):
        self.tz = timezone(timedelta(hours=utc_offset_hours))
        self.start_hour = start_hour

    def bounds(self, query_date: str) -> Tuple[int, int]:
        """(start, end) UNIX seconds, both inclusive"""
        day = datetime.strptime(query_date, '%Y-%m-%d').replace(hour=self.start_hour, tzinfo=self.tz)
        start = int(day.timestamp())
        return start, start + DAY_SECONDS - 1

    def __repr__(self):
        return f"TradingDayBoundary({self.start_hour:02d}:00 {self.tz})"


class BlockRangeResolver:
    def __init__(self, sources: Dict[str, object], boundary: TradingDayBoundary = None,
                 attempts: int = 3, backoff: LinearBackoff = None,
                 sleep: Callable[[float], None] = time.sleep,
                 now: Callable[[], float] = time.time, events=None):
        self.sources = sources
        self.boundary = boundary or TradingDayBoundary()
        self.attempts = attempts
        self.backoff = backoff or LinearBackoff(1.0)
        self.sleep = sleep
        self.now = now
        self.events = events
        self._cache: Dict[Tuple[str, str], BlockRange] = {}
        self._lock = threading.Lock()

    def resolve(self, query_date: str, network: NetworkConfig) -> BlockRange:
        key = (query_date, network.network_id)
        with self._lock:
            cached = self._cache.get(key)
        if cached is not None:
            return cached

        source = self.sources[network.network_id]
        start_ts, end_ts = self.boundary.bounds(query_date)
        now = int(self.now())
        is_completed = now > end_ts

        start_block = self._lookup(lambda: source.block_by_timestamp(start_ts, 'after'),
                                   f"{network.network_id} start block")
        if is_completed:
            end_block = self._lookup(lambda: source.block_by_timestamp(end_ts, 'before'),
                                     f"{network.network_id} end block")
        else:
            end_block = self._lookup(source.latest_block, f"{network.network_id} latest block") - 1
            end_ts = now
        if start_block > end_block:
            # Day started moments ago; the first block of the day may not exist yet.
            start_block = end_block

        block_range = BlockRange(network_id=network.network_id, query_date=query_date,
                                 start_block=start_block, end_block=end_block,
                                 start_timestamp=start_ts, end_timestamp=end_ts,
                                 is_completed=is_completed)
        if self.events:
            self.events.event('block-range', f"{network.network_id} {query_date}",
                              start=start_block, end=end_block, completed=is_completed)
        if is_completed:
            with self._lock:
                self._cache[key] = block_range
        return block_range

    def _lookup(self, fn, label: str) -> int:
        return retry_call(fn, attempts=self.attempts, backoff=self.backoff, sleep=self.sleep, label=label)
