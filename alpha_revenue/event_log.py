#!/usr/bin/env python3
"""
Event Log
Category-tagged, fire-and-forget events and session markers on top of `logging`.
"""

import logging
import threading
import time
import uuid
from typing import Dict, Optional

logger = logging.getLogger('alpha_revenue.events')

CATEGORIES = ('api', 'block-range', 'transfers', 'price', 'revenue', 'credentials', 'general')


class EventLog:
    """Receives events from the orchestrator and API layer; returns nothing useful to callers"""

    def __init__(self, log: logging.Logger = None):
        self.log = log or logger
        self._sessions: Dict[str, float] = {}
        self._lock = threading.Lock()

    def event(self, category: str, message: str, level: int = logging.INFO, **fields):
        if category not in CATEGORIES:
            category = 'general'
        extra = ' '.join(f"{k}={v}" for k, v in fields.items())
        self.log.log(level, "[%s] %s%s", category, message, f" | {extra}" if extra else '')

    def warning(self, category: str, message: str, **fields):
        self.event(category, message, level=logging.WARNING, **fields)

    def error(self, category: str, message: str, **fields):
        self.event(category, message, level=logging.ERROR, **fields)

    def start_session(self, label: str, **fields) -> str:
        session_id = uuid.uuid4().hex[:12]
        with self._lock:
            self._sessions[session_id] = time.monotonic()
        self.event('general', f"session start: {label}", session=session_id, **fields)
        return session_id

    def end_session(self, session_id: str, **summary) -> Optional[float]:
        with self._lock:
            started = self._sessions.pop(session_id, None)
        elapsed = None if started is None else round(time.monotonic() - started, 3)
        self.event('general', "session end", session=session_id, elapsed_sec=elapsed, **summary)
        return elapsed

    def active_sessions(self) -> int:
        with self._lock:
            return len(self._sessions)
