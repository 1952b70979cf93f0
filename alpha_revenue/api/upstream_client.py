#!/usr/bin/env python3
"""
Upstream Client
HTTP calls through the shared rate limiter, rotating credentials from the key pool.
Every attempt updates the credential's health; transient failures are retried.
"""

from __future__ import annotations
import logging
import time
from typing import Callable, Dict, Optional

import requests

from ..errors import (DataShapeError, TransientNetworkError, UpstreamResponseError,
                      UpstreamUnhealthy)
from ..retry import LinearBackoff, retry_call
from .key_pool import APIKeyPool
from .rate_limiter import KeyedRateLimiter

logger = logging.getLogger(__name__)

# Statuses that say nothing about the request itself; another key may succeed
RETRYABLE_STATUS = {401, 403, 408, 425, 429, 500, 502, 503, 504}


class UpstreamClient:
    def __init__(self, pool: APIKeyPool, limiter: KeyedRateLimiter, timeout: float = 30.0,
                 max_attempts: int = 3, backoff: LinearBackoff = None,
                 sleep: Callable[[float], None] = time.sleep,
                 auth_param: Optional[str] = 'apikey', auth_header: Optional[str] = None,
                 events=None):
        self.pool = pool
        self.limiter = limiter
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.backoff = backoff or LinearBackoff(1.0)
        self.sleep = sleep
        self.auth_param = auth_param
        self.auth_header = auth_header
        self.events = events

    def get_json(self, url: str, params: Dict = None, check: Callable = None):
        return self._request('GET', url, params=params, body=None, check=check)

    def post_json(self, url: str, params: Dict = None, body=None, check: Callable = None):
        return self._request('POST', url, params=params, body=body, check=check)

    def _request(self, method: str, url: str, params: Optional[Dict], body, check: Optional[Callable]):
        def attempt():
            cred = self.pool.next()
            query = dict(params or {})
            headers = {'Accept': 'application/json'}
            if self.auth_header:
                headers[self.auth_header] = cred.key
            elif self.auth_param:
                query[self.auth_param] = cred.key

            started = time.monotonic()
            try:
                if method == 'POST':
                    resp = self.limiter.execute(lambda: requests.post(url, params=query, json=body,
                                                                      headers=headers, timeout=self.timeout))
                else:
                    resp = self.limiter.execute(lambda: requests.get(url, params=query, headers=headers,
                                                                     timeout=self.timeout))
            except requests.Timeout as e:
                self._failed(cred)
                raise TransientNetworkError(f"timeout after {self.timeout}s: {url}") from e
            except requests.RequestException as e:
                self._failed(cred)
                raise TransientNetworkError(f"connection error: {e}") from e
            elapsed = time.monotonic() - started

            if resp.status_code in RETRYABLE_STATUS:
                self._failed(cred)
                raise TransientNetworkError(f"HTTP {resp.status_code} from {url}")
            if resp.status_code >= 400:
                # The key worked; the request itself was rejected.
                self.pool.record_success(cred, elapsed)
                raise UpstreamResponseError(f"HTTP {resp.status_code} from {url}: {resp.text[:200]}",
                                            status_code=resp.status_code)
            try:
                data = resp.json()
            except ValueError as e:
                self._failed(cred)
                raise DataShapeError(f"non-JSON response from {url}") from e

            if check is not None:
                try:
                    check(data)
                except (TransientNetworkError, DataShapeError):
                    self._failed(cred)
                    raise

            self.pool.record_success(cred, elapsed)
            return data

        return retry_call(attempt, attempts=self.max_attempts, backoff=self.backoff,
                          sleep=self.sleep, label=f"{method} {url}")

    def _failed(self, cred):
        if self.pool.record_failure(cred):
            health = self.pool.health_of(cred.key)
            err = UpstreamUnhealthy(cred.name, health.error_count if health else 0)
            if self.events:
                self.events.warning('api', str(err), network=self.pool.network_id)
            else:
                logger.warning(str(err))
