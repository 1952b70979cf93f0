#!/usr/bin/env python3
"""
API Key Pool
Round-robin rotation over active credentials with per-key health tracking.
"""

from __future__ import annotations
import logging
import threading
import time
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from ..errors import ConfigurationError, CredentialRejected
from ..models import Credential, CredentialHealth

logger = logging.getLogger(__name__)

FAILURE_THRESHOLD = 3


class APIKeyPool:
    """Credentials for one network + service.

    Health records live at the same index as their credential. The cursor,
    the credential list and the health list are guarded by one lock.
    """

    def __init__(self, credentials: Iterable[Credential], network_id: str = '',
                 service: str = 'explorer', store=None,
                 on_active_change: Optional[Callable[[int], None]] = None,
                 clock: Callable[[], float] = time.time):
        self.network_id = network_id
        self.service = service
        self.store = store
        self.clock = clock
        self._lock = threading.Lock()
        self._listeners: List[Callable[[int], None]] = []
        if on_active_change:
            self._listeners.append(on_active_change)

        self._credentials: List[Credential] = []
        for cred in credentials:
            if cred.key.strip() and not self._find(cred.key):
                self._credentials.append(cred)
        if store is not None:
            for cred in store.list_credentials(network_id, service):
                if cred.key.strip() and not self._find(cred.key):
                    self._credentials.append(cred)

        self._health: List[CredentialHealth] = [CredentialHealth(key_index=i) for i in range(len(self._credentials))]
        self._cursor = 0

        if self.active_count() == 0:
            raise ConfigurationError(f"no active API credentials for {network_id or 'network'}/{service}")

    # ---- rotation -------------------------------------------------------

    def next(self) -> Credential:
        """Next healthy active credential; the first active one if all are unhealthy"""
        with self._lock:
            active = self._active_indexes()
            if not active:
                raise ConfigurationError(f"no active API credentials for {self.network_id}/{self.service}")
            start = self._cursor % len(active)
            self._cursor = (start + 1) % len(active)
            chosen = active[0]
            for offset in range(len(active)):
                idx = active[(start + offset) % len(active)]
                if self._health[idx].healthy:
                    chosen = idx
                    break
            self._health[chosen].last_used = self.clock()
            return self._credentials[chosen]

    def record_success(self, credential: Credential, response_time: float = 0.0):
        with self._lock:
            idx = self._index_of(credential.key)
            if idx is None:
                return
            h = self._health[idx]
            h.error_count = max(0, h.error_count - 1)
            h.avg_response_time = response_time if h.avg_response_time == 0 else (h.avg_response_time + response_time) / 2
            h.healthy = True

    def record_failure(self, credential: Credential) -> bool:
        """Count a failure; True when this failure demoted the credential"""
        with self._lock:
            idx = self._index_of(credential.key)
            if idx is None:
                return False
            h = self._health[idx]
            was_healthy = h.healthy
            h.error_count += 1
            h.healthy = h.error_count < FAILURE_THRESHOLD
            demoted = was_healthy and not h.healthy
        if demoted:
            logger.warning("%s/%s key '%s' marked unhealthy after %d failures",
                           self.network_id, self.service, credential.name, FAILURE_THRESHOLD)
        return demoted

    # ---- admin ----------------------------------------------------------

    def add(self, key: str, name: str = '', comment: str = 'user added') -> Credential:
        key = (key or '').strip()
        if not key:
            raise CredentialRejected("API key is empty")
        with self._lock:
            if self._find(key):
                raise CredentialRejected("API key already registered")
            priority = max([c.priority for c in self._credentials] + [0]) + 1
            cred = Credential(key=key, name=name or f"Key {len(self._credentials) + 1}",
                              active=True, priority=priority, comment=comment,
                              is_default=False, protected=False)
            if self.store is not None:
                self.store.add_credential(self.network_id, self.service, cred)
            self._credentials.append(cred)
            self._health.append(CredentialHealth(key_index=len(self._credentials) - 1))
        self._notify()
        return cred

    def remove(self, key: str) -> Credential:
        with self._lock:
            idx = self._index_of(key)
            if idx is None:
                raise CredentialRejected("API key not found")
            cred = self._credentials[idx]
            if cred.protected or cred.is_default:
                raise CredentialRejected(f"'{cred.name}' is a protected default key and cannot be removed")
            if len(self._credentials) <= 1:
                raise CredentialRejected("cannot remove the last API key")
            if cred.active and len(self._active_indexes()) <= 1:
                raise CredentialRejected("cannot remove the last active API key")
            if self.store is not None:
                self.store.remove_credential(self.network_id, self.service, cred.key)
            del self._credentials[idx]
            del self._health[idx]
            for i, h in enumerate(self._health):
                h.key_index = i
            self._cursor = 0
        self._notify()
        return cred

    def toggle(self, key: str) -> bool:
        """Flip the active flag; returns the new state"""
        with self._lock:
            idx = self._index_of(key)
            if idx is None:
                raise CredentialRejected("API key not found")
            cred = self._credentials[idx]
            if cred.active:
                if cred.protected or cred.is_default:
                    raise CredentialRejected(f"'{cred.name}' is a protected default key and cannot be disabled")
                if len(self._active_indexes()) <= 1:
                    raise CredentialRejected("at least one API key must stay active")
            cred.active = not cred.active
            new_state = cred.active
            if self.store is not None and not (cred.protected or cred.is_default):
                self.store.update_credential(self.network_id, self.service, cred)
        self._notify()
        return new_state

    def subscribe(self, listener: Callable[[int], None]):
        """Call listener(active_count) now and after every add/remove/toggle"""
        self._listeners.append(listener)
        listener(self.active_count())

    # ---- inspection -----------------------------------------------------

    def credentials(self) -> List[Credential]:
        with self._lock:
            return [replace(c) for c in self._credentials]

    def health_of(self, key: str) -> Optional[CredentialHealth]:
        with self._lock:
            idx = self._index_of(key)
            return None if idx is None else replace(self._health[idx])

    def active_count(self) -> int:
        with self._lock:
            return len(self._active_indexes())

    def healthy_active_count(self) -> int:
        with self._lock:
            return sum(1 for i in self._active_indexes() if self._health[i].healthy)

    def stats(self) -> Dict:
        with self._lock:
            active = self._active_indexes()
            return {
                'network': self.network_id,
                'service': self.service,
                'total_keys': len(self._credentials),
                'active_keys': len(active),
                'healthy_keys': sum(1 for i in active if self._health[i].healthy),
                'keys': [
                    {
                        'name': c.name,
                        'key': c.masked,
                        'active': c.active,
                        'protected': c.protected or c.is_default,
                        'healthy': h.healthy,
                        'error_count': h.error_count,
                        'avg_response_ms': round(h.avg_response_time * 1000),
                    }
                    for c, h in zip(self._credentials, self._health)
                ],
            }

    # ---- internals ------------------------------------------------------

    def _active_indexes(self) -> List[int]:
        return [i for i, c in enumerate(self._credentials) if c.active and c.key.strip()]

    def _index_of(self, key: str) -> Optional[int]:
        for i, c in enumerate(self._credentials):
            if c.key == key:
                return i
        return None

    def _find(self, key: str) -> Optional[Credential]:
        idx = self._index_of(key)
        return None if idx is None else self._credentials[idx]

    def _notify(self):
        count = self.active_count()
        for listener in self._listeners:
            listener(count)
