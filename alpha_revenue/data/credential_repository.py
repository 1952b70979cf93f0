#!/usr/bin/env python3
"""
Credential Repository
Storage for user-added API keys. Config and environment keys are never stored here.
"""

from __future__ import annotations
import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from ..models import Credential

logger = logging.getLogger(__name__)


class InMemoryCredentialStore:
    """Process-local store; used when Supabase is not configured and in tests"""

    def __init__(self):
        self._rows: Dict[Tuple[str, str], List[Credential]] = {}
        self._lock = threading.Lock()

    def list_credentials(self, network_id: str, service: str) -> List[Credential]:
        with self._lock:
            return [replace(c) for c in self._rows.get((network_id, service), [])]

    def add_credential(self, network_id: str, service: str, credential: Credential):
        with self._lock:
            rows = self._rows.setdefault((network_id, service), [])
            if any(c.key == credential.key for c in rows):
                return
            rows.append(replace(credential))

    def update_credential(self, network_id: str, service: str, credential: Credential):
        with self._lock:
            rows = self._rows.get((network_id, service), [])
            self._rows[(network_id, service)] = [replace(credential) if c.key == credential.key else c
                                                 for c in rows]

    def remove_credential(self, network_id: str, service: str, key: str):
        with self._lock:
            rows = self._rows.get((network_id, service), [])
            self._rows[(network_id, service)] = [c for c in rows if c.key != key]


class SupabaseCredentialStore:
    """Table-backed store: one row per (network, service, key)"""

    def __init__(self, supabase_client, table: str = 'api_credentials'):
        if not supabase_client:
            raise ValueError("Supabase client not initialized")
        self.client = supabase_client.get_client()
        self.table = table

    def list_credentials(self, network_id: str, service: str) -> List[Credential]:
        result = (self.client.table(self.table).select('*')
                  .eq('network', network_id).eq('service', service)
                  .order('priority').execute())
        return [
            Credential(key=row['key'], name=row.get('name') or 'user key',
                       active=bool(row.get('active', True)), priority=int(row.get('priority') or 1),
                       comment=row.get('comment') or 'user added', is_default=False, protected=False)
            for row in (result.data or [])
        ]

    def add_credential(self, network_id: str, service: str, credential: Credential):
        row = {
            'network': network_id,
            'service': service,
            'key': credential.key,
            'name': credential.name,
            'active': credential.active,
            'priority': credential.priority,
            'comment': credential.comment,
            'created_at': datetime.now(timezone.utc).isoformat(),
        }
        self.client.table(self.table).upsert(row, on_conflict='network,service,key').execute()
        logger.info("Stored credential '%s' for %s/%s", credential.name, network_id, service)

    def update_credential(self, network_id: str, service: str, credential: Credential):
        (self.client.table(self.table).update({'active': credential.active, 'name': credential.name})
         .eq('network', network_id).eq('service', service).eq('key', credential.key).execute())

    def remove_credential(self, network_id: str, service: str, key: str):
        (self.client.table(self.table).delete()
         .eq('network', network_id).eq('service', service).eq('key', key).execute())
        logger.info("Removed stored credential for %s/%s", network_id, service)
