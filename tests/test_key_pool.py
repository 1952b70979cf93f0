#!/usr/bin/env python3
"""
Tests for APIKeyPool rotation, health transitions and admin rules.
"""

import unittest

from alpha_revenue.api.key_pool import APIKeyPool
from alpha_revenue.data.credential_repository import InMemoryCredentialStore
from alpha_revenue.errors import ConfigurationError, CredentialRejected
from alpha_revenue.models import Credential
from revenue_fakes import make_credentials


class TestRotation(unittest.TestCase):
    def test_k_healthy_keys_used_once_each(self):
        pool = APIKeyPool(make_credentials(4))
        used = [pool.next().key for _ in range(4)]
        self.assertEqual(sorted(used), ['key-1', 'key-2', 'key-3', 'key-4'])
        # Next cycle starts over in the same order
        self.assertEqual([pool.next().key for _ in range(4)], used)

    def test_unhealthy_key_is_skipped(self):
        pool = APIKeyPool(make_credentials(3))
        bad = pool.credentials()[1]
        for _ in range(3):
            pool.record_failure(bad)
        used = {pool.next().key for _ in range(6)}
        self.assertNotIn('key-2', used)
        self.assertEqual(used, {'key-1', 'key-3'})

    def test_all_unhealthy_falls_back_to_first_active(self):
        creds = make_credentials(3)
        creds[0].active = False
        pool = APIKeyPool(creds)
        for cred in pool.credentials():
            for _ in range(3):
                pool.record_failure(cred)
        self.assertEqual(pool.healthy_active_count(), 0)
        self.assertEqual({pool.next().key for _ in range(5)}, {'key-2'})

    def test_inactive_and_blank_keys_never_rotate(self):
        creds = make_credentials(3)
        creds[2].active = False
        creds.append(Credential(key='   ', name='blank'))
        pool = APIKeyPool(creds)
        self.assertEqual({pool.next().key for _ in range(6)}, {'key-1', 'key-2'})

    def test_no_active_keys_is_configuration_error(self):
        creds = make_credentials(2)
        for c in creds:
            c.active = False
        with self.assertRaises(ConfigurationError):
            APIKeyPool(creds, network_id='bsc')
        with self.assertRaises(ConfigurationError):
            APIKeyPool([], network_id='bsc')


class TestHealth(unittest.TestCase):
    def setUp(self):
        self.pool = APIKeyPool(make_credentials(2))
        self.cred = self.pool.credentials()[0]

    def test_three_failures_demote_then_one_success_restores(self):
        self.assertFalse(self.pool.record_failure(self.cred))
        self.assertFalse(self.pool.record_failure(self.cred))
        self.assertTrue(self.pool.health_of(self.cred.key).healthy)
        self.assertTrue(self.pool.record_failure(self.cred))
        health = self.pool.health_of(self.cred.key)
        self.assertFalse(health.healthy)
        self.assertEqual(health.error_count, 3)

        self.pool.record_success(self.cred, 0.2)
        health = self.pool.health_of(self.cred.key)
        self.assertTrue(health.healthy)
        self.assertEqual(health.error_count, 2)

    def test_success_floors_error_count_and_smooths_latency(self):
        self.pool.record_success(self.cred, 0.4)
        self.pool.record_success(self.cred, 0.2)
        health = self.pool.health_of(self.cred.key)
        self.assertEqual(health.error_count, 0)
        self.assertAlmostEqual(health.avg_response_time, 0.3)

    def test_stats(self):
        self.pool.record_failure(self.cred)
        stats = self.pool.stats()
        self.assertEqual(stats['total_keys'], 2)
        self.assertEqual(stats['active_keys'], 2)
        self.assertEqual(stats['healthy_keys'], 2)
        self.assertEqual(stats['keys'][0]['error_count'], 1)
        self.assertTrue(stats['keys'][0]['protected'])


class TestAdmin(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryCredentialStore()
        self.counts = []
        self.pool = APIKeyPool(make_credentials(2), network_id='bsc', service='explorer',
                               store=self.store, on_active_change=self.counts.append)

    def test_add_assigns_next_priority_and_persists(self):
        cred = self.pool.add('key-new', name='mine')
        self.assertEqual(cred.priority, 3)
        self.assertFalse(cred.protected)
        self.assertEqual(cred.comment, 'user added')
        self.assertEqual([c.key for c in self.store.list_credentials('bsc', 'explorer')], ['key-new'])
        self.assertEqual(self.counts[-1], 3)
        self.assertTrue(self.pool.health_of('key-new').healthy)

    def test_add_duplicate_rejected(self):
        with self.assertRaises(CredentialRejected):
            self.pool.add('key-1')
        self.assertEqual(len(self.pool.credentials()), 2)

    def test_remove_protected_rejected(self):
        with self.assertRaises(CredentialRejected):
            self.pool.remove('key-1')
        self.assertEqual([c.key for c in self.pool.credentials()], ['key-1', 'key-2'])

    def test_remove_user_key_reindexes_health(self):
        self.pool.add('key-3')
        self.pool.record_failure(self.pool.credentials()[2])
        self.pool.remove('key-2')
        self.assertEqual([c.key for c in self.pool.credentials()], ['key-1', 'key-3'])
        health = self.pool.health_of('key-3')
        self.assertEqual(health.key_index, 1)
        self.assertEqual(health.error_count, 1)

    def test_remove_last_credential_rejected(self):
        pool = APIKeyPool([Credential(key='only', name='only')])
        with self.assertRaises(CredentialRejected):
            pool.remove('only')
        self.assertEqual(len(pool.credentials()), 1)

    def test_remove_last_active_rejected(self):
        pool = APIKeyPool([Credential(key='a', name='a'), Credential(key='b', name='b', active=False)])
        with self.assertRaises(CredentialRejected):
            pool.remove('a')
        pool.remove('b')
        self.assertEqual([c.key for c in pool.credentials()], ['a'])

    def test_toggle_rules(self):
        with self.assertRaises(CredentialRejected):
            self.pool.toggle('key-1')
        self.assertFalse(self.pool.toggle('key-2'))
        self.assertEqual(self.pool.active_count(), 1)
        self.assertTrue(self.pool.toggle('key-2'))
        self.assertEqual(self.counts[-2:], [1, 2])

    def test_toggle_last_active_rejected(self):
        pool = APIKeyPool([Credential(key='a', name='a'), Credential(key='b', name='b', active=False)])
        with self.assertRaises(CredentialRejected):
            pool.toggle('a')
        self.assertEqual(pool.active_count(), 1)

    def test_toggle_is_written_to_store(self):
        self.pool.add('key-stored')
        self.assertFalse(self.pool.toggle('key-stored'))
        reloaded = APIKeyPool(make_credentials(2), network_id='bsc', service='explorer', store=self.store)
        stored = [c for c in reloaded.credentials() if c.key == 'key-stored']
        self.assertEqual(len(stored), 1)
        self.assertFalse(stored[0].active)

    def test_toggle_of_config_key_not_stored(self):
        self.pool.toggle('key-2')
        self.assertEqual(self.store.list_credentials('bsc', 'explorer'), [])

    def test_stored_credentials_merged_at_startup(self):
        self.pool.add('key-stored')
        reloaded = APIKeyPool(make_credentials(2), network_id='bsc', service='explorer', store=self.store)
        self.assertEqual([c.key for c in reloaded.credentials()], ['key-1', 'key-2', 'key-stored'])

    def test_subscribe_reports_current_count(self):
        seen = []
        self.pool.subscribe(seen.append)
        self.assertEqual(seen, [2])


if __name__ == '__main__':
    unittest.main()
