#!/usr/bin/env python3
"""
Tests for the network configuration adapters (schema versions 1 and 2).
"""

import json
import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from alpha_revenue.data.network_config import (load_network_configs, parse_alpha_start,
                                               parse_network_document)
from alpha_revenue.errors import ConfigurationError
from alpha_revenue.models import TradingPair

V1_DOC = {
    'schema_version': 1,
    'defaultNetwork': 'bsc',
    'networks': {
        'bsc': {
            'name': 'BSC',
            'chainId': 56,
            'tokens': [
                {'symbol': 'USDT', 'address': '0x55D398326F99059FF775485246999027B3197955', 'decimals': 18,
                 'aliases': ['BSC-USD'], 'isStableCoin': True, 'basePrice': 1},
                {'symbol': 'KOGE', 'address': '0xe6df05ce8c8301223373cf5b969afcb1498c5528', 'decimals': 18},
                {'symbol': 'BNB', 'address': 'native', 'decimals': 18},
            ],
            'pairs': [{'from': 'USDT', 'to': 'KOGE'}, {'from': 'KOGE', 'to': 'USDT'}],
            'rules': {'bscVolumeMultiplier': 2},
            'api': {'baseUrl': 'https://api.bscscan.com/api', 'nativePriceAction': 'bnbprice',
                    'keys': [{'key': 'AAA', 'name': 'Primary', 'active': True},
                             {'key': 'BBB', 'name': 'Backup', 'active': False},
                             {'key': '', 'name': 'blank'}]},
        }
    },
}

V2_DOC = {
    'schema_version': 2,
    'primaryNetwork': 'bsc',
    'networks': {
        'bsc': {
            'name': 'BNB Smart Chain',
            'chainId': 56,
            'nativeToken': {'symbol': 'BNB', 'address': '0xbb4cdb9cbd36b01bd1cbaebf2de08d9173bc095c'},
            'pairs': {'baseToken': 'USDT', 'targetTokens': ['ZKJ', 'KOGE']},
            'tokens': {
                'USDT': {'address': '0x55d398326f99059ff775485246999027b3197955'},
                'ZKJ': {'address': '0xc71b5f631354be6853efe9c3ab6b9590f8302e81', 'alphaStartDate': '2025-06-10'},
                'KOGE': {'address': '0xe6df05ce8c8301223373cf5b969afcb1498c5528'},
            },
            'rules': {'volumeMultiplier': 2, 'alphaWindowDays': 30, 'alphaBonusMultiplier': 2},
            'api': {'kind': 'indexer', 'baseUrl': 'https://deep-index.moralis.io/api/v2.2', 'keys': []},
        },
        'base': {
            'chainId': 8453,
            'nativeToken': {'symbol': 'ETH', 'address': '0x4200000000000000000000000000000000000006'},
            'pairs': {'baseToken': 'USDC', 'targetTokens': ['AERO']},
            'tokens': {
                'USDC': {'address': '0x833589fcd6edb6e08f4c7c32d4f71b54bda02913', 'decimals': 6},
                'AERO': {'address': '0x940181a94a35a4569e4529a3cdfb74e38fd98631'},
            },
            'api': {'baseUrl': 'https://deep-index.moralis.io/api/v2.2'},
        },
    },
}


class TestSchemaV1(unittest.TestCase):
    def setUp(self):
        self.net = parse_network_document(V1_DOC).get()

    def test_tokens_pairs_and_aliases(self):
        self.assertEqual(self.net.network_id, 'bsc')
        self.assertEqual(self.net.chain_id_hex, '0x38')
        self.assertEqual(self.net.pairs, [TradingPair('USDT', 'KOGE'), TradingPair('KOGE', 'USDT')])
        self.assertEqual(self.net.stablecoins, frozenset({'USDT'}))
        self.assertEqual(self.net.tokens['USDT'].address, '0x55d398326f99059ff775485246999027b3197955')
        self.assertEqual(self.net.normalize_symbol('bsc-usd'), 'USDT')
        self.assertEqual(self.net.native_token.symbol, 'BNB')
        self.assertTrue(self.net.native_token.is_native)

    def test_rules_and_api(self):
        self.assertEqual(self.net.rules.base_multiplier, Decimal(2))
        self.assertEqual(self.net.api.kind, 'explorer')
        self.assertEqual(self.net.api.native_price_action, 'bnbprice')
        keys = [(c.key, c.active, c.protected) for c in self.net.api.credentials]
        self.assertEqual(keys, [('AAA', True, True), ('BBB', False, True)])

    def test_environment_keys_are_appended_and_protected(self):
        net = parse_network_document(V1_DOC, env_keys=lambda nid: ['AAA', 'ENV1']).get('bsc')
        self.assertEqual([c.key for c in net.api.credentials], ['AAA', 'BBB', 'ENV1'])
        self.assertTrue(net.api.credentials[-1].is_default)


class TestSchemaV2(unittest.TestCase):
    def setUp(self):
        self.networks = parse_network_document(V2_DOC)

    def test_pairs_expand_buy_then_sell_per_target(self):
        net = self.networks.get('bsc')
        self.assertEqual(net.pairs, [
            TradingPair('USDT', 'ZKJ'), TradingPair('ZKJ', 'USDT'),
            TradingPair('USDT', 'KOGE'), TradingPair('KOGE', 'USDT'),
        ])
        self.assertIn('USDT', net.stablecoins)
        self.assertTrue(net.primary)
        self.assertEqual(net.api.kind, 'indexer')

    def test_alpha_start_parsed(self):
        zkj = self.networks.get('bsc').tokens['ZKJ']
        self.assertEqual(zkj.alpha_start, datetime(2025, 6, 10, 0, tzinfo=timezone.utc))

    def test_chain_multiplier_is_the_base_multiplier(self):
        rules = self.networks.get('bsc').rules
        self.assertEqual((rules.base_multiplier, rules.alpha_bonus_multiplier, rules.alpha_window_days),
                         (Decimal(2), Decimal(2), 30))
        doc = json.loads(json.dumps(V2_DOC))
        doc['networks']['bsc']['rules']['baseMultiplier'] = 1
        self.assertEqual(parse_network_document(doc).get('bsc').rules.base_multiplier, Decimal(1))

    def test_default_network_is_first(self):
        self.assertEqual(self.networks.default_id, 'bsc')
        self.assertEqual(self.networks.get('base').tokens['USDC'].decimals, 6)
        self.assertFalse(self.networks.get('base').primary)

    def test_unknown_network(self):
        with self.assertRaises(ConfigurationError):
            self.networks.get('solana')


class TestValidation(unittest.TestCase):
    def test_missing_discriminant(self):
        doc = dict(V2_DOC)
        del doc['schema_version']
        with self.assertRaises(ConfigurationError):
            parse_network_document(doc)

    def test_pair_token_without_address(self):
        doc = json.loads(json.dumps(V2_DOC))
        del doc['networks']['bsc']['tokens']['KOGE']
        with self.assertRaises(ConfigurationError):
            parse_network_document(doc)

    def test_no_pairs(self):
        doc = json.loads(json.dumps(V1_DOC))
        doc['networks']['bsc']['pairs'] = []
        with self.assertRaises(ConfigurationError):
            parse_network_document(doc)

    def test_load_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, 'networks.json')
            with open(path, 'w') as fh:
                json.dump(V1_DOC, fh)
            self.assertEqual(load_network_configs(path).get().name, 'BSC')
            with self.assertRaises(ConfigurationError):
                load_network_configs(os.path.join(tmp, 'missing.json'))


class TestAlphaStart(unittest.TestCase):
    def test_formats(self):
        utc8 = timezone(timedelta(hours=8))
        self.assertEqual(parse_alpha_start('2025-06-10'), datetime(2025, 6, 10, 8, tzinfo=utc8))
        self.assertEqual(parse_alpha_start('2025-06-10T12:00:00'), datetime(2025, 6, 10, 12, tzinfo=utc8))
        self.assertEqual(parse_alpha_start('2025-06-10T12:00:00Z'), datetime(2025, 6, 10, 12, tzinfo=timezone.utc))
        self.assertIsNone(parse_alpha_start(None))
        with self.assertRaises(ConfigurationError):
            parse_alpha_start('June 10th')


if __name__ == '__main__':
    unittest.main()
