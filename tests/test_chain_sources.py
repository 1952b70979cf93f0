#!/usr/bin/env python3
"""
Tests for the explorer (status envelope) and indexer (path-based) adapters.
The upstream client is replaced by a stub returning canned JSON.
"""

import unittest
from decimal import Decimal

from alpha_revenue.api.chain_source import build_source
from alpha_revenue.api.explorer_source import ExplorerSource, check_envelope
from alpha_revenue.api.indexer_source import IndexerSource
from alpha_revenue.errors import ConfigurationError, DataShapeError, TransientNetworkError, UpstreamResponseError
from revenue_fakes import TOKEN_ADDR, WALLET, make_network


class StubClient:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def get_json(self, url, params=None, check=None):
        self.calls.append(('GET', url, params))
        data = self.responses.pop(0)
        if check:
            check(data)
        return data

    def post_json(self, url, params=None, body=None, check=None):
        self.calls.append(('POST', url, params, body))
        return self.responses.pop(0)


def tokentx_row(i, value='1000000000000000000'):
    return {
        'hash': f'0xHASH{i}', 'from': WALLET, 'to': '0x' + 'c' * 40, 'tokenSymbol': 'TOKEN',
        'value': value, 'tokenDecimal': '18', 'blockNumber': str(100 + i), 'timeStamp': str(1700000000 + i),
        'gasUsed': '21000', 'gasPrice': '3000000000', 'contractAddress': TOKEN_ADDR.upper(),
    }


class TestExplorerSource(unittest.TestCase):
    def setUp(self):
        self.network = make_network()

    def test_block_by_timestamp(self):
        client = StubClient({'status': '1', 'message': 'OK', 'result': '38000000'})
        source = ExplorerSource(client, self.network)
        self.assertEqual(source.block_by_timestamp(1700000000, 'after'), 38000000)
        _, url, params = client.calls[0]
        self.assertEqual(url, 'https://api.example/api')
        self.assertEqual(params['action'], 'getblocknobytime')
        self.assertEqual(params['closest'], 'after')

    def test_latest_block_from_proxy_hex(self):
        client = StubClient({'jsonrpc': '2.0', 'id': 83, 'result': '0x10'})
        self.assertEqual(ExplorerSource(client, self.network).latest_block(), 16)

    def test_transfers_parsed(self):
        client = StubClient({'status': '1', 'message': 'OK', 'result': [tokentx_row(1), tokentx_row(2)]})
        page = ExplorerSource(client, self.network).token_transfers(WALLET, TOKEN_ADDR, 1, 200)
        self.assertEqual(len(page.events), 2)
        first = page.events[0]
        self.assertEqual(first.hash, '0xhash1')
        self.assertEqual(first.amount, Decimal(1))
        self.assertEqual(first.gas_used, 21000)
        self.assertEqual(first.contract_address, TOKEN_ADDR)
        self.assertIsNone(page.next_cursor)

    def test_no_transactions_is_empty_not_error(self):
        client = StubClient({'status': '0', 'message': 'No transactions found', 'result': []})
        page = ExplorerSource(client, self.network).token_transfers(WALLET, TOKEN_ADDR, 1, 200)
        self.assertEqual(page.events, [])

    def test_other_failure_raises(self):
        client = StubClient({'status': '0', 'message': 'NOTOK', 'result': 'Error! Invalid address format'})
        with self.assertRaises(UpstreamResponseError):
            ExplorerSource(client, self.network).token_transfers(WALLET, TOKEN_ADDR, 1, 200)

    def test_rate_limit_envelope_is_transient(self):
        with self.assertRaises(TransientNetworkError):
            check_envelope({'status': '0', 'message': 'NOTOK', 'result': 'Max rate limit reached'})
        with self.assertRaises(DataShapeError):
            check_envelope(['not', 'an', 'object'])

    def test_malformed_row_is_data_shape_error(self):
        row = tokentx_row(1)
        del row['value']
        client = StubClient({'status': '1', 'message': 'OK', 'result': [row]})
        with self.assertRaises(DataShapeError):
            ExplorerSource(client, self.network).token_transfers(WALLET, TOKEN_ADDR, 1, 200)

    def test_balances_and_native_price(self):
        client = StubClient(
            {'status': '1', 'message': 'OK', 'result': '2500000000000000000'},
            {'status': '1', 'message': 'OK', 'result': '1500000000000000000000'},
            {'status': '1', 'message': 'OK', 'result': {'ethusd': '612.5', 'ethbtc': '0.01'}},
        )
        source = ExplorerSource(client, self.network)
        self.assertEqual(source.native_balance(WALLET, 100), Decimal('2.5'))
        tokens = [self.network.tokens['TOKEN'], self.network.tokens['BNB']]
        self.assertEqual(source.token_balances(WALLET, tokens, 100), {'TOKEN': Decimal(1500)})
        self.assertEqual(source.native_price(), Decimal('612.5'))
        self.assertEqual(source.token_prices(tokens), {})


class TestIndexerSource(unittest.TestCase):
    def setUp(self):
        self.network = make_network(kind='indexer')
        self.network.native_token = self.network.tokens['USDT']

    def test_date_to_block_respects_closest(self):
        client = StubClient({'block': 500, 'timestamp': 1700000010},
                            {'block': 500, 'timestamp': 1699999990})
        source = IndexerSource(client, self.network)
        self.assertEqual(source.block_by_timestamp(1700000000, 'before'), 499)
        self.assertEqual(source.block_by_timestamp(1700000000, 'after'), 501)
        _, url, params = client.calls[0]
        self.assertTrue(url.endswith('/dateToBlock'))
        self.assertEqual(params['chain'], '0x38')

    def test_latest_block(self):
        source = IndexerSource(StubClient(12345), self.network)
        self.assertEqual(source.latest_block(), 12345)

    def test_transfers_follow_cursor(self):
        row = {'transaction_hash': '0xABC', 'from_address': WALLET, 'to_address': '0x' + 'c' * 40,
               'token_symbol': 'TOKEN', 'value': '5', 'token_decimals': '0', 'block_number': '7',
               'block_timestamp': '2024-01-01T00:00:00.000Z', 'address': TOKEN_ADDR}
        client = StubClient({'result': [row], 'cursor': 'next-page'})
        page = IndexerSource(client, self.network).token_transfers(WALLET, TOKEN_ADDR, 1, 9, offset=100)
        self.assertEqual(page.next_cursor, 'next-page')
        self.assertEqual(page.events[0].timestamp, 1704067200)
        self.assertEqual(page.events[0].amount, Decimal(5))
        self.assertEqual(page.events[0].gas_used, 0)

    def test_token_prices(self):
        client = StubClient([{'tokenAddress': TOKEN_ADDR.upper(), 'usdPrice': 2.25}])
        prices = IndexerSource(client, self.network).token_prices([self.network.tokens['TOKEN']])
        self.assertEqual(prices, {'TOKEN': Decimal('2.25')})
        method, url, params, body = client.calls[0]
        self.assertEqual(method, 'POST')
        self.assertEqual(body, {'tokens': [{'token_address': TOKEN_ADDR}]})


class TestBuildSource(unittest.TestCase):
    def test_kind_discriminant(self):
        self.assertIsInstance(build_source(make_network(kind='explorer'), StubClient()), ExplorerSource)
        self.assertIsInstance(build_source(make_network(kind='indexer'), StubClient()), IndexerSource)
        with self.assertRaises(ConfigurationError):
            build_source(make_network(kind='graphql'), StubClient())


if __name__ == '__main__':
    unittest.main()
