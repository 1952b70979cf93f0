#!/usr/bin/env python3
"""
Tests for LossCalculator, including the end-to-end pricing scenario.
"""

import unittest
from decimal import Decimal

from alpha_revenue.models import ExchangeTransaction
from alpha_revenue.services.exchange_reconstructor import ExchangeReconstructor
from alpha_revenue.services.loss_calculator import LossCalculator
from alpha_revenue.services.price_discovery import PriceDiscoveryEngine, PriceMap, seed_prices
from revenue_fakes import WALLET, make_network, swap


def ex(from_symbol, from_amount, to_symbol, to_amount, timestamp=1, gas_used=0, gas_price=0):
    return ExchangeTransaction(hash=f'0x{timestamp}', block_number=timestamp, timestamp=timestamp,
                               from_symbol=from_symbol, to_symbol=to_symbol,
                               from_amount=Decimal(str(from_amount)), to_amount=Decimal(str(to_amount)),
                               gas_used=gas_used, gas_price=gas_price)


class TestLossCalculator(unittest.TestCase):
    def setUp(self):
        self.calc = LossCalculator()

    def test_scenario_from_raw_transfers(self):
        network = make_network()
        transfers = (swap('0xtx1', 'USDT', 100, 'TOKEN', 50, timestamp=100)
                     + swap('0xtx2', 'TOKEN', 25, 'USDT', 60, timestamp=200))
        exchanges = ExchangeReconstructor(network.normalize_symbol).reconstruct(transfers, network.pairs, WALLET)
        prices = PriceDiscoveryEngine().discover(exchanges, seed_prices(network.stablecoins, 'BNB', Decimal(300)))
        self.assertEqual(prices.get('TOKEN'), Decimal(2))

        result = self.calc.compute(exchanges, prices, network.stablecoins, prices.get('BNB'))
        self.assertEqual(result.valid_volume, Decimal(100))
        self.assertEqual(result.valid_count, 1)
        self.assertEqual(result.trading_loss, Decimal(-10))
        # 2 txs * 100000 gas * 5 gwei = 0.001 BNB at $300
        self.assertEqual(result.gas_loss, Decimal('0.3'))

    def test_known_prices_exact_difference(self):
        prices = PriceMap({'USDT': Decimal(1), 'A': Decimal('0.25'), 'B': Decimal('12.5')})
        exchanges = [ex('USDT', 40, 'A', 150, 1), ex('A', 100, 'B', 2, 2), ex('B', 1, 'USDT', 13, 3)]
        result = self.calc.compute(exchanges, prices, {'USDT'}, 0)
        sold = Decimal(40) + Decimal(100) * Decimal('0.25') + Decimal('12.5')
        bought = Decimal(150) * Decimal('0.25') + Decimal(2) * Decimal('12.5') + Decimal(13)
        self.assertEqual(result.trading_loss, sold - bought)
        self.assertEqual(result.valid_volume, Decimal(40) + Decimal(25))
        self.assertEqual(result.gas_loss, Decimal(0))

    def test_unpriced_symbols_count_as_zero(self):
        result = self.calc.compute([ex('USDT', 10, 'MYSTERY', 1000)], PriceMap({'USDT': Decimal(1)}), {'USDT'}, 0)
        self.assertEqual(result.trading_loss, Decimal(10))
        self.assertEqual(result.valid_volume, Decimal(10))

    def test_empty(self):
        result = self.calc.compute([], PriceMap(), {'USDT'}, Decimal(300))
        self.assertEqual((result.trading_loss, result.gas_loss, result.valid_volume),
                         (Decimal(0), Decimal(0), Decimal(0)))

    def test_valid_exchanges_filter(self):
        exchanges = [ex('USDT', 1, 'A', 1, 1), ex('A', 1, 'USDT', 1, 2)]
        self.assertEqual([e.to_symbol for e in LossCalculator.valid_exchanges(exchanges, {'USDT'})], ['A'])


if __name__ == '__main__':
    unittest.main()
