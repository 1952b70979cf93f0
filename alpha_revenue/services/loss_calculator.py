#!/usr/bin/env python3
"""
Loss Calculator
Trading loss, gas loss and points-eligible volume for one wallet's swaps.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict, Iterable, List

from web3 import Web3

from ..models import ExchangeTransaction, LossResult
from .price_discovery import PriceMap

ZERO = Decimal(0)


class LossCalculator:
    def compute(self, exchanges: Iterable[ExchangeTransaction], prices: PriceMap,
                stablecoins: Iterable[str], native_price) -> LossResult:
        exchanges = list(exchanges)
        stable = set(stablecoins)
        native_price = Decimal(str(native_price or 0))

        sold: Dict[str, Decimal] = {}
        bought: Dict[str, Decimal] = {}
        gas_wei = 0
        valid_volume = ZERO
        valid_count = 0
        for ex in exchanges:
            sold[ex.from_symbol] = sold.get(ex.from_symbol, ZERO) + ex.from_amount
            bought[ex.to_symbol] = bought.get(ex.to_symbol, ZERO) + ex.to_amount
            gas_wei += ex.gas_used * ex.gas_price
            if ex.to_symbol not in stable:
                valid_volume += ex.from_amount * prices.get(ex.from_symbol)
                valid_count += 1

        sold_value = sum((amount * prices.get(sym) for sym, amount in sold.items()), ZERO)
        bought_value = sum((amount * prices.get(sym) for sym, amount in bought.items()), ZERO)
        gas_native = Decimal(Web3.from_wei(gas_wei, 'ether')) if gas_wei else ZERO

        return LossResult(
            trading_loss=sold_value - bought_value,
            gas_loss=gas_native * native_price,
            valid_volume=valid_volume,
            valid_count=valid_count,
        )

    @staticmethod
    def valid_exchanges(exchanges: Iterable[ExchangeTransaction],
                        stablecoins: Iterable[str]) -> List[ExchangeTransaction]:
        stable = set(stablecoins)
        return [ex for ex in exchanges if ex.to_symbol not in stable]
