#!/usr/bin/env python3
"""
Balance Service
Native and token holdings of a wallet at a block, and their USD value.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Dict

from ..models import NetworkConfig
from .price_discovery import PriceMap


class BalanceService:
    def __init__(self, source):
        self.source = source

    def holdings(self, wallet: str, network: NetworkConfig, block: int) -> Dict[str, Decimal]:
        """symbol -> amount, native token included"""
        tokens = [t for t in network.tokens.values() if not t.is_native and t.address]
        balances = {network.native_token.symbol: self.source.native_balance(wallet, block)}
        for symbol, amount in self.source.token_balances(wallet, tokens, block).items():
            balances[symbol] = balances.get(symbol, Decimal(0)) + amount
        return balances

    @staticmethod
    def value(holdings: Dict[str, Decimal], prices: PriceMap) -> Decimal:
        return sum((amount * prices.get(symbol) for symbol, amount in holdings.items()), Decimal(0))
