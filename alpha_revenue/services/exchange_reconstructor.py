#!/usr/bin/env python3
"""
Exchange Reconstructor
Groups raw transfers by transaction hash and matches each group against the
configured trading pairs, in order. The first pair that matches wins.
"""

from __future__ import annotations
from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from ..models import ExchangeTransaction, RawTransferEvent, TradingPair


class ExchangeReconstructor:
    def __init__(self, normalize: Optional[Callable[[str], str]] = None):
        self.normalize = normalize or (lambda s: (s or '').upper())

    def reconstruct(self, transfers: Iterable[RawTransferEvent], pairs: List[TradingPair],
                    wallet: str) -> List[ExchangeTransaction]:
        wallet = wallet.lower()
        groups: Dict[str, List[RawTransferEvent]] = OrderedDict()
        for t in transfers:
            groups.setdefault(t.hash, []).append(t)

        exchanges = []
        for tx_hash, legs in groups.items():
            exchange = self._match(tx_hash, legs, pairs, wallet)
            if exchange is not None:
                exchanges.append(exchange)
        # Stable sort keeps first-seen order for equal timestamps
        exchanges.sort(key=lambda e: (e.timestamp, e.block_number))
        return exchanges

    def _match(self, tx_hash: str, legs: List[RawTransferEvent], pairs: List[TradingPair],
               wallet: str) -> Optional[ExchangeTransaction]:
        sent: Dict[str, Decimal] = {}
        received: Dict[str, Decimal] = {}
        for leg in legs:
            symbol = self.normalize(leg.symbol)
            if leg.from_address == wallet:
                sent[symbol] = sent.get(symbol, Decimal(0)) + leg.amount
            if leg.to_address == wallet:
                received[symbol] = received.get(symbol, Decimal(0)) + leg.amount

        for pair in pairs:
            from_amount = sent.get(pair.from_symbol, Decimal(0))
            to_amount = received.get(pair.to_symbol, Decimal(0))
            if from_amount > 0 and to_amount > 0:
                first = legs[0]
                return ExchangeTransaction(
                    hash=tx_hash,
                    block_number=first.block_number,
                    timestamp=first.timestamp,
                    from_symbol=pair.from_symbol,
                    to_symbol=pair.to_symbol,
                    from_amount=from_amount,
                    to_amount=to_amount,
                    gas_used=first.gas_used,
                    gas_price=first.gas_price,
                )
        return None
