#!/usr/bin/env python3
"""
Price Discovery
Infers USD prices for tokens without a feed by walking reconstructed swaps in
time order and propagating already-known prices across each trade.

Single pass, greedy: the first inferred price for a symbol is final for the run.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional

from ..models import ExchangeTransaction

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)


class PriceMap:
    """symbol -> USD price; a symbol, once set, keeps its first value"""

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self._prices: Dict[str, Decimal] = {}
        self._lock = threading.Lock()
        for symbol, price in (prices or {}).items():
            self.set_if_absent(symbol, price)

    def get(self, symbol: str) -> Decimal:
        with self._lock:
            return self._prices.get(symbol, ZERO)

    def known(self, symbol: str) -> bool:
        with self._lock:
            return self._prices.get(symbol, ZERO) > 0

    def set_if_absent(self, symbol: str, price) -> bool:
        """Store price unless the symbol already has a positive price; True if stored"""
        price = Decimal(str(price)) if not isinstance(price, Decimal) else price
        if price <= 0:
            return False
        with self._lock:
            if self._prices.get(symbol, ZERO) > 0:
                return False
            self._prices[symbol] = price
            return True

    def copy(self) -> 'PriceMap':
        return PriceMap(self.as_dict())

    def as_dict(self) -> Dict[str, Decimal]:
        with self._lock:
            return dict(self._prices)

    def __contains__(self, symbol: str) -> bool:
        return self.known(symbol)

    def __len__(self) -> int:
        with self._lock:
            return len(self._prices)

    def __eq__(self, other) -> bool:
        return isinstance(other, PriceMap) and self.as_dict() == other.as_dict()


@dataclass(frozen=True)
class PriceInconsistency:
    hash: str
    from_symbol: str
    to_symbol: str
    expected_to_amount: Decimal
    actual_to_amount: Decimal
    deviation_pct: Decimal


@dataclass(frozen=True)
class PriceInference:
    symbol: str
    price: Decimal
    via_hash: str


def seed_prices(stablecoins: Iterable[str], native_symbol: str = '', native_price=None,
                extra: Optional[Dict[str, Decimal]] = None) -> PriceMap:
    prices = PriceMap({s: ONE for s in stablecoins})
    if native_symbol and native_price:
        prices.set_if_absent(native_symbol, native_price)
    for symbol, price in (extra or {}).items():
        prices.set_if_absent(symbol, price)
    return prices


class PriceDiscoveryEngine:
    def __init__(self, deviation_warn_pct: float = 5.0):
        self.deviation_warn_pct = Decimal(str(deviation_warn_pct))

    def discover(self, exchanges: Iterable[ExchangeTransaction], seed: PriceMap,
                 on_inconsistency: Optional[Callable[[PriceInconsistency], None]] = None,
                 on_inference: Optional[Callable[[PriceInference], None]] = None) -> PriceMap:
        """Extend `seed` in place from `exchanges` and return it"""
        ordered = sorted(exchanges, key=lambda e: e.timestamp)
        for ex in ordered:
            if ex.from_amount <= 0 or ex.to_amount <= 0:
                continue
            from_known = seed.known(ex.from_symbol)
            to_known = seed.known(ex.to_symbol)

            if from_known and not to_known:
                price = ex.from_amount * seed.get(ex.from_symbol) / ex.to_amount
                if seed.set_if_absent(ex.to_symbol, price) and on_inference:
                    on_inference(PriceInference(ex.to_symbol, price, ex.hash))
            elif to_known and not from_known:
                price = ex.to_amount * seed.get(ex.to_symbol) / ex.from_amount
                if seed.set_if_absent(ex.from_symbol, price) and on_inference:
                    on_inference(PriceInference(ex.from_symbol, price, ex.hash))
            elif from_known and to_known:
                expected = ex.from_amount * seed.get(ex.from_symbol) / seed.get(ex.to_symbol)
                deviation = abs(expected - ex.to_amount) / ex.to_amount * HUNDRED
                if deviation > self.deviation_warn_pct and on_inconsistency:
                    on_inconsistency(PriceInconsistency(ex.hash, ex.from_symbol, ex.to_symbol,
                                                        expected, ex.to_amount, deviation))
        return seed
