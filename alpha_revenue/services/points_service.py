#!/usr/bin/env python3
"""
Points Service
Maps a wallet's USD balance and USD volume to an estimated points score.
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from ..errors import ConfigurationError
from ..models import BalanceTier, ExchangeTransaction, NetworkConfig, PointsEstimate, PointsWindow
from .price_discovery import PriceMap

logger = logging.getLogger(__name__)

ZERO = Decimal(0)

LEVELS = [(10, 'platinum'), (7, 'gold'), (5, 'silver'), (3, 'bronze'), (1, 'novice')]


def parse_balance_tiers(text: str) -> List[BalanceTier]:
    """'100:1,1000:2' -> tiers sorted by threshold"""
    tiers = []
    for chunk in (text or '').split(','):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            threshold, points = chunk.split(':', 1)
            tiers.append(BalanceTier(min_usd=Decimal(threshold.strip()), points=int(points)))
        except (ValueError, ArithmeticError):
            raise ConfigurationError(f"invalid balance tier '{chunk}' (expected <min_usd>:<points>)")
    return sorted(tiers, key=lambda t: t.min_usd)


def floor_log2(value: Decimal) -> int:
    """floor(log2(max(1, value))) without float rounding"""
    whole = int(max(Decimal(1), value))
    return whole.bit_length() - 1


def points_level(total: int) -> str:
    for threshold, name in LEVELS:
        if total >= threshold:
            return name
    return 'none'


class PointsEstimator:
    def __init__(self, tiers: List[BalanceTier], volume_points_cap: Optional[int] = 25):
        self.tiers = sorted(tiers, key=lambda t: t.min_usd)
        self.volume_points_cap = volume_points_cap

    def balance_points(self, usd_balance) -> int:
        usd_balance = Decimal(str(usd_balance))
        points = 0
        for tier in self.tiers:
            if usd_balance >= tier.min_usd:
                points = tier.points
        return points

    def volume_points(self, effective_volume: Decimal) -> int:
        points = floor_log2(effective_volume)
        if self.volume_points_cap is not None:
            points = min(points, self.volume_points_cap)
        return points

    def estimate(self, usd_balance, usd_volume, window: Optional[PointsWindow] = None) -> PointsEstimate:
        if window is not None and window.effective_volume is not None:
            effective = window.effective_volume
        else:
            multiplier = window.multiplier if window else Decimal(1)
            effective = Decimal(str(usd_volume)) * multiplier
        balance_points = self.balance_points(usd_balance)
        volume_points = self.volume_points(effective)
        total = balance_points + volume_points
        return PointsEstimate(balance_points=balance_points, volume_points=volume_points,
                              total=total, effective_volume=effective, level=points_level(total))

    @staticmethod
    def buy_multiplier(network: NetworkConfig, exchange: ExchangeTransaction) -> Tuple[Decimal, bool]:
        """(multiplier, in_alpha_window) for one buy.

        The bonus applies only when the buy's own block time falls in
        [alpha_start, alpha_start + alpha_window_days) of the token it bought.
        """
        rules = network.rules
        token = network.tokens.get(exchange.to_symbol)
        if token is None or token.alpha_start is None or rules.alpha_window_days <= 0:
            return rules.base_multiplier, False
        bought_at = datetime.fromtimestamp(exchange.timestamp, tz=timezone.utc)
        window_end = token.alpha_start + timedelta(days=rules.alpha_window_days)
        if token.alpha_start <= bought_at < window_end:
            return rules.alpha_bonus_multiplier, True
        return rules.base_multiplier, False

    @classmethod
    def weigh_volume(cls, network: NetworkConfig, buys: Iterable[ExchangeTransaction],
                     prices: PriceMap) -> PointsWindow:
        """Sum of usd_i * m_i over the day's valid buys"""
        volume = ZERO
        effective = ZERO
        bonus_tokens = set()
        for ex in buys:
            usd = ex.from_amount * prices.get(ex.from_symbol)
            multiplier, in_window = cls.buy_multiplier(network, ex)
            volume += usd
            effective += usd * multiplier
            if in_window:
                bonus_tokens.add(ex.to_symbol)
            logger.debug("%s %s: m=%s (%s) tx=%s", network.network_id, ex.to_symbol, multiplier,
                         'alpha-window' if in_window else 'base', ex.hash)
        blended = effective / volume if volume else network.rules.base_multiplier
        return PointsWindow(multiplier=blended, in_alpha_window=bool(bonus_tokens),
                            tokens=tuple(sorted(bonus_tokens)), effective_volume=effective)
