#!/usr/bin/env python3
"""
Domain models
Typed records passed between the API layer, the pure computation core and the orchestrator.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple


@dataclass
class Credential:
    """API key registered for one network + service"""
    key: str
    name: str
    active: bool = True
    priority: int = 1
    comment: str = ''
    is_default: bool = False
    protected: bool = False

    @property
    def masked(self) -> str:
        if len(self.key) <= 8:
            return '*' * len(self.key)
        return f"{self.key[:4]}...{self.key[-4:]}"


@dataclass
class CredentialHealth:
    """Rolling health of the credential at the same index"""
    key_index: int
    last_used: Optional[float] = None
    error_count: int = 0
    avg_response_time: float = 0.0
    healthy: bool = True


@dataclass(frozen=True)
class BlockRange:
    network_id: str
    query_date: str
    start_block: int
    end_block: int
    start_timestamp: int
    end_timestamp: int
    is_completed: bool

    def __post_init__(self):
        if self.start_block > self.end_block:
            raise ValueError(f"start_block {self.start_block} > end_block {self.end_block}")


@dataclass(frozen=True)
class RawTransferEvent:
    """One token transfer log as listed by the upstream service"""
    hash: str
    from_address: str
    to_address: str
    symbol: str
    raw_amount: int
    decimals: int
    block_number: int
    timestamp: int
    gas_used: int
    gas_price: int
    contract_address: str = ''

    @property
    def amount(self) -> Decimal:
        return Decimal(self.raw_amount).scaleb(-self.decimals)


@dataclass(frozen=True)
class ExchangeTransaction:
    """Logical swap reconstructed from the transfers of one transaction hash"""
    hash: str
    block_number: int
    timestamp: int
    from_symbol: str
    to_symbol: str
    from_amount: Decimal
    to_amount: Decimal
    gas_used: int
    gas_price: int

    @property
    def pair_label(self) -> str:
        return f"{self.from_symbol}->{self.to_symbol}"


@dataclass(frozen=True)
class TradingPair:
    from_symbol: str
    to_symbol: str


@dataclass(frozen=True)
class TokenInfo:
    symbol: str
    address: str
    decimals: int = 18
    name: str = ''
    is_stablecoin: bool = False
    alpha_start: Optional[datetime] = None

    @property
    def is_native(self) -> bool:
        return self.address.lower() == 'native'


@dataclass(frozen=True)
class PointsRules:
    alpha_window_days: int = 0
    alpha_bonus_multiplier: Decimal = Decimal(1)
    base_multiplier: Decimal = Decimal(1)


@dataclass(frozen=True)
class BalanceTier:
    min_usd: Decimal
    points: int


@dataclass
class ApiSettings:
    kind: str
    base_url: str
    credentials: List[Credential] = field(default_factory=list)
    native_price_action: str = 'ethprice'


@dataclass
class NetworkConfig:
    network_id: str
    name: str
    chain_id: int
    native_token: TokenInfo
    tokens: Dict[str, TokenInfo]
    pairs: List[TradingPair]
    stablecoins: frozenset
    api: ApiSettings
    rules: PointsRules = field(default_factory=PointsRules)
    aliases: Dict[str, str] = field(default_factory=dict)
    primary: bool = False

    @property
    def chain_id_hex(self) -> str:
        return f"0x{self.chain_id:x}"

    def normalize_symbol(self, symbol: str) -> str:
        upper = (symbol or '').upper()
        return self.aliases.get(upper, upper)

    def pair_symbols(self) -> List[str]:
        seen: List[str] = []
        for pair in self.pairs:
            for sym in (pair.from_symbol, pair.to_symbol):
                if sym not in seen:
                    seen.append(sym)
        return seen


@dataclass(frozen=True)
class LossResult:
    trading_loss: Decimal
    gas_loss: Decimal
    valid_volume: Decimal
    valid_count: int = 0


@dataclass(frozen=True)
class PointsWindow:
    """Volume weighting for one wallet/network/day.

    `multiplier` is the volume-weighted average of the per-buy multipliers;
    `effective_volume`, when set, is the exact sum of usd_i * m_i.
    """
    multiplier: Decimal = Decimal(1)
    in_alpha_window: bool = False
    tokens: Tuple[str, ...] = ()
    effective_volume: Optional[Decimal] = None


@dataclass(frozen=True)
class PointsEstimate:
    balance_points: int
    volume_points: int
    total: int
    effective_volume: Decimal
    level: str


@dataclass
class TransactionSummary:
    network_id: str
    block_range: BlockRange
    exchange_count: int
    valid_exchange_count: int
    trading_loss: Decimal
    gas_loss: Decimal
    valid_volume: Decimal
    points: PointsEstimate
    window: PointsWindow
    exchanges: List[ExchangeTransaction] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class WalletRevenueSnapshot:
    wallet_address: str
    query_date: str
    tokens_value: Decimal = Decimal(0)
    transaction_summary: Optional[TransactionSummary] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, wallet_address: str, query_date: str, error: str) -> 'WalletRevenueSnapshot':
        return cls(wallet_address=wallet_address, query_date=query_date,
                   tokens_value=Decimal(0), transaction_summary=None, error=error or 'unknown error')

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict:
        data = {
            'walletAddress': self.wallet_address,
            'queryDate': self.query_date,
            'tokensValue': float(self.tokens_value),
        }
        if self.error is not None:
            data['error'] = self.error
            return data
        s = self.transaction_summary
        data['transactionSummary'] = {
            'network': s.network_id,
            'blockRange': asdict(s.block_range),
            'exchangeCount': s.exchange_count,
            'validExchangeCount': s.valid_exchange_count,
            'tradingLoss': float(s.trading_loss),
            'gasLoss': float(s.gas_loss),
            'validVolume': float(s.valid_volume),
            'effectiveVolume': float(s.points.effective_volume),
            'multiplier': float(s.window.multiplier),
            'inAlphaWindow': s.window.in_alpha_window,
            'points': {
                'balance': s.points.balance_points,
                'volume': s.points.volume_points,
                'total': s.points.total,
                'level': s.points.level,
            },
            'warnings': list(s.warnings),
        }
        return data
