#!/usr/bin/env python3
"""
Chain data source interface
Both upstream API shapes (explorer envelope, indexer paths) are reached through this.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from ..errors import ConfigurationError
from ..models import NetworkConfig, RawTransferEvent, TokenInfo


@dataclass
class TransferPage:
    events: List[RawTransferEvent] = field(default_factory=list)
    next_cursor: Optional[str] = None


class ChainDataSource:
    """Capabilities the services need from an upstream chain-data API"""

    kind = ''
    max_page_size = 10000
    supports_token_prices = False
    uses_cursor = False

    def __init__(self, client, network: NetworkConfig):
        self.client = client
        self.network = network
        self.base_url = network.api.base_url.rstrip('/')

    def block_by_timestamp(self, timestamp: int, closest: str) -> int:
        raise NotImplementedError

    def latest_block(self) -> int:
        raise NotImplementedError

    def token_transfers(self, wallet: str, contract: str, start_block: int, end_block: int,
                        page: int = 1, offset: int = 10000, cursor: Optional[str] = None) -> TransferPage:
        raise NotImplementedError

    def native_balance(self, wallet: str, block: int) -> Decimal:
        raise NotImplementedError

    def token_balances(self, wallet: str, tokens: List[TokenInfo], block: int) -> Dict[str, Decimal]:
        raise NotImplementedError

    def native_price(self) -> Decimal:
        raise NotImplementedError

    def token_prices(self, tokens: List[TokenInfo]) -> Dict[str, Decimal]:
        return {}


def build_source(network: NetworkConfig, client) -> ChainDataSource:
    """Pick the adapter named by the network's api.kind"""
    from .explorer_source import ExplorerSource
    from .indexer_source import IndexerSource

    kinds = {ExplorerSource.kind: ExplorerSource, IndexerSource.kind: IndexerSource}
    cls = kinds.get(network.api.kind)
    if cls is None:
        raise ConfigurationError(f"{network.network_id}: unknown api kind '{network.api.kind}'")
    return cls(client, network)
