#!/usr/bin/env python3
"""
Transaction Fetcher
Pages through token transfers for a wallet over a block range.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from ..errors import RETRYABLE_ERRORS, TransferFetchError, UpstreamResponseError
from ..models import BlockRange, NetworkConfig, RawTransferEvent

logger = logging.getLogger(__name__)


@dataclass
class WalletTransfers:
    events: List[RawTransferEvent] = field(default_factory=list)
    failures: Dict[str, str] = field(default_factory=dict)
    skipped: List[str] = field(default_factory=list)


class TransactionFetcher:
    def __init__(self, source, page_size: int = 10000, events=None):
        self.source = source
        self.page_size = min(page_size, source.max_page_size)
        self.events = events

    def fetch_transfers(self, wallet: str, token_address: str, block_range: BlockRange,
                        label: str = '') -> List[RawTransferEvent]:
        """All transfers of one token contract touching `wallet`; raises TransferFetchError"""
        label = label or token_address
        transfers: List[RawTransferEvent] = []
        page = 1
        cursor = None
        while True:
            try:
                result = self.source.token_transfers(wallet, token_address, block_range.start_block,
                                                     block_range.end_block, page=page,
                                                     offset=self.page_size, cursor=cursor)
            except RETRYABLE_ERRORS + (UpstreamResponseError,) as e:
                raise TransferFetchError(label, str(e)) from e
            transfers.extend(result.events)
            if len(result.events) < self.page_size:
                break
            if self.source.uses_cursor:
                if not result.next_cursor:
                    break
                cursor = result.next_cursor
            page += 1
        logger.debug("%s %s: %d transfers over %d page(s)", wallet[:10], label, len(transfers), page)
        return transfers

    def fetch_wallet_transfers(self, wallet: str, network: NetworkConfig,
                               block_range: BlockRange) -> WalletTransfers:
        """Transfers for every pair token; per-token failures are collected, not raised"""
        out = WalletTransfers()
        fetched = set()
        for symbol in network.pair_symbols():
            token = network.tokens[symbol]
            if token.is_native:
                out.skipped.append(symbol)
                if self.events:
                    self.events.event('transfers', f"skipping native token {symbol}", wallet=wallet)
                continue
            if token.address in fetched:
                continue
            fetched.add(token.address)
            try:
                rows = self.fetch_transfers(wallet, token.address, block_range, label=symbol)
            except TransferFetchError as e:
                out.failures[symbol] = str(e)
                if self.events:
                    self.events.warning('transfers', f"transfer listing failed for {symbol}",
                                        wallet=wallet, error=e)
                continue
            out.events.extend(rows)
        return out
