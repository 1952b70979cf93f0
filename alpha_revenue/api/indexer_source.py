#!/usr/bin/env python3
"""
Indexer Source
Path-based JSON API keyed by hex chain id (Moralis deep-index style).
No status envelope: HTTP status carries success, bodies are plain JSON.
"""

from __future__ import annotations
import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from web3 import Web3

from ..errors import DataShapeError
from ..models import RawTransferEvent, TokenInfo
from .chain_source import ChainDataSource, TransferPage

logger = logging.getLogger(__name__)


def _to_unix(value) -> int:
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value)
    if text.isdigit():
        return int(text)
    return int(datetime.fromisoformat(text.replace('Z', '+00:00')).timestamp())


class IndexerSource(ChainDataSource):
    kind = 'indexer'
    max_page_size = 100
    supports_token_prices = True
    uses_cursor = True

    @property
    def chain(self) -> str:
        return self.network.chain_id_hex

    def block_by_timestamp(self, timestamp: int, closest: str) -> int:
        data = self.client.get_json(f"{self.base_url}/dateToBlock",
                                    params={'chain': self.chain, 'date': int(timestamp)})
        try:
            block = int(data['block'])
            block_ts = _to_unix(data.get('timestamp', data.get('block_timestamp', timestamp)))
        except (KeyError, TypeError, ValueError) as e:
            raise DataShapeError(f"dateToBlock response malformed: {e}")
        # The indexer returns the nearest block; move one step to honour `closest`
        if closest == 'before' and block_ts > timestamp:
            return block - 1
        if closest == 'after' and block_ts < timestamp:
            return block + 1
        return block

    def latest_block(self) -> int:
        data = self.client.get_json(f"{self.base_url}/latestBlockNumber/{self.chain}")
        if isinstance(data, dict):
            data = data.get('block', data.get('block_number'))
        try:
            return int(data)
        except (TypeError, ValueError):
            raise DataShapeError(f"latest block is not a number: {data!r}")

    def token_transfers(self, wallet: str, contract: str, start_block: int, end_block: int,
                        page: int = 1, offset: int = 100, cursor: Optional[str] = None) -> TransferPage:
        params = {
            'chain': self.chain,
            'contract_addresses[]': contract,
            'from_block': start_block,
            'to_block': end_block,
            'limit': offset,
            'order': 'ASC',
        }
        if cursor:
            params['cursor'] = cursor
        data = self.client.get_json(f"{self.base_url}/{wallet}/erc20/transfers", params=params)
        if not isinstance(data, dict) or not isinstance(data.get('result', []), list):
            raise DataShapeError("erc20 transfers response malformed")
        events = [self._parse_transfer(r) for r in data.get('result', [])]
        return TransferPage(events=events, next_cursor=data.get('cursor') or None)

    @staticmethod
    def _parse_transfer(row: Dict) -> RawTransferEvent:
        try:
            return RawTransferEvent(
                hash=row['transaction_hash'].lower(),
                from_address=row['from_address'].lower(),
                to_address=row['to_address'].lower(),
                symbol=row.get('token_symbol', ''),
                raw_amount=int(row['value']),
                decimals=int(row.get('token_decimals') or 18),
                block_number=int(row['block_number']),
                timestamp=_to_unix(row['block_timestamp']),
                gas_used=int(row.get('receipt_gas_used') or 0),
                gas_price=int(row.get('gas_price') or 0),
                contract_address=(row.get('address') or '').lower(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataShapeError(f"malformed transfer row: {e}")

    def native_balance(self, wallet: str, block: int) -> Decimal:
        data = self.client.get_json(f"{self.base_url}/{wallet}/balance",
                                    params={'chain': self.chain, 'to_block': block})
        try:
            return Decimal(Web3.from_wei(int(data['balance']), 'ether'))
        except (KeyError, TypeError, ValueError) as e:
            raise DataShapeError(f"balance response malformed: {e}")

    def token_balances(self, wallet: str, tokens: List[TokenInfo], block: int) -> Dict[str, Decimal]:
        wanted = {t.address.lower(): t for t in tokens if not t.is_native}
        if not wanted:
            return {}
        data = self.client.get_json(f"{self.base_url}/{wallet}/erc20",
                                    params={'chain': self.chain, 'to_block': block,
                                            'token_addresses[]': list(wanted)})
        if not isinstance(data, list):
            raise DataShapeError("erc20 balance response is not a list")
        balances = {t.symbol: Decimal(0) for t in wanted.values()}
        for row in data:
            token = wanted.get(str(row.get('token_address', '')).lower())
            if token is None:
                continue
            decimals = int(row.get('decimals') or token.decimals)
            balances[token.symbol] = Decimal(int(row.get('balance') or 0)).scaleb(-decimals)
        return balances

    def native_price(self) -> Decimal:
        native = self.network.native_token
        data = self.client.get_json(f"{self.base_url}/erc20/{native.address}/price",
                                    params={'chain': self.chain})
        try:
            return Decimal(str(data['usdPrice']))
        except (KeyError, TypeError) as e:
            raise DataShapeError(f"native price response malformed: {e}")

    def token_prices(self, tokens: List[TokenInfo]) -> Dict[str, Decimal]:
        by_address = {t.address.lower(): t.symbol for t in tokens if not t.is_native}
        if not by_address:
            return {}
        body = {'tokens': [{'token_address': addr} for addr in by_address]}
        data = self.client.post_json(f"{self.base_url}/erc20/prices",
                                     params={'chain': self.chain}, body=body)
        if not isinstance(data, list):
            raise DataShapeError("token price response is not a list")
        prices = {}
        for row in data:
            symbol = by_address.get(str(row.get('tokenAddress', '')).lower())
            if symbol and row.get('usdPrice') is not None:
                prices[symbol] = Decimal(str(row['usdPrice']))
        return prices
