#!/usr/bin/env python3
"""
Explorer Source
Etherscan-family `module/action` API returning {status, message, result}.
status '1' is success; status '0' is failure or an empty result, told apart by message.
"""

from __future__ import annotations
import logging
from decimal import Decimal
from typing import Dict, List, Optional

from web3 import Web3

from ..errors import DataShapeError, TransientNetworkError, UpstreamResponseError
from ..models import RawTransferEvent, TokenInfo
from .chain_source import ChainDataSource, TransferPage

logger = logging.getLogger(__name__)

NO_RESULT_MESSAGES = ('no transactions found', 'no records found', 'no results found', 'no token transfers found')
THROTTLE_MARKERS = ('rate limit', 'invalid api key', 'missing/invalid api key', 'too many')


def is_no_results(data: Dict) -> bool:
    message = str(data.get('message', '')).lower()
    result = data.get('result')
    if any(m in message for m in NO_RESULT_MESSAGES):
        return True
    return str(data.get('status')) == '0' and result in ([], None, '')


def check_envelope(data):
    """Raise a retryable error for shapes that another attempt may fix"""
    if not isinstance(data, dict):
        raise DataShapeError(f"expected JSON object, got {type(data).__name__}")
    if 'result' not in data:
        raise DataShapeError("response missing 'result'")
    if str(data.get('status')) == '0':
        text = f"{data.get('message', '')} {data.get('result', '')}".lower()
        if any(m in text for m in THROTTLE_MARKERS):
            raise TransientNetworkError(f"explorer refused request: {data.get('result')}")


class ExplorerSource(ChainDataSource):
    kind = 'explorer'
    max_page_size = 10000

    def _call(self, params: Dict, allow_empty: bool = False):
        data = self.client.get_json(self.base_url, params=params, check=check_envelope)
        if str(data.get('status')) == '1':
            return data['result']
        if 'jsonrpc' in data:
            return data['result']
        if allow_empty and is_no_results(data):
            return []
        raise UpstreamResponseError(f"{params.get('module')}/{params.get('action')}: "
                                    f"{data.get('message', '')} {data.get('result', '')}".strip())

    def block_by_timestamp(self, timestamp: int, closest: str) -> int:
        result = self._call({
            'module': 'block',
            'action': 'getblocknobytime',
            'timestamp': int(timestamp),
            'closest': closest,
        })
        try:
            return int(result)
        except (TypeError, ValueError):
            raise DataShapeError(f"block number is not an integer: {result!r}")

    def latest_block(self) -> int:
        result = self._call({'module': 'proxy', 'action': 'eth_blockNumber'})
        try:
            return int(str(result), 16) if str(result).startswith('0x') else int(result)
        except (TypeError, ValueError):
            raise DataShapeError(f"latest block is not a number: {result!r}")

    def token_transfers(self, wallet: str, contract: str, start_block: int, end_block: int,
                        page: int = 1, offset: int = 10000, cursor: Optional[str] = None) -> TransferPage:
        rows = self._call({
            'module': 'account',
            'action': 'tokentx',
            'contractaddress': contract,
            'address': wallet,
            'startblock': start_block,
            'endblock': end_block,
            'page': page,
            'offset': offset,
            'sort': 'asc',
        }, allow_empty=True)
        if not isinstance(rows, list):
            raise DataShapeError(f"tokentx result is not a list: {str(rows)[:100]}")
        return TransferPage(events=[self._parse_transfer(r) for r in rows])

    @staticmethod
    def _parse_transfer(row: Dict) -> RawTransferEvent:
        try:
            return RawTransferEvent(
                hash=row['hash'].lower(),
                from_address=row['from'].lower(),
                to_address=row['to'].lower(),
                symbol=row.get('tokenSymbol', ''),
                raw_amount=int(row['value']),
                decimals=int(row.get('tokenDecimal') or 18),
                block_number=int(row['blockNumber']),
                timestamp=int(row['timeStamp']),
                gas_used=int(row.get('gasUsed') or 0),
                gas_price=int(row.get('gasPrice') or 0),
                contract_address=(row.get('contractAddress') or '').lower(),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DataShapeError(f"malformed transfer row: {e}")

    def native_balance(self, wallet: str, block: int) -> Decimal:
        # Free explorer tiers only answer for 'latest'
        result = self._call({'module': 'account', 'action': 'balance', 'address': wallet, 'tag': 'latest'})
        return Decimal(Web3.from_wei(int(result), 'ether'))

    def token_balances(self, wallet: str, tokens: List[TokenInfo], block: int) -> Dict[str, Decimal]:
        balances = {}
        for token in tokens:
            if token.is_native:
                continue
            result = self._call({
                'module': 'account',
                'action': 'tokenbalance',
                'contractaddress': token.address,
                'address': wallet,
                'tag': 'latest',
            })
            balances[token.symbol] = Decimal(int(result)).scaleb(-token.decimals)
        return balances

    def native_price(self) -> Decimal:
        result = self._call({'module': 'stats', 'action': self.network.api.native_price_action})
        if not isinstance(result, dict):
            raise DataShapeError(f"native price result is not an object: {result!r}")
        for key in ('ethusd', 'bnbusd', 'usd'):
            if key in result:
                return Decimal(str(result[key]))
        raise DataShapeError(f"native price missing from {sorted(result)}")
