#!/usr/bin/env python3
"""
Network Configuration
Reads the networks JSON file into NetworkConfig objects.
The file's `schema_version` picks the adapter; each schema version has its own parser.
"""

from __future__ import annotations
import json
import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..errors import ConfigurationError
from ..models import (ApiSettings, Credential, NetworkConfig, PointsRules, TokenInfo,
                      TradingPair)

logger = logging.getLogger(__name__)

ALPHA_TZ = timezone(timedelta(hours=8))
DEFAULT_STABLECOINS = ('USDT', 'USDC', 'BUSD', 'DAI')


def parse_alpha_start(value) -> Optional[datetime]:
    """'YYYY-MM-DD' means 08:00 at UTC+8; a datetime without zone is read as UTC+8"""
    if not value:
        return None
    text = str(value).strip()
    try:
        if len(text) == 10:
            day = datetime.strptime(text, '%Y-%m-%d')
            return day.replace(hour=8, tzinfo=ALPHA_TZ)
        parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
    except ValueError:
        raise ConfigurationError(f"invalid alphaStartDate: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ALPHA_TZ)
    return parsed


def _decimal(value, default='1', field_name='value') -> Decimal:
    if value is None or value == '':
        return Decimal(default)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ConfigurationError(f"{field_name} is not a number: {value!r}")


def _credentials(network_id: str, rows: List[Dict], env_keys: List[str]) -> List[Credential]:
    creds: List[Credential] = []
    seen = set()
    for row in rows or []:
        key = str(row.get('key', '')).strip()
        if not key or key in seen:
            continue
        seen.add(key)
        creds.append(Credential(key=key, name=row.get('name') or f"{network_id} key {len(creds) + 1}",
                                active=bool(row.get('active', True)), priority=len(creds) + 1,
                                comment=row.get('comment', 'from config'),
                                is_default=True, protected=True))
    for key in env_keys:
        if key in seen:
            continue
        seen.add(key)
        creds.append(Credential(key=key, name=f"{network_id} env key {len(creds) + 1}",
                                active=True, priority=len(creds) + 1, comment='from environment',
                                is_default=True, protected=True))
    return creds


def _api(network_id: str, raw: Dict, env_keys: List[str], default_kind: str) -> ApiSettings:
    raw = raw or {}
    base_url = raw.get('baseUrl', '')
    if not base_url:
        raise ConfigurationError(f"{network_id}: api.baseUrl is required")
    return ApiSettings(kind=raw.get('kind', default_kind), base_url=base_url,
                       credentials=_credentials(network_id, raw.get('keys', []), env_keys),
                       native_price_action=raw.get('nativePriceAction', 'ethprice'))


def _check_pairs(net: NetworkConfig):
    if not net.pairs:
        raise ConfigurationError(f"{net.network_id}: no trading pairs configured")
    for symbol in net.pair_symbols():
        token = net.tokens.get(symbol)
        if token is None or not token.address:
            raise ConfigurationError(f"{net.network_id}: no contract address for pair token {symbol}")


def _rules(rules_raw: Dict) -> PointsRules:
    # A chain-wide volumeMultiplier (bscVolumeMultiplier in old files) is the
    # out-of-window multiplier unless baseMultiplier is given.
    base = rules_raw.get('baseMultiplier')
    if base is None:
        base = rules_raw.get('volumeMultiplier', rules_raw.get('bscVolumeMultiplier'))
    return PointsRules(
        alpha_window_days=int(rules_raw.get('alphaWindowDays', 0)),
        alpha_bonus_multiplier=_decimal(rules_raw.get('alphaBonusMultiplier'), field_name='alphaBonusMultiplier'),
        base_multiplier=_decimal(base, field_name='baseMultiplier'),
    )


def _parse_v1(network_id: str, raw: Dict, env_keys: List[str]) -> NetworkConfig:
    """Legacy schema: token list with aliases/isStableCoin, explicit from/to pairs"""
    tokens: Dict[str, TokenInfo] = {}
    aliases: Dict[str, str] = {}
    native = None
    for row in raw.get('tokens', []):
        symbol = str(row.get('symbol', '')).upper()
        if not symbol:
            raise ConfigurationError(f"{network_id}: token without symbol")
        token = TokenInfo(symbol=symbol, address=str(row.get('address', '')).lower(),
                          decimals=int(row.get('decimals', 18)), name=row.get('name', ''),
                          is_stablecoin=bool(row.get('isStableCoin', False)),
                          alpha_start=parse_alpha_start(row.get('alphaStartDate')))
        tokens[symbol] = token
        for alias in row.get('aliases', []):
            aliases[str(alias).upper()] = symbol
        if token.is_native and native is None:
            native = token
    if native is None:
        symbol = str(raw.get('nativeSymbol', 'ETH')).upper()
        native = TokenInfo(symbol=symbol, address='native', decimals=18)

    pairs = [TradingPair(str(p['from']).upper(), str(p['to']).upper()) for p in raw.get('pairs', [])
             if p.get('from') and p.get('to')]
    rules = _rules(raw.get('rules', {}))
    stablecoins = frozenset(s for s, t in tokens.items() if t.is_stablecoin)
    return NetworkConfig(network_id=network_id, name=raw.get('name', network_id),
                         chain_id=int(raw.get('chainId', 0)), native_token=native, tokens=tokens,
                         pairs=pairs, stablecoins=stablecoins,
                         api=_api(network_id, raw.get('api'), env_keys, 'explorer'),
                         rules=rules, aliases=aliases, primary=bool(raw.get('primary', False)))


def _parse_v2(network_id: str, raw: Dict, env_keys: List[str]) -> NetworkConfig:
    """Current schema: nativeToken, baseToken + targetTokens, token address map"""
    native_raw = raw.get('nativeToken') or {}
    native = TokenInfo(symbol=str(native_raw.get('symbol', 'ETH')).upper(),
                       address=str(native_raw.get('address', 'native')).lower(),
                       decimals=int(native_raw.get('decimals', 18)))

    pairs_raw = raw.get('pairs') or {}
    base = str(pairs_raw.get('baseToken', '')).upper()
    targets = [str(t).upper() for t in pairs_raw.get('targetTokens', [])]
    if not base:
        raise ConfigurationError(f"{network_id}: pairs.baseToken is required")
    pairs: List[TradingPair] = []
    for target in targets:
        pairs.append(TradingPair(base, target))
        pairs.append(TradingPair(target, base))

    stablecoins = set(str(s).upper() for s in raw.get('stablecoins', DEFAULT_STABLECOINS))
    stablecoins.add(base)

    tokens: Dict[str, TokenInfo] = {}
    for symbol, info in (raw.get('tokens') or {}).items():
        symbol = symbol.upper()
        tokens[symbol] = TokenInfo(symbol=symbol, address=str(info.get('address', '')).lower(),
                                   decimals=int(info.get('decimals', 18)), name=info.get('name', ''),
                                   is_stablecoin=symbol in stablecoins,
                                   alpha_start=parse_alpha_start(info.get('alphaStartDate')))
    tokens.setdefault(native.symbol, native)
    aliases = {str(a).upper(): str(s).upper() for a, s in (raw.get('aliases') or {}).items()}

    rules = _rules(raw.get('rules', {}))
    return NetworkConfig(network_id=network_id, name=raw.get('name', network_id),
                         chain_id=int(raw.get('chainId', 0)), native_token=native, tokens=tokens,
                         pairs=pairs, stablecoins=frozenset(stablecoins),
                         api=_api(network_id, raw.get('api'), env_keys, 'indexer'),
                         rules=rules, aliases=aliases, primary=bool(raw.get('primary', False)))


SCHEMA_ADAPTERS: Dict[int, Callable[[str, Dict, List[str]], NetworkConfig]] = {
    1: _parse_v1,
    2: _parse_v2,
}


class NetworkSet:
    """Parsed networks plus the default selection"""

    def __init__(self, networks: Dict[str, NetworkConfig], default_id: str = ''):
        if not networks:
            raise ConfigurationError("no networks configured")
        self.networks = networks
        self.default_id = default_id if default_id in networks else next(iter(networks))

    def get(self, network_id: Optional[str] = None) -> NetworkConfig:
        network_id = network_id or self.default_id
        if network_id not in self.networks:
            raise ConfigurationError(f"unknown network '{network_id}' (known: {', '.join(self.networks)})")
        return self.networks[network_id]

    def __iter__(self):
        return iter(self.networks.values())


def parse_network_document(doc: Dict, env_keys: Callable[[str], List[str]] = None,
                           default_network: str = '') -> NetworkSet:
    if not isinstance(doc, dict):
        raise ConfigurationError("network configuration must be a JSON object")
    version = doc.get('schema_version')
    adapter = SCHEMA_ADAPTERS.get(version)
    if adapter is None:
        raise ConfigurationError(f"unsupported or missing schema_version: {version!r}")
    env_keys = env_keys or (lambda network_id: [])

    networks: Dict[str, NetworkConfig] = {}
    for network_id, raw in (doc.get('networks') or {}).items():
        net = adapter(network_id, raw or {}, env_keys(network_id))
        _check_pairs(net)
        networks[network_id] = net
    primary = doc.get('primaryNetwork')
    if primary in networks:
        networks[primary].primary = True
    return NetworkSet(networks, default_network or doc.get('defaultNetwork', ''))


def load_network_configs(path, env_keys: Callable[[str], List[str]] = None,
                         default_network: str = '') -> NetworkSet:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"network configuration not found: {path}")
    try:
        doc = json.loads(path.read_text())
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"{path}: invalid JSON ({e})")
    networks = parse_network_document(doc, env_keys=env_keys, default_network=default_network)
    logger.info("Loaded %d network(s) from %s (schema v%s)", len(networks.networks), path, doc.get('schema_version'))
    return networks
