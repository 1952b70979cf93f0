#!/usr/bin/env python3
"""
Revenue Service
Runs the per-wallet pipeline (balances, transfers, swap reconstruction, price
discovery, loss and points) for a batch of wallets on one network and one day.

The block range and the price map are built once per batch and shared by every
wallet. Wallets run in chunks of N = min(healthy keys, wallets); a chunk must
finish before the next one starts.
"""

from __future__ import annotations
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple

from config import config as default_config
from ..api.chain_source import ChainDataSource, build_source
from ..api.key_pool import APIKeyPool
from ..api.rate_limiter import KeyedRateLimiter
from ..api.upstream_client import UpstreamClient
from ..data.network_config import NetworkSet, load_network_configs
from ..errors import ConfigurationError, RevenueError, TransferFetchError, ValidationError
from ..event_log import EventLog
from ..models import NetworkConfig, TransactionSummary, WalletRevenueSnapshot
from ..retry import LinearBackoff
from ..validation import normalize_wallet, validate_query_date
from .balance_service import BalanceService
from .block_range_service import BlockRangeResolver, TradingDayBoundary
from .exchange_reconstructor import ExchangeReconstructor
from .loss_calculator import LossCalculator
from .points_service import PointsEstimator, parse_balance_tiers
from .price_discovery import PriceDiscoveryEngine, PriceMap, seed_prices
from .transaction_fetcher import TransactionFetcher

logger = logging.getLogger(__name__)


@dataclass
class NetworkRuntime:
    """Per-network API stack: pool -> limiter -> client -> source"""
    network: NetworkConfig
    pool: APIKeyPool
    limiter: KeyedRateLimiter
    client: UpstreamClient
    source: ChainDataSource


class _SourceRegistry(dict):
    """network_id -> source, built on first access through the owning context"""

    def __init__(self, context: 'RevenueContext'):
        super().__init__()
        self.context = context

    def __missing__(self, network_id: str):
        return self.context.runtime(network_id).source


class RevenueContext:
    """Process-wide objects: networks, per-network API stacks, block range cache, event log"""

    def __init__(self, networks: NetworkSet, settings=None, store=None, events: EventLog = None,
                 sleep: Callable[[float], None] = time.sleep, now: Callable[[], float] = time.time,
                 runtimes: Optional[Dict[str, NetworkRuntime]] = None):
        self.networks = networks
        self.settings = settings or default_config
        self.store = store
        self.events = events or EventLog()
        self.sleep = sleep
        self._runtimes: Dict[str, NetworkRuntime] = dict(runtimes or {})
        self._lock = threading.Lock()
        self.resolver = BlockRangeResolver(
            sources=_SourceRegistry(self),
            boundary=TradingDayBoundary(self.settings.TRADING_DAY_UTC_OFFSET_HOURS,
                                        self.settings.TRADING_DAY_START_HOUR),
            attempts=self.settings.BLOCK_LOOKUP_ATTEMPTS,
            backoff=LinearBackoff(self.settings.BLOCK_LOOKUP_BACKOFF_SEC),
            sleep=sleep, now=now, events=self.events,
        )

    @classmethod
    def from_config(cls, settings=None, store=None, events: EventLog = None) -> 'RevenueContext':
        settings = settings or default_config
        networks = load_network_configs(settings.NETWORKS_CONFIG_PATH, env_keys=settings.api_keys_for,
                                        default_network=settings.DEFAULT_NETWORK)
        return cls(networks, settings=settings, store=store, events=events)

    def runtime(self, network_id: Optional[str] = None) -> NetworkRuntime:
        network = self.networks.get(network_id)
        with self._lock:
            rt = self._runtimes.get(network.network_id)
            if rt is None:
                rt = self._build_runtime(network)
                self._runtimes[network.network_id] = rt
            return rt

    def _build_runtime(self, network: NetworkConfig) -> NetworkRuntime:
        s = self.settings
        pool = APIKeyPool(network.api.credentials, network_id=network.network_id,
                          service=network.api.kind, store=self.store)
        limiter = KeyedRateLimiter(base_interval_ms=s.RATE_LIMIT_BASE_INTERVAL_MS,
                                   active_keys=pool.active_count(), sleep=self.sleep)
        pool.subscribe(limiter.set_active_keys)
        if network.api.kind == 'indexer':
            auth = {'auth_param': None, 'auth_header': 'X-API-Key'}
        else:
            auth = {'auth_param': 'apikey', 'auth_header': None}
        client = UpstreamClient(pool, limiter, timeout=s.UPSTREAM_REQUEST_TIMEOUT_SEC,
                                max_attempts=s.UPSTREAM_MAX_ATTEMPTS,
                                backoff=LinearBackoff(s.UPSTREAM_BACKOFF_SEC),
                                sleep=self.sleep, events=self.events, **auth)
        source = build_source(network, client)
        logger.info("Initialized %s (%s, %d active key(s))", network.network_id, network.api.kind,
                    pool.active_count())
        return NetworkRuntime(network=network, pool=pool, limiter=limiter, client=client, source=source)


class RevenueService:
    def __init__(self, context: RevenueContext, estimator: PointsEstimator = None,
                 discovery: PriceDiscoveryEngine = None, calculator: LossCalculator = None):
        self.context = context
        self.events = context.events
        settings = context.settings
        self.page_size = settings.TRANSFER_PAGE_SIZE
        self.estimator = estimator or PointsEstimator(parse_balance_tiers(settings.BALANCE_TIERS),
                                                      volume_points_cap=settings.VOLUME_POINTS_CAP or None)
        self.discovery = discovery or PriceDiscoveryEngine(settings.PRICE_DEVIATION_WARN_PCT)
        self.calculator = calculator or LossCalculator()

    def analyze_wallets(self, wallets: List[str], query_date: str,
                        network_id: Optional[str] = None) -> List[WalletRevenueSnapshot]:
        """One snapshot per input wallet, in input order.

        Raises ValidationError for a bad date and ConfigurationError for
        unusable configuration; every other failure lands in a snapshot's error.
        """
        query_date = validate_query_date(query_date)
        network = self.context.networks.get(network_id)
        rt = self.context.runtime(network.network_id)

        results: List[Optional[WalletRevenueSnapshot]] = [None] * len(wallets)
        jobs: List[Tuple[int, str]] = []
        for i, raw in enumerate(wallets):
            try:
                jobs.append((i, normalize_wallet(raw)))
            except ValidationError as e:
                results[i] = WalletRevenueSnapshot.failed(str(raw).strip(), query_date, str(e))

        session = self.events.start_session('revenue batch', date=query_date,
                                            network=network.network_id, wallets=len(wallets))
        try:
            if jobs:
                self._run_batch(jobs, results, query_date, network, rt)
        finally:
            failed = sum(1 for r in results if r is None or r.error)
            self.events.end_session(session, ok=len(results) - failed, failed=failed)
        return results

    def _run_batch(self, jobs, results, query_date: str, network: NetworkConfig, rt: NetworkRuntime):
        try:
            block_range = self.context.resolver.resolve(query_date, network)
        except ConfigurationError:
            raise
        except RevenueError as e:
            self.events.error('block-range', f"{network.network_id} {query_date} unavailable", error=e)
            for i, wallet in jobs:
                results[i] = WalletRevenueSnapshot.failed(wallet, query_date, f"block range unavailable: {e}")
            return

        prices = self._shared_prices(network, rt)
        width = max(1, min(rt.pool.healthy_active_count(), len(jobs)))
        for start in range(0, len(jobs), width):
            chunk = jobs[start:start + width]
            with ThreadPoolExecutor(max_workers=len(chunk), thread_name_prefix='wallet') as pool:
                futures = [(i, wallet, pool.submit(self._analyze_wallet, wallet, query_date,
                                                   network, rt, block_range, prices))
                           for i, wallet in chunk]
                for i, wallet, future in futures:
                    try:
                        results[i] = future.result()
                    except ConfigurationError:
                        raise
                    except Exception as e:
                        self.events.error('revenue', "wallet analysis failed", wallet=wallet, error=e)
                        results[i] = WalletRevenueSnapshot.failed(wallet, query_date, str(e) or type(e).__name__)

    def _shared_prices(self, network: NetworkConfig, rt: NetworkRuntime) -> PriceMap:
        native_price = None
        try:
            native_price = rt.source.native_price()
        except RevenueError as e:
            self.events.warning('price', f"native {network.native_token.symbol} price unavailable", error=e)

        feed: Dict[str, Decimal] = {}
        if rt.source.supports_token_prices:
            wanted = [network.tokens[s] for s in network.pair_symbols()
                      if s not in network.stablecoins and not network.tokens[s].is_native]
            try:
                feed = rt.source.token_prices(wanted)
            except RevenueError as e:
                self.events.warning('price', "pair token prices unavailable", error=e)

        prices = seed_prices(network.stablecoins, network.native_token.symbol, native_price, feed)
        self.events.event('price', "batch price seed", network=network.network_id,
                          native=native_price, priced=len(prices))
        return prices

    def _analyze_wallet(self, wallet: str, query_date: str, network: NetworkConfig,
                        rt: NetworkRuntime, block_range, prices: PriceMap) -> WalletRevenueSnapshot:
        fetcher = TransactionFetcher(rt.source, page_size=self.page_size, events=self.events)
        transfers = fetcher.fetch_wallet_transfers(wallet, network, block_range)
        if transfers.failures:
            raise TransferFetchError(','.join(transfers.failures),
                                     '; '.join(transfers.failures.values()))

        holdings = BalanceService(rt.source).holdings(wallet, network, block_range.end_block)

        exchanges = ExchangeReconstructor(network.normalize_symbol).reconstruct(
            transfers.events, network.pairs, wallet)

        warnings: List[str] = []

        def on_inconsistency(issue):
            msg = (f"{issue.hash[:10]} {issue.from_symbol}->{issue.to_symbol} deviates "
                   f"{issue.deviation_pct:.2f}% from known prices")
            warnings.append(msg)
            self.events.warning('price', msg, wallet=wallet)

        def on_inference(found):
            self.events.event('price', f"inferred {found.symbol}", price=found.price, tx=found.via_hash[:10])

        self.discovery.discover(exchanges, prices, on_inconsistency=on_inconsistency,
                                on_inference=on_inference)

        native_price = prices.get(network.native_token.symbol)
        loss = self.calculator.compute(exchanges, prices, network.stablecoins, native_price)
        tokens_value = BalanceService.value(holdings, prices)

        buys = LossCalculator.valid_exchanges(exchanges, network.stablecoins)
        window = self.estimator.weigh_volume(network, buys, prices)
        points = self.estimator.estimate(tokens_value, loss.valid_volume, window)

        if transfers.skipped:
            warnings.append(f"native transfers not listed: {', '.join(transfers.skipped)}")

        summary = TransactionSummary(
            network_id=network.network_id,
            block_range=block_range,
            exchange_count=len(exchanges),
            valid_exchange_count=loss.valid_count,
            trading_loss=loss.trading_loss,
            gas_loss=loss.gas_loss,
            valid_volume=loss.valid_volume,
            points=points,
            window=window,
            exchanges=exchanges,
            warnings=warnings,
        )
        self.events.event('revenue', "wallet analyzed", wallet=wallet, exchanges=len(exchanges),
                          value=round(tokens_value, 2), points=points.total)
        return WalletRevenueSnapshot(wallet_address=wallet, query_date=query_date,
                                     tokens_value=tokens_value, transaction_summary=summary)
