#!/usr/bin/env python3
"""
Revenue CLI
- Analyze wallets for a trading day (losses, valid volume, points estimate)
- Manage API keys per network (list/add/remove/toggle)
- Check configuration
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from config import config
from alpha_revenue.data.credential_repository import InMemoryCredentialStore, SupabaseCredentialStore
from alpha_revenue.data.supabase_client import create_supabase_client
from alpha_revenue.errors import ConfigurationError, CredentialRejected, ValidationError
from alpha_revenue.services.revenue_service import RevenueContext, RevenueService


def build_store():
    client = create_supabase_client()
    if client:
        return SupabaseCredentialStore(client, table=config.CREDENTIALS_TABLE)
    return InMemoryCredentialStore()


def build_context(store=None) -> RevenueContext:
    try:
        return RevenueContext.from_config(config, store=store or build_store())
    except ConfigurationError as e:
        print(f"❌ Configuration error: {e}")
        sys.exit(1)


def read_wallets(args: argparse.Namespace):
    wallets = list(args.wallets or [])
    if args.wallets_file:
        for line in Path(args.wallets_file).read_text().splitlines():
            line = line.strip()
            if line and not line.startswith('#'):
                wallets.append(line)
    return wallets


def cmd_analyze(args: argparse.Namespace):
    """Analyze wallets for one date"""
    wallets = read_wallets(args)
    if not wallets:
        print("❌ No wallets given")
        sys.exit(1)

    service = RevenueService(build_context())
    try:
        snapshots = service.analyze_wallets(wallets, args.date, network_id=args.network)
    except (ValidationError, ConfigurationError) as e:
        print(f"❌ {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps([s.to_dict() for s in snapshots], indent=2))
        return

    print(f"📅 {args.date}  ({len(snapshots)} wallet(s))")
    print("=" * 60)
    for snap in snapshots:
        if snap.error:
            print(f"❌ {snap.wallet_address}: {snap.error}")
            continue
        s = snap.transaction_summary
        print(f"✅ {snap.wallet_address}")
        print(f"   Balance:      ${snap.tokens_value:,.2f}")
        print(f"   Swaps:        {s.exchange_count} ({s.valid_exchange_count} valid)")
        print(f"   Valid volume: ${s.valid_volume:,.2f}  x{s.window.multiplier:.2f}"
              f"{'  (alpha window)' if s.window.in_alpha_window else ''}")
        print(f"   Trading loss: ${s.trading_loss:,.4f}")
        print(f"   Gas loss:     ${s.gas_loss:,.4f}")
        print(f"   Points:       {s.points.total} = {s.points.balance_points} balance + "
              f"{s.points.volume_points} volume  [{s.points.level}]")
        for warning in s.warnings:
            print(f"   ⚠️  {warning}")


def cmd_keys(args: argparse.Namespace):
    """List or change API keys for a network"""
    store = build_store()
    ctx = build_context(store)
    try:
        pool = ctx.runtime(args.network).pool
    except ConfigurationError as e:
        print(f"❌ {e}")
        sys.exit(1)

    try:
        if args.action == 'add':
            cred = pool.add(args.key, name=args.name or '')
            print(f"✅ Added key '{cred.name}' (priority {cred.priority})")
        elif args.action == 'remove':
            cred = pool.remove(args.key)
            print(f"🗑️  Removed key '{cred.name}'")
        elif args.action == 'toggle':
            active = pool.toggle(args.key)
            print(f"🔁 Key is now {'active' if active else 'inactive'}")
    except CredentialRejected as e:
        print(f"❌ {e}")
        sys.exit(1)

    if isinstance(store, InMemoryCredentialStore) and args.action != 'list':
        print("ℹ️  Supabase not configured; change applies to this process only")

    stats = pool.stats()
    print(f"🔑 {stats['network']}/{stats['service']}: {stats['active_keys']}/{stats['total_keys']} active, "
          f"{stats['healthy_keys']} healthy")
    for row in stats['keys']:
        flags = ' '.join(f for f, on in (('active', row['active']), ('protected', row['protected']),
                                         ('unhealthy', not row['healthy'])) if on)
        print(f"   - {row['name']:<24} {row['key']:<14} {flags}")


def cmd_config_check(args: argparse.Namespace):
    """Validate settings and the networks file"""
    issues = config.validate_config()
    if not issues:
        try:
            ctx = RevenueContext.from_config(config, store=InMemoryCredentialStore())
            for net in ctx.networks:
                print(f"🌐 {net.network_id}: {net.name} (chain {net.chain_id_hex}, {len(net.pairs)} pairs, "
                      f"{len([c for c in net.api.credentials if c.active])} configured key(s))")
        except ConfigurationError as e:
            issues.append(str(e))
    if not issues and config.supabase_enabled():
        if not create_supabase_client().test_connection(config.CREDENTIALS_TABLE):
            issues.append(f"Supabase table '{config.CREDENTIALS_TABLE}' is not reachable")
    if issues:
        print("⚠️  Configuration Issues:")
        for issue in issues:
            print(f"   - {issue}")
        sys.exit(1)
    print("✅ Configuration is valid")


def main():
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    parser = argparse.ArgumentParser(description="Alpha Revenue CLI")
    sub = parser.add_subparsers(dest="cmd")

    p_analyze = sub.add_parser("analyze", help="Analyze wallets for a date")
    p_analyze.add_argument("wallets", nargs="*", help="Wallet addresses")
    p_analyze.add_argument("--date", required=True, help="YYYY-MM-DD")
    p_analyze.add_argument("--network", help="Network id (default from config)")
    p_analyze.add_argument("--wallets-file", help="File with one wallet per line")
    p_analyze.add_argument("--json", action="store_true", help="Print JSON snapshots")
    p_analyze.set_defaults(func=cmd_analyze)

    p_keys = sub.add_parser("keys", help="Manage API keys")
    p_keys.add_argument("action", choices=["list", "add", "remove", "toggle"])
    p_keys.add_argument("--network", help="Network id (default from config)")
    p_keys.add_argument("--key", help="API key value (add/remove/toggle)")
    p_keys.add_argument("--name", help="Display name for an added key")
    p_keys.set_defaults(func=cmd_keys)

    p_check = sub.add_parser("config-check", help="Validate configuration")
    p_check.set_defaults(func=cmd_config_check)

    args = parser.parse_args()
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)
    if getattr(args, "action", None) in ("add", "remove", "toggle") and not args.key:
        parser.error("--key is required for add/remove/toggle")
    args.func(args)


if __name__ == "__main__":
    main()
