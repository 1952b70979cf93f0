#!/usr/bin/env python3
"""
Alpha Revenue Configuration
Centralized configuration management
"""

import os
from dotenv import load_dotenv
from pathlib import Path
from typing import List

# Load environment variables
load_dotenv()


def _env_list(name: str) -> List[str]:
    return [v.strip() for v in os.getenv(name, '').split(',') if v.strip()]


class Config:
    """Application configuration"""

    # Base paths
    BASE_DIR = Path(__file__).parent.parent
    CONFIG_DIR = BASE_DIR / "config"

    # Network definitions (JSON, schema_version 1 or 2)
    NETWORKS_CONFIG_PATH = os.getenv('NETWORKS_CONFIG_PATH', str(CONFIG_DIR / 'networks.json'))
    DEFAULT_NETWORK = os.getenv('DEFAULT_NETWORK', '')

    # Trading day: starts at TRADING_DAY_START_HOUR local time in UTC+offset.
    # 0/0 is the UTC-midnight day; 8/8 is the 08:00 UTC+8 day.
    TRADING_DAY_UTC_OFFSET_HOURS = int(os.getenv('TRADING_DAY_UTC_OFFSET_HOURS', '0'))
    TRADING_DAY_START_HOUR = int(os.getenv('TRADING_DAY_START_HOUR', '0'))

    # Upstream calls
    UPSTREAM_REQUEST_TIMEOUT_SEC = float(os.getenv('UPSTREAM_REQUEST_TIMEOUT_SEC', '30'))
    UPSTREAM_MAX_ATTEMPTS = int(os.getenv('UPSTREAM_MAX_ATTEMPTS', '3'))
    UPSTREAM_BACKOFF_SEC = float(os.getenv('UPSTREAM_BACKOFF_SEC', '1.0'))
    RATE_LIMIT_BASE_INTERVAL_MS = int(os.getenv('RATE_LIMIT_BASE_INTERVAL_MS', '200'))

    # Block range / transfers
    TRANSFER_PAGE_SIZE = int(os.getenv('TRANSFER_PAGE_SIZE', '10000'))
    BLOCK_LOOKUP_ATTEMPTS = int(os.getenv('BLOCK_LOOKUP_ATTEMPTS', '3'))
    BLOCK_LOOKUP_BACKOFF_SEC = float(os.getenv('BLOCK_LOOKUP_BACKOFF_SEC', '1.0'))

    # Pricing / points
    PRICE_DEVIATION_WARN_PCT = float(os.getenv('PRICE_DEVIATION_WARN_PCT', '5'))
    BALANCE_TIERS = os.getenv('BALANCE_TIERS', '100:1,1000:2,10000:3,100000:4')
    VOLUME_POINTS_CAP = int(os.getenv('VOLUME_POINTS_CAP', '25'))

    # Supabase (optional; stores user-added credentials)
    SUPABASE_URL = os.getenv('SUPABASE_URL', '')
    SUPABASE_ANON_KEY = os.getenv('SUPABASE_ANON_KEY', '')
    SUPABASE_SERVICE_ROLE_KEY = os.getenv('SUPABASE_SERVICE_ROLE_KEY', '')
    CREDENTIALS_TABLE = os.getenv('CREDENTIALS_TABLE', 'api_credentials')

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')

    @staticmethod
    def api_keys_for(network_id: str) -> List[str]:
        """Keys from <NETWORK>_API_KEYS (comma separated) or <NETWORK>_API_KEY_1..N"""
        prefix = network_id.upper().replace('-', '_')
        keys = _env_list(f'{prefix}_API_KEYS')
        i = 1
        while True:
            value = os.getenv(f'{prefix}_API_KEY_{i}', '').strip()
            if not value:
                break
            if value not in keys:
                keys.append(value)
            i += 1
        return keys

    @classmethod
    def supabase_enabled(cls) -> bool:
        return bool(cls.SUPABASE_URL and (cls.SUPABASE_ANON_KEY or cls.SUPABASE_SERVICE_ROLE_KEY))

    @classmethod
    def validate_config(cls):
        """Validate configuration"""
        issues = []

        if not Path(cls.NETWORKS_CONFIG_PATH).exists():
            issues.append(f"NETWORKS_CONFIG_PATH not found: {cls.NETWORKS_CONFIG_PATH} (Required)")

        if cls.TRADING_DAY_START_HOUR not in range(24):
            issues.append("TRADING_DAY_START_HOUR must be 0-23")

        if cls.UPSTREAM_MAX_ATTEMPTS < 1:
            issues.append("UPSTREAM_MAX_ATTEMPTS must be at least 1")

        if cls.RATE_LIMIT_BASE_INTERVAL_MS < 0:
            issues.append("RATE_LIMIT_BASE_INTERVAL_MS must not be negative")

        for chunk in cls.BALANCE_TIERS.split(','):
            if chunk.strip() and ':' not in chunk:
                issues.append(f"BALANCE_TIERS entry '{chunk.strip()}' must be <min_usd>:<points>")

        if cls.SUPABASE_URL and not (cls.SUPABASE_ANON_KEY or cls.SUPABASE_SERVICE_ROLE_KEY):
            issues.append("SUPABASE_URL set without SUPABASE_ANON_KEY or SUPABASE_SERVICE_ROLE_KEY")

        return issues

# Create singleton instance
config = Config()

if __name__ == "__main__":
    # Configuration test
    print("🔧 Alpha Revenue Configuration")
    print("=" * 40)
    print(f"Networks file: {config.NETWORKS_CONFIG_PATH}")
    print(f"Trading day: {config.TRADING_DAY_START_HOUR:02d}:00 UTC{config.TRADING_DAY_UTC_OFFSET_HOURS:+d}")
    print(f"Supabase: {'enabled' if config.supabase_enabled() else 'disabled'}")

    issues = config.validate_config()
    if issues:
        print(f"\n⚠️  Configuration Issues:")
        for issue in issues:
            print(f"   - {issue}")
    else:
        print(f"\n✅ Configuration is valid")
